"""Normalize and validate raw tag config entries coming from JSON or the remote config source."""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .errors import InvalidTagError
from .types import DataType, RegisterFunction, TagDef

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("address", "type", "function")


def _coerce_address(raw: Any, entry: Mapping[str, Any]) -> int:
    if isinstance(raw, bool):
        raise InvalidTagError(entry, f"Address must be an integer, got {raw!r}")
    if isinstance(raw, float):
        if not raw.is_integer():
            raise InvalidTagError(entry, f"Address must be an integer, got {raw!r}")
        address = int(raw)
    else:
        try:
            address = int(str(raw).strip(), 10)
        except ValueError:
            raise InvalidTagError(entry, f"Address must be an integer, got {raw!r}") from None
    if address < 0:
        raise InvalidTagError(entry, f"Address must be >= 0, got {address}")
    return address


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_entry(entry: Any) -> TagDef:
    """
    Build a TagDef from one wire entry {tag, address, type, function, label?, unit?}.

    - ``name`` is accepted as an alias for ``tag``.
    - ``address`` is coerced to int; negative or non-integral values are rejected.
    - Unknown ``type`` strings decode as raw unsigned words (UINT16).
    - Unknown ``function`` strings are rejected.

    Raises InvalidTagError for entries that cannot be admitted.
    """
    if not isinstance(entry, Mapping):
        raise InvalidTagError(entry, "Tag entry must be an object")

    name = entry.get("tag") or entry.get("name")
    if not name or not str(name).strip():
        raise InvalidTagError(entry, "Tag entry has no name")
    for field in _REQUIRED_FIELDS:
        if entry.get(field) is None or entry.get(field) == "":
            raise InvalidTagError(entry, f"Tag {name!r} is missing {field!r}")

    address = _coerce_address(entry["address"], entry)

    function_raw = str(entry["function"]).strip().lower()
    try:
        function = RegisterFunction(function_raw)
    except ValueError:
        raise InvalidTagError(entry, f"Unknown register function {entry['function']!r} for tag {name!r}") from None

    type_raw = str(entry["type"]).strip().lower()
    try:
        data_type = DataType(type_raw)
    except ValueError:
        logger.debug("Tag %s has unrecognized type %r; reading as uint16", name, entry["type"])
        data_type = DataType.UINT16

    return TagDef(
        name=str(name).strip(),
        address=address,
        data_type=data_type,
        function=function,
        label=_optional_text(entry.get("label")),
        unit=_optional_text(entry.get("unit")),
    )


def normalize_tags(raw: Iterable[Any]) -> list[TagDef]:
    """
    Normalize a raw tag list, silently dropping (with a warning) malformed entries.

    Order is preserved; on duplicate names the first entry wins.
    """
    out: list[TagDef] = []
    seen: set[str] = set()
    for entry in raw:
        try:
            tag = normalize_entry(entry)
        except InvalidTagError as e:
            logger.warning("Dropping tag entry: %s", e)
            continue
        if tag.name in seen:
            logger.warning("Dropping duplicate tag entry %r", tag.name)
            continue
        seen.add(tag.name)
        out.append(tag)
    return out
