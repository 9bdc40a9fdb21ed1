"""TagRegistry: immutable tag snapshots, packaged defaults, change notification on refresh."""

import json
import logging
from collections.abc import Callable, Iterable, Iterator
from importlib import resources
from typing import Any

from .normalize import normalize_tags
from .types import TagDef

logger = logging.getLogger(__name__)

Snapshot = tuple[TagDef, ...]
Listener = Callable[[Snapshot], None]

_DEFAULT_RESOURCE = ("data", "default_tags.json")


def load_default_tags() -> list[dict[str, Any]]:
    """Load the built-in default tag list (wire format) from package data."""
    path = resources.files("plc_bridge").joinpath(_DEFAULT_RESOURCE[0]).joinpath(_DEFAULT_RESOURCE[1])
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Default tag resource not found: plc_bridge/{'/'.join(_DEFAULT_RESOURCE)}") from None
    if not isinstance(data, list):
        raise ValueError("Default tag resource must be a JSON array")
    return data


class TagRegistry:
    """
    Owns the current tag snapshot.

    The snapshot is an immutable tuple replaced by reference on refresh, so a
    reader holding ``registry.snapshot`` always iterates one complete list.
    """

    def __init__(self, raw: Iterable[Any] | None = None) -> None:
        """Build from a raw (wire-format) list, or from the packaged defaults."""
        entries = load_default_tags() if raw is None else raw
        self._snapshot: Snapshot = tuple(normalize_tags(entries))
        self._listeners: list[Listener] = []
        logger.debug("TagRegistry initialized: %d tags", len(self._snapshot))

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def subscribe(self, listener: Listener) -> None:
        """Register a callback invoked with the new snapshot after each change."""
        self._listeners.append(listener)

    def refresh(self, raw: Iterable[Any]) -> bool:
        """
        Normalize ``raw`` and replace the snapshot if it differs by value.

        Returns True when the snapshot changed (listeners were notified).
        """
        new = tuple(normalize_tags(raw))
        if new == self._snapshot:
            return False
        self._snapshot = new
        logger.info("Tag config updated (%d tags)", len(new))
        for listener in list(self._listeners):
            listener(new)
        return True

    def get(self, name: str) -> TagDef | None:
        for tag in self._snapshot:
            if tag.name == name:
                return tag
        return None

    def names(self) -> list[str]:
        return [tag.name for tag in self._snapshot]

    def __iter__(self) -> Iterator[TagDef]:
        return iter(self._snapshot)

    def __len__(self) -> int:
        return len(self._snapshot)
