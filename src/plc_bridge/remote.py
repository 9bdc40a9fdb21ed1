"""HTTP side of the bridge over httpx: tag-config source and per-tag telemetry transmitter."""

import logging
import math
from collections.abc import Mapping
from typing import Any

import httpx

from .errors import TransmitError
from .settings import DEFAULT_TIMEOUT
from .types import Reading, SendSummary

logger = logging.getLogger(__name__)


def _describe(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    return str(exc) or type(exc).__name__


def _json_value(value: Any) -> Any:
    # Non-finite floats are not valid JSON
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


class TagConfigSource:
    """Fetches the tag list from the remote config endpoint."""

    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT, client: httpx.Client | None = None) -> None:
        self.url = url
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout)

    def fetch(self) -> list[Any] | None:
        """Return the remote tag list, or None (logged) if unavailable or not a JSON array."""
        try:
            resp = self._client.get(self.url)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            logger.warning("Failed to fetch remote tags from %s: %s", self.url, _describe(e))
            return None
        except ValueError as e:
            logger.warning("Remote tags from %s are not valid JSON: %s", self.url, e)
            return None
        if not isinstance(data, list):
            logger.warning("Remote tags from %s: expected a list, got %s", self.url, type(data).__name__)
            return None
        return data

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class Transmitter:
    """
    Sends readings to the telemetry sink, one request per tag.

    Requests are sequential; a failed tag never stops the remaining ones.
    """

    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT, client: httpx.Client | None = None) -> None:
        self.url = url
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout)

    def send(self, tag: str, value: Any) -> None:
        """POST one {tag, value} pair; raises httpx.HTTPError on failure."""
        resp = self._client.post(self.url, json={"tag": tag, "value": _json_value(value)})
        resp.raise_for_status()
        logger.debug("Sent %s: %s (%d)", tag, value, resp.status_code)

    def send_all(self, readings: Mapping[str, Reading]) -> SendSummary:
        """
        Send every reading; return SendSummary when all succeeded.

        Raises TransmitError carrying the failure count, total and per-tag
        reasons once all sends have been attempted.
        """
        total = len(readings)
        failures: dict[str, str] = {}
        for name, reading in readings.items():
            try:
                self.send(name, reading.value)
            except httpx.HTTPError as e:
                failures[name] = _describe(e)
                logger.error("Failed to update %s: %s", name, failures[name])

        success_count = total - len(failures)
        logger.info("Batch update: %d/%d tags sent", success_count, total)
        if failures:
            raise TransmitError(len(failures), total, failures)
        return SendSummary(success_count=success_count, total=total)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
