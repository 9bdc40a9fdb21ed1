"""Bridge settings and endpoint URL derivation."""

from dataclasses import dataclass
from urllib.parse import urlsplit

UPDATE_PATH = "/api/plc/update"
TAGS_PATH = "/api/plc/tags"

DEFAULT_PLC_HOST = "192.168.0.10"
DEFAULT_PLC_PORT = 502
DEFAULT_API_URL = "http://localhost:5000"
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_REFRESH_INTERVAL = 60.0
DEFAULT_TIMEOUT = 5.0
MAX_CONSECUTIVE_FAILURES = 5


def api_base(url: str) -> str:
    """
    Reduce a configured API URL to the base the fixed paths are appended to.

    A URL with scheme and host reduces to its origin; anything else is used
    as given, minus a trailing ``/api/plc/update`` and slash.
    """
    url = url.strip()
    parts = urlsplit(url)
    if parts.scheme and parts.netloc:
        return f"{parts.scheme}://{parts.netloc}"
    if url.lower().endswith(UPDATE_PATH):
        url = url[: -len(UPDATE_PATH)]
    return url.rstrip("/")


def update_url(url: str) -> str:
    """Telemetry sink endpoint: POST {tag, value}."""
    return api_base(url) + UPDATE_PATH


def tags_url(url: str) -> str:
    """Remote tag-config endpoint: GET -> [{tag, address, type, function, ...}]."""
    return api_base(url) + TAGS_PATH


@dataclass(frozen=True)
class BridgeSettings:
    """Runtime configuration; the CLI fills it from options and environment variables."""

    plc_host: str = DEFAULT_PLC_HOST
    plc_port: int = DEFAULT_PLC_PORT
    unit_id: int = 1
    demo: bool = True
    poll_interval: float = DEFAULT_POLL_INTERVAL
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    api_url: str = DEFAULT_API_URL
    config_url: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    max_failures: int = MAX_CONSECUTIVE_FAILURES

    def validate(self) -> "BridgeSettings":
        """Raise ValueError on settings the bridge cannot run with; return self."""
        if not (1 <= self.plc_port <= 65535):
            raise ValueError(f"PLC port out of range 1-65535: {self.plc_port}")
        if not (0 <= self.unit_id <= 255):
            raise ValueError(f"Unit ID out of range 0-255: {self.unit_id}")
        if self.poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {self.poll_interval}")
        if self.refresh_interval <= 0:
            raise ValueError(f"Refresh interval must be positive, got {self.refresh_interval}")
        if self.timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout}")
        if self.max_failures < 1:
            raise ValueError(f"Failure threshold must be >= 1, got {self.max_failures}")
        if not self.api_url.strip():
            raise ValueError("API URL must not be empty")
        for name, url in (("API URL", self.api_url), ("config URL", self.config_url)):
            if url is None:
                continue
            try:
                api_base(url)
            except ValueError as e:
                raise ValueError(f"Invalid {name} {url!r}: {e}") from None
        return self

    @property
    def update_url(self) -> str:
        return update_url(self.api_url)

    @property
    def tags_url(self) -> str:
        return tags_url(self.config_url or self.api_url)
