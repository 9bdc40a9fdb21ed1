"""Exceptions for plc-bridge: tag config, device connection, reads, transmission, fatal exit."""


class BridgeError(Exception):
    """Base exception for plc-bridge."""

    pass


class InvalidTagError(BridgeError):
    """Raised when a tag config entry is malformed (missing or bad field)."""

    def __init__(self, entry: object, message: str | None = None) -> None:
        self.entry = entry
        self._msg = message or f"Invalid tag entry: {entry!r}"
        super().__init__(self._msg)


class DeviceConnectionError(BridgeError):
    """Raised when the Modbus session cannot be established or was lost."""

    def __init__(self, message: str, *, host: str | None = None, port: int | None = None) -> None:
        self.host = host
        self.port = port
        super().__init__(message)


class NotConnectedError(DeviceConnectionError):
    """Raised when a read is attempted without a connected session."""

    pass


class ReadError(BridgeError):
    """Raised when a bulk read for one register function fails (wraps pymodbus errors)."""

    def __init__(
        self,
        message: str,
        *,
        function: str | None = None,
        start: int | None = None,
        count: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.function = function
        self.start = start
        self.count = count
        self.cause = cause
        super().__init__(message)


class TransmitError(BridgeError):
    """Raised after a send pass in which at least one tag failed to reach the sink."""

    def __init__(self, failure_count: int, total: int, failures: dict[str, str] | None = None) -> None:
        self.failure_count = failure_count
        self.total = total
        self.failures = dict(failures or {})
        super().__init__(f"{failure_count}/{total} tags failed to update")

    @property
    def success_count(self) -> int:
        return self.total - self.failure_count


class FatalError(BridgeError):
    """Raised when consecutive failed cycles reach the threshold; the bridge must exit."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        super().__init__(f"{failures} consecutive cycle failures")
