"""ProtocolClient: Modbus TCP session over pymodbus with per-function bulk reads and decoding."""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

from pymodbus.client import ModbusTcpClient
from pymodbus.exceptions import ConnectionException
from pymodbus.exceptions import ModbusException as PymodbusException

from .decode import decode_bit, decode_register
from .errors import DeviceConnectionError, NotConnectedError, ReadError
from .registry import Snapshot
from .types import ClientState, Reading, ReadPlan, RegisterFunction, TagDef

logger = logging.getLogger(__name__)

# Read order within a cycle
_FUNCTION_ORDER = (
    RegisterFunction.HOLDING,
    RegisterFunction.INPUT,
    RegisterFunction.COIL,
    RegisterFunction.DISCRETE,
)

_FUNCTION_NAMES = {
    RegisterFunction.HOLDING: "read_holding_registers",
    RegisterFunction.INPUT: "read_input_registers",
    RegisterFunction.COIL: "read_coils",
    RegisterFunction.DISCRETE: "read_discrete_inputs",
}


def covering_range(tags: list[TagDef] | tuple[TagDef, ...]) -> tuple[int, int]:
    """
    Smallest (start, count) covering every tag's full footprint.

    start = min(address), end = max(address + width - 1), count = end - start + 1.
    """
    if not tags:
        raise ValueError("covering_range needs at least one tag")
    start = min(t.address for t in tags)
    end = max(t.address + t.width - 1 for t in tags)
    return start, end - start + 1


def build_plan(snapshot: Snapshot) -> list[ReadPlan]:
    """Group tags by register function and compute one bulk read per non-empty group."""
    by_function: dict[RegisterFunction, list[TagDef]] = defaultdict(list)
    for tag in snapshot:
        by_function[tag.function].append(tag)
    plans: list[ReadPlan] = []
    for function in _FUNCTION_ORDER:
        tags = by_function.get(function)
        if not tags:
            continue
        start, count = covering_range(tags)
        plans.append(ReadPlan(function=function, start=start, count=count, tags=tuple(tags)))
    return plans


class ProtocolClient:
    """
    Single Modbus TCP device session.

    Wraps pymodbus ModbusTcpClient; tracks connection state and the last
    connection error so the poll loop can decide when to reconnect.
    """

    def __init__(
        self,
        host: str,
        port: int = 502,
        unit_id: int = 1,
        timeout: float = 3.0,
        retries: int = 1,
    ) -> None:
        self._host = host
        self._port = port
        self._unit_id = unit_id
        self._timeout = timeout
        self._retries = retries
        self._client: ModbusTcpClient | None = None
        self._state = ClientState.DISCONNECTED
        self.last_error: BaseException | None = None

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def is_connected(self) -> bool:
        if self._state != ClientState.CONNECTED or self._client is None:
            return False
        return bool(getattr(self._client, "connected", True))

    @property
    def address(self) -> str:
        return f"{self._host}:{self._port}"

    def _new_client(self) -> ModbusTcpClient:
        return ModbusTcpClient(
            host=self._host,
            port=self._port,
            timeout=self._timeout,
            retries=self._retries,
        )

    def connect(self) -> bool:
        """
        Establish the TCP session. Returns False on failure (never raises);
        the error is kept in ``last_error`` and the state falls back to DISCONNECTED.
        """
        self._state = ClientState.CONNECTING
        if self._client is None:
            self._client = self._new_client()
        try:
            ok = self._client.connect()
        except (PymodbusException, OSError) as e:
            ok = False
            self.last_error = e
        else:
            if not ok:
                self.last_error = DeviceConnectionError(
                    f"Failed to connect to {self.address}", host=self._host, port=self._port
                )
        if ok:
            self._state = ClientState.CONNECTED
            self.last_error = None
            logger.info("Connected to PLC %s (unit %d)", self.address, self._unit_id)
            return True
        self._state = ClientState.FAILED
        logger.error("PLC connection to %s failed: %s", self.address, self.last_error)
        self._state = ClientState.DISCONNECTED
        return False

    def close(self) -> None:
        """Close the TCP session."""
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Error closing Modbus client: %s", e)
            self._client = None
        self._state = ClientState.DISCONNECTED

    def __enter__(self) -> "ProtocolClient":
        if not self.connect():
            raise DeviceConnectionError(f"Failed to connect to {self.address}", host=self._host, port=self._port)
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def plan(self, snapshot: Snapshot) -> list[ReadPlan]:
        """Bulk reads read_all would issue for this snapshot."""
        return build_plan(snapshot)

    def _bulk_read(self, plan: ReadPlan) -> list[Any]:
        """Issue one pymodbus read for the plan; return registers or bits."""
        client = self._client
        if client is None:
            raise NotConnectedError(f"PLC {self.address} not connected", host=self._host, port=self._port)
        start, count, function = plan.start, plan.count, plan.function
        if function == RegisterFunction.HOLDING:
            rr = client.read_holding_registers(start, count=count, device_id=self._unit_id)
        elif function == RegisterFunction.INPUT:
            rr = client.read_input_registers(start, count=count, device_id=self._unit_id)
        elif function == RegisterFunction.COIL:
            rr = client.read_coils(start, count=count, device_id=self._unit_id)
        elif function == RegisterFunction.DISCRETE:
            rr = client.read_discrete_inputs(start, count=count, device_id=self._unit_id)
        else:
            raise ReadError(f"Unknown register function: {function}", function=str(function), start=start, count=count)

        if rr.isError():
            raise ReadError(
                str(rr),
                function=function.value,
                start=start,
                count=count,
                cause=getattr(rr, "exception", None),
            )
        if function.is_bit:
            data = getattr(rr, "bits", None)
            kind = "bit"
        else:
            data = getattr(rr, "registers", None)
            kind = "register"
        # pymodbus pads bit responses to a multiple of 8; only short responses are errors
        if data is None or len(data) < count:
            raise ReadError(f"Short {kind} response", function=function.value, start=start, count=count)
        return list(data)

    def _read_group(self, plan: ReadPlan, timestamp: datetime) -> dict[str, Reading]:
        try:
            data = self._bulk_read(plan)
        except ConnectionException as e:
            self._state = ClientState.DISCONNECTED
            self.last_error = e
            raise ReadError(str(e), function=plan.function.value, start=plan.start, count=plan.count, cause=e) from e
        except PymodbusException as e:
            raise ReadError(str(e), function=plan.function.value, start=plan.start, count=plan.count, cause=e) from e

        out: dict[str, Reading] = {}
        for tag in plan.tags:
            rel = tag.address - plan.start
            if plan.function.is_bit:
                value = decode_bit(data, rel)
            else:
                value = decode_register(tag, data, rel)
            out[tag.name] = Reading(tag.name, value, timestamp)
        return out

    def read_all(self, snapshot: Snapshot) -> dict[str, Reading]:
        """
        Read every tag in the snapshot with one bulk read per register function.

        A failed group is logged and its tags are left out of the result; the
        other groups are still read, so a cycle in which every group failed
        yields an empty set. Raises NotConnectedError when there is no session.
        """
        if not self.is_connected:
            raise NotConnectedError(f"PLC {self.address} not connected", host=self._host, port=self._port)

        timestamp = datetime.now(timezone.utc)
        by_tag: dict[str, Reading] = {}
        plans = build_plan(snapshot)
        for plan in plans:
            try:
                by_tag.update(self._read_group(plan, timestamp))
            except ReadError as e:
                logger.error(
                    "Error reading %s (start=%d count=%d): %s",
                    _FUNCTION_NAMES[plan.function],
                    plan.start,
                    plan.count,
                    e,
                )

        # Registry order, not group order
        return {tag.name: by_tag[tag.name] for tag in snapshot if tag.name in by_tag}
