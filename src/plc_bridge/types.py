"""Core data model: register function and data type enums, TagDef, Reading, read plans."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class RegisterFunction(str, Enum):
    """Modbus read functions a tag can be mapped to (values are the config wire strings)."""

    HOLDING = "holding"
    INPUT = "input"
    COIL = "coil"
    DISCRETE = "discrete"

    @property
    def is_bit(self) -> bool:
        return self in (RegisterFunction.COIL, RegisterFunction.DISCRETE)


class DataType(str, Enum):
    """Value types a tag decodes to (values are the config wire strings)."""

    BOOL = "boolean"
    UINT16 = "uint16"
    INT16 = "int16"
    FLOAT32 = "float"


class ClientState(str, Enum):
    """Protocol session states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(frozen=True)
class TagDef:
    """Normalized tag definition: logical name mapped to one Modbus address."""

    name: str
    address: int
    data_type: DataType
    function: RegisterFunction
    label: str | None = None
    unit: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("name must be non-empty")
        if self.address < 0:
            raise ValueError(f"address must be >= 0, got {self.address}")

    @property
    def width(self) -> int:
        """Number of registers (or bits) the tag occupies."""
        if self.function.is_bit:
            return 1
        return 2 if self.data_type == DataType.FLOAT32 else 1

    def to_wire(self) -> dict[str, object]:
        """Config-source representation: {tag, address, type, function, label, unit}."""
        return {
            "tag": self.name,
            "address": self.address,
            "type": self.data_type.value,
            "function": self.function.value,
            "label": self.label,
            "unit": self.unit,
        }


Value = bool | int | float


@dataclass(frozen=True)
class Reading:
    """One decoded value for one tag in one cycle."""

    tag: str
    value: Value
    timestamp: datetime


@dataclass(frozen=True)
class ReadPlan:
    """One bulk read covering every tag of a register function."""

    function: RegisterFunction
    start: int
    count: int
    tags: tuple[TagDef, ...]


@dataclass(frozen=True)
class SendSummary:
    """Result of a fully successful send pass."""

    success_count: int
    total: int
