"""plc-bridge: poll Modbus TCP tags, decode them, and forward values to a telemetry API."""

__version__ = "0.1.0"

from .client import ProtocolClient, build_plan, covering_range
from .errors import (
    BridgeError,
    DeviceConnectionError,
    FatalError,
    InvalidTagError,
    NotConnectedError,
    ReadError,
    TransmitError,
)
from .normalize import normalize_tags
from .poller import PollLoop
from .registry import TagRegistry, load_default_tags
from .remote import TagConfigSource, Transmitter
from .settings import BridgeSettings
from .simulator import Simulator
from .types import ClientState, DataType, Reading, ReadPlan, RegisterFunction, SendSummary, TagDef

__all__ = [
    "__version__",
    "ProtocolClient",
    "build_plan",
    "covering_range",
    "BridgeError",
    "DeviceConnectionError",
    "FatalError",
    "InvalidTagError",
    "NotConnectedError",
    "ReadError",
    "TransmitError",
    "normalize_tags",
    "PollLoop",
    "TagRegistry",
    "load_default_tags",
    "TagConfigSource",
    "Transmitter",
    "BridgeSettings",
    "Simulator",
    "ClientState",
    "DataType",
    "Reading",
    "ReadPlan",
    "RegisterFunction",
    "SendSummary",
    "TagDef",
]
