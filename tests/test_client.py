"""Tests for pymodbus dispatch, covering ranges and group isolation (mocked client)."""

from unittest.mock import MagicMock, patch

import pytest
from pymodbus.exceptions import ConnectionException, ModbusIOException

from plc_bridge import ProtocolClient, TagRegistry, build_plan, covering_range
from plc_bridge.decode import encode_float32
from plc_bridge.errors import NotConnectedError
from plc_bridge.types import ClientState, DataType, RegisterFunction, TagDef


def _ok_registers(values: list[int]) -> MagicMock:
    return MagicMock(isError=lambda: False, registers=values)


def _ok_bits(values: list[bool]) -> MagicMock:
    return MagicMock(isError=lambda: False, bits=values)


@pytest.fixture
def mock_modbus_client() -> MagicMock:
    client = MagicMock()
    client.connect.return_value = True
    client.connected = True
    client.read_coils.return_value = _ok_bits([True, False, False, False, False, False, False, False])
    client.read_discrete_inputs.return_value = _ok_bits([False] * 8)
    client.read_input_registers.return_value = _ok_registers([100])
    client.read_holding_registers.return_value = _ok_registers([42])
    return client


@pytest.fixture
def plc(mock_modbus_client: MagicMock) -> ProtocolClient:
    with patch("plc_bridge.client.ModbusTcpClient", return_value=mock_modbus_client):
        client = ProtocolClient(host="127.0.0.1")
        assert client.connect() is True
    return client


def _tag(name: str, address: int, data_type: str, function: str) -> TagDef:
    return TagDef(name, address, DataType(data_type), RegisterFunction(function))


# ============================================================================
# Range computation
# ============================================================================


def test_covering_range_accounts_for_float_width() -> None:
    tags = [_tag("A", 0, "float", "holding"), _tag("B", 2, "uint16", "holding")]
    assert covering_range(tags) == (0, 3)


def test_covering_range_float_at_the_end() -> None:
    tags = [_tag("A", 5, "uint16", "input"), _tag("B", 9, "float", "input")]
    assert covering_range(tags) == (5, 6)


def test_covering_range_bits_are_width_one() -> None:
    tags = [_tag("A", 3, "float", "coil"), _tag("B", 7, "boolean", "coil")]
    assert covering_range(tags) == (3, 5)


@pytest.mark.parametrize(
    "layout",
    [
        [(0, "float")],
        [(4, "uint16"), (1, "int16")],
        [(10, "float"), (11, "uint16"), (20, "float")],
        [(100, "uint16"), (100, "int16")],
    ],
)
def test_covering_range_contains_every_footprint_without_padding(layout: list[tuple[int, str]]) -> None:
    tags = [_tag(f"T{i}", addr, dtype, "holding") for i, (addr, dtype) in enumerate(layout)]
    start, count = covering_range(tags)
    covered = set(range(start, start + count))
    footprint = {a for t in tags for a in range(t.address, t.address + t.width)}
    assert footprint <= covered
    # Both edges are used by some tag
    assert start in footprint
    assert start + count - 1 in footprint


def test_covering_range_empty_raises() -> None:
    with pytest.raises(ValueError):
        covering_range([])


def test_build_plan_groups_by_function_in_fixed_order() -> None:
    reg = TagRegistry()
    plans = build_plan(reg.snapshot)
    assert [p.function for p in plans] == [RegisterFunction.HOLDING, RegisterFunction.INPUT, RegisterFunction.COIL]
    holding, inp, coil = plans
    assert (holding.start, holding.count) == (0, 6)
    assert (inp.start, inp.count) == (10, 1)
    assert (coil.start, coil.count) == (0, 2)


# ============================================================================
# Connection state
# ============================================================================


def test_connect_failure_keeps_last_error(mock_modbus_client: MagicMock) -> None:
    mock_modbus_client.connect.return_value = False
    with patch("plc_bridge.client.ModbusTcpClient", return_value=mock_modbus_client):
        client = ProtocolClient(host="10.0.0.1", port=1502)
        assert client.connect() is False
    assert client.state == ClientState.DISCONNECTED
    assert not client.is_connected
    assert "10.0.0.1:1502" in str(client.last_error)


def test_connect_exception_does_not_raise(mock_modbus_client: MagicMock) -> None:
    mock_modbus_client.connect.side_effect = ConnectionException("refused")
    with patch("plc_bridge.client.ModbusTcpClient", return_value=mock_modbus_client):
        client = ProtocolClient(host="10.0.0.1")
        assert client.connect() is False
    assert isinstance(client.last_error, ConnectionException)


def test_read_all_not_connected_raises_without_io(mock_modbus_client: MagicMock) -> None:
    with patch("plc_bridge.client.ModbusTcpClient", return_value=mock_modbus_client):
        client = ProtocolClient(host="127.0.0.1")
    with pytest.raises(NotConnectedError):
        client.read_all(TagRegistry().snapshot)
    mock_modbus_client.read_holding_registers.assert_not_called()


def test_close_resets_state(plc: ProtocolClient, mock_modbus_client: MagicMock) -> None:
    plc.close()
    mock_modbus_client.close.assert_called_once()
    assert plc.state == ClientState.DISCONNECTED


# ============================================================================
# Reads
# ============================================================================


def test_read_all_float_and_uint16_in_one_holding_read(plc: ProtocolClient, mock_modbus_client: MagicMock) -> None:
    high, low = encode_float32(21.5)
    mock_modbus_client.read_holding_registers.return_value = _ok_registers([high, low, 65535])
    snapshot = (_tag("A", 0, "float", "holding"), _tag("B", 2, "uint16", "holding"))

    result = plc.read_all(snapshot)

    mock_modbus_client.read_holding_registers.assert_called_once()
    args = mock_modbus_client.read_holding_registers.call_args
    assert args[0][0] == 0
    assert args[1]["count"] == 3
    assert result["A"].value == 21.5
    assert result["B"].value == 65535


def test_read_all_dispatches_each_function(plc: ProtocolClient, mock_modbus_client: MagicMock) -> None:
    mock_modbus_client.read_input_registers.return_value = _ok_registers([0xFFFF, 0, 7])
    mock_modbus_client.read_discrete_inputs.return_value = _ok_bits([False, False, True] + [False] * 5)
    snapshot = (
        _tag("H", 4, "uint16", "holding"),
        _tag("I", 10, "int16", "input"),
        _tag("I2", 12, "uint16", "input"),
        _tag("C", 0, "boolean", "coil"),
        _tag("D", 5, "boolean", "discrete"),
        _tag("D2", 7, "boolean", "discrete"),
    )

    result = plc.read_all(snapshot)

    assert {k: r.value for k, r in result.items()} == {
        "H": 42,
        "I": -1,
        "I2": 7,
        "C": True,
        "D": False,
        "D2": True,
    }
    assert list(result) == ["H", "I", "I2", "C", "D", "D2"]
    mock_modbus_client.read_input_registers.assert_called_once_with(10, count=3, device_id=1)
    mock_modbus_client.read_discrete_inputs.assert_called_once_with(5, count=3, device_id=1)
    mock_modbus_client.read_coils.assert_called_once_with(0, count=1, device_id=1)


def test_read_all_skips_empty_groups(plc: ProtocolClient, mock_modbus_client: MagicMock) -> None:
    plc.read_all((_tag("C", 0, "boolean", "coil"),))
    mock_modbus_client.read_holding_registers.assert_not_called()
    mock_modbus_client.read_input_registers.assert_not_called()
    mock_modbus_client.read_discrete_inputs.assert_not_called()


def test_failed_holding_group_does_not_block_coils(plc: ProtocolClient, mock_modbus_client: MagicMock) -> None:
    mock_modbus_client.read_holding_registers.side_effect = ModbusIOException("timeout")
    snapshot = (
        _tag("A", 0, "float", "holding"),
        _tag("B", 2, "uint16", "holding"),
        _tag("RUN", 0, "boolean", "coil"),
    )

    result = plc.read_all(snapshot)

    assert set(result) == {"RUN"}
    assert result["RUN"].value is True
    mock_modbus_client.read_coils.assert_called_once()
    assert plc.is_connected


def test_error_response_omits_group(plc: ProtocolClient, mock_modbus_client: MagicMock) -> None:
    mock_modbus_client.read_input_registers.return_value = MagicMock(isError=lambda: True)
    snapshot = (_tag("H", 0, "uint16", "holding"), _tag("I", 0, "uint16", "input"))
    assert set(plc.read_all(snapshot)) == {"H"}


def test_short_response_omits_group(plc: ProtocolClient, mock_modbus_client: MagicMock) -> None:
    mock_modbus_client.read_holding_registers.return_value = _ok_registers([1])
    snapshot = (_tag("A", 0, "float", "holding"), _tag("C", 0, "boolean", "coil"))
    assert set(plc.read_all(snapshot)) == {"C"}


def test_all_groups_failed_returns_empty_set(plc: ProtocolClient, mock_modbus_client: MagicMock) -> None:
    mock_modbus_client.read_holding_registers.side_effect = ModbusIOException("timeout")
    mock_modbus_client.read_coils.side_effect = ModbusIOException("timeout")
    snapshot = (_tag("A", 0, "uint16", "holding"), _tag("C", 0, "boolean", "coil"))
    assert plc.read_all(snapshot) == {}
    assert plc.is_connected


def test_connection_loss_marks_disconnected(plc: ProtocolClient, mock_modbus_client: MagicMock) -> None:
    mock_modbus_client.read_holding_registers.side_effect = ConnectionException("reset by peer")
    assert plc.read_all((_tag("A", 0, "uint16", "holding"),)) == {}
    assert plc.state == ClientState.DISCONNECTED
    assert not plc.is_connected


def test_read_all_empty_snapshot(plc: ProtocolClient) -> None:
    assert plc.read_all(()) == {}


def test_bulk_read_without_session_raises_not_connected(plc: ProtocolClient) -> None:
    plc.close()
    plan = build_plan((_tag("A", 0, "uint16", "holding"),))[0]
    with pytest.raises(NotConnectedError):
        plc._bulk_read(plan)
