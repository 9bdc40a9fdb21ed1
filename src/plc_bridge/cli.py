#!/usr/bin/env python3
"""Command-line entry point for plc-bridge using Typer."""

import json
import logging
import signal
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .client import ProtocolClient
from .errors import BridgeError, FatalError
from .poller import PollLoop
from .registry import TagRegistry
from .remote import TagConfigSource, Transmitter
from .settings import (
    DEFAULT_API_URL,
    DEFAULT_PLC_HOST,
    DEFAULT_PLC_PORT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_TIMEOUT,
    BridgeSettings,
)
from .simulator import Simulator
from .types import Reading

app = typer.Typer(
    name="plc-bridge",
    help="Edge bridge: poll Modbus TCP tags and forward values to a telemetry API.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Shared options and helpers
# ============================================================================

HostOption = Annotated[
    str,
    typer.Option("--host", "-h", help="PLC hostname or IP address", envvar="PLC_IP"),
]
PortOption = Annotated[
    int,
    typer.Option("--port", "-p", help="Modbus TCP port", envvar="PLC_PORT"),
]
UnitIdOption = Annotated[
    int,
    typer.Option("--unit-id", "-u", help="Modbus unit ID", envvar="PLC_UNIT_ID"),
]
DemoOption = Annotated[
    bool,
    typer.Option("--demo/--no-demo", help="Simulate tag values instead of reading a PLC", envvar="DEMO"),
]
IntervalOption = Annotated[
    float,
    typer.Option("--interval", "-i", help="Poll interval in seconds", envvar="BRIDGE_POLL_SEC"),
]
RefreshOption = Annotated[
    float,
    typer.Option("--refresh", help="Tag config refresh interval in seconds", envvar="BRIDGE_REFRESH_SEC"),
]
ApiUrlOption = Annotated[
    str,
    typer.Option("--api-url", help="Telemetry API base URL", envvar="CLOUD_API_URL"),
]
ConfigUrlOption = Annotated[
    Optional[str],
    typer.Option("--config-url", help="Tag config API base URL (default: --api-url)", envvar="CONFIG_API_URL"),
]
TimeoutOption = Annotated[
    float,
    typer.Option("--timeout", "-t", help="Per-request timeout in seconds", envvar="BRIDGE_TIMEOUT"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
RemoteOption = Annotated[
    bool,
    typer.Option("--remote", help="Use the tag list from the config API instead of the built-in defaults"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


def setup_logging(verbose: bool, level: int = logging.WARNING) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else level
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_settings(**kwargs: Any) -> BridgeSettings:
    """Create validated settings; exits with code 1 on invalid values."""
    try:
        return BridgeSettings(**kwargs).validate()
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def build_registry(settings: BridgeSettings, remote: bool) -> TagRegistry:
    """Default registry, optionally refreshed once from the config API."""
    registry = TagRegistry()
    if remote:
        source = TagConfigSource(settings.tags_url, timeout=settings.timeout)
        try:
            raw = source.fetch()
        finally:
            source.close()
        if raw is None:
            typer.echo(f"Warning: could not fetch tags from {settings.tags_url}; using defaults", err=True)
        else:
            registry.refresh(raw)
    return registry


def format_value(value: bool | int | float) -> str:
    """Format value for display."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def readings_to_json(readings: dict[str, Reading]) -> dict[str, Any]:
    timestamp = max((r.timestamp for r in readings.values()), default=None)
    return {
        "timestamp": timestamp.isoformat() if timestamp else None,
        "tags": {name: r.value for name, r in readings.items()},
    }


# ============================================================================
# Commands
# ============================================================================

@app.command()
def run(
    host: HostOption = DEFAULT_PLC_HOST,
    port: PortOption = DEFAULT_PLC_PORT,
    unit_id: UnitIdOption = 1,
    demo: DemoOption = True,
    interval: IntervalOption = DEFAULT_POLL_INTERVAL,
    refresh: RefreshOption = DEFAULT_REFRESH_INTERVAL,
    api_url: ApiUrlOption = DEFAULT_API_URL,
    config_url: ConfigUrlOption = None,
    timeout: TimeoutOption = DEFAULT_TIMEOUT,
    verbose: VerboseOption = False,
) -> None:
    """
    Run the bridge until interrupted.

    Exit codes: 0 on SIGINT/SIGTERM, 1 on startup failure or when too many
    consecutive cycles failed.
    """
    setup_logging(verbose, level=logging.INFO)
    settings = build_settings(
        plc_host=host,
        plc_port=port,
        unit_id=unit_id,
        demo=demo,
        poll_interval=interval,
        refresh_interval=refresh,
        api_url=api_url,
        config_url=config_url,
        timeout=timeout,
    )

    logger.info("Starting PLC bridge")
    logger.info("Mode: %s", "demo/simulation" if settings.demo else "production")
    logger.info("PLC: %s:%d", settings.plc_host, settings.plc_port)
    logger.info("API endpoint: %s", settings.update_url)
    logger.info("Update interval: %ss", settings.poll_interval)

    try:
        registry = TagRegistry()
        client = ProtocolClient(
            host=settings.plc_host,
            port=settings.plc_port,
            unit_id=settings.unit_id,
            timeout=settings.timeout,
        )
        loop = PollLoop(
            registry,
            Transmitter(settings.update_url, timeout=settings.timeout),
            client=client,
            simulator=Simulator(registry) if settings.demo else None,
            config_source=TagConfigSource(settings.tags_url, timeout=settings.timeout),
            demo=settings.demo,
            poll_interval=settings.poll_interval,
            refresh_interval=settings.refresh_interval,
            max_failures=settings.max_failures,
        )
    except Exception as e:
        logger.error("Failed to start bridge: %s", e)
        raise typer.Exit(1)

    # SIGTERM behaves like Ctrl+C
    signal.signal(signal.SIGTERM, signal.default_int_handler)
    try:
        loop.start()
    except KeyboardInterrupt:
        logger.info("Shutting down")
        loop.close()
        raise typer.Exit(0)
    except FatalError as e:
        logger.critical("Bridge stopped: %s", e)
        loop.close()
        raise typer.Exit(1)
    except Exception as e:
        logger.exception("Bridge failed: %s", e)
        loop.close()
        raise typer.Exit(1)
    loop.close()


@app.command()
def tags(
    api_url: ApiUrlOption = DEFAULT_API_URL,
    config_url: ConfigUrlOption = None,
    timeout: TimeoutOption = DEFAULT_TIMEOUT,
    remote: RemoteOption = False,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Show the effective tag list.

    Without --remote: the built-in defaults. With --remote: the list served
    by the config API, after normalization.
    """
    setup_logging(verbose)
    settings = build_settings(api_url=api_url, config_url=config_url, timeout=timeout)
    registry = build_registry(settings, remote)

    if json_output:
        typer.echo(json.dumps([t.to_wire() for t in registry], indent=2, ensure_ascii=False))
        return
    for t in registry:
        unit = f" [{t.unit}]" if t.unit else ""
        typer.echo(f"{t.name} -> addr={t.address}, type={t.data_type.value}, func={t.function.value}{unit}")


@app.command()
def plan(
    api_url: ApiUrlOption = DEFAULT_API_URL,
    config_url: ConfigUrlOption = None,
    timeout: TimeoutOption = DEFAULT_TIMEOUT,
    remote: RemoteOption = False,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Show the bulk reads issued each cycle: one per register function.

    Does not require a connection.
    """
    setup_logging(verbose)
    settings = build_settings(api_url=api_url, config_url=config_url, timeout=timeout)
    registry = build_registry(settings, remote)
    client = ProtocolClient(host=settings.plc_host, port=settings.plc_port)
    plans = client.plan(registry.snapshot)

    if json_output:
        out = [
            {
                "function": p.function.value,
                "start": p.start,
                "count": p.count,
                "tags": [t.name for t in p.tags],
            }
            for p in plans
        ]
        typer.echo(json.dumps(out, indent=2))
        return
    for p in plans:
        names = ", ".join(t.name for t in p.tags)
        typer.echo(f"{p.function.value:<9} start={p.start:<5} count={p.count:<4} {names}")


@app.command()
def snapshot(
    host: HostOption = DEFAULT_PLC_HOST,
    port: PortOption = DEFAULT_PLC_PORT,
    unit_id: UnitIdOption = 1,
    demo: DemoOption = True,
    api_url: ApiUrlOption = DEFAULT_API_URL,
    config_url: ConfigUrlOption = None,
    timeout: TimeoutOption = DEFAULT_TIMEOUT,
    remote: RemoteOption = False,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Read every tag once and print the values; nothing is transmitted.

    In demo mode values come from the simulator.
    """
    setup_logging(verbose)
    settings = build_settings(
        plc_host=host,
        plc_port=port,
        unit_id=unit_id,
        demo=demo,
        api_url=api_url,
        config_url=config_url,
        timeout=timeout,
    )
    registry = build_registry(settings, remote)

    try:
        if settings.demo:
            readings = Simulator(registry).step()
        else:
            with ProtocolClient(
                host=settings.plc_host,
                port=settings.plc_port,
                unit_id=settings.unit_id,
                timeout=settings.timeout,
            ) as client:
                readings = client.read_all(registry.snapshot)
    except BridgeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(readings_to_json(readings), indent=2, ensure_ascii=False))
        return
    for name, reading in readings.items():
        typer.echo(f"{name}={format_value(reading.value)}")
    missing = [n for n in registry.names() if n not in readings]
    if missing:
        typer.echo(f"Not read: {', '.join(missing)}", err=True)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"plc-bridge {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """plc-bridge - poll Modbus TCP tags and forward them to a telemetry API."""
    pass


if __name__ == "__main__":
    app()
