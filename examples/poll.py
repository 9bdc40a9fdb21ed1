#!/usr/bin/env python3
"""Example: print a few read cycles from a PLC (or the simulator) without transmitting."""

import sys
import time

from plc_bridge import ProtocolClient, Simulator, TagRegistry
from plc_bridge.errors import BridgeError


def main() -> None:
    host = "192.168.0.10"  # change to your PLC IP
    port = 502
    demo = "--device" not in sys.argv
    cycles = 5
    interval_s = 1.0

    registry = TagRegistry()
    try:
        if demo:
            sim = Simulator(registry)
            for _ in range(cycles):
                print({name: r.value for name, r in sim.step().items()})
                time.sleep(interval_s)
            return
        with ProtocolClient(host=host, port=port) as plc:
            for _ in range(cycles):
                readings = plc.read_all(registry.snapshot)
                print({name: r.value for name, r in readings.items()})
                time.sleep(interval_s)
    except KeyboardInterrupt:
        print("\nStopped.")
    except BridgeError as e:
        print(f"Bridge error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
