"""PollLoop: read/transmit cycles, failure accounting, reconnection, periodic config refresh."""

import logging
import time
from collections.abc import Callable

from .client import ProtocolClient
from .errors import BridgeError, FatalError
from .registry import TagRegistry
from .remote import TagConfigSource, Transmitter
from .settings import DEFAULT_POLL_INTERVAL, DEFAULT_REFRESH_INTERVAL, MAX_CONSECUTIVE_FAILURES
from .simulator import Simulator
from .types import Reading

logger = logging.getLogger(__name__)


def next_deadline(previous: float, interval: float, now: float) -> float:
    """
    Next tick after ``previous`` that has not already passed.

    Ticks that passed while work was running are skipped, never queued.
    """
    deadline = previous + interval
    if deadline >= now:
        return deadline
    missed = int((now - previous) // interval)
    logger.debug("Skipping %d overdue tick(s)", missed - 1 if missed > 0 else 0)
    return previous + (missed + 1) * interval


class PollLoop:
    """
    Drives the bridge on a single thread.

    Two deadlines are scheduled cooperatively: the poll cycle and the config
    refresh. Work for one never runs inside the other, so a cycle always
    reads one complete registry snapshot.
    """

    def __init__(
        self,
        registry: TagRegistry,
        transmitter: Transmitter,
        *,
        client: ProtocolClient | None = None,
        simulator: Simulator | None = None,
        config_source: TagConfigSource | None = None,
        demo: bool = True,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        max_failures: int = MAX_CONSECUTIVE_FAILURES,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if demo and simulator is None:
            raise ValueError("demo mode needs a simulator")
        if not demo and client is None:
            raise ValueError("device mode needs a protocol client")
        self.registry = registry
        self.transmitter = transmitter
        self.client = client
        self.simulator = simulator
        self.config_source = config_source
        self.demo = demo
        self.poll_interval = poll_interval
        self.refresh_interval = refresh_interval
        self.max_failures = max_failures
        self.failures = 0
        self.cycles = 0
        self._clock = clock
        self._sleep = sleep
        self._running = False

    def read(self) -> dict[str, Reading]:
        """One reading set from the simulator (demo) or the device."""
        if self.demo:
            return self.simulator.step()
        return self.client.read_all(self.registry.snapshot)

    def connect(self) -> bool:
        if self.demo:
            logger.info("Running in DEMO mode; skipping PLC connection")
            return True
        return self.client.connect()

    def cycle(self) -> bool:
        """
        Read then transmit once. Returns True on success.

        Failures increment the consecutive-failure counter and trigger a
        reconnect when the device session is gone. Raises FatalError when the
        counter reaches the threshold.
        """
        self.cycles += 1
        try:
            readings = self.read()
            summary = self.transmitter.send_all(readings)
        except Exception as e:
            self.failures += 1
            if isinstance(e, BridgeError):
                logger.error("Error in update cycle (%d/%d): %s", self.failures, self.max_failures, e)
            else:
                logger.exception("Unexpected error in update cycle (%d/%d)", self.failures, self.max_failures)
            if self.failures >= self.max_failures:
                logger.critical("Max errors reached (%d). Exiting", self.failures)
                raise FatalError(self.failures) from e
            self._reconnect_if_needed()
            return False
        self.failures = 0
        # A group read may have lost the session even though the cycle succeeded
        self._reconnect_if_needed()
        logger.debug("Cycle %d: %d/%d tags sent", self.cycles, summary.success_count, summary.total)
        return True

    def _reconnect_if_needed(self) -> None:
        if self.demo or self.client is None or self.client.is_connected:
            return
        logger.info("Attempting to reconnect to PLC %s", self.client.address)
        self.client.connect()

    def refresh_config(self) -> bool:
        """Fetch the remote tag list and apply it. Returns True if the registry changed."""
        if self.config_source is None:
            return False
        raw = self.config_source.fetch()
        if raw is None:
            return False
        return self.registry.refresh(raw)

    def start(self) -> None:
        """Connect, fetch remote config once, then cycle until stopped (first cycle immediately)."""
        for tag in self.registry.snapshot:
            logger.info(
                "  %s -> addr=%d, type=%s, func=%s", tag.name, tag.address, tag.data_type.value, tag.function.value
            )
        self.connect()
        self.refresh_config()
        logger.info("Bridge started")
        self.run_forever()

    def run_forever(self) -> None:
        """Scheduler loop; returns after stop(). FatalError propagates."""
        self._running = True
        now = self._clock()
        next_poll = now
        next_refresh = now + self.refresh_interval
        while self._running:
            now = self._clock()
            if now >= next_poll:
                self.cycle()
                next_poll = next_deadline(next_poll, self.poll_interval, self._clock())
                continue
            if now >= next_refresh:
                self.refresh_config()
                next_refresh = next_deadline(next_refresh, self.refresh_interval, self._clock())
                continue
            self._sleep(min(next_poll, next_refresh) - now)

    def stop(self) -> None:
        self._running = False

    def close(self) -> None:
        """Close the device session if connected, and the HTTP clients."""
        self.stop()
        if self.client is not None and self.client.is_connected:
            logger.info("Closing PLC session %s", self.client.address)
            self.client.close()
        self.transmitter.close()
        if self.config_source is not None:
            self.config_source.close()
