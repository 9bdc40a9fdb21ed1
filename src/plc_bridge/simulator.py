"""Synthetic tag values for demo mode: per-tag drift state kept across config refreshes."""

import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timezone

from .registry import Snapshot, TagRegistry
from .types import DataType, Reading, TagDef, Value

logger = logging.getLogger(__name__)

BOOL_FLIP_PROBABILITY = 0.1
FLOAT_JITTER = 1.0
INT_JITTER_SPAN = 5
FLOAT_SEED_RANGE = (20.0, 90.0)
INT_SEED_UPPER = 100


@dataclass
class SimulatedPoint:
    """Current value and drift parameters for one simulated tag."""

    value: Value
    data_type: DataType
    jitter: float = 0.0
    flip_probability: float = 0.0


class Simulator:
    """
    Stand-in for the field device.

    Reads the registry's current snapshot each step; state for a tag is created
    on first reference and survives refreshes as long as the tag does.
    """

    def __init__(self, registry: TagRegistry, rng: random.Random | None = None) -> None:
        self._registry = registry
        self._rng = rng or random.Random()
        self._points: dict[str, SimulatedPoint] = {}
        self.reconcile(registry.snapshot)
        registry.subscribe(self.reconcile)

    def seed(self, tag: TagDef) -> SimulatedPoint:
        """Fresh state for a tag: bool coin flip, float in [20, 90], integers in [0, 100)."""
        rng = self._rng
        if tag.data_type == DataType.BOOL:
            return SimulatedPoint(rng.random() > 0.5, tag.data_type, flip_probability=BOOL_FLIP_PROBABILITY)
        if tag.data_type == DataType.FLOAT32:
            return SimulatedPoint(rng.uniform(*FLOAT_SEED_RANGE), tag.data_type, jitter=FLOAT_JITTER)
        return SimulatedPoint(rng.randrange(INT_SEED_UPPER), tag.data_type, jitter=INT_JITTER_SPAN)

    def reconcile(self, snapshot: Snapshot) -> None:
        """Seed new tags, keep values of retained ones, drop state of removed ones."""
        current = {tag.name: tag for tag in snapshot}
        for name in list(self._points):
            if name not in current:
                del self._points[name]
        for name, tag in current.items():
            point = self._points.get(name)
            if point is None or point.data_type != tag.data_type:
                self._points[name] = self.seed(tag)
        logger.debug("Simulator reconciled: %d tags", len(self._points))

    def _advance(self, point: SimulatedPoint) -> None:
        rng = self._rng
        if point.data_type == DataType.BOOL:
            if rng.random() < point.flip_probability:
                point.value = not point.value
        elif point.data_type == DataType.FLOAT32:
            point.value = round(point.value + (rng.random() - 0.5) * 2 * point.jitter, 2)
        else:
            delta = math.floor((rng.random() - 0.5) * point.jitter)
            point.value = max(0, int(point.value) + delta)

    def step(self) -> dict[str, Reading]:
        """Advance every registered tag once and return a full reading set."""
        now = datetime.now(timezone.utc)
        out: dict[str, Reading] = {}
        for tag in self._registry.snapshot:
            point = self._points.get(tag.name)
            if point is None or point.data_type != tag.data_type:
                point = self._points[tag.name] = self.seed(tag)
            self._advance(point)
            out[tag.name] = Reading(tag.name, point.value, now)
        return out

    def value(self, name: str) -> Value | None:
        point = self._points.get(name)
        return None if point is None else point.value

    def __contains__(self, name: object) -> bool:
        return name in self._points
