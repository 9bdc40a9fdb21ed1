"""Tests for the demo-mode simulator: seeding ranges, drift rules and reconcile."""

import random

from plc_bridge import Simulator, TagRegistry

RAW = [
    {"tag": "TEMP", "address": 0, "type": "float", "function": "holding"},
    {"tag": "LEVEL", "address": 10, "type": "uint16", "function": "input"},
    {"tag": "OFFSET", "address": 11, "type": "int16", "function": "input"},
    {"tag": "RUN", "address": 0, "type": "boolean", "function": "coil"},
]


def _sim(raw: list | None = None, seed: int = 1) -> tuple[TagRegistry, Simulator]:
    reg = TagRegistry(RAW if raw is None else raw)
    return reg, Simulator(reg, rng=random.Random(seed))


def test_seed_ranges() -> None:
    for seed in range(50):
        _reg, sim = _sim(seed=seed)
        assert 20.0 <= sim.value("TEMP") <= 90.0
        assert isinstance(sim.value("LEVEL"), int)
        assert 0 <= sim.value("LEVEL") < 100
        assert 0 <= sim.value("OFFSET") < 100
        assert isinstance(sim.value("RUN"), bool)


def test_step_covers_every_tag() -> None:
    reg, sim = _sim()
    readings = sim.step()
    assert list(readings) == reg.names()
    assert all(r.tag == name for name, r in readings.items())


def test_integer_tags_never_negative() -> None:
    _reg, sim = _sim(seed=7)
    for _ in range(2000):
        readings = sim.step()
        assert readings["LEVEL"].value >= 0
        assert readings["OFFSET"].value >= 0


def test_float_jitter_bounded_and_rounded() -> None:
    _reg, sim = _sim(seed=3)
    prev = sim.value("TEMP")
    for _ in range(500):
        value = sim.step()["TEMP"].value
        assert abs(value - prev) <= 1.0 + 0.01
        assert round(value, 2) == value
        prev = value


def test_bool_flip_rate_is_about_ten_percent() -> None:
    _reg, sim = _sim([{"tag": "RUN", "address": 0, "type": "boolean", "function": "coil"}], seed=11)
    steps = 20000
    flips = 0
    prev = sim.value("RUN")
    for _ in range(steps):
        value = sim.step()["RUN"].value
        flips += value != prev
        prev = value
    assert 0.08 < flips / steps < 0.12


def test_reconcile_keeps_retained_seeds_new_drops_removed() -> None:
    reg, sim = _sim()
    sim.step()
    temp_before = sim.value("TEMP")
    level_before = sim.value("LEVEL")

    reg.refresh(
        [
            RAW[0],
            dict(RAW[1], unit="%"),
            {"tag": "NEW", "address": 4, "type": "float", "function": "holding"},
        ]
    )

    assert sim.value("TEMP") == temp_before
    assert sim.value("LEVEL") == level_before
    assert 20.0 <= sim.value("NEW") <= 90.0
    assert "RUN" not in sim
    assert "OFFSET" not in sim
    assert set(sim.step()) == {"TEMP", "LEVEL", "NEW"}


def test_reconcile_reseeds_on_type_change() -> None:
    reg, sim = _sim([{"tag": "X", "address": 0, "type": "boolean", "function": "coil"}])
    reg.refresh([{"tag": "X", "address": 0, "type": "float", "function": "holding"}])
    assert isinstance(sim.value("X"), float)
