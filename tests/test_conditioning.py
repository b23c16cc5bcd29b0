"""Tests for the rate limiter, low-pass filter and channel bookkeeping."""

from __future__ import annotations

import logging
import math

import pytest

from tests.helpers import logged_events

from drivesense.config import ConditioningConfig
from drivesense.core.conditioning import SignalConditioner, limit_rate, low_pass
from drivesense.samples import PERSPECTIVES, Perspective, SensorType, Vector3


def test_limit_rate_clamps_both_directions() -> None:
    assert limit_rate(10.0, 0.0, 0.1) == 0.1
    assert limit_rate(-10.0, 0.0, 0.1) == -0.1
    assert limit_rate(0.05, 0.0, 0.1) == 0.05
    assert limit_rate(-0.05, 0.0, 0.1) == -0.05


@pytest.mark.parametrize("alpha", [0.05, 0.3, 0.8, 0.999])
@pytest.mark.parametrize("start", [-50.0, 0.0, 12.5])
def test_low_pass_converges_to_constant_input(alpha: float, start: float) -> None:
    target = 3.25
    filtered = start
    for _ in range(2000):
        filtered = low_pass(target, filtered, alpha)

    assert abs(filtered - target) < 1e-6


def test_low_pass_falls_back_to_raw_on_non_finite() -> None:
    assert low_pass(2.0, float("nan"), 0.5) == 2.0
    assert low_pass(2.0, float("inf"), 0.5) == 2.0
    assert math.isnan(low_pass(float("nan"), 1.0, 0.5))


def test_first_sample_seeds_channel() -> None:
    conditioner = SignalConditioner()

    result = conditioner.process(SensorType.ACCELEROMETER, Vector3(0.5, 0.5, 1.0), timestamp=7)

    assert result.seeded is True
    assert result.filtered == Vector3(0.5, 0.5, 1.0)
    assert result.limited == Vector3(0.5, 0.5, 1.0)
    assert result.timestamp == 7
    state = conditioner.state(SensorType.ACCELEROMETER)
    assert state is not None
    assert state["x"].prev_raw == 0.5
    assert state["x"].prev_filtered == 0.5


def test_second_sample_is_limited_then_filtered() -> None:
    conditioner = SignalConditioner()
    conditioner.process(SensorType.ACCELEROMETER, Vector3(0.5, 0.5, 1.0))

    result = conditioner.process(SensorType.ACCELEROMETER, Vector3(1.5, 0.5, 1.0))

    assert result.seeded is False
    assert result.limited.x == pytest.approx(0.525)
    assert result.filtered.x == pytest.approx(0.1 * 0.525 + 0.9 * 0.5)
    assert result.filtered.y == pytest.approx(0.5)
    assert result.filtered.z == pytest.approx(1.0)


def test_disabled_filtering_emits_limited_values() -> None:
    conditioner = SignalConditioner(ConditioningConfig(filtering_enabled=False))
    conditioner.process(SensorType.ACCELEROMETER, Vector3(0.0, 0.0, 1.0))

    result = conditioner.process(SensorType.ACCELEROMETER, Vector3(1.0, 0.0, 1.0))

    assert result.filtered == result.limited
    assert result.limited.x == pytest.approx(0.025)

    conditioner.set_filtering(True)
    assert conditioner.filtering_enabled is True


def test_perspectives_share_input_but_not_smoothing() -> None:
    conditioner = SignalConditioner()
    conditioner.process_perspectives(SensorType.ACCELEROMETER, Vector3(0.0, 0.0, 1.0))

    views = conditioner.process_perspectives(SensorType.ACCELEROMETER, Vector3(1.0, 0.0, 1.0))

    assert tuple(views) == PERSPECTIVES
    assert views[Perspective.ROAD].filtered.x == pytest.approx(0.05 * 0.025)
    assert views[Perspective.VEHICLE].filtered.x == pytest.approx(0.3 * 0.025)
    assert views[Perspective.DRIVER].filtered.x == pytest.approx(0.8 * 0.025)
    for perspective, view in views.items():
        assert view.perspective is perspective
        assert view.limited.x == pytest.approx(0.025)


def test_gyroscope_uses_its_own_rate_limit() -> None:
    conditioner = SignalConditioner()
    conditioner.process(SensorType.GYROSCOPE, Vector3(0.0, 0.0, 0.0))
    conditioner.process(SensorType.ACCELEROMETER, Vector3(0.0, 0.0, 0.0))

    gyro = conditioner.process(SensorType.GYROSCOPE, Vector3(10.0, 0.0, 0.0))
    accel = conditioner.process(SensorType.ACCELEROMETER, Vector3(10.0, 0.0, 0.0))

    assert gyro.limited.x == pytest.approx(0.3)
    assert accel.limited.x == pytest.approx(0.025)
    assert gyro.roll == gyro.filtered.x


def test_non_finite_value_recovers_locally(caplog: pytest.LogCaptureFixture) -> None:
    conditioner = SignalConditioner()
    conditioner.process(SensorType.ACCELEROMETER, Vector3(0.0, 0.0, 1.0))

    with caplog.at_level(logging.WARNING, logger="drivesense"):
        result = conditioner.process(SensorType.ACCELEROMETER, Vector3(float("nan"), 0.01, 1.0))

    assert result.recovered_axes == ("x",)
    assert math.isnan(result.filtered.x)
    assert result.filtered.y == pytest.approx(0.001)
    assert conditioner.instability_count == 1
    assert "conditioning.numeric_instability" in logged_events(caplog.records)

    follow_up = conditioner.process(SensorType.ACCELEROMETER, Vector3(0.01, 0.01, 1.0))
    assert follow_up.recovered_axes == ()
    assert follow_up.filtered.x == pytest.approx(0.001)


def test_partially_finite_first_sample_does_not_seed() -> None:
    conditioner = SignalConditioner()

    result = conditioner.process(SensorType.ACCELEROMETER, Vector3(float("inf"), 0.0, 1.0))

    assert result.recovered_axes == ("x",)
    assert conditioner.state(SensorType.ACCELEROMETER) is None

    seeded = conditioner.process(SensorType.ACCELEROMETER, Vector3(0.2, 0.0, 1.0))
    assert seeded.seeded is True


def test_reset_only_touches_requested_channels() -> None:
    conditioner = SignalConditioner()
    conditioner.process(SensorType.ACCELEROMETER, Vector3(0.0, 0.0, 1.0))
    conditioner.process(SensorType.GYROSCOPE, Vector3(0.0, 0.0, 0.0))
    conditioner.process_perspectives(SensorType.ACCELEROMETER, Vector3(0.0, 0.0, 1.0))

    conditioner.reset(SensorType.GYROSCOPE)
    assert conditioner.state(SensorType.GYROSCOPE) is None
    assert conditioner.state(SensorType.ACCELEROMETER) is not None

    conditioner.reset(SensorType.ACCELEROMETER, Perspective.ROAD)
    assert conditioner.state(SensorType.ACCELEROMETER, Perspective.ROAD) is None
    assert conditioner.state(SensorType.ACCELEROMETER, Perspective.DRIVER) is not None

    conditioner.reset()
    assert tuple(conditioner.channels()) == ()
