"""Tests for velocity integration and traction-circle utilisation."""

from __future__ import annotations

import itertools
import math

import pytest

from tests.helpers import build_conditioned

from drivesense.config import PerformanceEnvelope, VehicleConfig
from drivesense.core.dynamics import (
    VehicleDynamicsEstimator,
    acceleration_intensity,
    traction_circle_utilization,
)
from drivesense.samples import Vector3

GRAVITY = 9.81


def test_utilization_on_envelope_axes() -> None:
    assert traction_circle_utilization(0.0, 0.0) == 0.0
    assert traction_circle_utilization(0.45, 0.0) == pytest.approx(50.0)
    assert traction_circle_utilization(0.9, 0.0) == pytest.approx(100.0)
    assert traction_circle_utilization(0.0, 0.3) == pytest.approx(50.0)
    assert traction_circle_utilization(0.0, -0.5) == pytest.approx(50.0)


def test_utilization_on_the_ellipse_diagonal() -> None:
    envelope = PerformanceEnvelope(max_braking=1.0, max_acceleration=1.0, max_lateral=1.0)
    lateral = longitudinal = math.sqrt(0.5) / 2.0

    assert traction_circle_utilization(lateral, longitudinal, envelope) == pytest.approx(50.0)


def test_utilization_is_bounded() -> None:
    values = [-1e6, -3.0, -0.7, -0.01, 0.0, 0.02, 0.5, 2.0, 1e9]
    envelopes = [
        PerformanceEnvelope(),
        PerformanceEnvelope(max_braking=0.1, max_acceleration=5.0, max_lateral=0.01),
    ]
    for envelope, lateral, longitudinal in itertools.product(envelopes, values, values):
        utilization = traction_circle_utilization(lateral, longitudinal, envelope)
        assert 0.0 <= utilization <= 100.0

    assert traction_circle_utilization(float("nan"), 0.1) == 0.0


def test_acceleration_intensity() -> None:
    assert acceleration_intensity(0.45, "lateral") == pytest.approx(0.5)
    assert acceleration_intensity(0.3, "longitudinal") == pytest.approx(0.5)
    assert acceleration_intensity(-0.5, "longitudinal") == pytest.approx(0.5)
    assert acceleration_intensity(-2.0, "vertical") == 1.0
    with pytest.raises(ValueError):
        acceleration_intensity(0.1, "sideways")


def test_velocity_integrates_g_force() -> None:
    estimator = VehicleDynamicsEstimator()

    snapshot = estimator.update(Vector3(0.0, 0.1, 0.0), dt=0.1)

    assert snapshot.integrated is True
    assert snapshot.forward_velocity == pytest.approx(0.1 * GRAVITY * 0.1)
    assert snapshot.speed == pytest.approx(0.1 * GRAVITY * 0.1)
    assert snapshot.turning_radius is None
    assert snapshot.stopping_distance is None


def test_external_speed_pins_forward_velocity() -> None:
    estimator = VehicleDynamicsEstimator()

    snapshot = estimator.update(Vector3(0.2, 0.5, 0.0), external_speed=20.0, dt=0.1)

    lateral_accel = 0.2 * GRAVITY
    assert snapshot.velocity.y == 20.0
    assert snapshot.velocity.x == pytest.approx(lateral_accel * 0.1)
    assert snapshot.velocity.z == 0.0
    assert snapshot.turning_radius == pytest.approx(400.0 / lateral_accel)
    assert snapshot.stopping_distance == pytest.approx(400.0 / (2.0 * 1.0 * GRAVITY))


def test_speed_ignores_integrated_vertical_g() -> None:
    estimator = VehicleDynamicsEstimator()

    snapshot = estimator.update(Vector3(0.3, 0.4, 1.0), dt=0.1)

    assert snapshot.velocity.z == pytest.approx(GRAVITY * 0.1)
    assert snapshot.speed == pytest.approx(0.5 * GRAVITY * 0.1)

    for _ in range(10):
        snapshot = estimator.update(Vector3(0.0, 0.0, 1.0), dt=0.1)
    assert snapshot.velocity.z == pytest.approx(11 * GRAVITY * 0.1)
    assert snapshot.speed == pytest.approx(0.5 * GRAVITY * 0.1)


def test_external_speed_ignored_when_disabled() -> None:
    estimator = VehicleDynamicsEstimator(VehicleConfig(use_external_speed=False))

    snapshot = estimator.update(Vector3(0.0, 0.0, 0.0), external_speed=20.0, dt=0.1)

    assert snapshot.velocity.y == 0.0


@pytest.mark.parametrize("dt", [0.0, -0.2, 0.6])
def test_gap_returns_instantaneous_fields_only(dt: float) -> None:
    estimator = VehicleDynamicsEstimator()
    estimator.update(Vector3(0.0, 0.0, 0.0), external_speed=15.0, dt=0.1)

    snapshot = estimator.update(Vector3(0.45, -0.2, 1.0), external_speed=30.0, dt=dt)

    assert snapshot.integrated is False
    assert snapshot.lateral == 0.45
    assert snapshot.longitudinal == -0.2
    assert snapshot.utilization > 0.0
    assert snapshot.turning_radius is None
    assert snapshot.stopping_distance is None
    assert snapshot.velocity.y == 15.0


def test_dt_is_derived_from_timestamps() -> None:
    estimator = VehicleDynamicsEstimator()

    first = estimator.update(build_conditioned((0.0, 0.2, 1.0), timestamp=1_000))
    second = estimator.update(build_conditioned((0.0, 0.2, 1.0), timestamp=1_100))

    assert first.integrated is False
    assert second.integrated is True
    assert second.forward_velocity == pytest.approx(0.2 * GRAVITY * 0.1)
    assert second.timestamp == 1_100


def test_reset_clears_velocity() -> None:
    estimator = VehicleDynamicsEstimator()
    estimator.update(Vector3(0.0, 0.3, 0.0), external_speed=12.0, dt=0.1)

    estimator.reset()

    assert estimator.state.last_timestamp is None
    assert list(estimator.state.velocity) == [0.0, 0.0, 0.0]
