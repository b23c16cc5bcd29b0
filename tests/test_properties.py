"""Property-based checks for the pure conditioning and geometry helpers."""

from __future__ import annotations

import math

import numpy as np
import pytest

pytest.importorskip("hypothesis")
from hypothesis import assume, given, settings
from hypothesis import strategies as st

from drivesense.config import PerformanceEnvelope
from drivesense.core.calibration import CalibrationMatrix, solve_rotation
from drivesense.core.conditioning import limit_rate, low_pass
from drivesense.core.dynamics import traction_circle_utilization
from drivesense.core.transform import apply
from drivesense.samples import Sample

_finite = st.floats(min_value=-1e6, max_value=1e6, allow_nan=False, allow_infinity=False)
_limits = st.floats(min_value=0.01, max_value=5.0)


@given(_finite, _finite, _finite, st.integers(min_value=0, max_value=2**40))
def test_identity_transform_passes_values_through(x: float, y: float, z: float, timestamp: int) -> None:
    transformed = apply(Sample(x, y, z, timestamp), CalibrationMatrix.identity())

    assert (transformed.x, transformed.y, transformed.z) == (x, y, z)
    assert (transformed.raw_x, transformed.raw_y, transformed.raw_z) == (x, y, z)
    assert transformed.timestamp == timestamp


@given(
    st.floats(min_value=-100.0, max_value=100.0),
    st.floats(min_value=-100.0, max_value=100.0),
    st.floats(min_value=1e-3, max_value=10.0),
)
def test_rate_limiter_never_exceeds_one_step(new: float, prev: float, max_delta: float) -> None:
    limited = limit_rate(new, prev, max_delta)

    assert abs(limited - prev) <= max_delta + 1e-9
    if abs(new - prev) <= max_delta:
        assert limited == new


@settings(max_examples=50)
@given(
    st.floats(min_value=-50.0, max_value=50.0),
    st.floats(min_value=-50.0, max_value=50.0),
    st.floats(min_value=0.05, max_value=1.0),
)
def test_low_pass_converges(target: float, start: float, alpha: float) -> None:
    filtered = start
    for _ in range(2000):
        filtered = low_pass(target, filtered, alpha)

    assert abs(filtered - target) < 1e-6


@given(_finite, _finite, _limits, _limits, _limits)
def test_utilization_stays_in_range(
    lateral: float,
    longitudinal: float,
    max_braking: float,
    max_acceleration: float,
    max_lateral: float,
) -> None:
    envelope = PerformanceEnvelope(
        max_braking=max_braking,
        max_acceleration=max_acceleration,
        max_lateral=max_lateral,
    )

    assert 0.0 <= traction_circle_utilization(lateral, longitudinal, envelope) <= 100.0


@given(st.tuples(*(st.floats(min_value=-2.0, max_value=2.0),) * 3))
def test_solved_rotation_is_orthonormal_and_points_up(vector: tuple[float, float, float]) -> None:
    magnitude = math.sqrt(sum(value * value for value in vector))
    assume(magnitude >= 0.5)

    rotation = solve_rotation(vector)

    np.testing.assert_allclose(rotation @ rotation.T, np.eye(3), atol=1e-9)
    np.testing.assert_allclose(rotation @ np.asarray(vector), [0.0, 0.0, magnitude], atol=1e-9)
