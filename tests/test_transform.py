from __future__ import annotations

import numpy as np
import pytest

from tests.helpers import build_sample, stationary_samples

from drivesense.core.calibration import (
    CalibrationMatrix,
    FinalizeStrategy,
    derive_calibration,
)
from drivesense.core.transform import CoordinateTransform, apply, compensate_gravity
from drivesense.samples import Vector3


@pytest.mark.parametrize(
    "values",
    [(0.0, 0.0, 1.0), (0.3, -0.2, 0.9), (-1.5, 2.25, -0.125), (1e6, -1e-6, 0.0)],
)
def test_identity_matrix_passes_samples_through(values) -> None:
    sample = build_sample(*values, timestamp=42)

    transformed = apply(sample, CalibrationMatrix.identity())

    assert (transformed.raw_x, transformed.raw_y, transformed.raw_z) == values
    assert (transformed.x, transformed.y, transformed.z) == values
    assert transformed.timestamp == 42
    assert transformed.calibrated is False


def test_rotation_matrix_is_applied() -> None:
    matrix, _ = derive_calibration(stationary_samples((0.0, 1.0, 0.0)))

    transformed = apply(build_sample(0.0, 1.0, 0.0), matrix)

    assert transformed.calibrated is True
    assert transformed.raw == Vector3(0.0, 1.0, 0.0)
    assert tuple(transformed.vector) == pytest.approx((0.0, 0.0, 1.0))


def test_arbitrary_tilt_lands_on_vertical() -> None:
    gravity = (0.2, -0.3, 0.9)
    matrix, stats = derive_calibration(stationary_samples(gravity))

    transformed = apply(build_sample(*gravity), matrix)

    assert transformed.lateral == pytest.approx(0.0, abs=1e-9)
    assert transformed.longitudinal == pytest.approx(0.0, abs=1e-9)
    assert transformed.vertical == pytest.approx(stats.magnitude)


def test_offset_matrix_subtracts_planar_offset_only() -> None:
    matrix, _ = derive_calibration(
        stationary_samples((0.05, -0.1, 1.0)), strategy=FinalizeStrategy.OFFSET
    )

    transformed = apply(build_sample(0.15, 0.1, 1.2), matrix)

    assert tuple(transformed.vector) == pytest.approx((0.1, 0.2, 1.2))
    assert transformed.raw == Vector3(0.15, 0.1, 1.2)


def test_compensate_gravity_removes_parallel_component() -> None:
    assert tuple(compensate_gravity((1.0, 2.0, 3.0), (0.0, 0.0, 2.0))) == pytest.approx((1.0, 2.0, 0.0))
    assert tuple(compensate_gravity((1.0, 2.0, 3.0), (0.0, 0.0, 0.0))) == (1.0, 2.0, 3.0)


def test_coordinate_transform_binds_new_matrix() -> None:
    transform = CoordinateTransform()
    sample = build_sample(0.0, 1.0, 0.0)
    assert tuple(transform(sample).vector) == (0.0, 1.0, 0.0)

    matrix, _ = derive_calibration(stationary_samples((0.0, 1.0, 0.0)))
    transform.bind(matrix)

    assert transform.matrix is matrix
    assert np.allclose(tuple(transform.apply(sample).vector), (0.0, 0.0, 1.0))
