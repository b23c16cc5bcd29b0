"""Apply a committed calibration to raw samples."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ..samples import Sample, TransformedSample, Vector3
from .calibration import CalibrationMatrix

__all__ = ["CoordinateTransform", "apply", "compensate_gravity"]


def apply(sample: Sample, matrix: CalibrationMatrix) -> TransformedSample:
    """Return the vehicle-frame view of ``sample``.

    Uncalibrated matrices pass values through untouched. Offset matrices
    subtract the stored offset from ``x`` and ``y`` only, so ``z`` keeps the
    1 G baseline the disturbance model measures against. Rotation matrices
    compute ``R · v``.
    """

    raw = np.array([sample.x, sample.y, sample.z], dtype=float)
    offset = matrix.offset if matrix.uses_offset else None
    if not matrix.calibrated:
        transformed = raw
    elif offset is not None:
        transformed = raw - np.array([offset.x, offset.y, 0.0])
    else:
        transformed = matrix.rotation @ raw

    return TransformedSample(
        raw_x=float(raw[0]),
        raw_y=float(raw[1]),
        raw_z=float(raw[2]),
        x=float(transformed[0]),
        y=float(transformed[1]),
        z=float(transformed[2]),
        timestamp=sample.timestamp,
        calibrated=matrix.calibrated,
    )


def compensate_gravity(values: Sequence[float], gravity_unit: Sequence[float]) -> Vector3:
    """Remove the component of ``values`` along the unit ``gravity_unit`` vector."""

    vector = np.asarray(values, dtype=float)
    unit = np.asarray(gravity_unit, dtype=float)
    norm = float(np.linalg.norm(unit))
    if norm == 0.0:
        return Vector3.from_iterable(vector)
    unit = unit / norm
    return Vector3.from_iterable(vector - float(np.dot(vector, unit)) * unit)


class CoordinateTransform:
    """Stateless adapter holding a read-only view of the committed matrix.

    ``bind`` swaps the matrix after a new calibration or a reset.
    """

    def __init__(self, matrix: CalibrationMatrix | None = None) -> None:
        self._matrix = matrix or CalibrationMatrix.identity()

    @property
    def matrix(self) -> CalibrationMatrix:
        return self._matrix

    def bind(self, matrix: CalibrationMatrix) -> None:
        self._matrix = matrix

    def apply(self, sample: Sample) -> TransformedSample:
        return apply(sample, self._matrix)

    __call__ = apply
