"""Derive the device-to-vehicle orientation from stationary accelerometer samples."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

import numpy as np

from ..config.settings import CalibrationConfig
from ..errors import AlreadyInProgress, DegenerateCalibration, InvalidMatrix
from ..samples import Sample, Vector3

__all__ = [
    "CalibrationEngine",
    "CalibrationMatrix",
    "CalibrationOutcome",
    "CalibrationStats",
    "FinalizeStrategy",
    "OutcomeStatus",
    "calibration_from_mapping",
    "calibration_to_mapping",
    "derive_calibration",
    "describe_orientation",
    "solve_rotation",
]

logger = logging.getLogger(__name__)

_ORTHONORMAL_TOLERANCE = 1e-6
_PARALLEL_LIMIT = 0.9
_WORLD_X = np.array([1.0, 0.0, 0.0])
_WORLD_Y = np.array([0.0, 1.0, 0.0])
_LEGACY_KEYS = (("xx", "xy", "xz"), ("yx", "yy", "yz"), ("zx", "zy", "zz"))


class FinalizeStrategy(str, Enum):
    """How a completed collection run is turned into a matrix."""

    ROTATION = "rotation"
    OFFSET = "offset"


def _frozen_array(values: Any) -> np.ndarray:
    array = np.array(values, dtype=float)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class CalibrationMatrix:
    """Committed orientation: a 3×3 rotation plus an optional raw offset.

    Uncalibrated matrices are the identity and carry no offset. Offset-mode
    matrices keep the identity rotation and subtract ``offset`` instead.
    """

    rotation: np.ndarray = field(default_factory=lambda: _frozen_array(np.eye(3)))
    offset: Optional[Vector3] = None
    calibrated: bool = False
    mode: FinalizeStrategy = FinalizeStrategy.ROTATION

    def __post_init__(self) -> None:
        rotation = _frozen_array(self.rotation)
        if rotation.shape != (3, 3):
            raise InvalidMatrix(
                "Calibration rotation must be 3x3",
                context={"shape": str(rotation.shape)},
            )
        if not np.all(np.isfinite(rotation)):
            raise InvalidMatrix("Calibration rotation contains non-finite entries")
        object.__setattr__(self, "rotation", rotation)
        object.__setattr__(self, "mode", FinalizeStrategy(self.mode))

    @classmethod
    def identity(cls) -> "CalibrationMatrix":
        return cls()

    @property
    def uses_offset(self) -> bool:
        return self.calibrated and self.mode is FinalizeStrategy.OFFSET and self.offset is not None

    def is_orthonormal(self, tolerance: float = _ORTHONORMAL_TOLERANCE) -> bool:
        product = self.rotation @ self.rotation.T
        return bool(np.allclose(product, np.eye(3), atol=tolerance))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CalibrationMatrix):
            return NotImplemented
        return (
            self.calibrated == other.calibrated
            and self.mode is other.mode
            and self.offset == other.offset
            and bool(np.array_equal(self.rotation, other.rotation))
        )

    def __hash__(self) -> int:
        return hash((self.calibrated, self.mode, self.offset, self.rotation.tobytes()))


@dataclass(frozen=True)
class CalibrationStats:
    """Summary of the samples behind a committed calibration."""

    sample_count: int
    mean: Vector3
    magnitude: float
    strategy: FinalizeStrategy
    orientation: str


class OutcomeStatus(str, Enum):
    IGNORED = "ignored"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class CalibrationOutcome:
    """Result of feeding the engine one sample or finalizing a run.

    The outcome is falsy only when the sample was ignored because no
    collection run was active.
    """

    status: OutcomeStatus
    progress: float = 0.0
    matrix: Optional[CalibrationMatrix] = None
    stats: Optional[CalibrationStats] = None
    reason: Optional[str] = None
    error: Optional[Exception] = None

    @classmethod
    def ignored(cls) -> "CalibrationOutcome":
        return cls(OutcomeStatus.IGNORED)

    @classmethod
    def in_progress(cls, progress: float) -> "CalibrationOutcome":
        return cls(OutcomeStatus.IN_PROGRESS, progress=progress)

    @classmethod
    def completed(cls, matrix: CalibrationMatrix, stats: CalibrationStats) -> "CalibrationOutcome":
        return cls(OutcomeStatus.COMPLETED, progress=1.0, matrix=matrix, stats=stats)

    @classmethod
    def failed(cls, reason: str, error: Optional[Exception] = None, progress: float = 0.0) -> "CalibrationOutcome":
        return cls(OutcomeStatus.FAILED, progress=progress, reason=reason, error=error)

    def __bool__(self) -> bool:
        return self.status is not OutcomeStatus.IGNORED


def solve_rotation(mean: Sequence[float]) -> np.ndarray:
    """Return ``R = [X; Y; Z]`` aligning vehicle Z with the measured up axis.

    At rest the accelerometer reports the reaction to gravity, so the
    gravity direction is the negated unit mean and the vehicle Z axis is its
    opposite. The helper axis is world Y unless it is nearly parallel to Z.
    """

    vector = np.asarray(mean, dtype=float)
    magnitude = float(np.linalg.norm(vector))
    if magnitude == 0.0 or not math.isfinite(magnitude):
        raise DegenerateCalibration("Cannot derive an orientation from a zero vector")
    gravity = -vector / magnitude
    z_axis = -gravity

    helper = _WORLD_Y if abs(float(np.dot(z_axis, _WORLD_Y))) <= _PARALLEL_LIMIT else _WORLD_X
    x_axis = np.cross(helper, z_axis)
    x_axis /= np.linalg.norm(x_axis)
    y_axis = np.cross(z_axis, x_axis)
    y_axis /= np.linalg.norm(y_axis)
    return np.vstack((x_axis, y_axis, z_axis))


def describe_orientation(matrix: CalibrationMatrix) -> str:
    """Describe which device axis the calibration considers to point up."""

    if not matrix.calibrated:
        return "uncalibrated"
    offset = matrix.offset if matrix.uses_offset else None
    if offset is not None:
        up = offset.as_array()
        norm = float(np.linalg.norm(up))
        if norm == 0.0:
            return "offset only"
        up = up / norm
    else:
        up = matrix.rotation[2]
    index = int(np.argmax(np.abs(up)))
    axis = "xyz"[index]
    sign = "+" if up[index] >= 0.0 else "-"
    labels = {
        ("z", "+"): "flat, screen up",
        ("z", "-"): "flat, screen down",
        ("y", "+"): "portrait",
        ("y", "-"): "portrait, upside down",
        ("x", "+"): "landscape left",
        ("x", "-"): "landscape right",
    }
    tilt = math.degrees(math.acos(max(-1.0, min(1.0, abs(float(up[index]))))))
    return f"device {sign}{axis.upper()} up ({labels[(axis, sign)]}, tilt {tilt:.1f} deg)"


def derive_calibration(
    samples: Sequence[Sample],
    *,
    strategy: FinalizeStrategy = FinalizeStrategy.ROTATION,
    min_magnitude: float = 0.5,
) -> tuple[CalibrationMatrix, CalibrationStats]:
    """Turn stationary samples into a committed matrix and its statistics."""

    if not samples:
        raise DegenerateCalibration("No calibration samples were collected")
    values = np.array([[sample.x, sample.y, sample.z] for sample in samples], dtype=float)
    mean = values.mean(axis=0)
    magnitude = float(np.linalg.norm(mean))
    if not math.isfinite(magnitude) or magnitude < min_magnitude:
        raise DegenerateCalibration(
            "Calibration vector magnitude too low",
            context={"magnitude": magnitude, "min_magnitude": min_magnitude},
        )

    mean_vector = Vector3.from_iterable(mean)
    if strategy is FinalizeStrategy.OFFSET:
        matrix = CalibrationMatrix(
            offset=mean_vector, calibrated=True, mode=FinalizeStrategy.OFFSET
        )
    else:
        matrix = CalibrationMatrix(
            rotation=solve_rotation(mean), calibrated=True, mode=FinalizeStrategy.ROTATION
        )
    stats = CalibrationStats(
        sample_count=len(samples),
        mean=mean_vector,
        magnitude=magnitude,
        strategy=strategy,
        orientation=describe_orientation(matrix),
    )
    return matrix, stats


def calibration_to_mapping(matrix: CalibrationMatrix) -> dict[str, Any]:
    """Serialise ``matrix`` into plain lists and scalars for a key-value store."""

    payload: dict[str, Any] = {
        "calibrated": bool(matrix.calibrated),
        "mode": matrix.mode.value,
        "rotation": [[float(value) for value in row] for row in matrix.rotation],
    }
    if matrix.offset is not None:
        payload["offset"] = list(matrix.offset)
    return payload


def _numeric(value: Any, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidMatrix(f"Calibration entry '{label}' is not numeric", context={"value": value})
    numeric = float(value)
    if not math.isfinite(numeric):
        raise InvalidMatrix(f"Calibration entry '{label}' is not finite", context={"value": value})
    return numeric


def _rotation_rows(payload: Mapping[str, Any]) -> list[list[float]]:
    rows = payload.get("rotation", payload.get("matrix"))
    if isinstance(rows, MappingABC):
        # Flat ``{"xx": .., "xy": ..}`` layout written by earlier releases.
        return [
            [_numeric(rows.get(key), key) for key in row_keys]
            for row_keys in _LEGACY_KEYS
        ]
    if not isinstance(rows, (list, tuple)) or len(rows) != 3:
        raise InvalidMatrix("Calibration rotation must contain three rows")
    result: list[list[float]] = []
    for row_index, row in enumerate(rows):
        if not isinstance(row, (list, tuple)) or len(row) != 3:
            raise InvalidMatrix(
                "Calibration rotation rows must contain three entries",
                context={"row": row_index},
            )
        result.append(
            [_numeric(value, f"rotation[{row_index}][{col}]") for col, value in enumerate(row)]
        )
    return result


def calibration_from_mapping(payload: Mapping[str, Any]) -> CalibrationMatrix:
    """Validate and rebuild a :class:`CalibrationMatrix` from stored data.

    Raises :class:`InvalidMatrix` on any structural problem. A payload whose
    ``calibrated`` flag is false always yields the identity.
    """

    if not isinstance(payload, MappingABC):
        raise InvalidMatrix("Calibration payload must be a mapping")
    calibrated = payload.get("calibrated", True)
    if not isinstance(calibrated, bool):
        raise InvalidMatrix("Calibration flag must be a boolean", context={"value": calibrated})
    if not calibrated:
        return CalibrationMatrix.identity()

    try:
        mode = FinalizeStrategy(str(payload.get("mode", FinalizeStrategy.ROTATION.value)))
    except ValueError as exc:
        raise InvalidMatrix("Unknown calibration mode", context={"mode": payload.get("mode")}) from exc

    rotation = np.array(_rotation_rows(payload), dtype=float)

    offset: Optional[Vector3] = None
    raw_offset = payload.get("offset", payload.get("vector"))
    if isinstance(raw_offset, MappingABC):
        raw_offset = [raw_offset.get(axis) for axis in ("x", "y", "z")]
    if raw_offset is not None:
        if not isinstance(raw_offset, (list, tuple)) or len(raw_offset) != 3:
            raise InvalidMatrix("Calibration offset must contain three entries")
        offset = Vector3(*(_numeric(value, f"offset[{index}]") for index, value in enumerate(raw_offset)))

    if mode is FinalizeStrategy.OFFSET and offset is None:
        raise InvalidMatrix("Offset calibration requires an offset vector")

    matrix = CalibrationMatrix(rotation=rotation, offset=offset, calibrated=True, mode=mode)
    if not matrix.is_orthonormal():
        raise InvalidMatrix("Calibration rotation is not orthonormal")
    return matrix


class CalibrationEngine:
    """Collect stationary samples and commit a :class:`CalibrationMatrix`.

    The engine never spawns timers. Hosts poll :meth:`expired` (or call
    :meth:`cancel_if_expired`) from their own scheduler to enforce the
    configured timeout.
    """

    def __init__(
        self,
        config: CalibrationConfig | None = None,
        *,
        matrix: CalibrationMatrix | None = None,
        clock=None,
    ) -> None:
        self.config = config or CalibrationConfig()
        self._matrix = matrix or CalibrationMatrix.identity()
        self._samples: list[Sample] = []
        self._active = False
        self._started_at: Optional[float] = None
        self._clock = clock or (lambda: time.monotonic() * 1000.0)
        self.last_stats: Optional[CalibrationStats] = None

    @property
    def target_count(self) -> int:
        return self.config.target_count

    @property
    def samples_collected(self) -> int:
        return len(self._samples)

    @property
    def progress(self) -> float:
        return len(self._samples) / self.target_count

    @property
    def started_at(self) -> Optional[float]:
        return self._started_at

    def is_active(self) -> bool:
        return self._active

    def matrix(self) -> CalibrationMatrix:
        return self._matrix

    def start(self, now_ms: float | None = None) -> None:
        if self._active:
            raise AlreadyInProgress(
                "Calibration already in progress",
                context={"samples": len(self._samples)},
            )
        self._samples = []
        self._active = True
        self._started_at = float(now_ms) if now_ms is not None else self._clock()
        logger.info(
            "Calibration started",
            extra={"event": "calibration.started", "target_count": self.target_count},
        )

    def add_sample(self, sample: Sample) -> CalibrationOutcome:
        if not self._active:
            return CalibrationOutcome.ignored()
        if not sample.is_finite():
            logger.warning(
                "Non-finite calibration sample ignored",
                extra={"event": "calibration.invalid_sample", "timestamp": sample.timestamp},
            )
            return CalibrationOutcome.in_progress(self.progress)

        self._samples.append(sample)
        if len(self._samples) >= self.target_count:
            return self._finalize_outcome()
        return CalibrationOutcome.in_progress(self.progress)

    def finalize(self, strategy: FinalizeStrategy | str | None = None) -> CalibrationOutcome:
        """Solve the collected samples and commit the result.

        Raises :class:`DegenerateCalibration` when the samples cannot describe
        gravity; the previously committed matrix is kept in that case and the
        collection run ends.
        """

        resolved = FinalizeStrategy(strategy or self.config.strategy)
        samples = list(self._samples)
        self._active = False
        self._samples = []
        try:
            matrix, stats = derive_calibration(
                samples, strategy=resolved, min_magnitude=self.config.min_magnitude
            )
        except DegenerateCalibration as exc:
            logger.warning(
                "Calibration failed",
                extra={
                    "event": "calibration.failed",
                    "reason": str(exc),
                    "samples": len(samples),
                    **exc.context,
                },
            )
            raise

        self._matrix = matrix
        self.last_stats = stats
        logger.info(
            "Calibration completed",
            extra={
                "event": "calibration.completed",
                "samples": stats.sample_count,
                "magnitude": stats.magnitude,
                "strategy": stats.strategy.value,
                "orientation": stats.orientation,
            },
        )
        return CalibrationOutcome.completed(matrix, stats)

    def cancel(self, reason: str = "Cancelled by user") -> bool:
        if not self._active:
            return False
        discarded = len(self._samples)
        self._active = False
        self._samples = []
        self._started_at = None
        logger.info(
            "Calibration cancelled",
            extra={"event": "calibration.cancelled", "reason": reason, "discarded": discarded},
        )
        return True

    def expired(self, now_ms: float | None = None) -> bool:
        if not self._active or self._started_at is None:
            return False
        now = float(now_ms) if now_ms is not None else self._clock()
        return (now - self._started_at) >= self.config.timeout_ms

    def cancel_if_expired(self, now_ms: float | None = None) -> bool:
        if not self.expired(now_ms):
            return False
        seconds = self.config.timeout_ms / 1000.0
        return self.cancel(f"Calibration timed out after {seconds:g} seconds")

    def load(self, matrix: CalibrationMatrix | Mapping[str, Any]) -> CalibrationMatrix:
        """Replace the committed matrix with a validated stored one."""

        if isinstance(matrix, CalibrationMatrix):
            if matrix.calibrated and not matrix.uses_offset and not matrix.is_orthonormal():
                raise InvalidMatrix("Calibration rotation is not orthonormal")
            if matrix.calibrated and matrix.mode is FinalizeStrategy.OFFSET and matrix.offset is None:
                raise InvalidMatrix("Offset calibration requires an offset vector")
            resolved = matrix if matrix.calibrated else CalibrationMatrix.identity()
        else:
            resolved = calibration_from_mapping(matrix)
        self._matrix = resolved
        logger.info(
            "Calibration loaded",
            extra={"event": "calibration.loaded", "calibrated": resolved.calibrated},
        )
        return resolved

    def reset(self) -> None:
        """Cancel any run and return to the identity matrix."""

        self.cancel("Calibration reset")
        self._matrix = CalibrationMatrix.identity()
        self.last_stats = None

    def _finalize_outcome(self) -> CalibrationOutcome:
        progress = self.progress
        try:
            return self.finalize()
        except DegenerateCalibration as exc:
            return CalibrationOutcome.failed(str(exc), error=exc, progress=progress)
