"""Processing session wiring calibration, conditioning and estimators together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from .config.loader import load_pipeline_config
from .config.settings import PipelineConfig
from .core.calibration import CalibrationEngine, CalibrationMatrix, CalibrationOutcome, OutcomeStatus
from .core.conditioning import SignalConditioner
from .core.disturbance import DisturbanceEstimator, DisturbanceSnapshot
from .core.dynamics import DynamicsSnapshot, VehicleDynamicsEstimator
from .core.metrics import AccelMetrics, GyroMetrics, accel_metrics, gyro_metrics
from .core.transform import CoordinateTransform, apply
from .samples import (
    ConditionedSample,
    Perspective,
    Sample,
    SensorType,
    TransformedSample,
    Vector3,
)

__all__ = ["GyroFrame", "PipelineFrame", "SensorPipeline"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineFrame:
    """Everything derived from one accelerometer sample."""

    timestamp: int
    dt: float
    transformed: TransformedSample
    conditioned: ConditionedSample
    perspectives: Mapping[Perspective, ConditionedSample]
    disturbance: DisturbanceSnapshot
    dynamics: DynamicsSnapshot
    metrics: AccelMetrics
    gyro_metrics: Optional[GyroMetrics] = None


@dataclass(frozen=True)
class GyroFrame:
    """Conditioned views of one gyroscope sample."""

    timestamp: int
    transformed: TransformedSample
    conditioned: ConditionedSample
    perspectives: Mapping[Perspective, ConditionedSample]
    metrics: GyroMetrics


class SensorPipeline:
    """Single-writer processing session for accelerometer and gyroscope streams.

    While a calibration run is active, accelerometer samples are routed to
    the :class:`CalibrationEngine` and never reach the estimators. The latest
    gyroscope views are folded into the next accelerometer tick.
    """

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()
        self.calibration = CalibrationEngine(self.config.calibration)
        self.transform = CoordinateTransform(self.calibration.matrix())
        self.conditioner = SignalConditioner(self.config.conditioning)
        self.disturbance = DisturbanceEstimator(self.config.disturbance)
        self.dynamics = VehicleDynamicsEstimator(self.config.vehicle)
        self.use_calibration = self.config.use_calibration
        self._last_accel_timestamp: Optional[int] = None
        self._previous_driver: Optional[Vector3] = None
        self._gyro_frame: Optional[GyroFrame] = None
        self._gyro_pending = False

    @classmethod
    def from_config(
        cls,
        path: str | Path | None = None,
        *,
        overrides: Mapping[str, Any] | None = None,
        project_root: str | Path | None = None,
    ) -> "SensorPipeline":
        return cls(load_pipeline_config(path, overrides=overrides, project_root=project_root))

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------
    def start_calibration(self, now_ms: float | None = None) -> None:
        self.calibration.start(now_ms)

    def cancel_calibration(self, reason: str = "Cancelled by user") -> bool:
        return self.calibration.cancel(reason)

    def check_calibration_timeout(self, now_ms: float | None = None) -> bool:
        """Cancel an overdue calibration run; returns ``True`` when cancelled."""

        return self.calibration.cancel_if_expired(now_ms)

    def load_calibration(self, matrix: CalibrationMatrix | Mapping[str, Any]) -> CalibrationMatrix:
        resolved = self.calibration.load(matrix)
        self._commit(resolved)
        return resolved

    def reset_calibration(self) -> None:
        self.calibration.reset()
        self._commit(self.calibration.matrix())

    def _commit(self, matrix: CalibrationMatrix) -> None:
        self.transform.bind(matrix)
        # New frame of reference; stale filter memory would ramp across it.
        self.conditioner.reset(SensorType.ACCELEROMETER)
        self.conditioner.reset(SensorType.GYROSCOPE)

    def _active_matrix(self, sensor: SensorType) -> CalibrationMatrix:
        matrix = self.transform.matrix
        if not self.use_calibration:
            return CalibrationMatrix.identity()
        if sensor is SensorType.GYROSCOPE and matrix.uses_offset:
            # Gravity offsets have no meaning for angular rates.
            return CalibrationMatrix.identity()
        return matrix

    # ------------------------------------------------------------------
    # Sample processing
    # ------------------------------------------------------------------
    def process_accelerometer(
        self,
        sample: Sample,
        external_speed: float | None = None,
    ) -> Union[PipelineFrame, CalibrationOutcome]:
        """Route ``sample`` to calibration or through the full processing chain."""

        if self.calibration.is_active():
            outcome = self.calibration.add_sample(sample)
            if outcome.status is OutcomeStatus.COMPLETED and outcome.matrix is not None:
                self._commit(outcome.matrix)
            return outcome

        transformed = apply(sample, self._active_matrix(SensorType.ACCELEROMETER))
        conditioned = self.conditioner.process(SensorType.ACCELEROMETER, transformed)
        perspectives = self.conditioner.process_perspectives(SensorType.ACCELEROMETER, transformed)

        previous = self._last_accel_timestamp
        dt = 0.0 if previous is None else (sample.timestamp - previous) / 1000.0
        self._last_accel_timestamp = sample.timestamp

        gyro_views = None
        if self._gyro_pending and self._gyro_frame is not None:
            gyro_views = self._gyro_frame.perspectives

        disturbance = self.disturbance.update(
            perspectives, gyro_views, dt=dt, timestamp=sample.timestamp
        )
        if gyro_views is not None and not disturbance.skipped:
            self._gyro_pending = False
        dynamics = self.dynamics.update(conditioned, external_speed, dt=dt)
        metrics = accel_metrics(perspectives, self._previous_driver)
        self._previous_driver = perspectives[Perspective.DRIVER].filtered

        return PipelineFrame(
            timestamp=sample.timestamp,
            dt=dt,
            transformed=transformed,
            conditioned=conditioned,
            perspectives=perspectives,
            disturbance=disturbance,
            dynamics=dynamics,
            metrics=metrics,
            gyro_metrics=self._gyro_frame.metrics if self._gyro_frame is not None else None,
        )

    def process_gyroscope(self, sample: Sample) -> GyroFrame:
        """Condition a gyroscope sample and cache it for the next accelerometer tick."""

        transformed = apply(sample, self._active_matrix(SensorType.GYROSCOPE))
        conditioned = self.conditioner.process(SensorType.GYROSCOPE, transformed)
        perspectives = self.conditioner.process_perspectives(SensorType.GYROSCOPE, transformed)
        frame = GyroFrame(
            timestamp=sample.timestamp,
            transformed=transformed,
            conditioned=conditioned,
            perspectives=perspectives,
            metrics=gyro_metrics(perspectives),
        )
        self._gyro_frame = frame
        self._gyro_pending = True
        return frame

    def reset(self) -> None:
        """Start a new session; the committed calibration matrix is kept."""

        self.calibration.cancel("Session reset")
        self.conditioner.reset()
        self.disturbance.reset()
        self.dynamics.reset()
        self._last_accel_timestamp = None
        self._previous_driver = None
        self._gyro_frame = None
        self._gyro_pending = False
        logger.info("Processing session reset", extra={"event": "pipeline.reset"})
