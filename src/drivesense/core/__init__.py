"""Processing stages: calibration, transform, conditioning and estimators."""

from .calibration import (
    CalibrationEngine,
    CalibrationMatrix,
    CalibrationOutcome,
    CalibrationStats,
    FinalizeStrategy,
    OutcomeStatus,
    calibration_from_mapping,
    calibration_to_mapping,
    derive_calibration,
    describe_orientation,
    solve_rotation,
)
from .conditioning import FilterChannelState, SignalConditioner, limit_rate, low_pass
from .disturbance import (
    DisturbanceAccumulator,
    DisturbanceEstimator,
    DisturbanceSnapshot,
    GyroAccumulator,
    frequency_factor,
    half_life_decay,
    threshold_energy,
)
from .dynamics import (
    DynamicsSnapshot,
    VehicleDynamicsEstimator,
    VehicleDynamicsState,
    acceleration_intensity,
    traction_circle_utilization,
)
from .metrics import AccelMetrics, GyroMetrics, accel_metrics, gyro_metrics
from .transform import CoordinateTransform, apply, compensate_gravity

__all__ = [
    "AccelMetrics",
    "CalibrationEngine",
    "CalibrationMatrix",
    "CalibrationOutcome",
    "CalibrationStats",
    "CoordinateTransform",
    "DisturbanceAccumulator",
    "DisturbanceEstimator",
    "DisturbanceSnapshot",
    "DynamicsSnapshot",
    "FilterChannelState",
    "FinalizeStrategy",
    "GyroAccumulator",
    "GyroMetrics",
    "OutcomeStatus",
    "SignalConditioner",
    "VehicleDynamicsEstimator",
    "VehicleDynamicsState",
    "accel_metrics",
    "acceleration_intensity",
    "apply",
    "calibration_from_mapping",
    "calibration_to_mapping",
    "compensate_gravity",
    "derive_calibration",
    "describe_orientation",
    "frequency_factor",
    "gyro_metrics",
    "half_life_decay",
    "limit_rate",
    "low_pass",
    "solve_rotation",
    "threshold_energy",
    "traction_circle_utilization",
]
