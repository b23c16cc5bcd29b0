"""Sensor calibration and signal conditioning for in-vehicle motion sensing.

The package turns raw accelerometer and gyroscope samples into a
vehicle-aligned, rate-limited and low-pass filtered stream, splits it into
road, vehicle and driver perspectives and derives disturbance energy and
vehicle dynamics estimates from it.
"""

from ._version import __version__
from .config import PipelineConfig, load_pipeline_config
from .core.calibration import (
    CalibrationEngine,
    CalibrationMatrix,
    CalibrationOutcome,
    FinalizeStrategy,
    OutcomeStatus,
)
from .core.conditioning import SignalConditioner, limit_rate, low_pass
from .core.disturbance import DisturbanceEstimator, DisturbanceSnapshot
from .core.dynamics import (
    DynamicsSnapshot,
    VehicleDynamicsEstimator,
    traction_circle_utilization,
)
from .core.transform import CoordinateTransform
from .errors import (
    AlreadyInProgress,
    DegenerateCalibration,
    DriveSenseError,
    InvalidMatrix,
    NumericInstability,
)
from .io import CalibrationStore
from .pipeline import GyroFrame, PipelineFrame, SensorPipeline
from .samples import (
    ConditionedSample,
    Perspective,
    Sample,
    SensorType,
    TransformedSample,
    Vector3,
)

__all__ = [
    "AlreadyInProgress",
    "CalibrationEngine",
    "CalibrationMatrix",
    "CalibrationOutcome",
    "CalibrationStore",
    "ConditionedSample",
    "CoordinateTransform",
    "DegenerateCalibration",
    "DisturbanceEstimator",
    "DisturbanceSnapshot",
    "DriveSenseError",
    "DynamicsSnapshot",
    "FinalizeStrategy",
    "GyroFrame",
    "InvalidMatrix",
    "NumericInstability",
    "OutcomeStatus",
    "Perspective",
    "PipelineConfig",
    "PipelineFrame",
    "Sample",
    "SensorPipeline",
    "SensorType",
    "SignalConditioner",
    "TransformedSample",
    "Vector3",
    "VehicleDynamicsEstimator",
    "__version__",
    "limit_rate",
    "load_pipeline_config",
    "low_pass",
    "traction_circle_utilization",
]
