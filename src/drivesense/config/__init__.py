"""Configuration records and loaders for the processing pipeline."""

from .loader import (
    load_config_mapping,
    load_default_mapping,
    load_pipeline_config,
    load_project_config,
    merge_overrides,
)
from .settings import (
    AxisTriple,
    CalibrationConfig,
    ChannelConfig,
    ConditioningConfig,
    DisturbanceConfig,
    GyroDisturbanceConfig,
    PerformanceEnvelope,
    PerspectiveDisturbanceConfig,
    PipelineConfig,
    VehicleConfig,
)

__all__ = [
    "AxisTriple",
    "CalibrationConfig",
    "ChannelConfig",
    "ConditioningConfig",
    "DisturbanceConfig",
    "GyroDisturbanceConfig",
    "PerformanceEnvelope",
    "PerspectiveDisturbanceConfig",
    "PipelineConfig",
    "VehicleConfig",
    "load_config_mapping",
    "load_default_mapping",
    "load_pipeline_config",
    "load_project_config",
    "merge_overrides",
]
