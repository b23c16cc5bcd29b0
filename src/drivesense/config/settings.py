"""Typed configuration records for the processing pipeline.

Every record is a frozen dataclass whose defaults match the packaged
``drivesense/data/defaults.toml``. ``from_mapping`` constructors accept the
plain dictionaries produced by the TOML/YAML loaders and fall back to the
defaults for missing keys.
"""

from __future__ import annotations

import math
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from ..samples import PERSPECTIVES, Perspective, SensorType

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
]


def _section(raw: Mapping[str, Any] | None, key: str) -> Mapping[str, Any]:
    if not isinstance(raw, MappingABC):
        return {}
    value = raw.get(key)
    return value if isinstance(value, MappingABC) else {}


def _float(raw: Mapping[str, Any], key: str, default: float) -> float:
    value = raw.get(key, default)
    try:
        numeric = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Configuration value '{key}' must be numeric, got {value!r}") from exc
    if not math.isfinite(numeric):
        raise ValueError(f"Configuration value '{key}' must be finite, got {value!r}")
    return numeric


def _bool(raw: Mapping[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"Configuration value '{key}' must be a boolean, got {value!r}")
    return value


def _positive(name: str, value: float) -> None:
    if value <= 0.0:
        raise ValueError(f"{name} must be positive, got {value!r}")


@dataclass(frozen=True)
class AxisTriple:
    """Per-axis scalar setting."""

    x: float
    y: float
    z: float

    @classmethod
    def uniform(cls, value: float) -> "AxisTriple":
        return cls(value, value, value)

    @classmethod
    def from_value(cls, value: Any, default: "AxisTriple") -> "AxisTriple":
        """Accept either a scalar applied to every axis or an ``{x, y, z}`` table."""

        if value is None:
            return default
        if isinstance(value, MappingABC):
            return cls(
                _float(value, "x", default.x),
                _float(value, "y", default.y),
                _float(value, "z", default.z),
            )
        if isinstance(value, (list, tuple)) and len(value) == 3:
            return cls(*(float(item) for item in value))
        return cls.uniform(_float({"value": value}, "value", 0.0))

    def axis(self, name: str) -> float:
        return getattr(self, name)


@dataclass(frozen=True)
class ChannelConfig:
    """Rate-limit and smoothing coefficients for one conditioning channel."""

    max_delta: AxisTriple
    alpha: AxisTriple

    def __post_init__(self) -> None:
        for axis in ("x", "y", "z"):
            _positive(f"max_delta.{axis}", self.max_delta.axis(axis))
            coefficient = self.alpha.axis(axis)
            if not 0.0 < coefficient <= 1.0:
                raise ValueError(f"alpha.{axis} must be in the (0, 1] range, got {coefficient!r}")


_ACCEL_CHANNEL = ChannelConfig(
    max_delta=AxisTriple(0.025, 0.025, 0.05),
    alpha=AxisTriple(0.1, 0.1, 0.2),
)
_GYRO_CHANNEL = ChannelConfig(
    max_delta=AxisTriple.uniform(0.3),
    alpha=AxisTriple.uniform(0.5),
)
_PERSPECTIVE_ALPHA: Mapping[Perspective, Mapping[SensorType, AxisTriple]] = {
    Perspective.DRIVER: {
        SensorType.ACCELEROMETER: AxisTriple(0.8, 0.8, 0.7),
        SensorType.GYROSCOPE: AxisTriple.uniform(0.8),
    },
    Perspective.VEHICLE: {
        SensorType.ACCELEROMETER: AxisTriple.uniform(0.3),
        SensorType.GYROSCOPE: AxisTriple.uniform(0.4),
    },
    Perspective.ROAD: {
        SensorType.ACCELEROMETER: AxisTriple(0.05, 0.05, 0.1),
        SensorType.GYROSCOPE: AxisTriple.uniform(0.05),
    },
}


def _default_perspective_alpha() -> Mapping[Perspective, Mapping[SensorType, AxisTriple]]:
    return MappingProxyType(
        {perspective: MappingProxyType(dict(table)) for perspective, table in _PERSPECTIVE_ALPHA.items()}
    )


@dataclass(frozen=True)
class ConditioningConfig:
    """Rate limits and filter coefficients for every conditioning channel.

    Rate limits are per sensor type; the three perspectives only differ in
    their smoothing coefficient.
    """

    accelerometer: ChannelConfig = _ACCEL_CHANNEL
    gyroscope: ChannelConfig = _GYRO_CHANNEL
    perspective_alpha: Mapping[Perspective, Mapping[SensorType, AxisTriple]] = field(
        default_factory=_default_perspective_alpha
    )
    filtering_enabled: bool = True

    def base(self, sensor: SensorType) -> ChannelConfig:
        return self.accelerometer if sensor is SensorType.ACCELEROMETER else self.gyroscope

    def channel(self, sensor: SensorType, perspective: Perspective) -> ChannelConfig:
        base = self.base(sensor)
        if perspective is Perspective.BASE:
            return base
        alpha = self.perspective_alpha.get(perspective, {}).get(sensor, base.alpha)
        return ChannelConfig(max_delta=base.max_delta, alpha=alpha)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "ConditioningConfig":
        raw = raw if isinstance(raw, MappingABC) else {}

        def channel(key: str, default: ChannelConfig) -> ChannelConfig:
            section = _section(raw, key)
            return ChannelConfig(
                max_delta=AxisTriple.from_value(section.get("max_delta"), default.max_delta),
                alpha=AxisTriple.from_value(section.get("alpha"), default.alpha),
            )

        perspectives_table = _section(raw, "perspectives")
        alpha_table: dict[Perspective, Mapping[SensorType, AxisTriple]] = {}
        for perspective in PERSPECTIVES:
            defaults = _PERSPECTIVE_ALPHA[perspective]
            section = _section(perspectives_table, perspective.value)
            alpha_table[perspective] = MappingProxyType(
                {
                    sensor: AxisTriple.from_value(
                        _section(section, sensor.value).get("alpha"), defaults[sensor]
                    )
                    for sensor in SensorType
                }
            )

        return cls(
            accelerometer=channel("accelerometer", _ACCEL_CHANNEL),
            gyroscope=channel("gyroscope", _GYRO_CHANNEL),
            perspective_alpha=MappingProxyType(alpha_table),
            filtering_enabled=_bool(raw, "filtering_enabled", True),
        )


@dataclass(frozen=True)
class PerspectiveDisturbanceConfig:
    """Accelerometer energy integration settings for one perspective."""

    threshold: float
    decay_factor: float
    sensitivity_factor: float
    max_energy: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.decay_factor <= 1.0:
            raise ValueError(f"decay_factor must be in [0, 1], got {self.decay_factor!r}")
        _positive("max_energy", self.max_energy)


@dataclass(frozen=True)
class GyroDisturbanceConfig:
    """Gyroscope energy settings; decay is a wall-clock half-life."""

    threshold: float = 0.001
    half_life_ms: float = 3000.0
    sensitivity_factor: float = 50.0
    max_energy: float = 1.0

    def __post_init__(self) -> None:
        _positive("half_life_ms", self.half_life_ms)
        _positive("max_energy", self.max_energy)


_DISTURBANCE_DEFAULTS: Mapping[Perspective, PerspectiveDisturbanceConfig] = {
    Perspective.ROAD: PerspectiveDisturbanceConfig(0.05, 0.95, 1.0, 10.0),
    Perspective.VEHICLE: PerspectiveDisturbanceConfig(0.03, 0.97, 0.8, 5.0),
    Perspective.DRIVER: PerspectiveDisturbanceConfig(0.02, 0.98, 0.6, 3.0),
}
_GYRO_DEFAULTS: Mapping[Perspective, GyroDisturbanceConfig] = {
    Perspective.ROAD: GyroDisturbanceConfig(sensitivity_factor=50.0),
    Perspective.VEHICLE: GyroDisturbanceConfig(sensitivity_factor=75.0),
    Perspective.DRIVER: GyroDisturbanceConfig(sensitivity_factor=25.0),
}


@dataclass(frozen=True)
class DisturbanceConfig:
    """Settings of the three-perspective disturbance estimator."""

    perspectives: Mapping[Perspective, PerspectiveDisturbanceConfig] = field(
        default_factory=lambda: MappingProxyType(dict(_DISTURBANCE_DEFAULTS))
    )
    gyro: Mapping[Perspective, GyroDisturbanceConfig] = field(
        default_factory=lambda: MappingProxyType(dict(_GYRO_DEFAULTS))
    )
    history_capacity: int = 50
    min_history: int = 5
    gyro_weight: float = 0.5
    max_gap_s: float = 0.5

    def __post_init__(self) -> None:
        if self.history_capacity < 30:
            raise ValueError("history_capacity must hold at least 30 samples")
        if self.min_history < 2:
            raise ValueError("min_history must be at least 2")
        _positive("max_gap_s", self.max_gap_s)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "DisturbanceConfig":
        raw = raw if isinstance(raw, MappingABC) else {}
        perspectives: dict[Perspective, PerspectiveDisturbanceConfig] = {}
        gyro: dict[Perspective, GyroDisturbanceConfig] = {}
        for perspective in PERSPECTIVES:
            section = _section(raw, perspective.value)
            base = _DISTURBANCE_DEFAULTS[perspective]
            perspectives[perspective] = PerspectiveDisturbanceConfig(
                threshold=_float(section, "threshold", base.threshold),
                decay_factor=_float(section, "decay_factor", base.decay_factor),
                sensitivity_factor=_float(section, "sensitivity_factor", base.sensitivity_factor),
                max_energy=_float(section, "max_energy", base.max_energy),
            )
            gyro_section = _section(section, "gyro")
            gyro_base = _GYRO_DEFAULTS[perspective]
            gyro[perspective] = GyroDisturbanceConfig(
                threshold=_float(gyro_section, "threshold", gyro_base.threshold),
                half_life_ms=_float(gyro_section, "half_life_ms", gyro_base.half_life_ms),
                sensitivity_factor=_float(
                    gyro_section, "sensitivity_factor", gyro_base.sensitivity_factor
                ),
                max_energy=_float(gyro_section, "max_energy", gyro_base.max_energy),
            )
        return cls(
            perspectives=MappingProxyType(perspectives),
            gyro=MappingProxyType(gyro),
            history_capacity=int(raw.get("history_capacity", 50)),
            min_history=int(raw.get("min_history", 5)),
            gyro_weight=_float(raw, "gyro_weight", 0.5),
            max_gap_s=_float(raw, "max_gap_s", 0.5),
        )


@dataclass(frozen=True)
class PerformanceEnvelope:
    """G-force limits describing the vehicle's traction ellipse."""

    max_braking: float = 1.0
    max_acceleration: float = 0.6
    max_lateral: float = 0.9

    def __post_init__(self) -> None:
        _positive("max_braking", self.max_braking)
        _positive("max_acceleration", self.max_acceleration)
        _positive("max_lateral", self.max_lateral)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "PerformanceEnvelope":
        raw = raw if isinstance(raw, MappingABC) else {}
        return cls(
            max_braking=_float(raw, "max_braking", 1.0),
            max_acceleration=_float(raw, "max_acceleration", 0.6),
            max_lateral=_float(raw, "max_lateral", 0.9),
        )


@dataclass(frozen=True)
class VehicleConfig:
    """Settings of the vehicle dynamics estimator."""

    envelope: PerformanceEnvelope = field(default_factory=PerformanceEnvelope)
    use_external_speed: bool = True
    gravity: float = 9.81
    max_gap_s: float = 0.5

    def __post_init__(self) -> None:
        _positive("gravity", self.gravity)
        _positive("max_gap_s", self.max_gap_s)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "VehicleConfig":
        raw = raw if isinstance(raw, MappingABC) else {}
        return cls(
            envelope=PerformanceEnvelope.from_mapping(_section(raw, "envelope")),
            use_external_speed=_bool(raw, "use_external_speed", True),
            gravity=_float(raw, "gravity", 9.81),
            max_gap_s=_float(raw, "max_gap_s", 0.5),
        )


_STRATEGIES = ("rotation", "offset")


@dataclass(frozen=True)
class CalibrationConfig:
    """Settings of the stationary calibration run."""

    target_count: int = 30
    timeout_ms: int = 10_000
    min_magnitude: float = 0.5
    strategy: str = "rotation"

    def __post_init__(self) -> None:
        if self.target_count <= 0:
            raise ValueError("target_count must be positive")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if self.strategy not in _STRATEGIES:
            raise ValueError(f"strategy must be one of {_STRATEGIES}, got {self.strategy!r}")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "CalibrationConfig":
        raw = raw if isinstance(raw, MappingABC) else {}
        return cls(
            target_count=int(raw.get("target_count", 30)),
            timeout_ms=int(raw.get("timeout_ms", 10_000)),
            min_magnitude=_float(raw, "min_magnitude", 0.5),
            strategy=str(raw.get("strategy", "rotation")).lower(),
        )


@dataclass(frozen=True)
class PipelineConfig:
    """Complete configuration of a processing session."""

    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    conditioning: ConditioningConfig = field(default_factory=ConditioningConfig)
    disturbance: DisturbanceConfig = field(default_factory=DisturbanceConfig)
    vehicle: VehicleConfig = field(default_factory=VehicleConfig)
    use_calibration: bool = True

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "PipelineConfig":
        raw = raw if isinstance(raw, MappingABC) else {}
        return cls(
            calibration=CalibrationConfig.from_mapping(_section(raw, "calibration")),
            conditioning=ConditioningConfig.from_mapping(_section(raw, "conditioning")),
            disturbance=DisturbanceConfig.from_mapping(_section(raw, "disturbance")),
            vehicle=VehicleConfig.from_mapping(_section(raw, "vehicle")),
            use_calibration=_bool(raw, "use_calibration", True),
        )
