"""Velocity integration and traction-circle estimates from conditioned G-force."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np

from ..config.settings import PerformanceEnvelope, VehicleConfig
from ..samples import ConditionedSample, TransformedSample, Vector3

__all__ = [
    "DynamicsSnapshot",
    "VehicleDynamicsEstimator",
    "VehicleDynamicsState",
    "acceleration_intensity",
    "traction_circle_utilization",
]

logger = logging.getLogger(__name__)

AccelInput = Union[ConditionedSample, TransformedSample, Vector3]

_LATERAL, _FORWARD, _VERTICAL = 0, 1, 2
_MIN_TURNING_SPEED = 1.0
_MIN_TURNING_ACCEL = 0.1
_MIN_STOPPING_SPEED = 1.0


def traction_circle_utilization(
    lateral: float,
    longitudinal: float,
    envelope: PerformanceEnvelope | None = None,
) -> float:
    """Return the share (0-100) of the traction ellipse used by the G vector.

    The ellipse is bounded by ``max_lateral`` sideways and by
    ``max_acceleration`` or ``max_braking`` along the direction of travel,
    chosen from the sign of ``longitudinal``.
    """

    envelope = envelope or PerformanceEnvelope()
    if not (math.isfinite(lateral) and math.isfinite(longitudinal)):
        return 0.0
    combined = math.hypot(lateral, longitudinal)
    if combined == 0.0:
        return 0.0
    max_longitudinal = envelope.max_acceleration if longitudinal >= 0.0 else envelope.max_braking
    max_lateral = envelope.max_lateral
    angle = math.atan2(lateral, abs(longitudinal))
    max_g = (max_lateral * max_longitudinal) / math.sqrt(
        (max_longitudinal * math.sin(angle)) ** 2 + (max_lateral * math.cos(angle)) ** 2
    )
    return min(100.0, max(0.0, 100.0 * combined / max_g))


def acceleration_intensity(
    value: float,
    axis: str,
    envelope: PerformanceEnvelope | None = None,
) -> float:
    """Fraction (0-1) of the envelope limit reached by ``value`` on ``axis``."""

    envelope = envelope or PerformanceEnvelope()
    if axis == "lateral":
        limit = envelope.max_lateral
    elif axis == "longitudinal":
        limit = envelope.max_braking if value < 0.0 else envelope.max_acceleration
    elif axis == "vertical":
        limit = 1.0
    else:
        raise ValueError(f"Unknown acceleration axis: {axis!r}")
    if not math.isfinite(value):
        return 0.0
    return min(abs(value) / limit, 1.0)


@dataclass
class VehicleDynamicsState:
    """Integrated velocity (m/s) in ``lateral, forward, vertical`` order."""

    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    last_timestamp: Optional[int] = None

    def clear(self) -> None:
        self.velocity = np.zeros(3)
        self.last_timestamp = None


@dataclass(frozen=True)
class DynamicsSnapshot:
    """Instantaneous G-forces plus the integrated estimates of one tick.

    ``integrated`` is ``False`` when the tick fell outside the gap policy;
    the instantaneous fields and ``utilization`` are always populated.
    """

    lateral: float
    longitudinal: float
    vertical: float
    utilization: float
    integrated: bool
    velocity: Vector3
    speed: float
    turning_radius: Optional[float] = None
    stopping_distance: Optional[float] = None
    timestamp: int = 0

    @property
    def forward_velocity(self) -> float:
        return self.velocity.y


def _planar_speed(velocity: np.ndarray) -> float:
    """Ground speed; vertical velocity carries the integrated 1 G and is excluded."""

    return math.hypot(float(velocity[_LATERAL]), float(velocity[_FORWARD]))


def _components(sample: AccelInput) -> tuple[Vector3, int]:
    if isinstance(sample, ConditionedSample):
        return sample.filtered, sample.timestamp
    if isinstance(sample, TransformedSample):
        return sample.vector, sample.timestamp
    return sample, 0


class VehicleDynamicsEstimator:
    """Integrate conditioned accelerometer G into velocity and derived figures."""

    def __init__(self, config: VehicleConfig | None = None) -> None:
        self.config = config or VehicleConfig()
        self.state = VehicleDynamicsState()

    @property
    def envelope(self) -> PerformanceEnvelope:
        return self.config.envelope

    def reset(self) -> None:
        self.state.clear()

    def update(
        self,
        accel: AccelInput,
        external_speed: float | None = None,
        *,
        dt: float | None = None,
    ) -> DynamicsSnapshot:
        """Advance the estimator by one sample.

        ``dt`` defaults to the spacing between this sample's timestamp and
        the previous one. ``external_speed`` pins the forward velocity when
        the configuration allows it.
        """

        values, timestamp = _components(accel)
        if dt is None:
            previous = self.state.last_timestamp
            dt = 0.0 if previous is None else (timestamp - previous) / 1000.0
        self.state.last_timestamp = timestamp

        lateral, longitudinal, vertical = values.x, values.y, values.z
        utilization = traction_circle_utilization(lateral, longitudinal, self.envelope)

        if dt <= 0.0 or dt > self.config.max_gap_s or not values.is_finite():
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "Dynamics integration skipped",
                    extra={"event": "dynamics.skipped", "dt": dt},
                )
            return DynamicsSnapshot(
                lateral=lateral,
                longitudinal=longitudinal,
                vertical=vertical,
                utilization=utilization,
                integrated=False,
                velocity=Vector3.from_iterable(self.state.velocity),
                speed=_planar_speed(self.state.velocity),
                timestamp=timestamp,
            )

        gravity = self.config.gravity
        acceleration = values.as_array() * gravity
        velocity = self.state.velocity
        if external_speed is not None and self.config.use_external_speed:
            velocity[_FORWARD] = float(external_speed)
            velocity[_LATERAL] += acceleration[_LATERAL] * dt
        else:
            velocity += acceleration * dt

        forward = float(velocity[_FORWARD])
        lateral_accel = float(acceleration[_LATERAL])

        turning_radius = None
        if abs(forward) > _MIN_TURNING_SPEED and abs(lateral_accel) > _MIN_TURNING_ACCEL:
            turning_radius = forward**2 / abs(lateral_accel)

        stopping_distance = None
        if forward > _MIN_STOPPING_SPEED:
            stopping_distance = forward**2 / (2.0 * self.envelope.max_braking * gravity)

        return DynamicsSnapshot(
            lateral=lateral,
            longitudinal=longitudinal,
            vertical=vertical,
            utilization=utilization,
            integrated=True,
            velocity=Vector3.from_iterable(velocity),
            speed=_planar_speed(velocity),
            turning_radius=turning_radius,
            stopping_distance=stopping_distance,
            timestamp=timestamp,
        )
