"""Driver, vehicle and road behaviour indicators from perspective views."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping, Optional

from ..samples import ConditionedSample, Perspective, Vector3

__all__ = [
    "AccelMetrics",
    "GyroMetrics",
    "accel_metrics",
    "driver_input_rate",
    "gyro_metrics",
    "road_roughness",
    "steering_activity",
    "turn_in_balance",
    "vehicle_attitude_stability",
    "vehicle_stability",
]

_RATE_SCALE = 100.0
_ROUGHNESS_SCALE = 10.0
_STEERING_SCALE = 10.0


def driver_input_rate(current: Vector3, previous: Optional[Vector3]) -> float:
    """Planar change of the driver view since the previous tick, scaled by 100."""

    if previous is None:
        return 0.0
    return math.hypot(current.x - previous.x, current.y - previous.y) * _RATE_SCALE


def vehicle_stability(vehicle: Vector3) -> float:
    return vehicle.norm()


def road_roughness(road: Vector3) -> float:
    return abs(road.z) * _ROUGHNESS_SCALE


def steering_activity(driver_rates: Vector3) -> float:
    return abs(driver_rates.z) * _STEERING_SCALE


def vehicle_attitude_stability(vehicle_rates: Vector3) -> float:
    """Combined roll and pitch rate of the vehicle view."""

    return math.hypot(vehicle_rates.x, vehicle_rates.y)


def turn_in_balance(driver_rates: Vector3, vehicle_rates: Vector3) -> float:
    """Driver to vehicle yaw-rate ratio.

    Positive values lean towards understeer, negative towards oversteer.
    Returns ``0`` when the vehicle yaw rate is zero or the ratio is not finite.
    """

    if vehicle_rates.z == 0.0:
        return 0.0
    ratio = driver_rates.z / vehicle_rates.z
    return ratio if math.isfinite(ratio) else 0.0


@dataclass(frozen=True)
class AccelMetrics:
    driver_input_rate: float
    vehicle_stability: float
    road_roughness: float


@dataclass(frozen=True)
class GyroMetrics:
    steering_activity: float
    vehicle_attitude_stability: float
    turn_in_balance: float


def accel_metrics(
    views: Mapping[Perspective, ConditionedSample],
    previous_driver: Optional[Vector3] = None,
) -> AccelMetrics:
    return AccelMetrics(
        driver_input_rate=driver_input_rate(views[Perspective.DRIVER].filtered, previous_driver),
        vehicle_stability=vehicle_stability(views[Perspective.VEHICLE].filtered),
        road_roughness=road_roughness(views[Perspective.ROAD].filtered),
    )


def gyro_metrics(views: Mapping[Perspective, ConditionedSample]) -> GyroMetrics:
    driver = views[Perspective.DRIVER].filtered
    vehicle = views[Perspective.VEHICLE].filtered
    return GyroMetrics(
        steering_activity=steering_activity(driver),
        vehicle_attitude_stability=vehicle_attitude_stability(vehicle),
        turn_in_balance=turn_in_balance(driver, vehicle),
    )
