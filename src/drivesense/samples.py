"""Sample, vector and channel records shared across the pipeline stages."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Mapping, Optional

import numpy as np

__all__ = [
    "AXES",
    "ConditionedSample",
    "Perspective",
    "PERSPECTIVES",
    "PerspectiveViews",
    "Sample",
    "SensorType",
    "TransformedSample",
    "Vector3",
]


AXES: tuple[str, str, str] = ("x", "y", "z")


class SensorType(str, Enum):
    """Physical sensor producing a sample stream."""

    ACCELEROMETER = "accelerometer"
    GYROSCOPE = "gyroscope"


class Perspective(str, Enum):
    """Frequency band a conditioned channel is tuned for.

    ``BASE`` is the single-band channel used for the canonical conditioned
    stream; the remaining members are the three disturbance perspectives.
    """

    BASE = "base"
    ROAD = "road"
    VEHICLE = "vehicle"
    DRIVER = "driver"


PERSPECTIVES: tuple[Perspective, Perspective, Perspective] = (
    Perspective.ROAD,
    Perspective.VEHICLE,
    Perspective.DRIVER,
)


@dataclass(frozen=True)
class Vector3:
    """Immutable tri-axis value."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @classmethod
    def from_iterable(cls, values) -> "Vector3":
        x, y, z = (float(value) for value in values)
        return cls(x, y, z)

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y
        yield self.z

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)

    def as_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}

    def norm(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.y) and math.isfinite(self.z)


@dataclass(frozen=True)
class Sample:
    """Single tri-axis reading pushed by the acquisition backend.

    ``timestamp`` is expressed in monotonic milliseconds.
    """

    x: float
    y: float
    z: float
    timestamp: int = 0

    @property
    def vector(self) -> Vector3:
        return Vector3(float(self.x), float(self.y), float(self.z))

    def is_finite(self) -> bool:
        return self.vector.is_finite()


@dataclass(frozen=True)
class TransformedSample:
    """Vehicle-frame view of a :class:`Sample` alongside its raw values.

    The axis convention is fixed: ``x`` is lateral, ``y`` is longitudinal and
    ``z`` is vertical.
    """

    raw_x: float
    raw_y: float
    raw_z: float
    x: float
    y: float
    z: float
    timestamp: int = 0
    calibrated: bool = False
    schema_version: int = 1

    @property
    def lateral(self) -> float:
        return self.x

    @property
    def longitudinal(self) -> float:
        return self.y

    @property
    def vertical(self) -> float:
        return self.z

    @property
    def raw(self) -> Vector3:
        return Vector3(self.raw_x, self.raw_y, self.raw_z)

    @property
    def vector(self) -> Vector3:
        return Vector3(self.x, self.y, self.z)


@dataclass(frozen=True)
class ConditionedSample:
    """Output of one conditioning channel for one input sample."""

    sensor: SensorType
    perspective: Perspective
    source: Vector3
    limited: Vector3
    filtered: Vector3
    timestamp: int = 0
    seeded: bool = False
    recovered_axes: tuple[str, ...] = ()
    schema_version: int = 1

    @property
    def lateral(self) -> float:
        return self.filtered.x

    @property
    def longitudinal(self) -> float:
        return self.filtered.y

    @property
    def vertical(self) -> float:
        return self.filtered.z

    @property
    def roll(self) -> float:
        return self.filtered.x

    @property
    def pitch(self) -> float:
        return self.filtered.y

    @property
    def yaw(self) -> float:
        return self.filtered.z


PerspectiveViews = Mapping[Perspective, Optional[ConditionedSample]]
