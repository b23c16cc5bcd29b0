"""Three-perspective disturbance energy estimation.

Each perspective (road, vehicle, driver) integrates the thresholded square
of its conditioned accelerometer axes, weighted by a frequency factor
derived from a rolling history of the same stream. Gyroscope energy decays
with a half-life and is folded into the accelerometer accumulators at a
reduced weight. Every accumulator is also exposed on a 0-100 scale.

The estimator reads axes in the vehicle body frame used by the energy
model: ``x`` is longitudinal, ``y`` lateral and ``z`` vertical including
the 1 G baseline. Gyroscope roll, pitch and yaw rates feed the lateral,
longitudinal and vertical accumulators respectively.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Deque, Dict, Mapping, Optional, Tuple, Union

import numpy as np

from ..config.settings import (
    DisturbanceConfig,
    GyroDisturbanceConfig,
    PerspectiveDisturbanceConfig,
)
from ..samples import PERSPECTIVES, ConditionedSample, Perspective, Vector3

__all__ = [
    "DisturbanceAccumulator",
    "DisturbanceEstimator",
    "DisturbanceSnapshot",
    "GyroAccumulator",
    "frequency_factor",
    "half_life_decay",
    "threshold_energy",
]

logger = logging.getLogger(__name__)

GRAVITY_BASELINE = 1.0

PerspectiveInput = Union[ConditionedSample, Vector3, None]
PerspectiveInputs = Mapping[Perspective, PerspectiveInput]

_FREQUENCY_SCALE: Mapping[Perspective, float] = MappingProxyType(
    {
        Perspective.ROAD: 10.0,
        Perspective.VEHICLE: 8.0,
        Perspective.DRIVER: 5.0,
    }
)
_SHORT_WINDOW = 10
_MEDIUM_WINDOW = 30


def _normalise(value: float, maximum: float) -> float:
    scaled = value / maximum * 100.0
    if not math.isfinite(scaled):
        return 0.0
    return min(max(scaled, 0.0), 100.0)


def threshold_energy(magnitude: float, threshold: float) -> float:
    """Return ``(magnitude - threshold)²`` above ``threshold`` and ``0`` otherwise."""

    if magnitude > threshold:
        return (magnitude - threshold) ** 2
    return 0.0


def frequency_factor(
    perspective: Perspective,
    history: Deque[Vector3] | Tuple[Vector3, ...],
    *,
    min_history: int = 5,
) -> float:
    """Weight energy by the band each perspective cares about.

    ``road`` uses the spread of the latest ten samples, ``vehicle`` the
    spread of samples ten to thirty back and ``driver`` the drift between
    the oldest and newest buffered samples. Windows shorter than
    ``min_history`` yield ``1.0``.
    """

    samples = np.asarray([tuple(sample) for sample in history], dtype=float).reshape(-1, 3)
    if perspective is Perspective.ROAD:
        window = samples[-_SHORT_WINDOW:]
        if len(window) < min_history:
            return 1.0
        return float(math.sqrt(float(np.var(window, axis=0).sum())) * _FREQUENCY_SCALE[perspective])
    if perspective is Perspective.VEHICLE:
        window = samples[-_MEDIUM_WINDOW:-_SHORT_WINDOW]
        if len(window) < min_history:
            return 1.0
        return float(math.sqrt(float(np.var(window, axis=0).sum())) * _FREQUENCY_SCALE[perspective])
    if len(samples) < min_history:
        return 1.0
    drift = np.abs(samples[-1] - samples[0]).sum()
    return float(drift * _FREQUENCY_SCALE[Perspective.DRIVER])


@dataclass
class DisturbanceAccumulator:
    """Integrated accelerometer energy of one perspective."""

    lateral: float = 0.0
    longitudinal: float = 0.0
    vertical: float = 0.0
    total: float = 0.0
    normalized_lateral: float = 0.0
    normalized_longitudinal: float = 0.0
    normalized_vertical: float = 0.0
    normalized_total: float = 0.0

    def normalise(self, max_energy: float) -> None:
        self.total = self.lateral + self.longitudinal + self.vertical
        self.normalized_lateral = _normalise(self.lateral, max_energy)
        self.normalized_longitudinal = _normalise(self.longitudinal, max_energy)
        self.normalized_vertical = _normalise(self.vertical, max_energy)
        self.normalized_total = _normalise(self.total, max_energy * 3.0)


@dataclass
class GyroAccumulator:
    """Half-life decayed gyroscope energy of one perspective."""

    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    total: float = 0.0
    normalized_roll: float = 0.0
    normalized_pitch: float = 0.0
    normalized_yaw: float = 0.0
    normalized_total: float = 0.0

    def normalise(self, max_energy: float) -> None:
        self.total = self.roll + self.pitch + self.yaw
        self.normalized_roll = _normalise(self.roll, max_energy)
        self.normalized_pitch = _normalise(self.pitch, max_energy)
        self.normalized_yaw = _normalise(self.yaw, max_energy)
        self.normalized_total = _normalise(self.total, max_energy * 3.0)


@dataclass(frozen=True)
class DisturbanceSnapshot:
    """Copy of every accumulator after an update.

    ``skipped`` is set when the tick fell outside the integration gap
    policy; ``skipped_perspectives`` lists perspectives without data.
    """

    accel: Mapping[Perspective, DisturbanceAccumulator]
    gyro: Mapping[Perspective, GyroAccumulator]
    dt: float
    skipped: bool = False
    skipped_perspectives: Tuple[Perspective, ...] = ()
    timestamp: int = 0

    def normalized_totals(self) -> Dict[Perspective, float]:
        return {perspective: acc.normalized_total for perspective, acc in self.accel.items()}


def _filtered(view: PerspectiveInput) -> Optional[Vector3]:
    if view is None:
        return None
    if isinstance(view, ConditionedSample):
        return view.filtered
    return view


@dataclass
class _PerspectiveState:
    accel: DisturbanceAccumulator = field(default_factory=DisturbanceAccumulator)
    gyro: GyroAccumulator = field(default_factory=GyroAccumulator)
    history: Deque[Vector3] = field(default_factory=deque)


class DisturbanceEstimator:
    """Accumulate disturbance energy for the road, vehicle and driver views."""

    def __init__(self, config: DisturbanceConfig | None = None) -> None:
        self.config = config or DisturbanceConfig()
        self._states: Dict[Perspective, _PerspectiveState] = {}
        self._last_gyro_timestamp: Optional[int] = None
        self._last_timestamp = 0
        self.reset()

    def reset(self) -> None:
        """Clear every accumulator and history buffer."""

        self._states = {
            perspective: _PerspectiveState(history=deque(maxlen=self.config.history_capacity))
            for perspective in PERSPECTIVES
        }
        self._last_gyro_timestamp = None
        self._last_timestamp = 0

    def update_config(self, config: DisturbanceConfig | Mapping[str, object]) -> DisturbanceConfig:
        """Replace settings; mappings override only the keys they name.

        Accumulated energy is kept. History buffers are resized when the
        capacity changes.
        """

        if isinstance(config, DisturbanceConfig):
            updated = config
        else:
            updated = _merge_config(self.config, config)
        if updated.history_capacity != self.config.history_capacity:
            for state in self._states.values():
                state.history = deque(state.history, maxlen=updated.history_capacity)
        self.config = updated
        return updated

    def history(self, perspective: Perspective) -> Tuple[Vector3, ...]:
        return tuple(self._states[perspective].history)

    def snapshot(
        self,
        *,
        dt: float = 0.0,
        skipped: bool = False,
        skipped_perspectives: Tuple[Perspective, ...] = (),
    ) -> DisturbanceSnapshot:
        return DisturbanceSnapshot(
            accel=MappingProxyType(
                {perspective: replace(state.accel) for perspective, state in self._states.items()}
            ),
            gyro=MappingProxyType(
                {perspective: replace(state.gyro) for perspective, state in self._states.items()}
            ),
            dt=dt,
            skipped=skipped,
            skipped_perspectives=skipped_perspectives,
            timestamp=self._last_timestamp,
        )

    def update(
        self,
        accel: PerspectiveInputs,
        gyro: PerspectiveInputs | None = None,
        *,
        dt: float,
        gyro_elapsed_ms: float | None = None,
        timestamp: int | None = None,
    ) -> DisturbanceSnapshot:
        """Integrate one tick of conditioned perspective views.

        Ticks with ``dt <= 0`` or ``dt`` above the configured gap are not
        integrated and return ``skipped=True``. Perspectives missing from
        ``accel`` keep their state untouched.
        """

        if timestamp is not None:
            self._last_timestamp = timestamp
        if dt <= 0.0 or dt > self.config.max_gap_s:
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "Disturbance tick skipped",
                    extra={"event": "disturbance.skipped", "dt": dt},
                )
            return self.snapshot(dt=dt, skipped=True, skipped_perspectives=tuple(PERSPECTIVES))

        missing = []
        for perspective in PERSPECTIVES:
            values = _filtered(accel.get(perspective))
            if values is None or not values.is_finite():
                missing.append(perspective)
                continue
            self._integrate_accel(perspective, values, dt)

        if gyro is not None:
            elapsed = self._gyro_elapsed(gyro, gyro_elapsed_ms)
            for perspective in PERSPECTIVES:
                rates = _filtered(gyro.get(perspective))
                if rates is None or not rates.is_finite():
                    continue
                self._integrate_gyro(perspective, rates, elapsed)

        return self.snapshot(dt=dt, skipped_perspectives=tuple(missing))

    def _integrate_accel(self, perspective: Perspective, values: Vector3, dt: float) -> None:
        settings: PerspectiveDisturbanceConfig = self.config.perspectives[perspective]
        state = self._states[perspective]
        state.history.append(values)

        lateral = threshold_energy(abs(values.y), settings.threshold)
        longitudinal = threshold_energy(abs(values.x), settings.threshold)
        vertical = threshold_energy(abs(values.z - GRAVITY_BASELINE), settings.threshold)

        factor = frequency_factor(perspective, state.history, min_history=self.config.min_history)
        gain = factor * settings.sensitivity_factor * dt
        decay = settings.decay_factor

        acc = state.accel
        acc.lateral = acc.lateral * decay + lateral * gain
        acc.longitudinal = acc.longitudinal * decay + longitudinal * gain
        acc.vertical = acc.vertical * decay + vertical * gain
        acc.normalise(settings.max_energy)

    def _integrate_gyro(self, perspective: Perspective, rates: Vector3, elapsed_ms: float) -> None:
        settings: GyroDisturbanceConfig = self.config.gyro[perspective]
        state = self._states[perspective]

        sensitivity = settings.sensitivity_factor
        roll = threshold_energy(abs(rates.x), settings.threshold) * sensitivity
        pitch = threshold_energy(abs(rates.y), settings.threshold) * sensitivity
        yaw = threshold_energy(abs(rates.z), settings.threshold) * sensitivity

        decay = half_life_decay(elapsed_ms, settings.half_life_ms)
        acc = state.gyro
        acc.roll = acc.roll * decay + roll
        acc.pitch = acc.pitch * decay + pitch
        acc.yaw = acc.yaw * decay + yaw
        acc.normalise(settings.max_energy)

        weight = self.config.gyro_weight
        accel = state.accel
        accel.lateral += roll * weight
        accel.longitudinal += pitch * weight
        accel.vertical += yaw * weight
        accel.normalise(self.config.perspectives[perspective].max_energy)

    def _gyro_elapsed(self, gyro: PerspectiveInputs, explicit_ms: float | None) -> float:
        timestamps = [
            view.timestamp
            for view in gyro.values()
            if isinstance(view, ConditionedSample)
        ]
        latest = max(timestamps) if timestamps else None
        if explicit_ms is not None:
            if latest is not None:
                self._last_gyro_timestamp = latest
            return max(float(explicit_ms), 0.0)
        if latest is None:
            return 0.0
        previous = self._last_gyro_timestamp
        self._last_gyro_timestamp = latest
        if previous is None:
            return 0.0
        return float(max(latest - previous, 0))


def half_life_decay(elapsed_ms: float, half_life_ms: float) -> float:
    """Return ``exp(-ln2 · elapsed / half_life)`` clamped to ``[0, 1]``."""

    if elapsed_ms <= 0.0:
        return 1.0
    decay = math.exp(-math.log(2.0) * elapsed_ms / half_life_ms)
    return min(max(decay, 0.0), 1.0)


def _merge_config(current: DisturbanceConfig, overrides: Mapping[str, object]) -> DisturbanceConfig:
    perspectives = dict(current.perspectives)
    gyro = dict(current.gyro)
    for perspective in PERSPECTIVES:
        section = overrides.get(perspective.value)
        if not isinstance(section, MappingABC):
            continue
        accel_fields = {
            key: float(value)
            for key, value in section.items()
            if key in ("threshold", "decay_factor", "sensitivity_factor", "max_energy")
        }
        if accel_fields:
            perspectives[perspective] = replace(perspectives[perspective], **accel_fields)
        gyro_section = section.get("gyro")
        if isinstance(gyro_section, MappingABC):
            gyro_fields = {
                key: float(value)
                for key, value in gyro_section.items()
                if key in ("threshold", "half_life_ms", "sensitivity_factor", "max_energy")
            }
            if gyro_fields:
                gyro[perspective] = replace(gyro[perspective], **gyro_fields)

    scalars: Dict[str, object] = {}
    for key in ("history_capacity", "min_history"):
        if key in overrides:
            scalars[key] = int(overrides[key])  # type: ignore[arg-type]
    for key in ("gyro_weight", "max_gap_s"):
        if key in overrides:
            scalars[key] = float(overrides[key])  # type: ignore[arg-type]
    return replace(
        current,
        perspectives=MappingProxyType(perspectives),
        gyro=MappingProxyType(gyro),
        **scalars,
    )
