"""Per-channel rate limiting and single-pole low-pass filtering.

Channels are keyed by ``(SensorType, Perspective)`` and hold one
:class:`FilterChannelState` per axis. The first sample of a channel seeds
the state and is emitted untouched so the filters never ramp up from zero.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from ..config.settings import ChannelConfig, ConditioningConfig
from ..errors import NumericInstability
from ..samples import (
    AXES,
    PERSPECTIVES,
    ConditionedSample,
    Perspective,
    SensorType,
    TransformedSample,
    Vector3,
)

__all__ = [
    "FilterChannelState",
    "SignalConditioner",
    "limit_rate",
    "low_pass",
]

logger = logging.getLogger(__name__)

ChannelKey = Tuple[SensorType, Perspective]
InputValues = Union[TransformedSample, Vector3, Sequence[float]]


def limit_rate(new: float, prev: float, max_delta: float) -> float:
    """Clamp the step from ``prev`` to ``new`` into ``[-max_delta, max_delta]``."""

    delta = new - prev
    if delta > max_delta:
        return prev + max_delta
    if delta < -max_delta:
        return prev - max_delta
    return new


def low_pass(new: float, prev: float, alpha: float) -> float:
    """Single-pole IIR step; non-finite operands fall back to ``new``."""

    if not (math.isfinite(new) and math.isfinite(prev)):
        return new
    return alpha * new + (1.0 - alpha) * prev


@dataclass
class FilterChannelState:
    """Filter memory of one axis.

    ``prev_raw`` holds the last rate-limited input, which is the reference
    the next step is clamped against.
    """

    prev_raw: float
    prev_filtered: float

    @classmethod
    def seeded(cls, value: float) -> "FilterChannelState":
        return cls(prev_raw=value, prev_filtered=value)


def _as_vector(values: InputValues) -> Vector3:
    if isinstance(values, Vector3):
        return values
    if isinstance(values, TransformedSample):
        return values.vector
    return Vector3.from_iterable(values)


class SignalConditioner:
    """Stateful conditioner for every sensor and perspective channel."""

    def __init__(self, config: ConditioningConfig | None = None) -> None:
        self.config = config or ConditioningConfig()
        self._channels: Dict[ChannelKey, Dict[str, FilterChannelState]] = {}
        self._instabilities = 0

    @property
    def instability_count(self) -> int:
        return self._instabilities

    @property
    def filtering_enabled(self) -> bool:
        return self.config.filtering_enabled

    def set_filtering(self, enabled: bool) -> None:
        self.config = replace(self.config, filtering_enabled=bool(enabled))

    def channels(self) -> Iterable[ChannelKey]:
        return tuple(self._channels)

    def state(
        self, sensor: SensorType, perspective: Perspective = Perspective.BASE
    ) -> Optional[Mapping[str, FilterChannelState]]:
        channel = self._channels.get((sensor, perspective))
        if channel is None:
            return None
        return {axis: FilterChannelState(state.prev_raw, state.prev_filtered) for axis, state in channel.items()}

    def process(
        self,
        sensor: SensorType,
        values: InputValues,
        *,
        perspective: Perspective = Perspective.BASE,
        timestamp: int | None = None,
        config: ChannelConfig | None = None,
    ) -> ConditionedSample:
        """Rate limit then smooth ``values`` on the ``(sensor, perspective)`` channel."""

        source = _as_vector(values)
        if timestamp is None:
            timestamp = getattr(values, "timestamp", 0)
        channel_config = config or self.config.channel(sensor, perspective)
        key = (sensor, perspective)
        channel = self._channels.get(key)

        if channel is None:
            seeds: Dict[str, FilterChannelState] = {}
            for axis, value in zip(AXES, source):
                if math.isfinite(value):
                    seeds[axis] = FilterChannelState.seeded(value)
            if len(seeds) == len(AXES):
                self._channels[key] = seeds
                return ConditionedSample(
                    sensor=sensor,
                    perspective=perspective,
                    source=source,
                    limited=source,
                    filtered=source,
                    timestamp=timestamp,
                    seeded=True,
                )
            # Partially finite first samples cannot seed; keep the channel cold.
            self._record_instability(key, [axis for axis in AXES if axis not in seeds], timestamp)
            return ConditionedSample(
                sensor=sensor,
                perspective=perspective,
                source=source,
                limited=source,
                filtered=source,
                timestamp=timestamp,
                recovered_axes=tuple(axis for axis in AXES if axis not in seeds),
            )

        limited: list[float] = []
        filtered: list[float] = []
        recovered: list[str] = []
        for axis, value in zip(AXES, source):
            state = channel[axis]
            try:
                limited_value, filtered_value = self._step(
                    state,
                    value,
                    channel_config.max_delta.axis(axis),
                    channel_config.alpha.axis(axis),
                )
            except NumericInstability:
                recovered.append(axis)
                if math.isfinite(value):
                    channel[axis] = FilterChannelState.seeded(value)
                limited.append(value)
                filtered.append(value)
                continue
            state.prev_raw = limited_value
            state.prev_filtered = filtered_value
            limited.append(limited_value)
            filtered.append(filtered_value)

        if recovered:
            self._record_instability(key, recovered, timestamp)

        return ConditionedSample(
            sensor=sensor,
            perspective=perspective,
            source=source,
            limited=Vector3(*limited),
            filtered=Vector3(*filtered),
            timestamp=timestamp,
            recovered_axes=tuple(recovered),
        )

    def process_perspectives(
        self,
        sensor: SensorType,
        values: InputValues,
        *,
        timestamp: int | None = None,
    ) -> Dict[Perspective, ConditionedSample]:
        """Condition the same input through the road, vehicle and driver channels."""

        return {
            perspective: self.process(
                sensor, values, perspective=perspective, timestamp=timestamp
            )
            for perspective in PERSPECTIVES
        }

    def reset(
        self,
        sensor: SensorType | None = None,
        perspective: Perspective | None = None,
    ) -> None:
        """Drop channel state; ``None`` arguments act as wildcards."""

        for key in list(self._channels):
            channel_sensor, channel_perspective = key
            if sensor is not None and channel_sensor is not sensor:
                continue
            if perspective is not None and channel_perspective is not perspective:
                continue
            del self._channels[key]
        if sensor is None and perspective is None:
            self._instabilities = 0

    def _step(
        self,
        state: FilterChannelState,
        value: float,
        max_delta: float,
        alpha: float,
    ) -> tuple[float, float]:
        if not math.isfinite(value):
            raise NumericInstability("Non-finite input", context={"value": value})
        limited = limit_rate(value, state.prev_raw, max_delta)
        if self.config.filtering_enabled:
            filtered = low_pass(limited, state.prev_filtered, alpha)
        else:
            filtered = limited
        if not (math.isfinite(limited) and math.isfinite(filtered)):
            raise NumericInstability(
                "Filter produced a non-finite value",
                context={"limited": limited, "filtered": filtered},
            )
        return limited, filtered

    def _record_instability(self, key: ChannelKey, axes: Sequence[str], timestamp: int) -> None:
        self._instabilities += 1
        sensor, perspective = key
        logger.warning(
            "Non-finite value on conditioning channel; re-seeded from raw input",
            extra={
                "event": "conditioning.numeric_instability",
                "sensor": sensor.value,
                "perspective": perspective.value,
                "axes": list(axes),
                "timestamp": timestamp,
            },
        )
