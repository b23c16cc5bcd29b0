"""Error taxonomy shared by the calibration and conditioning stages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, MutableMapping, Optional

__all__ = [
    "AlreadyInProgress",
    "DegenerateCalibration",
    "DriveSenseError",
    "ErrorPayload",
    "InvalidMatrix",
    "NumericInstability",
    "build_error_payload",
    "log_error",
]


_DEFAULT_CATEGORY = "runtime"
_DEFAULT_LOGGER_NAME = "drivesense"


@dataclass(frozen=True, slots=True)
class ErrorPayload:
    """Structured representation of a recoverable failure."""

    category: str
    message: str
    context: Mapping[str, Any]

    def as_dict(self) -> Mapping[str, Any]:
        return {
            "category": self.category,
            "message": self.message,
            "context": dict(self.context),
        }


def _normalise_context(context: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    if not context:
        return {}
    payload: MutableMapping[str, Any] = {}
    for key, value in context.items():
        if isinstance(value, (str, int, float, bool)) or value is None:
            payload[key] = value
        else:
            payload[key] = str(value)
    return dict(payload)


def build_error_payload(
    message: str,
    *,
    category: str = _DEFAULT_CATEGORY,
    context: Optional[Mapping[str, Any]] = None,
) -> ErrorPayload:
    """Create an :class:`ErrorPayload` with JSON friendly context values."""

    return ErrorPayload(
        category=category or _DEFAULT_CATEGORY,
        message=message,
        context=_normalise_context(context),
    )


def log_error(
    payload: ErrorPayload,
    *,
    logger: Optional[logging.Logger] = None,
    level: int = logging.WARNING,
) -> None:
    """Emit ``payload`` with its category and context as structured extras."""

    target = logger or logging.getLogger(_DEFAULT_LOGGER_NAME)
    target.log(
        level,
        payload.message,
        extra={
            "event": f"{payload.category}.error",
            "category": payload.category,
            "context": dict(payload.context),
        },
    )


class DriveSenseError(RuntimeError):
    """Base class for every failure raised by :mod:`drivesense`.

    None of these errors is fatal to the host: each one is local and the
    operation that raised it can simply be retried.
    """

    category = _DEFAULT_CATEGORY

    def __init__(
        self,
        message: str,
        *,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self._payload = build_error_payload(
            message, category=self.category, context=context
        )
        self.context = dict(self._payload.context)

    @property
    def payload(self) -> ErrorPayload:
        return self._payload


class AlreadyInProgress(DriveSenseError):
    """Calibration was started while a collection run is still active."""

    category = "calibration"


class DegenerateCalibration(DriveSenseError):
    """The collected samples cannot describe a gravity vector."""

    category = "calibration"


class InvalidMatrix(DriveSenseError, ValueError):
    """A calibration payload failed structural validation on load."""

    category = "calibration"


class NumericInstability(DriveSenseError):
    """A filter produced or received a non-finite value.

    Raised internally by the conditioning stage and recovered there by
    re-seeding the channel; it never reaches callers of ``process``.
    """

    category = "conditioning"
