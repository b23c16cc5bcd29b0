"""Convenience re-exports for test helpers."""

from __future__ import annotations

from .samples import (
    build_conditioned,
    build_sample,
    logged_events,
    perspective_views,
    sample_series,
    stationary_samples,
)

__all__ = [
    "build_conditioned",
    "build_sample",
    "logged_events",
    "perspective_views",
    "sample_series",
    "stationary_samples",
]
