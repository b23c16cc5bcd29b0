"""Durable storage helpers living outside the processing core."""

from .calibration_store import CalibrationStore

__all__ = ["CalibrationStore"]
