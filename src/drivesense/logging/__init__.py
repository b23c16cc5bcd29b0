"""Logging utilities for drivesense."""

from drivesense.logging.config import JsonFormatter, setup_logging

__all__ = ["JsonFormatter", "setup_logging"]
