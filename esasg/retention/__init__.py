"""Bucketed snapshot retention."""

from .config import RetentionConfig
from .engine import delete, keep
from .timeseries import Timeseries

__all__ = ["RetentionConfig", "Timeseries", "keep", "delete"]
