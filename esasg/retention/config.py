"""Retention policy: how many buckets of each granularity to keep."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Tuple

from ..errors import ValidationError

HOUR = timedelta(hours=1)
DAY = timedelta(days=1)
WEEK = timedelta(weeks=1)
MONTH = timedelta(days=30)
YEAR = timedelta(days=365)


@dataclass(frozen=True)
class RetentionConfig:
    hourly: int = 0
    daily: int = 0
    weekly: int = 0
    monthly: int = 0
    yearly: int = 0

    def __post_init__(self):
        for name, count in self._counts():
            if count < 0:
                raise ValidationError(f"retention count {name} must not be negative, got {count}")

    def _counts(self) -> List[Tuple[str, int]]:
        return [
            ("hourly", self.hourly),
            ("daily", self.daily),
            ("weekly", self.weekly),
            ("monthly", self.monthly),
            ("yearly", self.yearly),
        ]

    def widths(self) -> List[Tuple[timedelta, int]]:
        """(width, count) pairs ordered from the widest (oldest) to the narrowest."""
        return [
            (YEAR, self.yearly),
            (MONTH, self.monthly),
            (WEEK, self.weekly),
            (DAY, self.daily),
            (HOUR, self.hourly),
        ]

    def min_interval(self) -> Optional[timedelta]:
        """The narrowest granularity with a non-zero count, or None if there is none.

        Snapshots need not be taken more often than this.
        """
        for width, count in reversed(self.widths()):
            if count:
                return width
        return None

    def __len__(self) -> int:
        return self.hourly + self.daily + self.weekly + self.monthly + self.yearly
