"""Time buckets anchored at the newest snapshot."""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional

from .config import RetentionConfig
from .timeseries import Timeseries

# Buckets are half-open; shifting the anchor puts the newest snapshot inside.
ANCHOR_OFFSET = timedelta(microseconds=1)


@dataclass
class Bucket:
    """Half-open interval ``[start, end)``. A None start marks the catch-all."""

    start: Optional[datetime]
    end: datetime
    width: Optional[timedelta]
    snapshots: Timeseries = field(default_factory=Timeseries)

    @property
    def is_catchall(self) -> bool:
        return self.start is None

    def contains(self, t: datetime) -> bool:
        return (self.start is None or self.start <= t) and t < self.end


class Buckets:
    """Contiguous buckets ordered oldest first, catch-all at index 0."""

    def __init__(self, buckets: List[Bucket]):
        self._buckets = buckets
        self._ends = [b.end for b in buckets]

    @classmethod
    def build(cls, config: RetentionConfig, newest: datetime) -> "Buckets":
        end = newest + ANCHOR_OFFSET
        newest_first: List[Bucket] = []
        for width, count in reversed(config.widths()):
            for _ in range(count):
                newest_first.append(Bucket(start=end - width, end=end, width=width))
                end -= width
        newest_first.append(Bucket(start=None, end=end, width=None))
        return cls(list(reversed(newest_first)))

    def assign(self, snapshots: Timeseries) -> None:
        for t in snapshots:
            i = bisect.bisect_right(self._ends, t)
            self._buckets[i].snapshots.push(t)

    def owners(self) -> Dict[datetime, int]:
        """Map each snapshot to the index of the bucket currently holding it."""
        return {t: i for i, b in enumerate(self._buckets) for t in b.snapshots}

    def __len__(self) -> int:
        return len(self._buckets)

    def __iter__(self) -> Iterator[Bucket]:
        return iter(self._buckets)

    def __getitem__(self, idx: int) -> Bucket:
        return self._buckets[idx]
