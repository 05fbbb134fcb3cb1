"""Sorted, de-duplicated sequence of instants."""

from __future__ import annotations

import bisect
from datetime import datetime
from typing import Iterable, Iterator, List, Optional


class Timeseries:
    def __init__(self, times: Iterable[datetime] = ()):
        self._times: List[datetime] = []
        self.push(*times)

    def push(self, *times: datetime) -> None:
        if not times:
            return
        self._times = sorted(set(self._times).union(times))

    def pop(self, idx: int) -> datetime:
        return self._times.pop(idx)

    def pop_oldest(self) -> Optional[datetime]:
        return self._times.pop(0) if self._times else None

    def pop_newest(self) -> Optional[datetime]:
        return self._times.pop() if self._times else None

    def peek_oldest(self) -> Optional[datetime]:
        return self._times[0] if self._times else None

    def peek_newest(self) -> Optional[datetime]:
        return self._times[-1] if self._times else None

    def find(self, t: datetime) -> int:
        """Index of ``t``, or -1 if absent."""
        i = bisect.bisect_left(self._times, t)
        if i < len(self._times) and self._times[i] == t:
            return i
        return -1

    def discard(self, *times: datetime) -> None:
        for t in times:
            i = self.find(t)
            if i != -1:
                del self._times[i]

    def __contains__(self, t: object) -> bool:
        return isinstance(t, datetime) and self.find(t) != -1

    def __len__(self) -> int:
        return len(self._times)

    def __iter__(self) -> Iterator[datetime]:
        return iter(self._times)

    def __getitem__(self, idx: int) -> datetime:
        return self._times[idx]

    def __repr__(self) -> str:
        return f"Timeseries({self._times!r})"
