"""Snapshot retention: decide which snapshots to keep and which to delete.

Snapshots are sorted into buckets of growing width anchored at the newest
snapshot. Every hourly bucket keeps all of its snapshots; wider buckets
keep only their oldest, and the newest bucket also keeps its newest.
Anything older than the last bucket falls into a catch-all and is deleted.

Two passes smooth the result:

* Redistribution moves snapshots that sit within a quarter of the
  narrowest width of a bucket boundary into the neighbouring bucket, so
  jitter in snapshot timing does not leave a bucket empty.
* Midpoint rescue looks at each pair of adjacent kept snapshots in
  different buckets. When the gap between them is wide relative to their
  bucket widths, the snapshot closest to the middle of the gap is kept
  as well.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Iterable, List

from ..errors import ValidationError
from .buckets import Buckets
from .config import HOUR, RetentionConfig
from .timeseries import Timeseries

logger = logging.getLogger(__name__)


def keep(config: RetentionConfig, snapshots: Iterable[datetime]) -> List[datetime]:
    """Return the snapshots to keep, oldest first.

    Raises:
        ValidationError: If the config defines no buckets.
    """
    if len(config) == 0:
        raise ValidationError("retention config defines no buckets")

    shots = Timeseries(snapshots)
    newest = shots.peek_newest()
    if newest is None:
        return []

    buckets = Buckets.build(config, newest)
    buckets.assign(shots)
    _redistribute(buckets)

    kept = Timeseries()
    last = len(buckets) - 1
    for i, bucket in enumerate(buckets):
        if bucket.is_catchall or not bucket.snapshots:
            continue
        if bucket.width == HOUR:
            kept.push(*bucket.snapshots)
            continue
        kept.push(bucket.snapshots.peek_oldest())
        if i == last:
            kept.push(bucket.snapshots.peek_newest())

    rescued = _midpoints(buckets, shots, kept)
    if rescued:
        logger.debug(f"[retention] midpoint rescue kept {len(rescued)} extra snapshots")
    kept.push(*rescued)
    return list(kept)


def delete(config: RetentionConfig, snapshots: Iterable[datetime]) -> List[datetime]:
    """Return the snapshots to delete, oldest first: the complement of ``keep``."""
    shots = Timeseries(snapshots)
    kept = set(keep(config, shots))
    return [t for t in shots if t not in kept]


def _redistribute(buckets: Buckets) -> None:
    # The newest bucket is always the narrowest.
    close = buckets[len(buckets) - 1].width / 4
    for i in range(len(buckets) - 1):
        b, nb = buckets[i], buckets[i + 1]
        if not b.snapshots and nb.snapshots:
            if nb.snapshots.peek_oldest() - b.end <= close:
                b.snapshots.push(nb.snapshots.pop_oldest())
        elif len(b.snapshots) > 1:
            if b.end - b.snapshots.peek_newest() <= close:
                nb.snapshots.push(b.snapshots.pop_newest())


def _midpoints(buckets: Buckets, shots: Timeseries, kept: Timeseries) -> List[datetime]:
    owners = buckets.owners()
    rescued: List[datetime] = []
    for left, right in zip(kept, list(kept)[1:]):
        li, ri = owners[left], owners[right]
        if li == ri:
            continue
        width = math.sqrt(buckets[li].width.total_seconds() * buckets[ri].width.total_seconds())
        distance = (right - left).total_seconds()
        if distance < 1.5 * width:
            continue

        center = distance / 2
        best = None
        best_distance = distance
        for t in shots:
            if t <= left:
                continue
            if t >= right:
                break
            from_left = (t - left).total_seconds()
            from_right = (right - t).total_seconds()
            if from_left < 0.5 * width or from_right < 0.5 * width:
                continue
            d = abs(center - from_left)
            if d < best_distance:
                best, best_distance = t, d
        if best is not None:
            rescued.append(best)
    return rescued
