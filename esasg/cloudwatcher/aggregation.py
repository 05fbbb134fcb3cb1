"""Aggregation of node stats into CloudWatch metric data.

The metric panel is a table of ``MetricSpec`` records. Each record names a
selector that maps a ``NodeStats`` to a number, or to ``None`` when the
node does not apply to that metric; such nodes contribute neither to the
count nor to the sum.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..data.models import NodeStats

Selector = Callable[[NodeStats], Optional[float]]

# Other pools report a max of zero on affected Elasticsearch versions.
KNOWN_HEAP_POOLS = ("old",)


class Kind(str, Enum):
    SUM = "sum"  # single value: sum of samples
    STATS = "stats"  # statistic set: count, min, max, sum
    UTILIZATION = "utilization"  # 100 * sum(numerator) / sum(denominator)


class Unit(str, Enum):
    COUNT = "Count"
    BYTES = "Bytes"
    PERCENT = "Percent"
    NONE = "None"


@dataclass(frozen=True)
class StatisticSet:
    sample_count: int
    minimum: float
    maximum: float
    sum: float


@dataclass
class MetricDatum:
    name: str
    unit: Unit
    dimensions: List[Tuple[str, str]] = field(default_factory=list)
    timestamp: Optional[datetime] = None
    value: Optional[float] = None
    stats: Optional[StatisticSet] = None

    def to_cloudwatch(self) -> Dict[str, Any]:
        """Render as a ``PutMetricData`` ``MetricData`` entry."""
        d: Dict[str, Any] = {
            "MetricName": self.name,
            "Dimensions": [{"Name": k, "Value": v} for k, v in self.dimensions],
            "Unit": self.unit.value,
            "StorageResolution": 1,
        }
        if self.timestamp is not None:
            d["Timestamp"] = self.timestamp
        if self.stats is not None:
            d["StatisticValues"] = {
                "SampleCount": float(self.stats.sample_count),
                "Sum": self.stats.sum,
                "Minimum": self.stats.minimum,
                "Maximum": self.stats.maximum,
            }
        else:
            d["Value"] = self.value
        return d


@dataclass(frozen=True)
class MetricSpec:
    name: str
    kind: Kind
    unit: Unit
    selector: Selector
    denominator: Optional[Selector] = None  # utilization only


# =============================================================================
# Aggregation kinds
# =============================================================================


def _values(selector: Selector, nodes: Iterable[NodeStats]) -> List[float]:
    return [v for v in (selector(n) for n in nodes) if v is not None]


def sum_data(selector: Selector, nodes: Sequence[NodeStats]) -> Optional[float]:
    values = _values(selector, nodes)
    if not values:
        return None
    return float(sum(values))


def stats_data(selector: Selector, nodes: Sequence[NodeStats]) -> Optional[StatisticSet]:
    values = _values(selector, nodes)
    if not values:
        return None
    return StatisticSet(
        sample_count=len(values),
        minimum=float(min(values)),
        maximum=float(max(values)),
        sum=float(sum(values)),
    )


def utilization_data(numerator: Selector, denominator: Selector, nodes: Sequence[NodeStats]) -> Optional[float]:
    num = den = 0.0
    for n in nodes:
        a, b = numerator(n), denominator(n)
        if a is None or b is None:
            continue
        num += a
        den += b
    if den == 0:
        return None
    return 100 * num / den


# =============================================================================
# Selectors
# =============================================================================


def _float(v: Optional[float]) -> Optional[float]:
    return None if v is None else float(v)


def node_count(n: NodeStats) -> Optional[float]:
    return 1.0


def vcpus(n: NodeStats) -> Optional[float]:
    return _float(n.vcpus)


def load_1m(n: NodeStats) -> Optional[float]:
    return _float(n.load_1m)


def load_5m(n: NodeStats) -> Optional[float]:
    return _float(n.load_5m)


def load_15m(n: NodeStats) -> Optional[float]:
    return _float(n.load_15m)


def excluded(n: NodeStats) -> Optional[float]:
    return 1.0 if n.excluded_from_allocation else 0.0


def heap_max(n: NodeStats) -> Optional[float]:
    return _float(n.heap.max_bytes)


def heap_used(n: NodeStats) -> Optional[float]:
    return _float(n.heap.used_bytes)


def fs_total(n: NodeStats) -> Optional[float]:
    if not n.has_role("data"):
        return None
    return _float(n.fs_total_bytes)


def fs_available(n: NodeStats) -> Optional[float]:
    if not n.has_role("data"):
        return None
    return _float(n.fs_available_bytes)


def fs_used(n: NodeStats) -> Optional[float]:
    total, available = fs_total(n), fs_available(n)
    if total is None or available is None:
        return None
    return total - available


def pool_max(pool: str, n: NodeStats) -> Optional[float]:
    stats = n.heap_pools.get(pool)
    return None if stats is None else _float(stats.max_bytes)


def pool_used(pool: str, n: NodeStats) -> Optional[float]:
    stats = n.heap_pools.get(pool)
    return None if stats is None else _float(stats.used_bytes)


BASE_METRICS: Tuple[MetricSpec, ...] = (
    MetricSpec("CountNodes", Kind.SUM, Unit.COUNT, node_count),
    MetricSpec("CountvCPU", Kind.SUM, Unit.COUNT, vcpus),
    MetricSpec("Load1m", Kind.STATS, Unit.COUNT, load_1m),
    MetricSpec("Load5m", Kind.STATS, Unit.COUNT, load_5m),
    MetricSpec("Load15m", Kind.STATS, Unit.COUNT, load_15m),
    MetricSpec("Load1mUtilization", Kind.UTILIZATION, Unit.NONE, load_1m, vcpus),
    MetricSpec("Load5mUtilization", Kind.UTILIZATION, Unit.NONE, load_5m, vcpus),
    MetricSpec("Load15mUtilization", Kind.UTILIZATION, Unit.NONE, load_15m, vcpus),
    MetricSpec("CountExcludedFromAllocation", Kind.SUM, Unit.COUNT, excluded),
    MetricSpec("JVMMaxBytes", Kind.STATS, Unit.BYTES, heap_max),
    MetricSpec("JVMUsedBytes", Kind.STATS, Unit.BYTES, heap_used),
    MetricSpec("JVMUtilization", Kind.UTILIZATION, Unit.PERCENT, heap_used, heap_max),
    MetricSpec("FSTotalBytes", Kind.STATS, Unit.BYTES, fs_total),
    MetricSpec("FSAvailableBytes", Kind.STATS, Unit.BYTES, fs_available),
    MetricSpec("FSUtilization", Kind.UTILIZATION, Unit.PERCENT, fs_used, fs_total),
)


def pool_metrics(pool: str) -> Tuple[MetricSpec, ...]:
    title = pool.title()
    max_ = functools.partial(pool_max, pool)
    used = functools.partial(pool_used, pool)
    return (
        MetricSpec(f"JVM{title}PoolMaxBytes", Kind.STATS, Unit.BYTES, max_),
        MetricSpec(f"JVM{title}PoolUsedBytes", Kind.STATS, Unit.BYTES, used),
        MetricSpec(f"JVM{title}PoolUtilization", Kind.UTILIZATION, Unit.PERCENT, used, max_),
    )


def metric_specs(nodes: Sequence[NodeStats], pools: Sequence[str] = KNOWN_HEAP_POOLS) -> List[MetricSpec]:
    """The full panel for ``nodes``: base metrics plus known pools any node reports."""
    specs = list(BASE_METRICS)
    reported = {p for n in nodes for p in n.heap_pools}
    for pool in pools:
        if pool in reported:
            specs.extend(pool_metrics(pool))
    return specs


def aggregate(
    nodes: Sequence[NodeStats],
    dimensions: Sequence[Tuple[str, str]],
    timestamp: Optional[datetime] = None,
    pools: Sequence[str] = KNOWN_HEAP_POOLS,
) -> List[MetricDatum]:
    """Aggregate ``nodes`` into metric data points.

    Metrics with no applicable samples, or utilizations with a zero
    denominator, are omitted.
    """
    if not nodes:
        return []
    timestamp = timestamp or datetime.now(timezone.utc)
    data: List[MetricDatum] = []
    for spec in metric_specs(nodes, pools):
        datum = MetricDatum(name=spec.name, unit=spec.unit, dimensions=list(dimensions), timestamp=timestamp)
        if spec.kind is Kind.SUM:
            datum.value = sum_data(spec.selector, nodes)
            if datum.value is None:
                continue
        elif spec.kind is Kind.STATS:
            datum.stats = stats_data(spec.selector, nodes)
            if datum.stats is None:
                continue
        else:
            datum.value = utilization_data(spec.selector, spec.denominator, nodes)
            if datum.value is None:
                continue
        data.append(datum)
    return data
