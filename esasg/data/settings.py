"""Shard allocation exclusion settings.

Elasticsearch returns cluster settings either nested
(``{"cluster": {"routing": ...}}``) or flattened
(``{"cluster.routing.allocation.exclude._name": "..."}``); both forms are
accepted here. Each list is kept sorted so membership checks can bisect and
the serialized form is stable.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

SHARD_ALLOC_EXCLUDE_SETTING = "cluster.routing.allocation.exclude"


def _split(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        items = str(value).split(",")
    return sorted(item.strip() for item in items if item.strip())


def _in_sorted(values: Optional[List[str]], x: str) -> bool:
    if not values:
        return False
    i = bisect.bisect_left(values, x)
    return i < len(values) and values[i] == x


def _exclude_block(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Collect the ``cluster.routing.allocation.exclude`` keys of one settings tier."""
    block: Dict[str, Any] = {}

    node: Any = settings
    for part in SHARD_ALLOC_EXCLUDE_SETTING.split("."):
        if not isinstance(node, dict):
            node = None
            break
        node = node.get(part)
    if isinstance(node, dict):
        block.update(node)

    prefix = SHARD_ALLOC_EXCLUDE_SETTING + "."
    for key, value in settings.items():
        if key.startswith(prefix):
            block[key[len(prefix):]] = value
    return block


@dataclass
class ShardAllocationExcludeSettings:
    """Shard allocation exclusions of one settings tier.

    A list set to ``None`` is left out of the serialized form entirely; an
    empty list serializes to ``null``, which removes the setting.
    """

    name: Optional[List[str]] = None
    ip: Optional[List[str]] = None
    host: Optional[List[str]] = None
    attr: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Optional[Dict[str, Any]]) -> "ShardAllocationExcludeSettings":
        """Parse the exclusions from a ``transient`` or ``persistent`` settings object."""
        s = cls()
        for key, value in _exclude_block(settings or {}).items():
            values = _split(value)
            if key == "_name":
                s.name = values
            elif key == "_ip":
                s.ip = values
            elif key == "_host":
                s.host = values
            else:
                s.attr[key] = values
        return s

    def to_map(self) -> Dict[str, Optional[str]]:
        """Flattened settings map suitable for a ``PUT /_cluster/settings`` body."""
        m: Dict[str, Optional[str]] = {}
        for key, values in (("_name", self.name), ("_host", self.host), ("_ip", self.ip)):
            if values is not None:
                m[f"{SHARD_ALLOC_EXCLUDE_SETTING}.{key}"] = ",".join(values) if values else None
        for key, values in self.attr.items():
            m[f"{SHARD_ALLOC_EXCLUDE_SETTING}.{key}"] = ",".join(values) if values else None
        return m

    def has_name(self, name: str) -> bool:
        return _in_sorted(self.name, name)

    def has_ip(self, ip: str) -> bool:
        return _in_sorted(self.ip, ip)

    def has_host(self, host: str) -> bool:
        return _in_sorted(self.host, host)

    def has_attr(self, attr: str, value: str) -> bool:
        return _in_sorted(self.attr.get(attr), value)
