"""Throttler - suspends auto scaling while the cluster is unstable."""

from .app import Throttler, ThrottlerApp
from .enabler import AutoScalingGroupEnabler
from .state import ECSServiceStateGetter, ElasticsearchStateGetter

__all__ = [
    "Throttler",
    "ThrottlerApp",
    "AutoScalingGroupEnabler",
    "ECSServiceStateGetter",
    "ElasticsearchStateGetter",
]
