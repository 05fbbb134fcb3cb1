"""Drainer - moves shards off nodes before their instances go away."""

from .app import DrainerApp
from .coordinator import DrainCoordinator, DrainOutcome, DrainState
from .facade import ElasticsearchFacade
from .lifecycle import LifecycleActionPostponer
from .queue import QueueMessage, SQSQueue

__all__ = [
    "DrainerApp",
    "DrainCoordinator",
    "DrainOutcome",
    "DrainState",
    "ElasticsearchFacade",
    "LifecycleActionPostponer",
    "QueueMessage",
    "SQSQueue",
]
