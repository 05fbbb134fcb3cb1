"""Remote API clients - Elasticsearch REST and AWS."""

from .aws import AWSClients, call_aws, error_code, error_message
from .elasticsearch import DEFAULT_URL, ElasticsearchClient

__all__ = [
    "AWSClients",
    "call_aws",
    "error_code",
    "error_message",
    "DEFAULT_URL",
    "ElasticsearchClient",
]
