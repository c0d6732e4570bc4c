"""Publishing compiled Turtle into a GraphDB repository."""

from .graphdb import GraphStoreClient, describe_failure
from .publisher import (
    PublishResult,
    publish_context,
    publish_file,
    publish_single_entity,
    recount_sparql,
)

__all__ = [
    "GraphStoreClient",
    "describe_failure",
    "PublishResult",
    "publish_context",
    "publish_file",
    "publish_single_entity",
    "recount_sparql",
]
