"""Stage glue used by the CLI: compile-then-publish and single-agent sync."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ConfigurationError
from .GraphCompile import ChildRecords, Taxonomy, compile_agent, compile_all
from .GraphCompile.agents import agent_context
from .GraphPublish import GraphStoreClient, PublishResult, publish_file, publish_single_entity
from .settings import AgentsToKGSettings
from .storage.base import RelationalStore
from .storage.records import get_agent
from .storage.schema import ensure_schema

logger = logging.getLogger(__name__)

__all__ = ["RegistryPublishResult", "publish_registry", "sync_single_agent"]


@dataclass(frozen=True)
class RegistryPublishResult:
    """Outcome of :func:`publish_registry`."""

    path: Path
    agent_count: int
    publish: PublishResult


def publish_registry(
    settings: AgentsToKGSettings,
    store: RelationalStore,
    registry_source_id: str,
    graph_client: GraphStoreClient,
    *,
    context: Optional[str] = None,
    reset_context: bool = False,
    out_path: Optional[Path] = None,
) -> RegistryPublishResult:
    """Compile ``registry_source_id`` to Turtle and upload it in bulk.

    Args:
        settings: Resolved settings (supplies the default context).
        store: Source store.
        registry_source_id: Registry to compile.
        graph_client: Repository client.
        context: Named graph; defaults to ``settings.graph.context``.
        reset_context: Clear the named graph before uploading.
        out_path: Where to write the intermediate Turtle file.
    """

    ensure_schema(store)
    compiled = compile_all(store, registry_source_id, out_path=out_path)
    target_context = context or settings.graph.context
    result = publish_file(graph_client, target_context, compiled.outputs[0], reset_context=reset_context)
    return RegistryPublishResult(path=compiled.outputs[0], agent_count=compiled.agent_count, publish=result)


def sync_single_agent(
    settings: AgentsToKGSettings,
    store: RelationalStore,
    registry_source_id: str,
    external_agent_id: str,
    graph_client: GraphStoreClient,
    *,
    context: Optional[str] = None,
) -> PublishResult:
    """Recompile one agent and publish it incrementally.

    The agent's statements are uploaded without clearing the context, then its
    cached assertion counts are recomputed inside the store.

    Raises:
        ConfigurationError: When the agent is not in ``store``.
    """

    record = get_agent(store, registry_source_id, external_agent_id)
    if record is None:
        raise ConfigurationError(f"No agent {registry_source_id}/{external_agent_id} in the store")
    triples = compile_agent(record, ChildRecords.load(store, record), Taxonomy.load(store))
    agent = agent_context(record).agent
    logger.info(
        "syncing agent %s",
        agent,
        extra={"registry": registry_source_id, "stage": "publish", "record_key": external_agent_id},
    )
    return publish_single_entity(
        graph_client,
        context or settings.graph.context,
        triples,
        entity_iri=agent.strip("<>"),
    )
