"""Registry harvesters with checkpointed, resumable pagination.

Importing this package registers the built-in harvesters (``agentverse``,
``hol``, ``nanda``).

Example:
    >>> from AgentsToKG.RegistryHarvest import harvest
    >>> result = harvest("hol", settings, store, page_size=50, max_pages=2)
    >>> result.processed
"""

from __future__ import annotations

from typing import Optional, Sequence

import httpx

from . import agentverse, hol, nanda  # noqa: F401  (registration side effects)
from .base import Harvester, HarvestResult, Page
from .fields import FieldSpec, extract_fields
from .registry import build_harvester, get_harvester_class, get_registry, register_harvester

__all__ = [
    "Harvester",
    "HarvestResult",
    "Page",
    "FieldSpec",
    "extract_fields",
    "build_harvester",
    "get_harvester_class",
    "get_registry",
    "register_harvester",
    "harvest",
]


def harvest(
    registry_source_id: str,
    settings,
    store,
    *,
    page_size: Optional[int] = None,
    max_pages: Optional[int] = None,
    resume: bool = True,
    reset: bool = False,
    streams: Optional[Sequence[str]] = None,
    client: Optional[httpx.Client] = None,
) -> HarvestResult:
    """Harvest ``registry_source_id`` into ``store``.

    Args:
        registry_source_id: Registered harvester name.
        settings: Resolved :class:`AgentsToKGSettings`.
        store: Target relational store.
        page_size: Items per page.
        max_pages: Page cap per stream.
        resume: Continue from stored checkpoints.
        reset: Reset checkpoints to page 1 first.
        streams: Sub-collections to walk (HOL sub-registries).
        client: Optional HTTP client override.

    Returns:
        HarvestResult: Counters; ``processed`` is the number of upserted records.
    """
    harvester = build_harvester(registry_source_id, settings, store, client=client)
    return harvester.harvest(
        page_size=page_size,
        max_pages=max_pages,
        resume=resume,
        reset=reset,
        streams=streams,
    )
