"""Entity resolution: within-registry dedup and cross-registry linking.

Exports are resolved lazily because :mod:`AgentsToKG.storage.records` imports
:mod:`.names` while this package's resolvers import the storage layer.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "normalize_name_key": ".names",
    "canonical_sort_key": ".names",
    "pick_canonical": ".names",
    "DedupResult": ".dedup",
    "deduplicate_within_registry": ".dedup",
    "CrossrefResult": ".crossref",
    "cross_reference": ".crossref",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import resolver exports."""

    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    value = getattr(import_module(module_name, __name__), name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
