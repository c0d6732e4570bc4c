"""Public API for the AgentsToKG registry harvesting and graph publishing pipeline.

The facade resolves its exports lazily so importing the package does not pull
in rdflib, typer, or the registry harvesters until they are used.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

_EXPORTS = {
    "AgentsToKGSettings": ".settings",
    "load_config": ".settings",
    "get_settings": ".settings",
    "open_store": ".storage",
    "AgentRecord": ".storage",
    "harvest": ".RegistryHarvest",
    "deduplicate_within_registry": ".EntityResolution",
    "cross_reference": ".EntityResolution",
    "compile_agent": ".GraphCompile",
    "compile_all": ".GraphCompile",
    "GraphStoreClient": ".GraphPublish",
    "publish_context": ".GraphPublish",
    "publish_single_entity": ".GraphPublish",
    "sync_single_agent": ".pipeline",
    "AgentsToKGError": ".errors",
}

__all__ = ["__version__", *sorted(_EXPORTS)]


def __getattr__(name: str) -> Any:
    """Lazily import public exports."""

    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    value = getattr(import_module(module_name, __name__), name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    """Expose lazily-populated attributes in ``dir()`` results."""

    return sorted(set(globals()) | set(__all__))
