# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.RegistryHarvest.registry",
#   "purpose": "Harvester registry keyed by registry source id.",
#   "sections": [
#     {
#       "id": "register-harvester",
#       "name": "register_harvester",
#       "anchor": "function-register-harvester",
#       "kind": "function"
#     },
#     {
#       "id": "get-registry",
#       "name": "get_registry",
#       "anchor": "function-get-registry",
#       "kind": "function"
#     },
#     {
#       "id": "get-harvester-class",
#       "name": "get_harvester_class",
#       "anchor": "function-get-harvester-class",
#       "kind": "function"
#     },
#     {
#       "id": "build-harvester",
#       "name": "build_harvester",
#       "anchor": "function-build-harvester",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Harvester Registry

Provides harvester registration and instantiation:
- @register_harvester(name) decorator for harvester registration
- Settings-driven harvester instantiation through ``from_settings``
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type

import httpx

from ..settings import AgentsToKGSettings
from ..storage.base import RelationalStore

_LOGGER = logging.getLogger(__name__)

__all__ = ["register_harvester", "get_registry", "get_harvester_class", "build_harvester"]


_REGISTRY: Dict[str, Type[Any]] = {}


def register_harvester(name: str):
    """Decorator to register a harvester class under a registry source id."""

    def deco(cls: Type[Any]) -> Type[Any]:
        if name in _REGISTRY:
            _LOGGER.warning(f"Overriding already-registered harvester: {name}")
        _REGISTRY[name] = cls
        cls.registry_name = name  # type: ignore[attr-defined]
        _LOGGER.debug(f"Registered harvester: {name} → {cls.__name__}")
        return cls

    return deco


def get_registry() -> Dict[str, Type[Any]]:
    """Get the harvester registry (copy)."""
    return dict(_REGISTRY)


def get_harvester_class(name: str) -> Type[Any]:
    """Lookup harvester class by name."""
    registry = get_registry()
    if name not in registry:
        available = sorted(registry.keys())
        raise ValueError(f"Unknown registry: {name!r}. Available: {available}")
    return registry[name]


def build_harvester(
    name: str,
    settings: AgentsToKGSettings,
    store: RelationalStore,
    *,
    client: Optional[httpx.Client] = None,
    **overrides: Any,
):
    """Instantiate the harvester registered under ``name``."""
    harvester_cls = get_harvester_class(name)
    return harvester_cls.from_settings(settings, store, client=client, **overrides)
