# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.RegistryHarvest.nanda",
#   "purpose": "NANDA registry harvester",
#   "sections": [
#     {
#       "id": "normalize-nanda-page",
#       "name": "normalize_nanda_page",
#       "anchor": "function-normalize-nanda-page",
#       "kind": "function"
#     },
#     {
#       "id": "nanda-harvester",
#       "name": "NandaHarvester",
#       "anchor": "class-nanda-harvester",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""NANDA registry harvester.

Two list endpoints are supported:

* ``servers`` (default): ``GET /api/v1/servers/`` which answers either
  ``{count, next, previous, results}`` or
  ``{data, pagination: {current_page, last_page, next_page_url}}``.
* ``discovery``: ``GET /api/v1/discovery/search/`` with a required query.

Both shapes are normalised to :class:`Page` with an explicit ``has_next``.
Tags and capability names are written to ``agent_skills``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from ..errors import AuthorizationError, ConfigurationError, HarvestError, RegistryHTTPError
from ..storage.records import AgentRecord, replace_agent_skills
from .base import Harvester, Page
from .fields import (
    FieldSpec,
    as_bool,
    as_epoch_seconds,
    as_float,
    as_int,
    as_json_list,
    as_text,
    first_present,
    string_list,
)
from .registry import register_harvester

logger = logging.getLogger(__name__)

__all__ = ["NandaHarvester", "NANDA_FIELDS", "normalize_nanda_page"]

NANDA_FIELDS = (
    FieldSpec("external_agent_id", ("id", "slug")),
    FieldSpec("name", ("name", "slug")),
    FieldSpec("description", ("description",)),
    FieldSpec("owner", ("provider",)),
    FieldSpec("image", ("logo_url", "logoUrl")),
    FieldSpec("mcp_endpoint", ("url",)),
    FieldSpec("primary_endpoint", ("url", "documentation_url")),
    FieldSpec("rating", ("rating",), as_float),
    FieldSpec("availability_score", ("uptime",), as_float),
    FieldSpec("total_interactions", ("usage_count",), as_int),
    FieldSpec("version", ("version",)),
    FieldSpec("verified", ("verified",), as_bool),
    FieldSpec("availability_status", ("status",)),
    FieldSpec("availability_checked_at", ("last_checked",), as_epoch_seconds),
    FieldSpec("protocols_json", ("protocols",), as_json_list),
    FieldSpec("capabilities_json", ("capabilities",), as_json_list),
    FieldSpec("tags_json", ("tags", "types"), as_json_list),
    FieldSpec("created_at_time", ("created_at",), as_epoch_seconds),
    FieldSpec("updated_at_time", ("updated_at",), as_epoch_seconds),
)


def normalize_nanda_page(payload: Any) -> Page:
    """Normalise either NANDA list shape into a :class:`Page`."""
    if not isinstance(payload, Mapping):
        raise ValueError("NANDA response is not an object")
    if isinstance(payload.get("results"), list):
        next_ref = payload.get("next") or payload.get("nextPage")
        return Page(
            items=payload["results"],
            total=as_int(payload.get("count")),
            has_next=bool(next_ref),
        )
    data = payload.get("data")
    if not isinstance(data, list):
        raise ValueError("NANDA response has neither 'results' nor 'data'")
    pagination = payload.get("pagination") or {}
    if pagination.get("next_page_url"):
        has_next = True
    else:
        current = as_int(pagination.get("current_page"))
        last = as_int(pagination.get("last_page"))
        has_next = current is not None and last is not None and current < last
    return Page(items=data, total=as_int(pagination.get("total")), has_next=has_next)


@register_harvester("nanda")
class NandaHarvester(Harvester):
    """Harvest NANDA servers (or discovery search hits)."""

    checkpoint_key = "nandaImportCursor"
    field_specs = NANDA_FIELDS

    def __init__(
        self,
        store,
        *,
        base_url: str = "https://nanda-registry.com",
        jwt: Optional[str] = None,
        mode: str = "servers",
        search: Optional[str] = None,
        types: Optional[str] = None,
        tags: Optional[str] = None,
        verified: Optional[bool] = None,
        fetch_details: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(store, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.jwt = (jwt or "").strip() or None
        self.mode = mode
        self.search = search
        self.types = types
        self.tags = tags
        self.verified = verified
        self.fetch_details = fetch_details

    @classmethod
    def from_settings(cls, settings, store, *, client=None, **overrides) -> "NandaHarvester":
        section = settings.registries.nanda
        return cls(
            store,
            base_url=section.base_url,
            jwt=section.jwt,
            mode=section.mode,
            search=section.search,
            types=section.types,
            tags=section.tags,
            verified=section.verified,
            fetch_details=section.fetch_details,
            **cls.base_kwargs(settings, client=client, **overrides),
        )

    def validate_configuration(self) -> None:
        if self.mode == "discovery" and not (self.search or "").strip():
            raise ConfigurationError("NANDA discovery mode requires a search query")

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.jwt}"} if self.jwt else {}

    def fetch_page(self, stream: Optional[str], page: int, page_size: int) -> Page:
        if self.mode == "discovery":
            payload = self.get_json(
                f"{self.base_url}/api/v1/discovery/search/",
                {"q": self.search, "page": page, "limit": page_size, "type": self.types, "tags": self.tags},
            )
        else:
            verified = None if self.verified is None else ("true" if self.verified else "false")
            payload = self.get_json(
                f"{self.base_url}/api/v1/servers/",
                {
                    "page": page,
                    "limit": page_size,
                    "search": self.search,
                    "types": self.types,
                    "tags": self.tags,
                    "verified": verified,
                },
            )
        return normalize_nanda_page(payload)

    def select_items(self, page: Page, stream: Optional[str]) -> Sequence[Mapping[str, Any]]:
        if not self.fetch_details:
            return page.items
        merged: List[Mapping[str, Any]] = []
        for summary in page.items:
            detail = self._fetch_detail(summary)
            merged.append({**summary, **detail} if detail else summary)
        return merged

    def _fetch_detail(self, summary: Any) -> Optional[Mapping[str, Any]]:
        server_id = as_text(summary.get("id")) if isinstance(summary, Mapping) else None
        if not server_id:
            return None
        try:
            detail = self.get_json(f"{self.base_url}/api/v1/servers/{server_id}/")
        except AuthorizationError:
            raise
        except (RegistryHTTPError, httpx.HTTPError, ValueError) as exc:
            logger.debug(
                "detail fetch failed: %s",
                exc,
                extra={"registry": self.registry_name, "record_key": server_id, "stage": "harvest"},
            )
            return None
        return detail if isinstance(detail, Mapping) else None

    def finalize_fields(self, fields: Dict[str, Any], item: Mapping[str, Any], stream: Optional[str]) -> Dict[str, Any]:
        external_id = fields.get("external_agent_id")
        fields.setdefault("name", f"nanda:{external_id}")
        fields.setdefault("owner", "nanda")
        return fields

    def after_upsert(self, record: AgentRecord, item: Mapping[str, Any], internal_id: int) -> None:
        capabilities = item.get("capabilities")
        if capabilities is None:
            entries: Sequence[Any] = []
        elif isinstance(capabilities, str):
            entries = string_list(capabilities)
        elif isinstance(capabilities, (list, tuple)):
            entries = capabilities
        else:
            raise HarvestError(f"capabilities must be a list, got {type(capabilities).__name__}")
        skills = [f"tag:{tag}" for tag in string_list(item.get("tags"))]
        for capability in entries:
            name = first_present(capability, ("name", "type")) if isinstance(capability, Mapping) else capability
            text = as_text(name)
            if text:
                skills.append(text)
        if skills:
            replace_agent_skills(self.store, record.registry_source_id, record.external_agent_id, skills)
