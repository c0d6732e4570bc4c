"""Agentverse marketplace harvester (``GET /v1/agents``, bearer JWT required)."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from ..errors import ConfigurationError
from .base import Harvester, Page
from .fields import (
    FieldSpec,
    as_endpoint,
    as_epoch_seconds,
    as_float,
    as_int,
    as_json_list,
    first_present,
)
from .registry import register_harvester

__all__ = ["AgentverseHarvester", "AGENTVERSE_FIELDS"]

AGENTVERSE_FIELDS = (
    FieldSpec(
        "external_agent_id",
        ("address", "agent_address", "id", "agentId", "agent_id", "profile.address", "profile.alias"),
    ),
    FieldSpec("name", ("name", "display_name", "profile.display_name", "profile.name")),
    FieldSpec("description", ("description", "bio", "profile.bio", "profile.description")),
    FieldSpec("image", ("image", "avatar", "avatar_url", "profile.avatar")),
    FieldSpec("rating", ("rating", "metadata.rating"), as_float),
    FieldSpec("total_interactions", ("total_interactions", "totalInteractions", "interactions"), as_int),
    FieldSpec("primary_endpoint", ("endpoint", "url", "endpoints"), as_endpoint),
    FieldSpec("protocols_json", ("protocols", "protocol"), as_json_list),
    FieldSpec("tags_json", ("tags", "profile.tags"), as_json_list),
    FieldSpec(
        "created_at_time",
        ("created_at", "createdAt", "createdAtTime", "profile.created_at", "profile.createdAt"),
        as_epoch_seconds,
    ),
    FieldSpec(
        "updated_at_time",
        ("updated_at", "updatedAt", "updatedAtTime", "profile.updated_at", "profile.updatedAt"),
        as_epoch_seconds,
    ),
)


@register_harvester("agentverse")
class AgentverseHarvester(Harvester):
    """Harvest agent listings from the Agentverse marketplace."""

    checkpoint_key = "agentverseImportCursor"
    field_specs = AGENTVERSE_FIELDS

    def __init__(self, store, *, base_url: str = "https://agentverse.ai", jwt: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(store, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.jwt = (jwt or "").strip() or None

    @classmethod
    def from_settings(cls, settings, store, *, client=None, **overrides) -> "AgentverseHarvester":
        section = settings.registries.agentverse
        return cls(
            store,
            base_url=section.base_url,
            jwt=section.jwt,
            **cls.base_kwargs(settings, client=client, **overrides),
        )

    def validate_configuration(self) -> None:
        if not self.jwt:
            raise ConfigurationError("Missing AGENTVERSE_JWT. Agentverse /v1/agents requires authentication.")

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.jwt}"} if self.jwt else {}

    def fetch_page(self, stream: Optional[str], page: int, page_size: int) -> Page:
        payload = self.get_json(f"{self.base_url}/v1/agents", {"page": page, "limit": page_size})
        if isinstance(payload, list):
            items = payload
        else:
            items = first_present(payload, ("results", "data", "items", "agents")) or []
        if not isinstance(items, list):
            raise ValueError("Agentverse response has no agent list")
        return Page(items=items)

    def finalize_fields(self, fields: Dict[str, Any], item: Mapping[str, Any], stream: Optional[str]) -> Dict[str, Any]:
        fields.setdefault("name", fields.get("external_agent_id"))
        fields.setdefault("owner", "agentverse")
        return fields
