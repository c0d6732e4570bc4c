"""HOL universal-search harvester.

HOL federates several sub-registries behind one search API. Each
sub-registry is harvested as its own stream with checkpoint key
``holImportCursor:<registry>``, so an interrupted run resumes every
sub-registry where it stopped.

Rating precedence: ``metadata.rating`` before ``metadataFacet.rating[0]``.
Metadata keys are tried camelCase first, then snake_case.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from .base import Harvester, Page
from .fields import (
    FieldSpec,
    as_bool,
    as_endpoint,
    as_epoch_seconds,
    as_float,
    as_int,
    as_json_list,
    as_text,
)
from .registry import register_harvester

__all__ = ["HolHarvester", "HOL_FIELDS", "hol_rating"]

_RATING = FieldSpec("rating", ("metadata.rating", "metadataFacet.rating.0"), as_float)

HOL_FIELDS = (
    FieldSpec("external_agent_id", ("id",)),
    FieldSpec("uaid", ("uaid",)),
    FieldSpec("owner", ("registry",)),
    FieldSpec("name", ("name", "profile.displayName", "profile.display_name")),
    FieldSpec("description", ("description", "profile.bio", "metadata.bio")),
    FieldSpec("image", ("image", "profile.image", "profile.avatar")),
    FieldSpec("primary_endpoint", ("endpoints", "metadata.customEndpoint"), as_endpoint),
    _RATING,
    FieldSpec("trust_score", ("trustScore",), as_float),
    FieldSpec("available", ("available",), as_bool),
    FieldSpec(
        "total_interactions",
        ("metadata.totalInteractions", "metadata.total_interactions"),
        as_int,
    ),
    FieldSpec(
        "availability_score",
        ("metadata.availabilityScore", "metadata.availability_score"),
        as_float,
    ),
    FieldSpec(
        "availability_latency_ms",
        ("metadata.availabilityLatencyMs", "metadata.availability_latency_ms"),
        as_int,
    ),
    FieldSpec("availability_status", ("metadata.availabilityStatus", "metadata.availability_status")),
    FieldSpec(
        "availability_checked_at",
        ("metadata.availabilityCheckedAt", "metadata.availability_checked_at"),
        as_epoch_seconds,
    ),
    FieldSpec("availability_reason", ("metadata.availabilityReason", "metadata.availability_reason")),
    FieldSpec("availability_source", ("metadata.availabilitySource", "metadata.availability_source")),
    FieldSpec("language", ("metadata.language", "profile.language")),
    FieldSpec("version", ("metadata.version",)),
    FieldSpec("skills_json", ("metadata.oasfSkills", "metadata.oasf_skills"), as_json_list),
    FieldSpec("capabilities_json", ("capabilities",), as_json_list),
    FieldSpec("protocols_json", ("protocols",), as_json_list),
    FieldSpec("created_at_time", ("createdAt", "created_at"), as_epoch_seconds),
    FieldSpec("updated_at_time", ("updatedAt", "updated_at"), as_epoch_seconds),
)


def hol_rating(hit: Mapping[str, Any]) -> Optional[float]:
    """Rating of a search hit, or ``None``."""
    return _RATING.extract(hit)


@register_harvester("hol")
class HolHarvester(Harvester):
    """Harvest HOL search hits, one sub-registry at a time."""

    checkpoint_key = "holImportCursor"
    field_specs = HOL_FIELDS

    def __init__(
        self,
        store,
        *,
        base_url: str = "https://hol.org",
        registries: Sequence[str] = (),
        available_only: bool = True,
        capability: Optional[str] = None,
        trust: Optional[str] = None,
        query: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(store, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.registries: List[str] = list(registries) or ["hol"]
        self.available_only = available_only
        self.capability = capability
        self.trust = trust
        self.query = query

    @classmethod
    def from_settings(cls, settings, store, *, client=None, **overrides) -> "HolHarvester":
        section = settings.registries.hol
        return cls(
            store,
            base_url=section.base_url,
            registries=section.registries,
            available_only=section.available_only,
            capability=section.capability,
            trust=section.trust,
            query=section.query,
            **cls.base_kwargs(settings, client=client, **overrides),
        )

    def streams(self) -> List[Optional[str]]:
        return list(self.registries)

    def fetch_page(self, stream: Optional[str], page: int, page_size: int) -> Page:
        payload = self.get_json(
            f"{self.base_url}/api/v1/search",
            {
                "page": page,
                "limit": page_size,
                "registry": stream,
                "capability": self.capability,
                "trust": self.trust,
                "q": self.query,
            },
        )
        if not isinstance(payload, Mapping) or not isinstance(payload.get("hits"), list):
            raise ValueError("HOL search response has no 'hits' array")
        return Page(items=payload["hits"], total=as_int(payload.get("total")))

    def select_items(self, page: Page, stream: Optional[str]) -> Sequence[Mapping[str, Any]]:
        hits = [hit for hit in page.items if isinstance(hit, Mapping)]
        if self.available_only:
            hits = [hit for hit in hits if hit.get("available") is True]

        def _rating_desc(hit: Mapping[str, Any]) -> float:
            rating = hol_rating(hit)
            return -rating if rating is not None else float("inf")

        return sorted(hits, key=_rating_desc)

    def finalize_fields(self, fields: Dict[str, Any], item: Mapping[str, Any], stream: Optional[str]) -> Dict[str, Any]:
        fields.setdefault("name", fields.get("external_agent_id"))
        fields.setdefault("owner", stream or "HOL")
        fields.setdefault("description", as_text(item.get("bio")))
        return fields
