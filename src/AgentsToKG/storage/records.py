# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.storage.records",
#   "purpose": "Agent record model, idempotent upsert and row loaders",
#   "sections": [
#     {
#       "id": "agent-record",
#       "name": "AgentRecord",
#       "anchor": "class-agent-record",
#       "kind": "class"
#     },
#     {
#       "id": "upsert-agent-statement",
#       "name": "upsert_agent_statement",
#       "anchor": "function-upsert-agent-statement",
#       "kind": "function"
#     },
#     {
#       "id": "upsert-agent",
#       "name": "upsert_agent",
#       "anchor": "function-upsert-agent",
#       "kind": "function"
#     },
#     {
#       "id": "replace-agent-skills",
#       "name": "replace_agent_skills",
#       "anchor": "function-replace-agent-skills",
#       "kind": "function"
#     },
#     {
#       "id": "get-agent",
#       "name": "get_agent",
#       "anchor": "function-get-agent",
#       "kind": "function"
#     },
#     {
#       "id": "load-agents",
#       "name": "load_agents",
#       "anchor": "function-load-agents",
#       "kind": "function"
#     },
#     {
#       "id": "load-agent-rows",
#       "name": "load_agent_rows",
#       "anchor": "function-load-agent-rows",
#       "kind": "function"
#     },
#     {
#       "id": "load-agent-skills",
#       "name": "load_agent_skills",
#       "anchor": "function-load-agent-skills",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Agent record model, idempotent upsert, and row loaders.

An agent row is keyed by ``(registrySourceId, externalAgentId)``. The first
insert assigns ``internalId = MAX(internalId) + 1``; later upserts of the same
key never touch it, never clear a column the new payload leaves empty, and
never touch the dedup / cross-reference annotations owned by
:mod:`AgentsToKG.EntityResolution`.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..EntityResolution.names import normalize_name_key
from .base import RelationalStore, Statement

__all__ = [
    "AgentRecord",
    "ANNOTATION_COLUMNS",
    "UPSERT_COLUMNS",
    "upsert_agent",
    "upsert_agent_statement",
    "replace_agent_skills",
    "get_agent",
    "load_agents",
    "load_agent_rows",
    "load_agent_skills",
]


class AgentRecord(BaseModel):
    """One registry entry normalised to the shared agent columns.

    Attribute names are snake_case; the aliases are the column names, so
    ``AgentRecord.model_validate(row)`` accepts a row straight from the store.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    registry_source_id: str = Field(alias="registrySourceId")
    external_agent_id: str = Field(alias="externalAgentId")
    internal_id: Optional[int] = Field(default=None, alias="internalId")
    chain_id: int = Field(default=0, alias="chainId")

    name: Optional[str] = None
    name_norm: Optional[str] = Field(default=None, alias="nameNorm")
    description: Optional[str] = None
    image: Optional[str] = None
    owner: Optional[str] = None
    uaid: Optional[str] = None
    did_identity: Optional[str] = Field(default=None, alias="didIdentity")
    did_account: Optional[str] = Field(default=None, alias="didAccount")
    agent_account: Optional[str] = Field(default=None, alias="agentAccount")
    eoa_agent_account: Optional[str] = Field(default=None, alias="eoaAgentAccount")
    agent_identity_owner_account: Optional[str] = Field(default=None, alias="agentIdentityOwnerAccount")
    agent_uri: Optional[str] = Field(default=None, alias="agentUri")
    a2a_endpoint: Optional[str] = Field(default=None, alias="a2aEndpoint")
    mcp_endpoint: Optional[str] = Field(default=None, alias="mcpEndpoint")
    primary_endpoint: Optional[str] = Field(default=None, alias="primaryEndpoint")
    endpoints_json: Optional[str] = Field(default=None, alias="endpointsJson")
    skills_json: Optional[str] = Field(default=None, alias="skillsJson")
    domains_json: Optional[str] = Field(default=None, alias="domainsJson")
    capabilities_json: Optional[str] = Field(default=None, alias="capabilitiesJson")
    protocols_json: Optional[str] = Field(default=None, alias="protocolsJson")
    tags_json: Optional[str] = Field(default=None, alias="tagsJson")
    agent_card_json: Optional[str] = Field(default=None, alias="agentCardJson")
    onchain_metadata_json: Optional[str] = Field(default=None, alias="onchainMetadataJson")
    supported_trust: Optional[str] = Field(default=None, alias="supportedTrust")
    version: Optional[str] = None
    language: Optional[str] = None

    rating: Optional[float] = None
    trust_score: Optional[float] = Field(default=None, alias="trustScore")
    total_interactions: Optional[int] = Field(default=None, alias="totalInteractions")
    available: Optional[bool] = None
    availability_score: Optional[float] = Field(default=None, alias="availabilityScore")
    availability_latency_ms: Optional[int] = Field(default=None, alias="availabilityLatencyMs")
    availability_status: Optional[str] = Field(default=None, alias="availabilityStatus")
    availability_reason: Optional[str] = Field(default=None, alias="availabilityReason")
    availability_source: Optional[str] = Field(default=None, alias="availabilitySource")
    availability_checked_at: Optional[int] = Field(default=None, alias="availabilityCheckedAt")
    verified: Optional[bool] = None
    raw_json: Optional[str] = Field(default=None, alias="rawJson")

    is_duplicate: Optional[bool] = Field(default=None, alias="isDuplicate")
    duplicate_of_internal_id: Optional[int] = Field(default=None, alias="duplicateOfInternalId")
    duplicate_reason: Optional[str] = Field(default=None, alias="duplicateReason")
    crossref_other_registry: Optional[str] = Field(default=None, alias="crossrefOtherRegistry")
    crossref_other_registry_internal_id: Optional[int] = Field(
        default=None, alias="crossrefOtherRegistryInternalId"
    )

    created_at_time: Optional[int] = Field(default=None, alias="createdAtTime")
    updated_at_time: Optional[int] = Field(default=None, alias="updatedAtTime")

    @field_validator("registry_source_id", "external_agent_id", mode="before")
    @classmethod
    def require_key(cls, value: Any) -> str:
        """Keys are stored as trimmed, non-empty strings."""
        text = str(value).strip() if value is not None else ""
        if not text:
            raise ValueError("registrySourceId and externalAgentId must be non-empty")
        return text

    def json_list(self, attribute: str) -> List[Any]:
        """Decode a ``*_json`` column holding an array; malformed values give ``[]``."""
        raw = getattr(self, attribute)
        if not raw:
            return []
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            return []
        return value if isinstance(value, list) else []

    def json_object(self, attribute: str) -> Dict[str, Any]:
        """Decode a ``*_json`` column holding an object; malformed values give ``{}``."""
        raw = getattr(self, attribute)
        if not raw:
            return {}
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            return {}
        return value if isinstance(value, dict) else {}

    def to_columns(self) -> Dict[str, Any]:
        """Column mapping with booleans stored as 0/1."""
        row = self.model_dump(by_alias=True)
        for key, value in row.items():
            if isinstance(value, bool):
                row[key] = int(value)
        return row


ANNOTATION_COLUMNS = (
    "isDuplicate",
    "duplicateOfInternalId",
    "duplicateReason",
    "crossrefOtherRegistry",
    "crossrefOtherRegistryInternalId",
)
_KEY_COLUMNS = ("registrySourceId", "externalAgentId")
UPSERT_COLUMNS = tuple(
    field.alias or name
    for name, field in AgentRecord.model_fields.items()
    if (field.alias or name) not in ANNOTATION_COLUMNS and (field.alias or name) != "internalId"
)

_UPSERT_SQL = (
    "INSERT INTO agents (internalId, {columns}) "
    "VALUES ((SELECT COALESCE(MAX(internalId), 0) + 1 FROM agents), {placeholders}) "
    "ON CONFLICT(registrySourceId, externalAgentId) DO UPDATE SET {updates}"
).format(
    columns=", ".join(UPSERT_COLUMNS),
    placeholders=", ".join("?" for _ in UPSERT_COLUMNS),
    updates=", ".join(
        f"{column} = COALESCE(excluded.{column}, agents.{column})"
        for column in UPSERT_COLUMNS
        if column not in _KEY_COLUMNS
    ),
)


def upsert_agent_statement(record: AgentRecord) -> Statement:
    """Build the idempotent upsert for ``record`` (for use in batches)."""
    columns = record.to_columns()
    if columns.get("nameNorm") is None:
        columns["nameNorm"] = normalize_name_key(record.name)
    return Statement(_UPSERT_SQL, [columns[column] for column in UPSERT_COLUMNS])


def upsert_agent(store: RelationalStore, record: AgentRecord) -> int:
    """Insert or merge ``record`` and return its stable ``internalId``."""
    statement = upsert_agent_statement(record)
    store.run(statement.sql, statement.params)
    row = store.first(
        "SELECT internalId FROM agents WHERE registrySourceId = ? AND externalAgentId = ?",
        [record.registry_source_id, record.external_agent_id],
    )
    return int(row["internalId"])


def replace_agent_skills(
    store: RelationalStore,
    registry_source_id: str,
    external_agent_id: str,
    skills: Iterable[str],
) -> int:
    """Replace the skill rows for one agent; returns the number written."""
    unique = sorted({skill.strip() for skill in skills if isinstance(skill, str) and skill.strip()})
    statements = [
        Statement(
            "DELETE FROM agent_skills WHERE registrySourceId = ? AND externalAgentId = ?",
            [registry_source_id, external_agent_id],
        )
    ]
    statements.extend(
        Statement(
            "INSERT OR IGNORE INTO agent_skills (registrySourceId, externalAgentId, skill) VALUES (?, ?, ?)",
            [registry_source_id, external_agent_id, skill],
        )
        for skill in unique
    )
    store.batch(statements)
    return len(unique)


def get_agent(
    store: RelationalStore, registry_source_id: str, external_agent_id: str
) -> Optional[AgentRecord]:
    row = store.first(
        "SELECT * FROM agents WHERE registrySourceId = ? AND externalAgentId = ?",
        [registry_source_id, external_agent_id],
    )
    return AgentRecord.model_validate(row) if row else None


def load_agents(
    store: RelationalStore,
    registry_source_id: str,
    *,
    after_external_id: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[AgentRecord]:
    """Load agents of one registry ordered by ``externalAgentId``.

    Args:
        store: Source store.
        registry_source_id: Registry to load.
        after_external_id: Exclusive watermark for resumable scans.
        limit: Optional page size.
    """
    sql = "SELECT * FROM agents WHERE registrySourceId = :registry"
    params: Dict[str, Any] = {"registry": registry_source_id}
    if after_external_id is not None:
        sql += " AND externalAgentId > :after"
        params["after"] = after_external_id
    sql += " ORDER BY externalAgentId"
    if limit is not None:
        sql += " LIMIT :limit"
        params["limit"] = int(limit)
    return [AgentRecord.model_validate(row) for row in store.all(sql, params)]


def load_agent_rows(store: RelationalStore, registry_source_id: str) -> List[Dict[str, Any]]:
    """Load the columns entity resolution works on, ordered by ``internalId``."""
    return store.all(
        "SELECT internalId, externalAgentId, name, nameNorm, rating, totalInteractions, "
        "isDuplicate, duplicateOfInternalId, duplicateReason, "
        "crossrefOtherRegistry, crossrefOtherRegistryInternalId "
        "FROM agents WHERE registrySourceId = ? ORDER BY internalId",
        [registry_source_id],
    )


def load_agent_skills(
    store: RelationalStore, registry_source_id: str, external_agent_id: str
) -> Sequence[str]:
    rows = store.all(
        "SELECT skill FROM agent_skills WHERE registrySourceId = ? AND externalAgentId = ? ORDER BY skill",
        [registry_source_id, external_agent_id],
    )
    return [row["skill"] for row in rows]
