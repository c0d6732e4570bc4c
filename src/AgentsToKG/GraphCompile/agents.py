# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.GraphCompile.agents",
#   "purpose": "Agent, identity, descriptor, protocol, skill and account emission",
#   "sections": [
#     {
#       "id": "normalize-address",
#       "name": "normalize_address",
#       "anchor": "function-normalize-address",
#       "kind": "function"
#     },
#     {
#       "id": "normalize-uaid",
#       "name": "normalize_uaid",
#       "anchor": "function-normalize-uaid",
#       "kind": "function"
#     },
#     {
#       "id": "is-valid-ens-name",
#       "name": "is_valid_ens_name",
#       "anchor": "function-is-valid-ens-name",
#       "kind": "function"
#     },
#     {
#       "id": "identity-protocol",
#       "name": "identity_protocol",
#       "anchor": "function-identity-protocol",
#       "kind": "function"
#     },
#     {
#       "id": "endpoint",
#       "name": "Endpoint",
#       "anchor": "class-endpoint",
#       "kind": "class"
#     },
#     {
#       "id": "agent-context",
#       "name": "AgentContext",
#       "anchor": "class-agent-context",
#       "kind": "class"
#     },
#     {
#       "id": "agent-context-fn",
#       "name": "agent_context",
#       "anchor": "function-agent-context-fn",
#       "kind": "function"
#     },
#     {
#       "id": "ensure-account",
#       "name": "ensure_account",
#       "anchor": "function-ensure-account",
#       "kind": "function"
#     },
#     {
#       "id": "emit-accounts",
#       "name": "emit_accounts",
#       "anchor": "function-emit-accounts",
#       "kind": "function"
#     },
#     {
#       "id": "emit-agent-node",
#       "name": "emit_agent_node",
#       "anchor": "function-emit-agent-node",
#       "kind": "function"
#     },
#     {
#       "id": "emit-identities",
#       "name": "emit_identities",
#       "anchor": "function-emit-identities",
#       "kind": "function"
#     },
#     {
#       "id": "emit-agent-descriptor",
#       "name": "emit_agent_descriptor",
#       "anchor": "function-emit-agent-descriptor",
#       "kind": "function"
#     },
#     {
#       "id": "emit-protocols",
#       "name": "emit_protocols",
#       "anchor": "function-emit-protocols",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Agent-side emission: agent node, identities, descriptors, protocols, skills, accounts.

Each ``emit_*`` function writes into a :class:`~AgentsToKG.GraphCompile.turtle.TripleSink`
and returns the IRIs other emitters link to. All of them read a shared
:class:`AgentContext` so the agent key and parsed payloads are computed once.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..storage.records import AgentRecord
from . import iris
from .turtle import (
    TripleSink,
    bool_literal,
    datetime_literal,
    decimal_literal,
    int_literal,
    iri_or_literal,
    json_literal,
    string_literal,
)

if TYPE_CHECKING:  # pragma: no cover
    from .compiler import Taxonomy

__all__ = [
    "AgentContext",
    "Endpoint",
    "agent_context",
    "normalize_address",
    "normalize_uaid",
    "is_valid_ens_name",
    "identity_protocol",
    "ensure_account",
    "emit_agent_node",
    "emit_identities",
    "emit_agent_descriptor",
    "emit_protocols",
    "emit_accounts",
]

_ADDRESS = re.compile(r"^0x[0-9a-f]+$")
_ENS_LABELS = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)*$", re.IGNORECASE)
_OASF_SKILL_PREFIX = "https://agentictrust.io/ontology/oasf#skill/"
_OASF_DOMAIN_PREFIX = "https://agentictrust.io/ontology/oasf#domain/"

_IDENTITY_CLASSES = {
    "8004": ("erc8004:AgentIdentity8004",),
    "hol": ("hol:AgentIdentityHOL",),
}
_IDENTITY_DESCRIPTOR_CLASSES = {
    "8004": ("erc8004:IdentityDescriptor8004",),
    "hol": ("hol:IdentityDescriptorHOL",),
}
_IDENTIFIER_CLASSES = {
    "8004": ("erc8004:IdentityIdentifier8004",),
    "hol": ("hol:IdentityIdentifierHOL",),
}
_A2A_ENDPOINT_NAMES = ("a2a", "agent")
_MCP_ENDPOINT_NAMES = ("mcp",)


def normalize_address(value: Any) -> Optional[str]:
    """Lower-cased ``0x`` address, accepting ``chain:...:0x..`` account ids.

    Hex values longer than an address keep their last 40 digits; anything
    that is not hex gives ``None``.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip().split(":")[-1].lower()
    if not _ADDRESS.match(text):
        return None
    digits = text[2:]
    if len(digits) < 40:
        return None
    return "0x" + digits[-40:]


def normalize_uaid(value: Any) -> Optional[str]:
    """Universal agent id with all whitespace removed; ``None`` when empty."""
    if value is None:
        return None
    text = "".join(str(value).split())
    return text or None


def is_valid_ens_name(name: Any) -> bool:
    if not isinstance(name, str):
        return False
    text = name.strip()
    if not text.lower().endswith(".eth"):
        return False
    label = text[:-4]
    return bool(label) and _ENS_LABELS.match(label) is not None


def _load_json(raw: Optional[str]) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return None


def _strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def identity_protocol(record: AgentRecord, payload: Mapping[str, Any]) -> str:
    """``8004`` for ERC-8004 registrations, else the registry id."""
    did = (record.did_identity or "").strip()
    declared = payload.get("type") if isinstance(payload, Mapping) else None
    if did.startswith("did:8004:") or (isinstance(declared, str) and "eip-8004" in declared):
        return "8004"
    return record.registry_source_id


@dataclass(frozen=True)
class Endpoint:
    name: str
    url: str
    version: Optional[str] = None
    source: Optional[str] = None


@dataclass
class AgentContext:
    """Values shared by every emitter for one agent."""

    record: AgentRecord
    key: str
    agent: str
    protocol: str
    chain_id: int
    payload: Dict[str, Any] = field(default_factory=dict)
    card: Dict[str, Any] = field(default_factory=dict)
    endpoints: List[Endpoint] = field(default_factory=list)

    @property
    def agent_account(self) -> Optional[str]:
        return normalize_address(self.record.agent_account)

    def endpoint_named(self, names: Iterable[str]) -> Optional[Endpoint]:
        wanted = set(names)
        for endpoint in self.endpoints:
            if endpoint.name in wanted:
                return endpoint
        return None


def _collect_endpoints(record: AgentRecord, payload: Mapping[str, Any]) -> List[Endpoint]:
    found: Dict[str, Endpoint] = {}

    def _take(entries: Any) -> None:
        if not isinstance(entries, list):
            return
        for position, entry in enumerate(entries):
            if isinstance(entry, str) and entry.strip():
                name, url, version = f"endpoint-{position}", entry.strip(), None
            elif isinstance(entry, Mapping):
                name = str(entry.get("name") or entry.get("type") or f"endpoint-{position}").strip().lower()
                url = str(entry.get("endpoint") or entry.get("url") or entry.get("href") or "").strip()
                version = entry.get("version")
                version = str(version).strip() if version not in (None, "") else None
            else:
                continue
            if name and url and name not in found:
                source = json.dumps(entry, sort_keys=True, ensure_ascii=False) if isinstance(entry, Mapping) else None
                found[name] = Endpoint(name=name, url=url, version=version, source=source)

    _take(record.json_list("endpoints_json"))
    _take(payload.get("endpoints") if isinstance(payload, Mapping) else None)
    if record.primary_endpoint and "primary" not in found:
        found["primary"] = Endpoint(name="primary", url=record.primary_endpoint.strip())
    return [found[name] for name in sorted(found)]


def agent_context(record: AgentRecord) -> AgentContext:
    payload = _load_json(record.raw_json)
    card = _load_json(record.agent_card_json)
    payload = payload if isinstance(payload, dict) else {}
    key = iris.agent_key(record.registry_source_id, record.external_agent_id, record.did_identity)
    return AgentContext(
        record=record,
        key=key,
        agent=iris.agent_iri(key),
        protocol=identity_protocol(record, payload),
        chain_id=int(record.chain_id or 0),
        payload=payload,
        card=card if isinstance(card, dict) else {},
        endpoints=_collect_endpoints(record, payload),
    )


# --- accounts ---------------------------------------------------------------


def ensure_account(sink: TripleSink, chain_id: int, address: str, account_type: Optional[str] = None) -> str:
    """Emit the account node for ``address`` on ``chain_id`` and return its IRI."""
    node = iris.account_iri(chain_id, address)
    sink.types(node, "eth:Account", "prov:Agent", "prov:Entity")
    sink.add(node, "eth:accountChainId", int_literal(chain_id))
    sink.add(node, "eth:accountAddress", string_literal(address.lower()))
    if account_type:
        sink.add(node, "eth:accountType", string_literal(account_type))
    return node


def emit_accounts(sink: TripleSink, ctx: AgentContext) -> Dict[str, str]:
    """Emit the smart account, its EOA owner, and the identity owner.

    Returns:
        dict: Role (``agent``, ``eoa``, ``owner``) to account IRI.
    """
    record = ctx.record
    accounts: Dict[str, str] = {}
    smart = ctx.agent_account
    eoa = normalize_address(record.eoa_agent_account)
    owner = normalize_address(record.agent_identity_owner_account)
    if smart:
        accounts["agent"] = ensure_account(sink, ctx.chain_id, smart, "SmartAccount")
        sink.add(ctx.agent, "core:hasAgentAccount", accounts["agent"])
    if eoa:
        accounts["eoa"] = ensure_account(sink, ctx.chain_id, eoa, "EOA")
        if smart and eoa != smart:
            sink.add(accounts["agent"], "eth:hasEOAOwner", accounts["eoa"])
    if owner:
        accounts["owner"] = ensure_account(sink, ctx.chain_id, owner)
    return accounts


# --- agent node -------------------------------------------------------------


def emit_agent_node(
    sink: TripleSink,
    ctx: AgentContext,
    *,
    feedback_count: int = 0,
    validation_count: int = 0,
    duplicate_of: Optional[AgentRecord] = None,
    counterpart: Optional[AgentRecord] = None,
) -> str:
    record = ctx.record
    agent = ctx.agent
    sink.types(agent, "core:AIAgent", "prov:SoftwareAgent", "prov:Agent")
    if ctx.agent_account:
        sink.types(agent, "eth:Account")
    sink.add(agent, "core:agentId", string_literal(record.external_agent_id))
    sink.add(agent, "core:registrySourceId", string_literal(record.registry_source_id))
    sink.add(agent, "core:agentName", string_literal(record.name))
    sink.add(agent, "rdfs:label", string_literal(record.name))
    sink.add(agent, "core:uaid", string_literal(normalize_uaid(record.uaid)))
    sink.add(agent, "core:didAccount", string_literal(record.did_account))
    sink.add(agent, "core:agentUri", iri_or_literal(record.agent_uri))
    sink.add(agent, "core:createdAtTime", int_literal(record.created_at_time))
    sink.add(agent, "core:updatedAtTime", int_literal(record.updated_at_time))
    sink.add(agent, "core:feedbackAssertionCount", int_literal(feedback_count))
    sink.add(agent, "core:validationAssertionCount", int_literal(validation_count))

    if record.is_duplicate:
        sink.add(agent, "core:isDuplicate", bool_literal(True))
        sink.add(agent, "core:duplicateReason", string_literal(record.duplicate_reason))
        if duplicate_of is not None:
            sink.add(agent, "core:duplicateOf", iris.agent_iri(_record_key(duplicate_of)))
    if record.crossref_other_registry:
        sink.add(agent, "core:crossrefRegistry", string_literal(record.crossref_other_registry))
        if counterpart is not None:
            sink.add(agent, "owl:sameAs", iris.agent_iri(_record_key(counterpart)))
    return agent


def _record_key(record: AgentRecord) -> str:
    return iris.agent_key(record.registry_source_id, record.external_agent_id, record.did_identity)


# --- identities -------------------------------------------------------------


def _emit_did(sink: TripleSink, did: str, identifier: str) -> str:
    node = iris.did_iri(did)
    sink.types(node, "core:DID", "core:DecentralizedIdentifier", "core:Identifier", "prov:Entity")
    sink.add(node, "core:identifies", identifier)
    sink.add(node, "rdfs:label", string_literal(did))
    return node


def _emit_identifier(sink: TripleSink, protocol: str, identifier_key: str, value: str, did: Optional[str]) -> str:
    identifier = iris.identifier_iri(protocol, identifier_key)
    descriptor = iris.identifier_descriptor_iri(protocol, identifier_key)
    sink.types(identifier, "core:Identifier", "core:UniversalIdentifier", "prov:Entity")
    sink.types(identifier, *_IDENTIFIER_CLASSES.get(protocol, ()))
    sink.add(identifier, "core:identifierValue", string_literal(value))
    sink.add(identifier, "rdfs:label", string_literal(value))
    sink.add(identifier, "core:hasDescriptor", descriptor)
    sink.types(descriptor, "core:IdentifierDescriptor", "core:Descriptor", "prov:Entity")
    if did:
        sink.add(descriptor, "core:hasDID", _emit_did(sink, did, identifier))
    return identifier


def emit_identities(sink: TripleSink, ctx: AgentContext, accounts: Mapping[str, str]) -> str:
    """Emit the registry-native identity and, for ``*.eth`` names, an ENS identity.

    Every identity gets exactly one Identifier and exactly one Descriptor.
    The native identity descriptor carries the registration payload and the
    trust and availability signals.

    Returns:
        str: IRI of the native identity descriptor.
    """
    record = ctx.record
    protocol = ctx.protocol
    identity = iris.identity_iri(protocol, ctx.key)
    descriptor = iris.identity_descriptor_iri(protocol, ctx.key)
    did = (record.did_identity or "").strip() or None
    value = did or normalize_uaid(record.uaid) or f"{record.registry_source_id}:{record.external_agent_id}"

    sink.add(ctx.agent, "core:hasIdentity", identity)
    sink.types(identity, "core:AgentIdentity", "prov:Entity", *_IDENTITY_CLASSES.get(protocol, ()))
    sink.add(identity, "core:identityRegistry", string_literal(record.registry_source_id))
    sink.add(identity, "core:hasIdentifier", _emit_identifier(sink, protocol, ctx.key, value, did))
    sink.add(identity, "core:hasDescriptor", descriptor)

    sink.types(
        descriptor,
        "core:AgentIdentityDescriptor",
        "core:Descriptor",
        "prov:Entity",
        *_IDENTITY_DESCRIPTOR_CLASSES.get(protocol, ()),
    )
    title = ctx.payload.get("name") if isinstance(ctx.payload.get("name"), str) else None
    sink.add(descriptor, "rdfs:label", string_literal((title or record.name or "").strip() or None))
    sink.add(descriptor, "core:json", json_literal(record.raw_json))
    sink.add(descriptor, "core:onchainMetadataJson", json_literal(record.onchain_metadata_json))
    sink.add(descriptor, "core:rating", decimal_literal(record.rating))
    sink.add(descriptor, "core:trustScore", decimal_literal(record.trust_score))
    sink.add(descriptor, "core:totalInteractions", int_literal(record.total_interactions))
    sink.add(descriptor, "core:available", bool_literal(record.available))
    sink.add(descriptor, "core:verified", bool_literal(record.verified))
    sink.add(descriptor, "core:availabilityScore", decimal_literal(record.availability_score))
    sink.add(descriptor, "core:availabilityLatencyMs", int_literal(record.availability_latency_ms))
    sink.add(descriptor, "core:availabilityStatus", string_literal(record.availability_status))
    sink.add(descriptor, "core:availabilityReason", string_literal(record.availability_reason))
    sink.add(descriptor, "core:availabilitySource", string_literal(record.availability_source))
    sink.add(descriptor, "core:availabilityCheckedAt", datetime_literal(record.availability_checked_at))
    sink.add(descriptor, "core:supportedTrust", string_literal(record.supported_trust))
    sink.add(descriptor, "core:version", string_literal(record.version))
    sink.add(descriptor, "core:language", string_literal(record.language))
    if "owner" in accounts:
        sink.add(descriptor, "core:registeredBy", accounts["owner"])
    else:
        sink.add(descriptor, "core:registeringParty", string_literal(record.owner))

    name = (record.name or "").strip()
    if is_valid_ens_name(name):
        _emit_ens_identity(sink, ctx, name)
    return descriptor


def _emit_ens_identity(sink: TripleSink, ctx: AgentContext, name: str) -> None:
    ens_name = name.lower()
    identity = iris.identity_iri("ens", ctx.key)
    descriptor = iris.identity_descriptor_iri("ens", ctx.key)
    did = f"did:ens:{ctx.chain_id}:{ens_name}"
    sink.add(ctx.agent, "core:hasIdentity", identity)
    sink.types(identity, "core:AgentIdentity", "eth:AgentNameENS", "prov:Entity")
    sink.add(identity, "core:hasIdentifier", _emit_identifier(sink, "ens", iris.encode_segment(ens_name), ens_name, did))
    sink.add(identity, "core:hasDescriptor", descriptor)
    sink.types(descriptor, "core:AgentIdentityDescriptor", "core:Descriptor", "prov:Entity")
    sink.add(descriptor, "eth:ensName", string_literal(ens_name))
    sink.add(descriptor, "eth:ensChainId", int_literal(ctx.chain_id))


# --- skills and domains -----------------------------------------------------


def _strip_prefix(value: str, prefix: str) -> str:
    return value[len(prefix) :] if value.startswith(prefix) else value


def _emit_skill(
    sink: TripleSink,
    ctx: AgentContext,
    skill_id: str,
    taxonomy: Optional["Taxonomy"],
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Optional[str]:
    skill_id = _strip_prefix(skill_id.strip(), _OASF_SKILL_PREFIX)
    if not iris.encode_path(skill_id):
        return None
    node = iris.agent_skill_iri(ctx.key, skill_id)
    sink.types(node, "core:AgentSkill", "prov:Entity")
    sink.add(node, "core:skillKey", string_literal(skill_id))
    if taxonomy is not None and taxonomy.has_skill(skill_id):
        sink.add(node, "core:hasSkillClassification", iris.oasf_skill_iri(skill_id))
        return node
    classification = iris.skill_classification_iri(ctx.key, skill_id)
    sink.types(classification, "core:AgentSkillClassification", "prov:Entity")
    sink.add(classification, "core:skillId", string_literal(skill_id))
    sink.add(classification, "core:skillName", string_literal(name))
    sink.add(classification, "core:skillDescription", string_literal(description))
    sink.add(node, "core:hasSkillClassification", classification)
    return node


def _emit_domain(sink: TripleSink, ctx: AgentContext, domain_id: str, taxonomy: Optional["Taxonomy"]) -> Optional[str]:
    domain_id = _strip_prefix(domain_id.strip(), _OASF_DOMAIN_PREFIX)
    if not iris.encode_path(domain_id):
        return None
    node = iris.agent_domain_iri(ctx.key, domain_id)
    sink.types(node, "core:AgentDomain", "prov:Entity")
    sink.add(node, "core:domainKey", string_literal(domain_id))
    if taxonomy is not None and taxonomy.has_domain(domain_id):
        sink.add(node, "core:hasDomainClassification", iris.oasf_domain_iri(domain_id))
        return node
    classification = iris.domain_classification_iri(ctx.key, domain_id)
    sink.types(classification, "core:AgentDomainClassification", "prov:Entity")
    sink.add(classification, "core:domainId", string_literal(domain_id))
    sink.add(node, "core:hasDomainClassification", classification)
    return node


def _declared_skills_and_domains(ctx: AgentContext, extra_skills: Iterable[str]) -> Tuple[List[str], List[str]]:
    record = ctx.record
    skills: List[str] = []
    domains: List[str] = []
    skills.extend(_strings(record.json_list("skills_json")))
    domains.extend(_strings(record.json_list("domains_json")))
    for source in (ctx.card, ctx.payload):
        skills.extend(_strings(source.get("oasf_skills")))
        domains.extend(_strings(source.get("oasf_domains")))
    endpoints = ctx.payload.get("endpoints")
    for entry in endpoints if isinstance(endpoints, list) else []:
        if isinstance(entry, Mapping):
            skills.extend(_strings(entry.get("a2aSkills")))
            domains.extend(_strings(entry.get("a2aDomains")))
    skills.extend(skill for skill in extra_skills if isinstance(skill, str) and skill.strip())
    return sorted(set(skills)), sorted(set(domains))


def _card_skills(card: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    skills = card.get("skills")
    if not isinstance(skills, list):
        return []
    result = []
    for skill in skills:
        if isinstance(skill, str) and skill.strip():
            result.append({"id": skill.strip()})
        elif isinstance(skill, Mapping) and str(skill.get("id") or skill.get("name") or "").strip():
            result.append(skill)
    return result


# --- descriptors ------------------------------------------------------------


def emit_agent_descriptor(
    sink: TripleSink,
    ctx: AgentContext,
    taxonomy: Optional["Taxonomy"] = None,
    extra_skills: Iterable[str] = (),
) -> str:
    """Emit the agent descriptor with title, description, image, skills, domains, endpoints."""
    record = ctx.record
    descriptor = iris.agent_descriptor_iri(ctx.key)
    sink.add(ctx.agent, "core:hasDescriptor", descriptor)
    sink.types(descriptor, "core:AgentDescriptor", "core:Descriptor", "prov:Entity")
    sink.add(descriptor, "dcterms:title", string_literal(record.name))
    sink.add(descriptor, "rdfs:label", string_literal(record.name))
    sink.add(descriptor, "dcterms:description", string_literal(record.description))
    sink.add(descriptor, "schema:image", iri_or_literal(record.image))
    sink.add(descriptor, "core:owner", string_literal(record.owner))

    skills, domains = _declared_skills_and_domains(ctx, extra_skills)
    for skill in skills:
        sink.add(descriptor, "core:hasSkill", _emit_skill(sink, ctx, skill, taxonomy))
    for skill in _card_skills(ctx.card):
        skill_id = str(skill.get("id") or skill.get("name")).strip()
        sink.add(
            descriptor,
            "core:hasSkill",
            _emit_skill(sink, ctx, skill_id, taxonomy, name=skill.get("name"), description=skill.get("description")),
        )
    for domain in domains:
        sink.add(descriptor, "core:hasDomain", _emit_domain(sink, ctx, domain, taxonomy))

    for protocol in _strings(record.json_list("protocols_json")):
        sink.add(descriptor, "core:declaredProtocol", string_literal(protocol.lower()))
    for tag in _strings(record.json_list("tags_json")):
        sink.add(descriptor, "core:tag", string_literal(tag))
    for capability in _strings(record.json_list("capabilities_json")):
        sink.add(descriptor, "core:capability", string_literal(capability))

    for endpoint in ctx.endpoints:
        node = iris.endpoint_iri(ctx.key, endpoint.name)
        sink.add(descriptor, "core:hasEndpoint", node)
        sink.types(node, "core:Endpoint", "prov:Entity")
        sink.add(node, "core:endpointName", string_literal(endpoint.name))
        sink.add(node, "core:endpointUrl", iri_or_literal(endpoint.url))
        sink.add(node, "core:endpointVersion", string_literal(endpoint.version))
    return descriptor


def _emit_protocol(
    sink: TripleSink,
    ctx: AgentContext,
    protocol: str,
    protocol_class: str,
    *,
    url: Optional[str],
    version: Optional[str],
    source_json: Optional[str],
    skills: Iterable[Tuple[str, Optional[str], Optional[str]]],
    taxonomy: Optional["Taxonomy"],
) -> str:
    node = iris.mint_path("protocol", iris.encode_segment(protocol), ctx.key)
    descriptor = iris.protocol_descriptor_iri(protocol, ctx.key)
    sink.types(node, protocol_class, "core:Protocol", "prov:Entity")
    sink.add(node, "core:serviceUrl", iri_or_literal(url))
    sink.add(node, "core:protocolVersion", string_literal(version))
    sink.add(node, "core:hasDescriptor", descriptor)
    sink.types(descriptor, "core:ProtocolDescriptor", "core:Descriptor", "prov:Entity")
    sink.add(descriptor, "core:serviceUrl", iri_or_literal(url))
    sink.add(descriptor, "core:protocolVersion", string_literal(version))
    sink.add(descriptor, "core:json", json_literal(source_json))
    for skill_id, name, description in skills:
        sink.add(
            descriptor,
            "core:hasSkill",
            _emit_skill(sink, ctx, skill_id, taxonomy, name=name, description=description),
        )
    return node


def emit_protocols(
    sink: TripleSink,
    ctx: AgentContext,
    identity_descriptor: str,
    taxonomy: Optional["Taxonomy"] = None,
    extra_skills: Iterable[str] = (),
) -> List[str]:
    """Emit A2A and MCP protocol descriptors hanging off the identity descriptor."""
    record = ctx.record
    emitted: List[str] = []

    a2a_endpoint = ctx.endpoint_named(_A2A_ENDPOINT_NAMES)
    a2a_url = (
        (record.a2a_endpoint or "").strip()
        or str(ctx.card.get("url") or "").strip()
        or (a2a_endpoint.url if a2a_endpoint else "")
    )
    if ctx.card or a2a_url:
        version = ctx.card.get("protocolVersion") or ctx.card.get("version") or (a2a_endpoint.version if a2a_endpoint else None)
        skills = [
            (str(skill.get("id") or skill.get("name")).strip(), skill.get("name"), skill.get("description"))
            for skill in _card_skills(ctx.card)
        ]
        emitted.append(
            _emit_protocol(
                sink,
                ctx,
                "a2a",
                "core:A2AProtocol",
                url=a2a_url or None,
                version=str(version) if version is not None else None,
                source_json=record.agent_card_json or (a2a_endpoint.source if a2a_endpoint else None),
                skills=skills,
                taxonomy=taxonomy,
            )
        )

    mcp_endpoint = ctx.endpoint_named(_MCP_ENDPOINT_NAMES)
    mcp_url = (record.mcp_endpoint or "").strip() or (mcp_endpoint.url if mcp_endpoint else "")
    if mcp_url:
        emitted.append(
            _emit_protocol(
                sink,
                ctx,
                "mcp",
                "core:MCPProtocol",
                url=mcp_url,
                version=mcp_endpoint.version if mcp_endpoint else record.version,
                source_json=(mcp_endpoint.source if mcp_endpoint else None) or record.capabilities_json,
                skills=[(skill, None, None) for skill in extra_skills],
                taxonomy=taxonomy,
            )
        )

    for protocol in emitted:
        sink.add(identity_descriptor, "core:hasProtocol", protocol)
    return emitted
