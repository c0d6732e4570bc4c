# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.GraphCompile.iris",
#   "purpose": "Deterministic IRI minting for compiled graph nodes.",
#   "sections": [
#     {
#       "id": "encode-segment",
#       "name": "encode_segment",
#       "anchor": "function-encode-segment",
#       "kind": "function"
#     },
#     {
#       "id": "mint",
#       "name": "mint",
#       "anchor": "function-mint",
#       "kind": "function"
#     },
#     {
#       "id": "agent-key",
#       "name": "agent_key",
#       "anchor": "function-agent-key",
#       "kind": "function"
#     },
#     {
#       "id": "act-iri",
#       "name": "act_iri",
#       "anchor": "function-act-iri",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
IRI Minting

Every node IRI is ``https://www.agentictrust.io/id/<kind>/<segments>`` where
each segment is percent-encoded (everything except RFC 3986 unreserved
characters) and every ``%`` is then replaced by ``_``. The functions here are
pure: the same keys always give the same IRI, whatever else is in the store.

Agent-scoped IRIs share an *agent key*: the encoded ``didIdentity`` when the
record carries one, otherwise ``<registry>/<externalAgentId>``.
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

__all__ = [
    "ID_BASE",
    "encode_segment",
    "encode_path",
    "mint",
    "mint_path",
    "agent_key",
    "agent_iri",
    "agent_descriptor_iri",
    "identity_iri",
    "identity_descriptor_iri",
    "identifier_iri",
    "identifier_descriptor_iri",
    "did_iri",
    "protocol_descriptor_iri",
    "endpoint_iri",
    "agent_skill_iri",
    "agent_domain_iri",
    "skill_classification_iri",
    "domain_classification_iri",
    "oasf_skill_iri",
    "oasf_domain_iri",
    "account_iri",
    "feedback_iri",
    "validation_request_iri",
    "validation_response_iri",
    "situation_iri",
    "relationship_iri",
    "relationship_assertion_iri",
    "relationship_revocation_iri",
    "act_iri",
]

ID_BASE = "https://www.agentictrust.io/id/"


def encode_segment(value: Any) -> str:
    """Percent-encode one path segment and replace ``%`` with ``_``."""
    return quote(str(value), safe="").replace("%", "_")


def encode_path(value: Any) -> str:
    """Encode a ``/``-separated key segment by segment, dropping empty parts."""
    return "/".join(encode_segment(part) for part in str(value).split("/") if part)


def mint(kind: str, *segments: Any) -> str:
    """Return the ``<iri>`` token for ``kind`` and raw (unencoded) segments."""
    return mint_path(kind, *(encode_segment(segment) for segment in segments))


def mint_path(kind: str, *encoded: str) -> str:
    """Return the ``<iri>`` token for ``kind`` and already-encoded segments."""
    tail = "/".join(part for part in encoded if part)
    return f"<{ID_BASE}{kind}/{tail}>"


def agent_key(registry_source_id: str, external_agent_id: str, did_identity: Optional[str] = None) -> str:
    did = (did_identity or "").strip()
    if did:
        return encode_segment(did)
    return f"{encode_segment(registry_source_id)}/{encode_segment(external_agent_id)}"


def agent_iri(key: str) -> str:
    return mint_path("agent", key)


def agent_descriptor_iri(key: str) -> str:
    return mint_path("agent-descriptor", key)


def identity_iri(protocol: str, key: str) -> str:
    return mint_path(f"{encode_segment(protocol)}-identity", key)


def identity_descriptor_iri(protocol: str, key: str) -> str:
    return mint_path(f"{encode_segment(protocol)}-identity-descriptor", key)


def identifier_iri(protocol: str, key: str) -> str:
    return mint_path("identifier", encode_segment(protocol), key)


def identifier_descriptor_iri(protocol: str, key: str) -> str:
    return mint_path("identifier-descriptor", encode_segment(protocol), key)


def did_iri(did: str) -> str:
    return mint("did", did.strip())


def protocol_descriptor_iri(protocol: str, key: str) -> str:
    return mint_path("descriptor/protocol", encode_segment(protocol), key)


def endpoint_iri(key: str, name: str) -> str:
    return mint_path("endpoint", key, encode_segment(name))


def agent_skill_iri(key: str, skill: str) -> str:
    return mint_path("agent-skill", key, encode_path(skill))


def agent_domain_iri(key: str, domain: str) -> str:
    return mint_path("agent-domain", key, encode_path(domain))


def skill_classification_iri(key: str, skill: str) -> str:
    return mint_path("skill", key, encode_segment(skill))


def domain_classification_iri(key: str, domain: str) -> str:
    return mint_path("domain", key, encode_segment(domain))


def oasf_skill_iri(path: str) -> str:
    return mint_path("oasf/skill", encode_path(path))


def oasf_domain_iri(path: str) -> str:
    return mint_path("oasf/domain", encode_path(path))


def account_iri(chain_id: int, address: str) -> str:
    return mint("account", int(chain_id), address.strip().lower())


def feedback_iri(chain_id: int, agent_id: str, client: str, index: int) -> str:
    return mint("feedback", int(chain_id), agent_id, client.strip().lower(), int(index))


def validation_request_iri(chain_id: int, request_id: str) -> str:
    return mint("validation-request", int(chain_id), request_id)


def validation_response_iri(chain_id: int, response_id: str) -> str:
    return mint("validation-response", int(chain_id), response_id)


def situation_iri(kind: str, key: str, situation_id: Any) -> str:
    """Situation node scoped by ``kind`` and an already-encoded ``key``."""
    return mint_path("situation", encode_segment(kind), key, encode_segment(situation_id))


def relationship_iri(chain_id: int, association_id: str) -> str:
    return mint("relationship", int(chain_id), association_id)


def relationship_assertion_iri(chain_id: int, association_id: str) -> str:
    return mint("relationship-assertion", int(chain_id), association_id)


def relationship_revocation_iri(chain_id: int, revocation_id: str) -> str:
    return mint("relationship-revocation-assertion", int(chain_id), revocation_id)


def act_iri(record_iri: str) -> str:
    """Activity IRI for an assertion record: the record IRI plus ``/act``."""
    if record_iri.startswith("<") and record_iri.endswith(">"):
        return f"{record_iri[:-1]}/act>"
    return f"<{record_iri}/act>"
