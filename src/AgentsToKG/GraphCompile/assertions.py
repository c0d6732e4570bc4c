# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.GraphCompile.assertions",
#   "purpose": "Feedback, validation and account-association assertion emission",
#   "sections": [
#     {
#       "id": "normalize-hash",
#       "name": "normalize_hash",
#       "anchor": "function-normalize-hash",
#       "kind": "function"
#     },
#     {
#       "id": "emit-feedback",
#       "name": "emit_feedback",
#       "anchor": "function-emit-feedback",
#       "kind": "function"
#     },
#     {
#       "id": "emit-validation-request",
#       "name": "emit_validation_request",
#       "anchor": "function-emit-validation-request",
#       "kind": "function"
#     },
#     {
#       "id": "emit-validation-response",
#       "name": "emit_validation_response",
#       "anchor": "function-emit-validation-response",
#       "kind": "function"
#     },
#     {
#       "id": "emit-validations",
#       "name": "emit_validations",
#       "anchor": "function-emit-validations",
#       "kind": "function"
#     },
#     {
#       "id": "emit-association",
#       "name": "emit_association",
#       "anchor": "function-emit-association",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Trust assertions: feedback, validation, and account relationships.

Every assertion record is an Entity generated by exactly one Activity
(``<record>/act``). The two are linked both ways::

    act  core:generatedAssertionRecord / prov:generated   record
    record core:assertionRecordOf / prov:wasGeneratedBy   act

The activity is associated with the asserting account when the row names one.
Validation responses are linked to a request's situation by request hash only.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from . import iris
from .agents import AgentContext, ensure_account, normalize_address
from .turtle import TripleSink, bool_literal, int_literal, iri_or_literal, json_literal, string_literal

__all__ = [
    "normalize_hash",
    "emit_feedback",
    "emit_validation_request",
    "emit_validation_response",
    "emit_validations",
    "emit_association",
]

Row = Mapping[str, Any]


def normalize_hash(value: Any) -> Optional[str]:
    """Trimmed hash; ``0x`` hex hashes are lower-cased."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    return text.lower() if text.lower().startswith("0x") else text


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _link_record_and_act(sink: TripleSink, record: str, act: str) -> None:
    sink.add(act, "core:generatedAssertionRecord", record)
    sink.add(act, "prov:generated", record)
    sink.add(record, "core:assertionRecordOf", act)
    sink.add(record, "prov:wasGeneratedBy", act)


def _associate(sink: TripleSink, record: str, act: str, account: Optional[str]) -> None:
    if account is None:
        return
    sink.add(act, "prov:wasAssociatedWith", account)
    sink.add(act, "core:assertedBy", account)
    sink.add(record, "prov:wasAttributedTo", account)


def emit_feedback(sink: TripleSink, ctx: AgentContext, row: Row) -> str:
    """Emit one feedback row as Feedback entity, FeedbackAct, and reputation situation."""
    chain_id = int(row.get("chainId") or ctx.chain_id or 0)
    raw_client = _text(row.get("clientAddress")) or ""
    client = normalize_address(raw_client) or raw_client.lower()
    index = int(row.get("feedbackIndex") or 0)

    record = iris.feedback_iri(chain_id, ctx.record.external_agent_id, client, index)
    act = iris.act_iri(record)
    situation = iris.situation_iri("reputation", ctx.key, f"{client}:{index}")
    client_account = ensure_account(sink, chain_id, client, "EOA") if normalize_address(client) else None

    sink.types(record, "erc8004:Feedback", "core:ReputationTrustAssertion", "core:TrustAssertion", "prov:Entity")
    sink.add(record, "erc8004:feedbackIndex", int_literal(index))
    sink.add(record, "erc8004:feedbackScore", int_literal(row.get("score")))
    sink.add(record, "erc8004:feedbackRatingPct", int_literal(row.get("ratingPct")))
    if row.get("isRevoked") is not None:
        sink.add(record, "erc8004:isRevoked", bool_literal(int(row["isRevoked"])))
    sink.add(record, "erc8004:feedbackSkill", string_literal(_text(row.get("skill"))))
    sink.add(record, "erc8004:feedbackDomain", string_literal(_text(row.get("domain"))))
    sink.add(record, "erc8004:endpoint", iri_or_literal(row.get("endpoint")))
    sink.add(record, "erc8004:feedbackClient", client_account)
    sink.add(record, "core:createdAtTime", int_literal(row.get("createdAtTime")))
    sink.add(record, "core:json", json_literal(row.get("feedbackJson")))
    sink.add(record, "core:recordsSituation", situation)

    sink.types(act, "erc8004:FeedbackAct", "core:ReputationTrustAssertionAct", "core:TrustAssertionAct", "prov:Activity")
    sink.add(act, "core:assertsSituation", situation)
    _link_record_and_act(sink, record, act)
    _associate(sink, record, act, client_account)

    sink.types(situation, "core:ReputationTrustSituation", "core:TrustSituation", "prov:Entity")
    sink.add(situation, "core:isAboutAgent", ctx.agent)
    sink.add(situation, "core:hasSituationParticipant", client_account)

    sink.add(ctx.agent, "core:hasReputationAssertion", record)
    sink.add(ctx.agent, "erc8004:hasFeedback", record)
    return record


def emit_validation_request(sink: TripleSink, ctx: AgentContext, row: Row) -> str:
    """Emit a validation request as the situation later responses answer."""
    chain_id = int(row.get("chainId") or ctx.chain_id or 0)
    situation = iris.validation_request_iri(chain_id, str(row["id"]))
    sink.types(
        situation,
        "erc8004:ValidationRequestSituation",
        "core:VerificationTrustSituation",
        "core:TrustSituation",
        "prov:Entity",
    )
    sink.add(situation, "core:isAboutAgent", ctx.agent)
    sink.add(situation, "erc8004:validationChainId", int_literal(chain_id))
    sink.add(situation, "erc8004:requestingAgentId", string_literal(ctx.record.external_agent_id))
    sink.add(situation, "erc8004:requestHash", string_literal(normalize_hash(row.get("requestHash"))))
    sink.add(situation, "core:createdAtTime", int_literal(row.get("createdAtTime")))
    sink.add(situation, "core:json", json_literal(row.get("requestJson")))
    validator = normalize_address(row.get("validatorAddress"))
    if validator:
        account = ensure_account(sink, chain_id, validator, "SmartAccount")
        sink.add(situation, "erc8004:validationValidator", account)
        sink.add(situation, "core:hasSituationParticipant", account)
    return situation


def emit_validation_response(
    sink: TripleSink,
    ctx: AgentContext,
    row: Row,
    requests_by_hash: Mapping[Tuple[int, str], str],
) -> str:
    """Emit a validation response and, when its request hash is known, link the request situation."""
    chain_id = int(row.get("chainId") or ctx.chain_id or 0)
    record = iris.validation_response_iri(chain_id, str(row["id"]))
    act = iris.act_iri(record)
    validator = normalize_address(row.get("validatorAddress"))
    validator_account = ensure_account(sink, chain_id, validator, "SmartAccount") if validator else None

    sink.types(
        record,
        "erc8004:ValidationResponse",
        "core:VerificationTrustAssertion",
        "core:TrustAssertion",
        "prov:Entity",
    )
    sink.add(record, "erc8004:validationChainIdForResponse", int_literal(chain_id))
    sink.add(record, "erc8004:requestingAgentIdForResponse", string_literal(ctx.record.external_agent_id))
    sink.add(record, "erc8004:validationResponseValue", int_literal(row.get("response")))
    sink.add(record, "erc8004:responseHash", string_literal(normalize_hash(row.get("responseHash"))))
    sink.add(record, "erc8004:validationTag", string_literal(_text(row.get("tag"))))
    sink.add(record, "core:createdAtTime", int_literal(row.get("createdAtTime")))
    sink.add(record, "core:json", json_literal(row.get("responseJson")))

    sink.types(
        act,
        "erc8004:ValidationResponseAct",
        "core:VerificationTrustAssertionAct",
        "core:TrustAssertionAct",
        "prov:Activity",
    )
    _link_record_and_act(sink, record, act)
    _associate(sink, record, act, validator_account)

    request_hash = normalize_hash(row.get("requestHash"))
    if request_hash:
        sink.add(record, "erc8004:requestHash", string_literal(request_hash))
        request = requests_by_hash.get((chain_id, request_hash))
        if request is not None:
            sink.add(record, "erc8004:validationRespondsToRequest", request)
            sink.add(record, "core:recordsSituation", request)
            sink.add(act, "core:assertsSituation", request)

    sink.add(ctx.agent, "core:hasVerificationAssertion", record)
    sink.add(ctx.agent, "erc8004:hasValidation", record)
    return record


def emit_validations(
    sink: TripleSink,
    ctx: AgentContext,
    requests: Iterable[Row],
    responses: Iterable[Row],
) -> List[str]:
    """Emit requests owned by this agent and every response; returns response IRIs.

    Requests of other agents are not emitted, but a response can still point
    at their situation IRI because request IRIs depend only on the request row.
    """
    requests_by_hash: Dict[Tuple[int, str], str] = {}
    for row in sorted(requests, key=lambda r: str(r.get("id"))):
        if row.get("id") is None:
            continue
        chain_id = int(row.get("chainId") or ctx.chain_id or 0)
        owned = (
            row.get("registrySourceId") in (None, ctx.record.registry_source_id)
            and str(row.get("externalAgentId", ctx.record.external_agent_id)) == ctx.record.external_agent_id
        )
        situation = (
            emit_validation_request(sink, ctx, row)
            if owned
            else iris.validation_request_iri(chain_id, str(row["id"]))
        )
        request_hash = normalize_hash(row.get("requestHash"))
        if request_hash:
            requests_by_hash.setdefault((chain_id, request_hash), situation)
    return [
        emit_validation_response(sink, ctx, row, requests_by_hash)
        for row in sorted(responses, key=lambda r: str(r.get("id")))
        if row.get("id") is not None
    ]


def emit_association(
    sink: TripleSink,
    ctx: AgentContext,
    row: Row,
    revocations: Iterable[Row] = (),
) -> str:
    """Emit an account association as Relationship, Situation, and assertion pair.

    Each revocation row adds its own assertion pair that references the
    original association assertion.

    Returns:
        str: IRI of the association assertion record.
    """
    chain_id = int(row.get("chainId") or 0)
    association_id = str(row["associationId"])
    initiator = normalize_address(row.get("initiator"))
    approver = normalize_address(row.get("approver"))
    initiator_account = ensure_account(sink, chain_id, initiator) if initiator else None
    approver_account = ensure_account(sink, chain_id, approver) if approver else None

    relationship = iris.relationship_iri(chain_id, association_id)
    situation = iris.situation_iri("relationship", str(chain_id), association_id)
    record = iris.relationship_assertion_iri(chain_id, association_id)
    act = iris.act_iri(record)

    sink.types(relationship, "core:Relationship", "prov:Entity")
    sink.add(relationship, "erc8092:associationId", string_literal(association_id))
    sink.add(relationship, "core:hasParticipant", initiator_account)
    sink.add(relationship, "core:hasParticipant", approver_account)

    sink.types(situation, "core:RelationshipTrustSituation", "core:RelationshipSituation", "core:TrustSituation", "prov:Entity")
    sink.add(situation, "core:aboutRelationship", relationship)
    sink.add(situation, "core:isAboutAgent", ctx.agent)
    sink.add(situation, "core:hasSituationParticipant", initiator_account)
    sink.add(situation, "core:hasSituationParticipant", approver_account)

    sink.types(record, "erc8092:AssociatedAccounts8092", "core:TrustAssertion", "prov:Entity")
    sink.add(record, "erc8092:associationId", string_literal(association_id))
    sink.add(record, "erc8092:initiator", initiator_account)
    sink.add(record, "erc8092:approver", approver_account)
    sink.add(record, "erc8092:interfaceId", string_literal(_text(row.get("interfaceId"))))
    sink.add(record, "erc8092:validAt", int_literal(row.get("validAt")))
    sink.add(record, "erc8092:validUntil", int_literal(row.get("validUntil")))
    sink.add(record, "erc8092:revokedAt", int_literal(row.get("revokedAt")))
    sink.add(record, "erc8092:dataHex", string_literal(_text(row.get("data"))))
    sink.add(record, "erc8092:createdTimestamp", int_literal(row.get("createdTimestamp")))
    sink.add(record, "core:assertsRelationship", relationship)
    sink.add(record, "core:recordsSituation", situation)

    sink.types(act, "erc8092:AssociatedAccountsAct8092", "core:TrustAssertionAct", "prov:Activity")
    sink.add(act, "core:assertsSituation", situation)
    _link_record_and_act(sink, record, act)
    _associate(sink, record, act, initiator_account)

    sink.add(ctx.agent, "erc8092:hasAssociatedAccounts", record)

    for revocation in sorted(revocations, key=lambda r: str(r.get("id"))):
        if revocation.get("id") is None:
            continue
        revocation_record = iris.relationship_revocation_iri(chain_id, str(revocation["id"]))
        revocation_act = iris.act_iri(revocation_record)
        sink.types(revocation_record, "erc8092:AssociatedAccountsRevocation8092", "core:TrustAssertion", "prov:Entity")
        sink.add(revocation_record, "erc8092:revocationOfAssociatedAccounts", record)
        sink.add(revocation_record, "erc8092:revokedAt", int_literal(revocation.get("revokedAt")))
        sink.add(revocation_record, "erc8092:revocationTxHash", string_literal(_text(revocation.get("txHash"))))
        sink.types(
            revocation_act,
            "erc8092:AssociatedAccountsRevocationAct8092",
            "core:TrustAssertionAct",
            "prov:Activity",
        )
        sink.add(revocation_act, "core:assertsSituation", situation)
        _link_record_and_act(sink, revocation_record, revocation_act)
    return record
