# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.GraphCompile.compiler",
#   "purpose": "Per-agent compilation and resumable registry-wide Turtle output",
#   "sections": [
#     {
#       "id": "taxonomy",
#       "name": "Taxonomy",
#       "anchor": "class-taxonomy",
#       "kind": "class"
#     },
#     {
#       "id": "child-records",
#       "name": "ChildRecords",
#       "anchor": "class-child-records",
#       "kind": "class"
#     },
#     {
#       "id": "compile-agent",
#       "name": "compile_agent",
#       "anchor": "function-compile-agent",
#       "kind": "function"
#     },
#     {
#       "id": "compile-result",
#       "name": "CompileResult",
#       "anchor": "class-compile-result",
#       "kind": "class"
#     },
#     {
#       "id": "compile-checkpoint-key",
#       "name": "compile_checkpoint_key",
#       "anchor": "function-compile-checkpoint-key",
#       "kind": "function"
#     },
#     {
#       "id": "default-output-path",
#       "name": "default_output_path",
#       "anchor": "function-default-output-path",
#       "kind": "function"
#     },
#     {
#       "id": "compile-all",
#       "name": "compile_all",
#       "anchor": "function-compile-all",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Compile agent rows and their child records into Turtle.

:func:`compile_agent` is pure: the same record, children, and taxonomy always
yield the same sorted, deduplicated triple list. :func:`compile_all` walks one
registry in ``externalAgentId`` order, appends each batch to a Turtle file,
and records a watermark checkpoint after every batch so an interrupted run can
continue with ``resume=True``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence

from ..errors import CompileError
from ..storage.base import RelationalStore, Row
from ..storage.checkpoints import CheckpointStore
from ..storage.records import AgentRecord, load_agent_skills, load_agents
from .agents import (
    agent_context,
    emit_accounts,
    emit_agent_descriptor,
    emit_agent_node,
    emit_identities,
    emit_protocols,
    normalize_address,
)
from .assertions import emit_association, emit_feedback, emit_validations, normalize_hash
from .turtle import Triple, TripleSink, render_prefixes, render_turtle

logger = logging.getLogger(__name__)

__all__ = [
    "Taxonomy",
    "ChildRecords",
    "CompileResult",
    "compile_agent",
    "compile_all",
    "compile_checkpoint_key",
    "default_output_path",
]


def _taxonomy_key(value: str) -> str:
    return value.strip().strip("/")


@dataclass(frozen=True)
class Taxonomy:
    """Shared skill and domain keys that are linked rather than redefined."""

    skills: FrozenSet[str] = frozenset()
    domains: FrozenSet[str] = frozenset()

    @classmethod
    def from_keys(cls, skills: Iterable[str] = (), domains: Iterable[str] = ()) -> "Taxonomy":
        return cls(
            skills=frozenset(_taxonomy_key(key) for key in skills if key and key.strip()),
            domains=frozenset(_taxonomy_key(key) for key in domains if key and key.strip()),
        )

    @classmethod
    def load(cls, store: RelationalStore) -> "Taxonomy":
        """Read ``oasf_skills`` and ``oasf_domains`` from ``store``."""
        skills = [row["key"] for row in store.all("SELECT key FROM oasf_skills")]
        domains = [row["key"] for row in store.all("SELECT key FROM oasf_domains")]
        return cls.from_keys(skills, domains)

    def has_skill(self, key: str) -> bool:
        return _taxonomy_key(key) in self.skills

    def has_domain(self, key: str) -> bool:
        return _taxonomy_key(key) in self.domains


@dataclass
class ChildRecords:
    """Rows attached to one agent, as read from the child tables."""

    skills: List[str] = field(default_factory=list)
    feedbacks: List[Row] = field(default_factory=list)
    validation_requests: List[Row] = field(default_factory=list)
    validation_responses: List[Row] = field(default_factory=list)
    associations: List[Row] = field(default_factory=list)
    revocations: List[Row] = field(default_factory=list)
    duplicate_of: Optional[AgentRecord] = None
    counterpart: Optional[AgentRecord] = None

    @classmethod
    def load(cls, store: RelationalStore, record: AgentRecord) -> "ChildRecords":
        """Load every child row of ``record`` from ``store``."""
        registry = record.registry_source_id
        external_id = record.external_agent_id
        agent_params = {"registry": registry, "external": external_id}
        feedbacks = store.all(
            "SELECT * FROM rep_feedbacks WHERE registrySourceId = :registry AND externalAgentId = :external "
            "ORDER BY id",
            agent_params,
        )
        responses = store.all(
            "SELECT * FROM validation_responses WHERE registrySourceId = :registry "
            "AND externalAgentId = :external ORDER BY id",
            agent_params,
        )
        requests = store.all(
            "SELECT * FROM validation_requests WHERE registrySourceId = :registry "
            "AND externalAgentId = :external ORDER BY id",
            agent_params,
        )
        requests.extend(_requests_by_hash(store, responses, {str(row["id"]) for row in requests}))
        associations = _associations_for(store, record)
        revocations = _revocations_for(store, associations)
        return cls(
            skills=list(load_agent_skills(store, registry, external_id)),
            feedbacks=feedbacks,
            validation_requests=requests,
            validation_responses=responses,
            associations=associations,
            revocations=revocations,
            duplicate_of=_agent_by_internal_id(store, record.duplicate_of_internal_id),
            counterpart=_agent_by_internal_id(
                store, record.crossref_other_registry_internal_id, registry=record.crossref_other_registry
            ),
        )


def _agent_by_internal_id(
    store: RelationalStore, internal_id: Optional[int], *, registry: Optional[str] = None
) -> Optional[AgentRecord]:
    if internal_id is None:
        return None
    sql = "SELECT * FROM agents WHERE internalId = :id"
    params: Dict[str, Any] = {"id": int(internal_id)}
    if registry is not None:
        sql += " AND registrySourceId = :registry"
        params["registry"] = registry
    row = store.first(sql, params)
    return AgentRecord.model_validate(row) if row else None


def _requests_by_hash(store: RelationalStore, responses: Sequence[Row], known_ids: set) -> List[Row]:
    found: List[Row] = []
    for request_hash in sorted({normalize_hash(row.get("requestHash")) for row in responses} - {None}):
        for row in store.all(
            "SELECT * FROM validation_requests WHERE lower(requestHash) = lower(?) ORDER BY id",
            [request_hash],
        ):
            if str(row["id"]) not in known_ids:
                known_ids.add(str(row["id"]))
                found.append(row)
    return found


def _agent_addresses(record: AgentRecord) -> List[str]:
    candidates = (record.agent_account, record.eoa_agent_account, record.agent_identity_owner_account)
    return sorted({address for address in map(normalize_address, candidates) if address})


def _associations_for(store: RelationalStore, record: AgentRecord) -> List[Row]:
    addresses = _agent_addresses(record)
    if not addresses:
        return []
    clauses = []
    params: Dict[str, Any] = {"chain": int(record.chain_id or 0)}
    for position, address in enumerate(addresses):
        clauses.append(f"lower(initiator) LIKE :a{position} OR lower(approver) LIKE :a{position}")
        params[f"a{position}"] = f"%{address[2:]}"
    rows = store.all(
        f"SELECT * FROM associations WHERE chainId = :chain AND ({' OR '.join(clauses)}) ORDER BY associationId",
        params,
    )
    wanted = set(addresses)
    return [
        row
        for row in rows
        if normalize_address(row.get("initiator")) in wanted or normalize_address(row.get("approver")) in wanted
    ]


def _revocations_for(store: RelationalStore, associations: Sequence[Row]) -> List[Row]:
    revocations: List[Row] = []
    for row in associations:
        revocations.extend(
            store.all(
                "SELECT * FROM association_revocations WHERE chainId = ? AND associationId = ? ORDER BY id",
                [row["chainId"], row["associationId"]],
            )
        )
    return revocations


def compile_agent(
    record: AgentRecord,
    children: Optional[ChildRecords] = None,
    taxonomy: Optional[Taxonomy] = None,
) -> List[Triple]:
    """Compile one agent and its child records.

    Args:
        record: Agent row.
        children: Child rows; ``None`` compiles the agent alone.
        taxonomy: Shared skill/domain keys to link by reference.

    Returns:
        list[Triple]: Sorted, deduplicated statements.
    """

    children = children or ChildRecords()
    ctx = agent_context(record)
    sink = TripleSink()

    emit_agent_node(
        sink,
        ctx,
        feedback_count=len(children.feedbacks),
        validation_count=sum(1 for row in children.validation_responses if row.get("id") is not None),
        duplicate_of=children.duplicate_of,
        counterpart=children.counterpart,
    )
    accounts = emit_accounts(sink, ctx)
    identity_descriptor = emit_identities(sink, ctx, accounts)
    emit_agent_descriptor(sink, ctx, taxonomy, children.skills)
    emit_protocols(sink, ctx, identity_descriptor, taxonomy, children.skills)

    for row in children.feedbacks:
        emit_feedback(sink, ctx, row)
    emit_validations(sink, ctx, children.validation_requests, children.validation_responses)

    revocations_by_key: Dict[tuple, List[Row]] = {}
    for row in children.revocations:
        revocations_by_key.setdefault((int(row.get("chainId") or 0), str(row.get("associationId"))), []).append(row)
    for row in children.associations:
        if row.get("associationId") is None:
            continue
        key = (int(row.get("chainId") or 0), str(row["associationId"]))
        emit_association(sink, ctx, row, revocations_by_key.get(key, ()))

    return sink.triples()


@dataclass
class CompileResult:
    """Outcome of :func:`compile_all`."""

    outputs: List[Path] = field(default_factory=list)
    agent_count: int = 0
    triple_count: int = 0
    resumed_from: Optional[str] = None


def compile_checkpoint_key(registry_source_id: str) -> str:
    return f"compile:{registry_source_id}"


def default_output_path(registry_source_id: str, directory: Optional[Path] = None) -> Path:
    safe = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in registry_source_id)
    return (directory or Path.cwd()) / f"agents-{safe}.ttl"


def compile_all(
    store: RelationalStore,
    registry_source_id: str,
    *,
    out_path: Optional[Path] = None,
    resume: bool = False,
    batch_size: int = 200,
    taxonomy: Optional[Taxonomy] = None,
) -> CompileResult:
    """Compile every agent of ``registry_source_id`` into one Turtle file.

    Agents are read in ``externalAgentId`` order in batches of ``batch_size``.
    After each batch is appended to the file, the checkpoint
    ``compile:<registry>`` stores the last ``externalAgentId`` written. With
    ``resume=True`` the run continues after that watermark and appends to the
    existing file; when that file is missing the run starts over from the first
    agent. Otherwise the file is rewritten from scratch. The
    checkpoint is deleted once the registry has been fully compiled.

    Args:
        store: Source store.
        registry_source_id: Registry to compile.
        out_path: Target Turtle file (defaults to ``./agents-<registry>.ttl``).
        resume: Continue after the stored watermark.
        batch_size: Agents per batch and checkpoint.
        taxonomy: Shared taxonomy; loaded from ``store`` when omitted.

    Returns:
        CompileResult: Written files, agent count, and triple count.

    Raises:
        CompileError: When the output file cannot be written.
    """

    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    target = Path(out_path) if out_path is not None else default_output_path(registry_source_id)
    checkpoints = CheckpointStore(store)
    key = compile_checkpoint_key(registry_source_id)
    taxonomy = taxonomy if taxonomy is not None else Taxonomy.load(store)

    watermark: Optional[str] = None
    if resume:
        stored = checkpoints.get(key) or {}
        if stored.get("registrySourceId") == registry_source_id and stored.get("externalAgentId") is not None:
            watermark = str(stored["externalAgentId"])
    if watermark is not None and not target.exists():
        logger.warning(
            "output %s is missing; compiling %s from the start",
            target,
            registry_source_id,
            extra={"registry": registry_source_id, "stage": "compile", "record_key": watermark},
        )
        watermark = None
    append = watermark is not None

    result = CompileResult(outputs=[target], resumed_from=watermark)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("a" if append else "w", encoding="utf-8") as handle:
            if not append:
                handle.write(render_prefixes() + "\n")
            while True:
                batch = load_agents(store, registry_source_id, after_external_id=watermark, limit=batch_size)
                if not batch:
                    break
                sink = TripleSink()
                for record in batch:
                    sink.extend(compile_agent(record, ChildRecords.load(store, record), taxonomy))
                handle.write(render_turtle(sink.triples(), header=False))
                handle.flush()
                watermark = batch[-1].external_agent_id
                checkpoints.set(
                    key,
                    {"registrySourceId": registry_source_id, "externalAgentId": watermark, "at": int(time.time())},
                )
                result.agent_count += len(batch)
                result.triple_count += len(sink)
                logger.info(
                    "compiled %d agents",
                    result.agent_count,
                    extra={"registry": registry_source_id, "stage": "compile", "record_key": watermark},
                )
    except OSError as exc:
        raise CompileError(f"Cannot write {target}: {exc}") from exc

    checkpoints.delete(key)
    logger.info(
        "compile finished: %d agents, %d triples -> %s",
        result.agent_count,
        result.triple_count,
        target,
        extra={"registry": registry_source_id, "stage": "compile"},
    )
    return result
