# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.EntityResolution.crossref",
#   "purpose": "Cross-registry linking by shared id, then by normalized name",
#   "sections": [
#     {
#       "id": "crossref-result",
#       "name": "CrossrefResult",
#       "anchor": "class-crossref-result",
#       "kind": "class"
#     },
#     {
#       "id": "name-match-reason",
#       "name": "name_match_reason",
#       "anchor": "function-name-match-reason",
#       "kind": "function"
#     },
#     {
#       "id": "cross-reference",
#       "name": "cross_reference",
#       "anchor": "function-cross-reference",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Cross-registry linking by shared id, then by normalized name.

A link is a pair of pointers written on both records:
``crossrefOtherRegistry`` / ``crossrefOtherRegistryInternalId``. Links are
built in memory and flushed in one batch per store, and every relink clears
the pointer left behind on the previous counterpart, so ``A -> B`` holds
exactly when ``B -> A`` holds.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from ..storage.base import RelationalStore, Statement
from ..storage.records import load_agent_rows
from .names import canonical_sort_key, normalize_name_key

logger = logging.getLogger(__name__)

__all__ = ["CrossrefResult", "name_match_reason", "cross_reference"]

_UPDATE_ANNOTATIONS = (
    "UPDATE agents SET isDuplicate = :isDuplicate, duplicateOfInternalId = :duplicateOfInternalId, "
    "duplicateReason = :duplicateReason, crossrefOtherRegistry = :crossrefOtherRegistry, "
    "crossrefOtherRegistryInternalId = :crossrefOtherRegistryInternalId "
    "WHERE internalId = :internalId"
)


@dataclass
class CrossrefResult:
    """Counters reported by :func:`cross_reference`."""

    linked_by_id: int = 0
    linked_by_name: int = 0
    skipped_conflicts: int = 0


def name_match_reason(registry_b: str, key: str) -> str:
    return f"name-match-{registry_b}:{key}"


@dataclass
class _Side:
    registry: str
    rows: Dict[int, Dict[str, Any]]
    dirty: Set[int] = field(default_factory=set)

    def points_to(self, row: Dict[str, Any], other: "_Side", other_id: int) -> bool:
        return (
            row.get("crossrefOtherRegistry") == other.registry
            and row.get("crossrefOtherRegistryInternalId") is not None
            and int(row["crossrefOtherRegistryInternalId"]) == other_id
        )


class _Linker:
    def __init__(self, side_a: _Side, side_b: _Side) -> None:
        self.a = side_a
        self.b = side_b

    def _clear(self, side: _Side, row_id: int, other: _Side, expected_other_id: int) -> None:
        row = side.rows.get(row_id)
        if row is None or not side.points_to(row, other, expected_other_id):
            return
        row["crossrefOtherRegistry"] = None
        row["crossrefOtherRegistryInternalId"] = None
        if side is self.a and str(row.get("duplicateReason") or "").startswith(f"name-match-{other.registry}:"):
            row["isDuplicate"] = 0
            row["duplicateReason"] = None
            row["duplicateOfInternalId"] = None
        side.dirty.add(row_id)

    def unlink(self, row_a: Dict[str, Any]) -> None:
        """Drop ``row_a``'s link to side B on both records."""
        previous_b = row_a.get("crossrefOtherRegistryInternalId")
        if row_a.get("crossrefOtherRegistry") != self.b.registry or previous_b is None:
            return
        a_id = int(row_a["internalId"])
        self._clear(self.b, int(previous_b), self.a, a_id)
        self._clear(self.a, a_id, self.b, int(previous_b))

    def link(self, row_a: Dict[str, Any], row_b: Dict[str, Any]) -> None:
        a_id = int(row_a["internalId"])
        b_id = int(row_b["internalId"])
        previous_b = row_a.get("crossrefOtherRegistryInternalId")
        if row_a.get("crossrefOtherRegistry") == self.b.registry and previous_b is not None and int(previous_b) != b_id:
            self._clear(self.b, int(previous_b), self.a, a_id)
        previous_a = row_b.get("crossrefOtherRegistryInternalId")
        if row_b.get("crossrefOtherRegistry") == self.a.registry and previous_a is not None and int(previous_a) != a_id:
            self._clear(self.a, int(previous_a), self.b, b_id)

        row_a["crossrefOtherRegistry"] = self.b.registry
        row_a["crossrefOtherRegistryInternalId"] = b_id
        row_b["crossrefOtherRegistry"] = self.a.registry
        row_b["crossrefOtherRegistryInternalId"] = a_id
        self.a.dirty.add(a_id)
        self.b.dirty.add(b_id)


def _name_key(row: Dict[str, Any]) -> Optional[str]:
    return row.get("nameNorm") or normalize_name_key(row.get("name"))


def _flush(store: RelationalStore, side: _Side) -> None:
    statements: List[Statement] = []
    for row_id in sorted(side.dirty):
        row = side.rows[row_id]
        statements.append(
            Statement(
                _UPDATE_ANNOTATIONS,
                {
                    "isDuplicate": row.get("isDuplicate"),
                    "duplicateOfInternalId": row.get("duplicateOfInternalId"),
                    "duplicateReason": row.get("duplicateReason"),
                    "crossrefOtherRegistry": row.get("crossrefOtherRegistry"),
                    "crossrefOtherRegistryInternalId": row.get("crossrefOtherRegistryInternalId"),
                    "internalId": row_id,
                },
            )
        )
    if statements:
        store.batch(statements)


def cross_reference(
    store_a: RelationalStore,
    registry_a: str,
    store_b: RelationalStore,
    registry_b: str,
) -> CrossrefResult:
    """Link records of ``registry_a`` to records of ``registry_b``.

    Pass 1 links records whose ``externalAgentId`` is equal and clears any
    stale ``name-match`` mark on the A record. Pass 2 takes every A
    record not linked by id, including name links from earlier runs, and links
    it to B's current canonical record of the same normalized name, unless that
    B record is already linked elsewhere. A name link whose target is no longer
    B's canonical is dropped. A linked record is marked
    ``isDuplicate=1`` with reason ``name-match-<registry_b>:<key>`` (no
    ``duplicateOfInternalId``, since the canonical lives in another registry).

    The two stores may be the same store.

    Returns:
        CrossrefResult: Link counts per pass.
    """

    if registry_a == registry_b:
        raise ValueError("cross_reference requires two different registries")

    side_a = _Side(registry_a, {int(r["internalId"]): dict(r) for r in load_agent_rows(store_a, registry_a)})
    side_b = _Side(registry_b, {int(r["internalId"]): dict(r) for r in load_agent_rows(store_b, registry_b)})
    linker = _Linker(side_a, side_b)
    result = CrossrefResult()

    b_by_external: Dict[str, Dict[str, Any]] = {}
    for row in sorted(side_b.rows.values(), key=lambda r: int(r["internalId"])):
        b_by_external.setdefault(str(row["externalAgentId"]), row)

    linked_by_id: Set[int] = set()
    for a_id in sorted(side_a.rows):
        row_a = side_a.rows[a_id]
        row_b = b_by_external.get(str(row_a["externalAgentId"]))
        if row_b is None:
            continue
        linker.link(row_a, row_b)
        if str(row_a.get("duplicateReason") or "").startswith("name-match-"):
            row_a["isDuplicate"] = 0
            row_a["duplicateReason"] = None
            row_a["duplicateOfInternalId"] = None
        linked_by_id.add(a_id)
        result.linked_by_id += 1

    b_groups: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for row in side_b.rows.values():
        key = _name_key(row)
        if key:
            b_groups[key].append(row)
    b_canonical: Dict[str, Dict[str, Any]] = {}
    for key, members in b_groups.items():
        preferred = [row for row in members if not row.get("isDuplicate")] or members
        b_canonical[key] = sorted(preferred, key=canonical_sort_key)[0]

    def _a_order(row: Dict[str, Any]):
        return (1 if row.get("isDuplicate") else 0, int(row["internalId"]))

    for row_a in sorted(side_a.rows.values(), key=_a_order):
        a_id = int(row_a["internalId"])
        if a_id in linked_by_id:
            continue
        linked_to = row_a.get("crossrefOtherRegistry")
        if linked_to and linked_to != registry_b:
            continue
        key = _name_key(row_a)
        row_b = b_canonical.get(key) if key else None
        if row_b is None:
            if linked_to:
                linker.unlink(row_a)
            continue
        if row_b.get("crossrefOtherRegistry") and not side_b.points_to(row_b, side_a, a_id):
            result.skipped_conflicts += 1
            if linked_to:
                linker.unlink(row_a)
            continue
        linker.link(row_a, row_b)
        row_a["isDuplicate"] = 1
        row_a["duplicateOfInternalId"] = None
        row_a["duplicateReason"] = name_match_reason(registry_b, key)
        side_a.dirty.add(a_id)
        result.linked_by_name += 1

    _flush(store_a, side_a)
    _flush(store_b, side_b)
    logger.info(
        "crossref %s<->%s: %d by id, %d by name",
        registry_a,
        registry_b,
        result.linked_by_id,
        result.linked_by_name,
        extra={"registry": registry_a, "stage": "crossref"},
    )
    return result
