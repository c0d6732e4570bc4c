"""Within-registry duplicate marking by normalized name."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List

from ..storage.base import RelationalStore, Statement
from ..storage.records import load_agent_rows
from .names import normalize_name_key, pick_canonical

logger = logging.getLogger(__name__)

__all__ = ["DedupResult", "DUP_REASON_PREFIX", "deduplicate_within_registry"]

DUP_REASON_PREFIX = "name-dup:"

_MARK_CANONICAL = (
    "UPDATE agents SET isDuplicate = 0, duplicateOfInternalId = NULL, duplicateReason = NULL "
    "WHERE internalId = ?"
)
_MARK_DUPLICATE = (
    "UPDATE agents SET isDuplicate = 1, duplicateOfInternalId = ?, duplicateReason = ? "
    "WHERE internalId = ?"
)


@dataclass
class DedupResult:
    """Counters reported by :func:`deduplicate_within_registry`."""

    records: int = 0
    groups: int = 0
    duplicates: int = 0


def deduplicate_within_registry(store: RelationalStore, registry_source_id: str) -> DedupResult:
    """Mark same-name records of one registry as duplicates of a canonical record.

    Records are grouped by ``nameNorm``. In every group of two or more, the
    canonical record (see :func:`pick_canonical`) is cleared and every other
    member gets ``isDuplicate=1``, ``duplicateOfInternalId=<canonical>`` and
    ``duplicateReason="name-dup:<key>"``. Stale ``name-dup`` marks on records
    that no longer share a name are cleared. A canonical record is always
    cleared, including a ``name-match`` mark left by :func:`cross_reference`;
    the next cross-reference run re-evaluates that link.

    Args:
        store: Store holding the registry.
        registry_source_id: Registry to deduplicate.

    Returns:
        DedupResult: Record, group, and duplicate counts.
    """

    rows = load_agent_rows(store, registry_source_id)
    groups: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for row in rows:
        key = row.get("nameNorm") or normalize_name_key(row.get("name"))
        if key:
            groups[key].append(row)

    result = DedupResult(records=len(rows))
    statements: List[Statement] = []
    for key in sorted(groups):
        members = groups[key]
        if len(members) < 2:
            solo = members[0]
            if str(solo.get("duplicateReason") or "").startswith(DUP_REASON_PREFIX):
                statements.append(Statement(_MARK_CANONICAL, [solo["internalId"]]))
            continue
        canonical = pick_canonical(members)
        canonical_id = int(canonical["internalId"])
        result.groups += 1
        statements.append(Statement(_MARK_CANONICAL, [canonical_id]))
        for member in members:
            member_id = int(member["internalId"])
            if member_id == canonical_id:
                continue
            statements.append(
                Statement(_MARK_DUPLICATE, [canonical_id, f"{DUP_REASON_PREFIX}{key}", member_id])
            )
            result.duplicates += 1

    if statements:
        store.batch(statements)
    logger.info(
        "dedup %s: %d groups, %d duplicates",
        registry_source_id,
        result.groups,
        result.duplicates,
        extra={"registry": registry_source_id, "stage": "dedup"},
    )
    return result
