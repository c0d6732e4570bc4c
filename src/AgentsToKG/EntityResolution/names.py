"""Name normalization and canonical-record selection."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Tuple

__all__ = ["normalize_name_key", "canonical_sort_key", "pick_canonical"]


def normalize_name_key(name: Any) -> Optional[str]:
    """Trim, lower-case, and collapse internal whitespace; ``None`` when nothing is left."""
    if not isinstance(name, str):
        return None
    key = " ".join(name.split()).lower()
    return key or None


def _signal(value: Any) -> float:
    if value is None:
        return -1.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return -1.0


def canonical_sort_key(record: Mapping[str, Any]) -> Tuple[float, float, int]:
    """Sort key placing the canonical record first.

    Higher ``rating`` wins, then higher ``totalInteractions``, then the lowest
    ``internalId``. Missing signals count as -1.
    """
    return (
        -_signal(record.get("rating")),
        -_signal(record.get("totalInteractions")),
        int(record["internalId"]),
    )


def pick_canonical(records: Iterable[Mapping[str, Any]]) -> Mapping[str, Any]:
    """Return the canonical member of a group of records."""
    ordered = sorted(records, key=canonical_sort_key)
    if not ordered:
        raise ValueError("pick_canonical requires at least one record")
    return ordered[0]
