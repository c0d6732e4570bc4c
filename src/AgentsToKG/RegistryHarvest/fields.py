"""Table-driven extraction of agent fields from heterogeneous registry payloads.

Each registry declares an ordered tuple of :class:`FieldSpec` entries. For
every spec the candidate paths are tried in order and the first *non-empty*
value wins (``None``, blank strings, and empty containers count as empty).
Paths are dotted; integer segments index into lists, so
``"metadataFacet.rating.0"`` reads the first facet rating.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

__all__ = [
    "FieldSpec",
    "lookup_path",
    "first_present",
    "extract_fields",
    "as_text",
    "as_float",
    "as_int",
    "as_bool",
    "as_epoch_seconds",
    "as_json",
    "as_json_list",
    "as_endpoint",
    "string_list",
]

_MISSING = object()


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def lookup_path(item: Any, path: str) -> Any:
    """Resolve a dotted ``path`` inside nested mappings/lists; ``None`` when absent."""
    current = item
    for segment in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(segment, _MISSING)
        elif isinstance(current, (list, tuple)) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else _MISSING
        else:
            return None
        if current is _MISSING:
            return None
    return current


def first_present(item: Any, paths: Iterable[str]) -> Any:
    """Return the first non-empty value among ``paths``."""
    for path in paths:
        value = lookup_path(item, path)
        if not _is_empty(value):
            return value
    return None


# ----------------------------------------------------------------------------
# Coercion helpers; each returns None for values it cannot interpret.
# ----------------------------------------------------------------------------


def as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value).strip()
    return text or None


def as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def as_int(value: Any) -> Optional[int]:
    number = as_float(value)
    return int(number) if number is not None else None


def as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1", "online", "available"}:
            return True
        if lowered in {"false", "no", "0", "offline", "unavailable"}:
            return False
    return None


def as_epoch_seconds(value: Any) -> Optional[int]:
    """Accept epoch seconds, epoch milliseconds, or ISO-8601 strings."""
    number = as_float(value)
    if number is not None:
        return int(number / 1000) if number > 1e11 else int(number)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def as_json(value: Any) -> Optional[str]:
    if _is_empty(value):
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def string_list(value: Any) -> List[str]:
    """Flatten strings, comma lists, and lists of strings/named objects to strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, Mapping):
        named = first_present(value, ("name", "id", "key", "slug", "title"))
        return [str(named).strip()] if named is not None else []
    if isinstance(value, (list, tuple)):
        items: List[str] = []
        for entry in value:
            for text in string_list(entry):
                if text not in items:
                    items.append(text)
        return items
    text = as_text(value)
    return [text] if text else []


def as_json_list(value: Any) -> Optional[str]:
    items = string_list(value)
    return json.dumps(items, ensure_ascii=False) if items else None


def as_endpoint(value: Any) -> Optional[str]:
    """First endpoint string, or ``url``/``endpoint``/``href`` of the first object."""
    if isinstance(value, str):
        return as_text(value)
    if isinstance(value, Mapping):
        return as_text(first_present(value, ("url", "endpoint", "href")))
    if isinstance(value, (list, tuple)):
        for entry in value:
            found = as_endpoint(entry)
            if found:
                return found
    return None


@dataclass(frozen=True)
class FieldSpec:
    """Ordered candidate paths for one :class:`AgentRecord` attribute."""

    attribute: str
    candidates: Sequence[str]
    coerce: Callable[[Any], Any] = as_text

    def extract(self, item: Mapping[str, Any]) -> Any:
        for path in self.candidates:
            value = self.coerce(lookup_path(item, path))
            if not _is_empty(value):
                return value
        return None


def extract_fields(item: Mapping[str, Any], specs: Iterable[FieldSpec]) -> Dict[str, Any]:
    """Apply ``specs`` to ``item``; attributes with no usable value are omitted."""
    extracted: Dict[str, Any] = {}
    for spec in specs:
        value = spec.extract(item)
        if value is not None:
            extracted[spec.attribute] = value
    return extracted
