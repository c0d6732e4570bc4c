# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.GraphCompile.turtle",
#   "purpose": "Turtle literal escaping, safe IRIs and deterministic rendering",
#   "sections": [
#     {
#       "id": "escape-literal",
#       "name": "escape_literal",
#       "anchor": "function-escape-literal",
#       "kind": "function"
#     },
#     {
#       "id": "is-safe-absolute-iri",
#       "name": "is_safe_absolute_iri",
#       "anchor": "function-is-safe-absolute-iri",
#       "kind": "function"
#     },
#     {
#       "id": "string-literal",
#       "name": "string_literal",
#       "anchor": "function-string-literal",
#       "kind": "function"
#     },
#     {
#       "id": "iri-or-literal",
#       "name": "iri_or_literal",
#       "anchor": "function-iri-or-literal",
#       "kind": "function"
#     },
#     {
#       "id": "json-literal",
#       "name": "json_literal",
#       "anchor": "function-json-literal",
#       "kind": "function"
#     },
#     {
#       "id": "int-literal",
#       "name": "int_literal",
#       "anchor": "function-int-literal",
#       "kind": "function"
#     },
#     {
#       "id": "decimal-literal",
#       "name": "decimal_literal",
#       "anchor": "function-decimal-literal",
#       "kind": "function"
#     },
#     {
#       "id": "bool-literal",
#       "name": "bool_literal",
#       "anchor": "function-bool-literal",
#       "kind": "function"
#     },
#     {
#       "id": "datetime-literal",
#       "name": "datetime_literal",
#       "anchor": "function-datetime-literal",
#       "kind": "function"
#     },
#     {
#       "id": "triple",
#       "name": "Triple",
#       "anchor": "class-triple",
#       "kind": "class"
#     },
#     {
#       "id": "triple-sink",
#       "name": "TripleSink",
#       "anchor": "class-triple-sink",
#       "kind": "class"
#     },
#     {
#       "id": "render-prefixes",
#       "name": "render_prefixes",
#       "anchor": "function-render-prefixes",
#       "kind": "function"
#     },
#     {
#       "id": "render-turtle",
#       "name": "render_turtle",
#       "anchor": "function-render-turtle",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Turtle tokens: literal escaping, safe IRIs, triples, and rendering.

Every term of a :class:`Triple` is an already-rendered Turtle token (``<iri>``,
``prefix:local``, a quoted literal, or a typed literal). Source data only ever
reaches a token through the helpers below, so a hostile value can end up as a
string literal but never as structure.

Example:
    >>> sink = TripleSink()
    >>> sink.add("<https://example.org/a>", "rdfs:label", string_literal('say "hi"'))
    >>> render_turtle(sink.triples(), header=False).splitlines()[0]
    '<https://example.org/a> rdfs:label "say \\\\"hi\\\\"" .'
"""

from __future__ import annotations

import math
import re
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Set

__all__ = [
    "PREFIXES",
    "Triple",
    "TripleSink",
    "escape_literal",
    "is_safe_absolute_iri",
    "iri_or_literal",
    "string_literal",
    "json_literal",
    "int_literal",
    "decimal_literal",
    "bool_literal",
    "datetime_literal",
    "render_prefixes",
    "render_turtle",
]

PREFIXES: "OrderedDict[str, str]" = OrderedDict(
    [
        ("owl", "http://www.w3.org/2002/07/owl#"),
        ("rdf", "http://www.w3.org/1999/02/22-rdf-syntax-ns#"),
        ("rdfs", "http://www.w3.org/2000/01/rdf-schema#"),
        ("xsd", "http://www.w3.org/2001/XMLSchema#"),
        ("prov", "http://www.w3.org/ns/prov#"),
        ("dcterms", "http://purl.org/dc/terms/"),
        ("schema", "http://schema.org/"),
        ("core", "https://agentictrust.io/ontology/core#"),
        ("erc8004", "https://agentictrust.io/ontology/erc8004#"),
        ("erc8092", "https://agentictrust.io/ontology/erc8092#"),
        ("eth", "https://agentictrust.io/ontology/eth#"),
        ("oasf", "https://agentictrust.io/ontology/oasf#"),
        ("ens", "https://agentictrust.io/ontology/ens#"),
        ("hol", "https://agentictrust.io/ontology/hol#"),
    ]
)

_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")
_UNSAFE_IRI_CHARS = re.compile(r"[<>\"\s\\{}|^`\x00-\x1f\x7f]")
_RDF_TYPE = "a"


def escape_literal(value: str) -> str:
    """Escape backslash, double quote, carriage return, and newline."""
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\r", "\\r")
        .replace("\n", "\\n")
    )


def is_safe_absolute_iri(value: str) -> bool:
    """Return ``True`` when ``value`` can be written as ``<value>`` without risk.

    The value must start with a URI scheme and contain no whitespace, control
    characters, or any of ``<>"\\{}|^```.
    """
    if not isinstance(value, str) or not _SCHEME.match(value):
        return False
    return _UNSAFE_IRI_CHARS.search(value) is None


def string_literal(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return f'"{escape_literal(text)}"' if text.strip() else None


def iri_or_literal(value: Any) -> Optional[str]:
    """Emit URL-like values as IRIs when safe, otherwise as string literals."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if is_safe_absolute_iri(text):
        return f"<{text}>"
    return f'"{escape_literal(text)}"'


def json_literal(text: Optional[str]) -> Optional[str]:
    """Long-string literal typed ``xsd:string`` holding verbatim JSON."""
    if text is None or not str(text).strip():
        return None
    return f'"""{escape_literal(str(text))}"""^^xsd:string'


def int_literal(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return str(int(value))
    except (TypeError, ValueError):
        return None


def decimal_literal(value: Any) -> Optional[str]:
    """Numeric token for a finite number (``4.5``, ``5.0``, ``1e-05``)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return repr(number)


def bool_literal(value: Any) -> Optional[str]:
    if value is None:
        return None
    return "true" if bool(value) else "false"


def datetime_literal(epoch_seconds: Any) -> Optional[str]:
    """``xsd:dateTime`` literal (UTC) for unix seconds."""
    if epoch_seconds is None or isinstance(epoch_seconds, bool):
        return None
    try:
        moment = datetime.fromtimestamp(int(epoch_seconds), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
    return f'"{moment.strftime("%Y-%m-%dT%H:%M:%SZ")}"^^xsd:dateTime'


@dataclass(frozen=True, order=True)
class Triple:
    """One statement made of rendered Turtle tokens."""

    subject: str
    predicate: str
    object: str

    def sort_key(self):
        return (self.subject, self.predicate != _RDF_TYPE, self.predicate, self.object)


class TripleSink:
    """Set-backed collector; ``None`` objects are dropped silently."""

    def __init__(self) -> None:
        self._triples: Set[Triple] = set()

    def __len__(self) -> int:
        return len(self._triples)

    def add(self, subject: str, predicate: str, obj: Optional[str]) -> None:
        if obj is None:
            return
        self._triples.add(Triple(subject, predicate, obj))

    def types(self, subject: str, *classes: str) -> None:
        for cls in classes:
            self._triples.add(Triple(subject, _RDF_TYPE, cls))

    def extend(self, triples: Iterable[Triple]) -> None:
        self._triples.update(triples)

    def triples(self) -> List[Triple]:
        """Deduplicated triples, ``rdf:type`` first within each subject."""
        return sorted(self._triples, key=Triple.sort_key)


def render_prefixes(prefixes: Mapping[str, str] = PREFIXES) -> str:
    return "".join(f"@prefix {name}: <{namespace}> .\n" for name, namespace in prefixes.items())


def render_turtle(
    triples: Iterable[Triple],
    *,
    prefixes: Mapping[str, str] = PREFIXES,
    header: bool = True,
) -> str:
    """Render triples as Turtle, one subject block per subject.

    The output is a pure function of the triple set: triples are deduplicated
    and sorted before rendering.

    Args:
        triples: Statements to render.
        prefixes: Prefix declarations written when ``header`` is true.
        header: Emit ``@prefix`` lines first.

    Returns:
        str: Turtle document text.
    """

    ordered = sorted(set(triples), key=Triple.sort_key)
    parts: List[str] = [render_prefixes(prefixes) + "\n"] if header else []
    index = 0
    while index < len(ordered):
        subject = ordered[index].subject
        block: List[Triple] = []
        while index < len(ordered) and ordered[index].subject == subject:
            block.append(ordered[index])
            index += 1
        lines = [f"{subject} {block[0].predicate} {block[0].object}"]
        lines.extend(f"    {triple.predicate} {triple.object}" for triple in block[1:])
        parts.append(" ;\n".join(lines) + " .\n\n")
    return "".join(parts)
