# === NAVMAP v1 ===
# {
#   "module": "AgentsToKG.GraphPublish.publisher",
#   "purpose": "Bulk and single-entity publishing with aggregate recount",
#   "sections": [
#     {
#       "id": "publish-result",
#       "name": "PublishResult",
#       "anchor": "class-publish-result",
#       "kind": "class"
#     },
#     {
#       "id": "prepare-payload",
#       "name": "prepare_payload",
#       "anchor": "function-prepare-payload",
#       "kind": "function"
#     },
#     {
#       "id": "recount-sparql",
#       "name": "recount_sparql",
#       "anchor": "function-recount-sparql",
#       "kind": "function"
#     },
#     {
#       "id": "publish-context",
#       "name": "publish_context",
#       "anchor": "function-publish-context",
#       "kind": "function"
#     },
#     {
#       "id": "publish-file",
#       "name": "publish_file",
#       "anchor": "function-publish-file",
#       "kind": "function"
#     },
#     {
#       "id": "publish-single-entity",
#       "name": "publish_single_entity",
#       "anchor": "function-publish-single-entity",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Publish compiled statements into a named graph.

Two modes share one validation step:

* :func:`publish_context` (bulk) optionally clears the context, then uploads.
* :func:`publish_single_entity` (incremental) uploads without clearing, then
  recomputes the cached ``core:feedbackAssertionCount`` and
  ``core:validationAssertionCount`` of the affected agent(s) with a SPARQL
  update scoped to the context.

Payloads are parsed with rdflib before any request is sent; malformed Turtle
raises :class:`PublishError` and the store is left untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import rdflib

from ..errors import PublishError
from ..GraphCompile.turtle import PREFIXES, Triple, render_turtle
from .graphdb import GraphStoreClient

logger = logging.getLogger(__name__)

__all__ = [
    "PublishResult",
    "Statements",
    "prepare_payload",
    "recount_sparql",
    "publish_context",
    "publish_file",
    "publish_single_entity",
]

Statements = Union[str, Sequence[Triple]]

_AGENT_CLASS = rdflib.URIRef(PREFIXES["core"] + "AIAgent")


@dataclass(frozen=True)
class PublishResult:
    """Bytes sent to the store and the number of triples they carry."""

    bytes_written: int
    triple_count: int


def _as_turtle(statements: Statements) -> str:
    if isinstance(statements, str):
        return statements
    return render_turtle(list(statements))


def prepare_payload(statements: Statements) -> Tuple[str, rdflib.Graph]:
    """Render ``statements`` to Turtle and parse them with rdflib.

    Args:
        statements: A Turtle document or compiled triples.

    Returns:
        tuple[str, rdflib.Graph]: The Turtle text and its parsed graph.

    Raises:
        PublishError: When the payload is not valid Turtle.
    """

    turtle = _as_turtle(statements)
    graph = rdflib.Graph()
    try:
        graph.parse(data=turtle, format="turtle")
    except (SyntaxError, ValueError) as exc:
        raise PublishError(f"Refusing to publish malformed Turtle: {exc}") from exc
    return turtle, graph


def _bracketed(iri: str) -> str:
    value = iri.strip()
    if value.startswith("<") and value.endswith(">"):
        return value
    return f"<{value}>"


def recount_sparql(context: str, agent_iri: str) -> str:
    """SPARQL update that recomputes both cached counts of one agent in ``context``.

    Examples:
        >>> "core:feedbackAssertionCount ?fbCnt" in recount_sparql("urn:g", "urn:a")
        True
    """

    graph = _bracketed(context)
    agent = _bracketed(agent_iri)
    return "\n".join(
        [
            f"PREFIX core: <{PREFIXES['core']}>",
            f"WITH {graph}",
            f"DELETE {{ {agent} core:feedbackAssertionCount ?o }}",
            f"WHERE {{ OPTIONAL {{ {agent} core:feedbackAssertionCount ?o }} }} ;",
            f"WITH {graph}",
            f"INSERT {{ {agent} core:feedbackAssertionCount ?fbCnt }}",
            "WHERE { SELECT (COUNT(?fb) AS ?fbCnt) WHERE {"
            f" OPTIONAL {{ {agent} core:hasReputationAssertion ?fb }} }} }} ;",
            f"WITH {graph}",
            f"DELETE {{ {agent} core:validationAssertionCount ?o }}",
            f"WHERE {{ OPTIONAL {{ {agent} core:validationAssertionCount ?o }} }} ;",
            f"WITH {graph}",
            f"INSERT {{ {agent} core:validationAssertionCount ?vCnt }}",
            "WHERE { SELECT (COUNT(?v) AS ?vCnt) WHERE {"
            f" OPTIONAL {{ {agent} core:hasVerificationAssertion ?v }} }} }}",
        ]
    )


def _agents_in(graph: rdflib.Graph) -> List[str]:
    return sorted(str(subject) for subject in set(graph.subjects(rdflib.RDF.type, _AGENT_CLASS)))


def publish_context(
    client: GraphStoreClient,
    context: str,
    statements: Statements,
    reset_context: bool = False,
) -> PublishResult:
    """Upload ``statements`` into ``context``, clearing it first when asked.

    Args:
        client: Repository client.
        context: Named graph IRI.
        statements: Turtle text or compiled triples.
        reset_context: Delete every statement in ``context`` before uploading.

    Returns:
        PublishResult: Bytes uploaded and parsed triple count.

    Raises:
        PublishError: On malformed payloads or store failures.
    """

    turtle, graph = prepare_payload(statements)
    if reset_context:
        client.clear_statements(context)
    if len(graph) == 0:
        logger.info("nothing to publish into %s", context, extra={"stage": "publish"})
        return PublishResult(bytes_written=0, triple_count=0)
    written = client.upload_turtle(turtle, context)
    logger.info(
        "published %d triples (%d bytes) into %s",
        len(graph),
        written,
        context,
        extra={"stage": "publish"},
    )
    return PublishResult(bytes_written=written, triple_count=len(graph))


def publish_file(
    client: GraphStoreClient,
    context: str,
    path: Path,
    reset_context: bool = False,
) -> PublishResult:
    """Read a compiled Turtle file and publish it with :func:`publish_context`."""
    try:
        turtle = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise PublishError(f"Cannot read {path}: {exc}") from exc
    return publish_context(client, context, turtle, reset_context=reset_context)


def publish_single_entity(
    client: GraphStoreClient,
    context: str,
    statements: Statements,
    *,
    entity_iri: Optional[str] = None,
    recount: bool = True,
) -> PublishResult:
    """Upload one entity's statements without clearing, then refresh its counts.

    Args:
        client: Repository client.
        context: Named graph IRI.
        statements: Turtle text or compiled triples for one agent.
        entity_iri: Agent whose counts are recomputed; defaults to every
            ``core:AIAgent`` found in the payload.
        recount: Run the count refresh update after the upload.

    Returns:
        PublishResult: Bytes uploaded and parsed triple count.
    """

    turtle, graph = prepare_payload(statements)
    written = client.upload_turtle(turtle, context) if len(graph) else 0
    if recount:
        targets: Iterable[str] = [entity_iri] if entity_iri else _agents_in(graph)
        for target in targets:
            client.update(recount_sparql(context, target))
            logger.debug("recounted assertions for %s", target, extra={"stage": "publish", "record_key": target})
    return PublishResult(bytes_written=written, triple_count=len(graph))
