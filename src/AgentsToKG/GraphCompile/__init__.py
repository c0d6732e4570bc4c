"""Knowledge graph compilation from relational agent rows.

Example:
    >>> from AgentsToKG.GraphCompile import compile_agent, render_turtle
    >>> turtle = render_turtle(compile_agent(record))
"""

from .compiler import ChildRecords, CompileResult, Taxonomy, compile_agent, compile_all
from .iris import agent_iri, agent_key, encode_segment
from .turtle import PREFIXES, Triple, TripleSink, escape_literal, is_safe_absolute_iri, render_turtle

__all__ = [
    "ChildRecords",
    "CompileResult",
    "Taxonomy",
    "compile_agent",
    "compile_all",
    "agent_iri",
    "agent_key",
    "encode_segment",
    "PREFIXES",
    "Triple",
    "TripleSink",
    "escape_literal",
    "is_safe_absolute_iri",
    "render_turtle",
]
