"""IRI minting and Turtle token rendering."""

from __future__ import annotations

import re

import pytest
import rdflib
from hypothesis import given, settings
from hypothesis import strategies as st

from AgentsToKG.GraphCompile import iris
from AgentsToKG.GraphCompile.turtle import (
    TripleSink,
    datetime_literal,
    decimal_literal,
    escape_literal,
    iri_or_literal,
    is_safe_absolute_iri,
    json_literal,
    render_turtle,
    string_literal,
)

_ENCODED = re.compile(r"^[A-Za-z0-9_.\-~]*$")

_text = st.text(
    alphabet=st.one_of(
        st.characters(blacklist_categories=("Cs", "Cc", "Cn")),
        st.sampled_from(['"', "\\", "\n", "\r", "'", "<", ">"]),
    ),
    min_size=1,
    max_size=40,
)


def _bare(token: str) -> str:
    assert token.startswith("<") and token.endswith(">")
    return token[1:-1]


class TestEncodeSegment:
    def test_reserved_characters_become_underscore_sequences(self):
        assert iris.encode_segment("did:8004:1:42") == "did_3A8004_3A1_3A42"
        assert iris.encode_segment("a b/c") == "a_20b_2Fc"

    @settings(max_examples=200, deadline=None)
    @given(value=_text)
    def test_output_is_unreserved_or_underscore(self, value):
        assert _ENCODED.match(iris.encode_segment(value))

    @settings(max_examples=200, deadline=None)
    @given(registry=_text, external_id=_text)
    def test_minted_agent_iris_are_safe(self, registry, external_id):
        token = iris.agent_iri(iris.agent_key(registry, external_id))

        assert is_safe_absolute_iri(_bare(token))


class TestAgentKey:
    def test_did_takes_precedence(self):
        key = iris.agent_key("hol", "42", "did:8004:1:42")

        assert iris.agent_iri(key) == "<https://www.agentictrust.io/id/agent/did_3A8004_3A1_3A42>"

    def test_registry_and_external_id_otherwise(self):
        assert iris.agent_iri(iris.agent_key("hol", "a/b", "  ")) == "<https://www.agentictrust.io/id/agent/hol/a_2Fb>"

    def test_act_iri_appends_segment(self):
        record = iris.feedback_iri(1, "42", "0xAB", 3)

        assert iris.act_iri(record) == record[:-1] + "/act>"
        assert "0xab" in record


class TestSafeIri:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("https://example.org/a", True),
            ("urn:uuid:1234", True),
            ("example.org/a", False),
            ("https://example.org/a b", False),
            ("https://example.org/>x", False),
            ('https://example.org/"', False),
            ("https://example.org/\\", False),
        ],
    )
    def test_is_safe_absolute_iri(self, value, expected):
        assert is_safe_absolute_iri(value) is expected

    def test_unsafe_url_becomes_literal(self):
        assert iri_or_literal("https://example.org/a b") == '"https://example.org/a b"'
        assert iri_or_literal("https://example.org/a") == "<https://example.org/a>"
        assert iri_or_literal("   ") is None


class TestLiterals:
    def test_escape_literal(self):
        assert escape_literal('a"b\\c\nd\re') == 'a\\"b\\\\c\\nd\\re'

    def test_blank_strings_are_dropped(self):
        assert string_literal("  ") is None
        assert string_literal(None) is None

    def test_decimal_literal(self):
        assert decimal_literal(4.5) == "4.5"
        assert decimal_literal("3") == "3.0"
        assert decimal_literal(float("nan")) is None
        assert decimal_literal(True) is None

    def test_datetime_literal(self):
        assert datetime_literal(1704067200) == '"2024-01-01T00:00:00Z"^^xsd:dateTime'

    @settings(max_examples=50, deadline=None)
    @given(value=_text)
    def test_string_literal_survives_a_turtle_parser(self, value):
        token = string_literal(value)
        if token is None:
            return
        sink = TripleSink()
        sink.add("<https://example.org/s>", "rdfs:label", token)

        graph = rdflib.Graph().parse(data=render_turtle(sink.triples()), format="turtle")

        assert list(graph.objects()) == [rdflib.Literal(value)]

    def test_json_literal_survives_a_turtle_parser(self):
        raw = '{"name": "say \\"hi\\"", "lines": "a\\nb"}'
        sink = TripleSink()
        sink.add("<https://example.org/s>", "core:json", json_literal(raw))

        graph = rdflib.Graph().parse(data=render_turtle(sink.triples()), format="turtle")

        assert str(next(graph.objects())) == raw


class TestRendering:
    def test_rendering_is_order_independent(self):
        first, second = TripleSink(), TripleSink()
        statements = [
            ("<https://example.org/b>", "rdfs:label", '"b"'),
            ("<https://example.org/a>", "rdfs:label", '"a"'),
            ("<https://example.org/a>", "rdfs:label", '"a"'),
        ]
        for statement in statements:
            first.add(*statement)
        for statement in reversed(statements):
            second.add(*statement)
        first.types("<https://example.org/a>", "core:AIAgent")
        second.types("<https://example.org/a>", "core:AIAgent")

        assert render_turtle(first.triples()) == render_turtle(second.triples())
        assert len(first) == 3

    def test_rdf_type_comes_first_in_a_subject_block(self):
        sink = TripleSink()
        sink.add("<https://example.org/a>", "core:agentId", '"a"')
        sink.types("<https://example.org/a>", "core:AIAgent")

        body = render_turtle(sink.triples(), header=False)

        assert body.startswith("<https://example.org/a> a core:AIAgent ;\n    core:agentId")
