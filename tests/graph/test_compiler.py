"""Agent compilation: graph shape, assertion linking, determinism, and resumable files."""

from __future__ import annotations

import json
from decimal import Decimal

import rdflib
from rdflib import Namespace, URIRef
from rdflib.namespace import OWL, RDF

from AgentsToKG.GraphCompile import ChildRecords, Taxonomy, compile_agent, compile_all, render_turtle
from AgentsToKG.GraphCompile import iris
from AgentsToKG.GraphCompile.compiler import compile_checkpoint_key
from AgentsToKG.GraphCompile.turtle import render_prefixes
from AgentsToKG.storage import CheckpointStore, get_agent

CORE = Namespace("https://agentictrust.io/ontology/core#")
ERC8004 = Namespace("https://agentictrust.io/ontology/erc8004#")


def _uri(token: str) -> URIRef:
    return URIRef(token[1:-1])


def _graph(triples) -> rdflib.Graph:
    return rdflib.Graph().parse(data=render_turtle(triples), format="turtle")


def _insert_validation(store, table, **row):
    columns = ", ".join(row)
    placeholders = ", ".join(f":{name}" for name in row)
    store.run(f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", row)


class TestAgentGraph:
    def test_identity_descriptor_carries_rating(self, make_agent):
        record = make_agent("hol", "42", name="Acme Bot", rating=4.5, raw_json=json.dumps({"id": "42"}))

        graph = _graph(compile_agent(record))

        agent = _uri(iris.agent_iri(iris.agent_key("hol", "42")))
        assert (agent, RDF.type, CORE.AIAgent) in graph
        identity = graph.value(agent, CORE.hasIdentity)
        descriptor = graph.value(identity, CORE.hasDescriptor)
        assert graph.value(descriptor, CORE.rating).toPython() == Decimal("4.5")
        assert graph.value(descriptor, CORE.json) is not None

    def test_counts_are_always_present(self, make_agent):
        record = make_agent("hol", "a", name="Alpha")

        graph = _graph(compile_agent(record))

        agent = _uri(iris.agent_iri(iris.agent_key("hol", "a")))
        assert graph.value(agent, CORE.feedbackAssertionCount).toPython() == 0
        assert graph.value(agent, CORE.validationAssertionCount).toPython() == 0

    def test_did_identity_drives_the_agent_iri(self, make_agent):
        record = make_agent("hol", "42", name="Acme", did_identity="did:8004:1:42")

        graph = _graph(compile_agent(record))

        agent = URIRef("https://www.agentictrust.io/id/agent/did_3A8004_3A1_3A42")
        assert (agent, RDF.type, CORE.AIAgent) in graph
        identity = graph.value(agent, CORE.hasIdentity)
        assert (identity, RDF.type, ERC8004.AgentIdentity8004) in graph

    def test_hostile_values_stay_literals(self, make_agent):
        record = make_agent(
            "hol",
            "x",
            name='Evil" ; a <https://evil.example/Owned> .',
            image="javascript:alert(1) <b>",
            description="line one\nline two",
        )

        graph = _graph(compile_agent(record))

        assert URIRef("https://evil.example/Owned") not in set(graph.objects())
        agent = _uri(iris.agent_iri(iris.agent_key("hol", "x")))
        assert str(graph.value(agent, CORE.agentName)) == record.name

    def test_malformed_endpoints_in_raw_json_are_ignored(self, make_agent):
        record = make_agent("hol", "odd", name="Odd", raw_json=json.dumps({"endpoints": 7, "oasf_skills": "nope"}))

        graph = _graph(compile_agent(record))

        agent = _uri(iris.agent_iri(iris.agent_key("hol", "odd")))
        assert (agent, RDF.type, CORE.AIAgent) in graph

    def test_protocols_and_endpoints(self, make_agent):
        record = make_agent(
            "nanda",
            "srv",
            name="Search",
            mcp_endpoint="https://mcp.example/sse",
            agent_card_json=json.dumps({"url": "https://a2a.example", "skills": [{"id": "search", "name": "Search"}]}),
        )

        graph = _graph(compile_agent(record))

        protocols = set(graph.subjects(RDF.type, CORE.Protocol))
        assert len(protocols) == 2
        assert set(graph.subjects(RDF.type, CORE.MCPProtocol)) <= protocols
        assert URIRef("https://mcp.example/sse") in set(graph.objects(None, CORE.serviceUrl))

    def test_ens_names_get_an_extra_identity(self, make_agent):
        record = make_agent("hol", "ens", name="Alice.eth")

        graph = _graph(compile_agent(record))

        agent = _uri(iris.agent_iri(iris.agent_key("hol", "ens")))
        assert len(set(graph.objects(agent, CORE.hasIdentity))) == 2


class TestTaxonomyAndLinks:
    def test_known_skills_link_to_shared_taxonomy(self, make_agent):
        record = make_agent(
            "hol", "a", name="A", skills_json=json.dumps(["nlp/summarization", "custom-skill"])
        )
        taxonomy = Taxonomy.from_keys(skills=["nlp/summarization"])

        graph = _graph(compile_agent(record, taxonomy=taxonomy))

        shared = _uri(iris.oasf_skill_iri("nlp/summarization"))
        assert shared in set(graph.objects(None, CORE.hasSkillClassification))
        assert (None, RDF.type, CORE.AgentSkillClassification) in graph
        assert len(set(graph.subjects(RDF.type, CORE.AgentSkill))) == 2

    def test_duplicate_and_same_as_links(self, store, make_agent):
        canonical = make_agent("hol", "a", name="Acme")
        other = make_agent("nanda", "n", name="Acme")
        make_agent("hol", "b", name="acme")
        store.run(
            "UPDATE agents SET isDuplicate = 1, duplicateOfInternalId = ?, duplicateReason = 'name-dup:acme', "
            "crossrefOtherRegistry = 'nanda', crossrefOtherRegistryInternalId = ? WHERE externalAgentId = 'b'",
            [canonical.internal_id, other.internal_id],
        )
        record = get_agent(store, "hol", "b")

        graph = _graph(compile_agent(record, ChildRecords.load(store, record)))

        agent = _uri(iris.agent_iri(iris.agent_key("hol", "b")))
        assert graph.value(agent, CORE.duplicateOf) == _uri(iris.agent_iri(iris.agent_key("hol", "a")))
        assert graph.value(agent, OWL.sameAs) == _uri(iris.agent_iri(iris.agent_key("nanda", "n")))
        assert str(graph.value(agent, CORE.duplicateReason)) == "name-dup:acme"


class TestAssertions:
    def test_response_links_to_request_situation_by_hash(self, store, make_agent):
        record = make_agent("hol", "42", name="Acme", chain_id=1)
        _insert_validation(
            store,
            "validation_requests",
            id="req-1",
            chainId=1,
            registrySourceId="hol",
            externalAgentId="42",
            requestHash="0xABC",
            createdAtTime=100,
        )
        _insert_validation(
            store,
            "validation_responses",
            id="resp-1",
            chainId=1,
            registrySourceId="hol",
            externalAgentId="42",
            requestHash="0xabc",
            response=100,
            createdAtTime=999999,
        )

        graph = _graph(compile_agent(record, ChildRecords.load(store, record)))

        request = _uri(iris.validation_request_iri(1, "req-1"))
        response = _uri(iris.validation_response_iri(1, "resp-1"))
        act = _uri(iris.act_iri(iris.validation_response_iri(1, "resp-1")))
        assert (act, CORE.assertsSituation, request) in graph
        assert (response, CORE.recordsSituation, request) in graph
        assert (act, CORE.generatedAssertionRecord, response) in graph
        assert (response, CORE.assertionRecordOf, act) in graph
        agent = _uri(iris.agent_iri(iris.agent_key("hol", "42")))
        assert graph.value(agent, CORE.validationAssertionCount).toPython() == 1

    def test_unmatched_hash_leaves_response_unlinked(self, store, make_agent):
        record = make_agent("hol", "42", name="Acme", chain_id=1)
        _insert_validation(
            store,
            "validation_responses",
            id="resp-2",
            chainId=1,
            registrySourceId="hol",
            externalAgentId="42",
            requestHash="0xdead",
        )

        graph = _graph(compile_agent(record, ChildRecords.load(store, record)))

        act = _uri(iris.act_iri(iris.validation_response_iri(1, "resp-2")))
        assert graph.value(act, CORE.assertsSituation) is None

    def test_request_of_another_agent_is_referenced_not_emitted(self, store, make_agent):
        record = make_agent("hol", "42", name="Acme", chain_id=1)
        _insert_validation(
            store,
            "validation_requests",
            id="req-9",
            chainId=1,
            registrySourceId="hol",
            externalAgentId="77",
            requestHash="0xdef",
        )
        _insert_validation(
            store,
            "validation_responses",
            id="resp-9",
            chainId=1,
            registrySourceId="hol",
            externalAgentId="42",
            requestHash="0xDEF",
        )

        graph = _graph(compile_agent(record, ChildRecords.load(store, record)))

        request = _uri(iris.validation_request_iri(1, "req-9"))
        act = _uri(iris.act_iri(iris.validation_response_iri(1, "resp-9")))
        assert (act, CORE.assertsSituation, request) in graph
        assert (request, RDF.type, None) not in graph

    def test_feedback_assertion_pair(self, store, make_agent):
        record = make_agent("hol", "42", name="Acme", chain_id=1)
        store.run(
            "INSERT INTO rep_feedbacks (id, chainId, registrySourceId, externalAgentId, clientAddress, "
            "feedbackIndex, score) VALUES (?, ?, ?, ?, ?, ?, ?)",
            ["fb-1", 1, "hol", "42", "0x" + "Ab" * 20, 2, 90],
        )

        graph = _graph(compile_agent(record, ChildRecords.load(store, record)))

        agent = _uri(iris.agent_iri(iris.agent_key("hol", "42")))
        feedback = graph.value(agent, CORE.hasReputationAssertion)
        act = graph.value(feedback, CORE.assertionRecordOf)
        assert (act, CORE.generatedAssertionRecord, feedback) in graph
        assert graph.value(feedback, ERC8004.feedbackScore).toPython() == 90
        assert graph.value(agent, CORE.feedbackAssertionCount).toPython() == 1
        client = graph.value(act, CORE.assertedBy)
        assert str(graph.value(client, URIRef("https://agentictrust.io/ontology/eth#accountAddress"))) == "0x" + "ab" * 20


class TestDeterminism:
    def test_child_order_does_not_change_output(self, store, make_agent):
        record = make_agent("hol", "42", name="Acme", chain_id=1)
        for index in range(3):
            store.run(
                "INSERT INTO rep_feedbacks (id, chainId, registrySourceId, externalAgentId, clientAddress, "
                "feedbackIndex) VALUES (?, 1, 'hol', '42', ?, ?)",
                [f"fb-{index}", f"0x{index:040x}", index],
            )
        children = ChildRecords.load(store, record)
        reversed_children = ChildRecords.load(store, record)
        reversed_children.feedbacks.reverse()

        assert render_turtle(compile_agent(record, children)) == render_turtle(
            compile_agent(record, reversed_children)
        )

    def test_compile_all_is_repeatable(self, store, make_agent, tmp_path):
        for external_id in ("b", "a", "c"):
            make_agent("hol", external_id, name=f"Agent {external_id}")

        first = compile_all(store, "hol", out_path=tmp_path / "one.ttl")
        compile_all(store, "hol", out_path=tmp_path / "two.ttl")

        assert first.agent_count == 3
        assert (tmp_path / "one.ttl").read_text(encoding="utf-8") == (tmp_path / "two.ttl").read_text(
            encoding="utf-8"
        )
        graph = rdflib.Graph().parse(str(tmp_path / "one.ttl"), format="turtle")
        assert len(graph) == first.triple_count
        assert len(set(graph.subjects(RDF.type, CORE.AIAgent))) == 3


class TestCompileAllResume:
    def test_resume_appends_after_watermark(self, store, make_agent, tmp_path):
        for external_id in ("a", "b", "c"):
            make_agent("hol", external_id, name=f"Agent {external_id}")
        full = tmp_path / "full.ttl"
        compile_all(store, "hol", out_path=full, batch_size=1)

        partial = tmp_path / "partial.ttl"
        first = get_agent(store, "hol", "a")
        partial.write_text(
            render_prefixes()
            + "\n"
            + render_turtle(
                compile_agent(first, ChildRecords.load(store, first), Taxonomy.load(store)), header=False
            ),
            encoding="utf-8",
        )
        CheckpointStore(store).set(compile_checkpoint_key("hol"), {"registrySourceId": "hol", "externalAgentId": "a"})

        result = compile_all(store, "hol", out_path=partial, resume=True, batch_size=1)

        assert result.resumed_from == "a"
        assert result.agent_count == 2
        assert partial.read_text(encoding="utf-8") == full.read_text(encoding="utf-8")
        assert CheckpointStore(store).get(compile_checkpoint_key("hol")) is None

    def test_resume_without_output_file_starts_over(self, store, make_agent, tmp_path):
        for external_id in ("a", "b", "c"):
            make_agent("hol", external_id, name=f"Agent {external_id}")
        CheckpointStore(store).set(compile_checkpoint_key("hol"), {"registrySourceId": "hol", "externalAgentId": "b"})
        target = tmp_path / "missing.ttl"

        result = compile_all(store, "hol", out_path=target, resume=True)

        assert result.resumed_from is None
        assert result.agent_count == 3
        graph = rdflib.Graph().parse(str(target), format="turtle")
        assert len(set(graph.subjects(RDF.type, CORE.AIAgent))) == 3

    def test_without_resume_the_file_is_rewritten(self, store, make_agent, tmp_path):
        make_agent("hol", "a", name="A")
        target = tmp_path / "out.ttl"
        target.write_text("stale content\n", encoding="utf-8")
        CheckpointStore(store).set(compile_checkpoint_key("hol"), {"registrySourceId": "hol", "externalAgentId": "a"})

        result = compile_all(store, "hol", out_path=target)

        assert result.resumed_from is None
        assert result.agent_count == 1
        assert "stale content" not in target.read_text(encoding="utf-8")


SMART = "0x" + "a" * 40
EOA = "0x" + "b" * 40
ETH = Namespace("https://agentictrust.io/ontology/eth#")
ERC8092 = Namespace("https://agentictrust.io/ontology/erc8092#")


class TestAccountsAndRelationships:
    def test_smart_account_owned_by_eoa(self, make_agent):
        record = make_agent(
            "hol", "42", name="Acme", chain_id=1, agent_account=f"eip155:1:{SMART}", eoa_agent_account=EOA
        )

        graph = _graph(compile_agent(record))

        agent = _uri(iris.agent_iri(iris.agent_key("hol", "42")))
        smart = _uri(iris.account_iri(1, SMART))
        eoa = _uri(iris.account_iri(1, EOA))
        assert (agent, RDF.type, ETH.Account) in graph
        assert (agent, CORE.hasAgentAccount, smart) in graph
        assert (smart, ETH.hasEOAOwner, eoa) in graph
        assert str(graph.value(smart, ETH.accountType)) == "SmartAccount"

    def test_plain_agent_has_no_account_type(self, make_agent):
        graph = _graph(compile_agent(make_agent("hol", "a", name="Plain")))

        agent = _uri(iris.agent_iri(iris.agent_key("hol", "a")))
        assert (agent, RDF.type, ETH.Account) not in graph
        assert graph.value(agent, CORE.hasAgentAccount) is None

    def test_association_and_revocation(self, make_agent):
        record = make_agent("hol", "42", name="Acme", chain_id=1)
        association = {"chainId": 1, "associationId": "as-1", "initiator": SMART, "approver": EOA, "validAt": 10}
        revocation = {"id": "rv-1", "chainId": 1, "associationId": "as-1", "revokedAt": 20}
        children = ChildRecords(associations=[association], revocations=[revocation])

        graph = _graph(compile_agent(record, children))

        relationship = _uri(iris.relationship_iri(1, "as-1"))
        assertion = _uri(iris.relationship_assertion_iri(1, "as-1"))
        revoked = _uri(iris.relationship_revocation_iri(1, "rv-1"))
        participants = set(graph.objects(relationship, CORE.hasParticipant))
        assert participants == {_uri(iris.account_iri(1, SMART)), _uri(iris.account_iri(1, EOA))}
        assert (assertion, CORE.assertsRelationship, relationship) in graph
        act = _uri(iris.act_iri(iris.relationship_assertion_iri(1, "as-1")))
        assert (act, CORE.assertedBy, _uri(iris.account_iri(1, SMART))) in graph
        assert (revoked, ERC8092.revocationOfAssociatedAccounts, assertion) in graph
        assert graph.value(revoked, ERC8092.revokedAt).toPython() == 20
