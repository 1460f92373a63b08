"""
Tests for building graphs from search sessions and merging them over time.
"""
import pytest

from graphBuilder import (build_graph, graph_from_session, merge_graphs,
                          merge_temporal_graphs, result_confidence)
from graphModel import GraphNode, GraphValidationError, KnowledgeGraph, NodeType

from conftest import make_link, make_node

T0 = "2024-01-01T00:00:00+00:00"
T1 = "2024-02-01T00:00:00+00:00"

RESULTS = [
    {
        "id": "r1", "title": "Strait closure lifts oil prices",
        "sourceScore": 1.0, "relevanceScore": 1.0, "impactScore": 1.0,
        "entities": [
            {"id": "iran", "name": "Iran", "type": "country"},
            {"id": "brent", "name": "Brent Crude", "type": "commodity"},
        ],
    },
    {
        "id": "r2", "title": "Sanctions widen",
        "entities": [
            {"id": "iran", "name": "Iran", "type": "country"},
            {"id": "x", "name": "Mystery", "type": "planet"},
        ],
    },
]
RELATIONSHIPS = [
    {"source": "Iran", "target": "brent", "type": "impacts", "strength": 0.8},
    {"source": "r1", "target": "nowhere", "type": "causes"},
    {"source": "iran", "target": "brent", "type": "bogus"},
]


def link_keys(graph):
    return {l.key for l in graph.links}


class TestResultConfidence:

    def test_weighted_mix(self):
        assert result_confidence({"sourceScore": 1, "relevanceScore": 0, "impactScore": 0}) == pytest.approx(0.4)

    def test_missing_scores_default_to_half(self):
        assert result_confidence({}) == pytest.approx(0.5)

    def test_zero_score_is_not_missing(self):
        assert result_confidence({"sourceScore": 0, "relevanceScore": 0, "impactScore": 0}) == 0.0

    def test_non_numeric_score_rejected(self):
        with pytest.raises(GraphValidationError):
            result_confidence({"sourceScore": "high"})


class TestBuildGraph:

    def test_nodes(self):
        graph = build_graph(RESULTS, RELATIONSHIPS, now=T0)
        assert [n.id for n in graph.nodes] == ["r1", "r2", "iran", "brent"]
        assert graph.get_node("r1").type is NodeType.EVENT
        assert graph.get_node("r1").confidence == pytest.approx(1.0)
        assert graph.get_node("iran").source_count == 2
        assert graph.get_node("brent").type is NodeType.COMMODITY
        assert all(n.valid_from == T0 for n in graph.nodes)

    def test_links(self):
        graph = build_graph(RESULTS, RELATIONSHIPS, now=T0)
        assert link_keys(graph) == {
            ("iran", "brent", "impacts"),
            ("r1", "iran", "related_to"),
            ("r1", "brent", "related_to"),
            ("r2", "iran", "related_to"),
        }

    def test_explicit_link_suppresses_co_occurrence(self):
        graph = build_graph(RESULTS, RELATIONSHIPS, now=T0)
        assert ("iran", "brent", "related_to") not in link_keys(graph)

    def test_size_limit(self):
        graph = build_graph(RESULTS, RELATIONSHIPS, max_nodes=2, max_links=1, now=T0)
        assert len(graph.nodes) == 2
        assert len(graph.links) <= 1

    def test_rebuild_closes_vanished_links(self):
        first = build_graph(RESULTS, RELATIONSHIPS, now=T0)
        second = build_graph(RESULTS[1:], [], previous=first, now=T1)

        by_key = {l.key: l for l in second.links}
        assert by_key[("iran", "brent", "impacts")].valid_to == T1
        assert by_key[("r1", "iran", "related_to")].valid_to == T1
        assert by_key[("r2", "iran", "related_to")].valid_to is None

        iran = second.get_node("iran")
        assert iran.valid_from == T0
        assert iran.source_count == 3
        assert second.get_node("r1") is not None


class TestMerge:

    def test_temporal_merge_keeps_first_seen(self):
        previous = KnowledgeGraph(
            [GraphNode(id="a", label="a", type="event", source_count=2, valid_from=T0)], [])
        current = KnowledgeGraph([make_node("a", source_count=1)], [])
        merged = merge_temporal_graphs(previous, current, now=T1)
        assert merged.get_node("a").valid_from == T0
        assert merged.get_node("a").source_count == 3

    def test_merge_graphs_dedupes_links(self, abc_graph):
        other = KnowledgeGraph(
            [make_node("B", "event"), make_node("D", "person")],
            [make_link("A", "B", "causes"), make_link("B", "D"), make_link("D", "ghost")],
        )
        merged = merge_graphs(abc_graph, other)
        assert [n.id for n in merged.nodes] == ["A", "B", "C", "D"]
        assert link_keys(merged) == {
            ("A", "B", "causes"), ("B", "C", "impacts"), ("B", "D", "related_to"),
        }


class TestGraphFromSession:

    def test_payload(self):
        graph = graph_from_session({"results": RESULTS, "relationships": RELATIONSHIPS}, now=T0)
        assert len(graph.nodes) == 4

    def test_missing_sections(self):
        assert graph_from_session({}, now=T0).is_empty

    def test_non_object_rejected(self):
        with pytest.raises(GraphValidationError):
            graph_from_session([1, 2, 3])


class TestMalformedSessions:

    def test_result_without_id_skipped(self):
        graph = build_graph([{"title": "no id"}, "junk", RESULTS[0]], [], now=T0)
        assert [n.id for n in graph.nodes] == ["r1", "iran", "brent"]

    def test_entity_without_id_skipped(self):
        results = [{"id": "r1", "entities": [{"name": "Nameless", "type": "country"},
                                             {"id": "acme", "name": "Acme", "type": "company"}]}]
        relationships = [{"source": "Nameless", "target": "acme", "type": "impacts"}]
        graph = build_graph(results, relationships, now=T0)
        assert [n.id for n in graph.nodes] == ["r1", "acme"]
        assert {l.key for l in graph.links} == {("r1", "acme", "related_to")}

    def test_null_strength_uses_default(self):
        relationships = [{"source": "iran", "target": "brent", "type": "impacts", "strength": None}]
        graph = build_graph(RESULTS, relationships, now=T0)
        link = {l.key: l for l in graph.links}[("iran", "brent", "impacts")]
        assert link.strength == 0.5
        assert link.confidence == 0.5

    def test_zero_confidence_kept(self):
        relationships = [{"source": "iran", "target": "brent", "type": "impacts",
                          "strength": 0.8, "confidence": 0}]
        graph = build_graph(RESULTS, relationships, now=T0)
        assert {l.key: l for l in graph.links}[("iran", "brent", "impacts")].confidence == 0.0

    def test_bad_relationship_values_skipped(self):
        relationships = [
            {"source": "iran", "target": "brent", "type": "impacts", "strength": "strong"},
            {"source": {"id": "iran"}, "target": "brent", "type": "causes"},
            "junk",
        ]
        graph = build_graph(RESULTS, relationships, now=T0)
        assert ("iran", "brent", "impacts") not in link_keys(graph)
        assert ("iran", "brent", "causes") not in link_keys(graph)

    def test_bad_entity_confidence_skipped(self):
        results = [{"id": "r1", "entities": [{"id": "a", "name": "A", "type": "country", "confidence": "sure"},
                                             {"id": "b", "name": "B", "type": "country", "confidence": 3}]}]
        graph = build_graph(results, [], now=T0)
        assert [n.id for n in graph.nodes] == ["r1"]

    def test_session_errors_are_graph_errors(self):
        session = {"results": [{"id": "r1", "impactScore": "huge"}], "relationships": []}
        with pytest.raises(GraphValidationError):
            graph_from_session(session, now=T0)
