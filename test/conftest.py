import pytest

from graphModel import GraphLink, GraphNode, KnowledgeGraph


def make_node(node_id, node_type="event", source_count=1, confidence=None, label=None):
    return GraphNode(id=node_id, label=label or node_id, type=node_type,
                     source_count=source_count, confidence=confidence)


def make_link(source, target, link_type="related_to", strength=0.5):
    return GraphLink(source=source, target=target, type=link_type, strength=strength)


@pytest.fixture
def abc_graph():
    """A(country) -causes-> B(event) -impacts-> C(company)."""
    return KnowledgeGraph(
        [
            make_node("A", "country", source_count=5, confidence=0.9),
            make_node("B", "event", source_count=1, confidence=0.5),
            make_node("C", "company", source_count=0),
        ],
        [
            make_link("A", "B", "causes"),
            make_link("B", "C", "impacts"),
        ],
    )


@pytest.fixture
def cyclic_graph():
    """Ring of six nodes plus a chord, so every walk runs into a cycle."""
    ids = ["n0", "n1", "n2", "n3", "n4", "n5"]
    nodes = [make_node(i, "event" if k % 2 else "country", source_count=k) for k, i in enumerate(ids)]
    links = [make_link(ids[k], ids[(k + 1) % 6]) for k in range(6)]
    links.append(make_link("n0", "n3", "causes"))
    return KnowledgeGraph(nodes, links)
