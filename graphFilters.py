"""
Pure graph transforms: node capping, type filtering and ego-graph extraction.

Every function here takes a KnowledgeGraph and returns a new one. Nothing reads
or writes layout positions, and links whose endpoints are not in the result
are dropped silently (they show up routinely once capping has pruned a node).
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from graphModel import KnowledgeGraph

logger = logging.getLogger(__name__)

DEFAULT_MAX_NODES = 150
DEFAULT_EGO_DEPTH = 2


@dataclass(frozen=True)
class CapResult:
    graph: KnowledgeGraph
    capped_message: Optional[str] = None

    @property
    def capped(self) -> bool:
        return self.capped_message is not None


def _induced(graph: KnowledgeGraph, nodes, link_filter=None) -> KnowledgeGraph:
    ids = {n.id for n in nodes}
    links = [
        l for l in graph.links
        if l.source in ids and l.target in ids and (link_filter is None or link_filter(l))
    ]
    return KnowledgeGraph(nodes, links)


# --- NODE CAPPING ---
def cap_nodes(graph: KnowledgeGraph, max_nodes: int = DEFAULT_MAX_NODES) -> CapResult:
    """Keep the top `max_nodes` nodes by importance (sourceCount * confidence)."""
    if max_nodes < 0:
        raise ValueError("max_nodes must be >= 0")
    if len(graph.nodes) <= max_nodes:
        return CapResult(graph, None)

    # sorted() is stable, so equal scores keep their input order
    ranked = sorted(graph.nodes, key=lambda n: n.importance, reverse=True)
    top = ranked[:max_nodes]
    logger.info(f"Capping graph from {len(graph.nodes)} to {max_nodes} nodes")
    return CapResult(
        _induced(graph, top),
        f"Graph limited to {max_nodes} nodes for readability.",
    )


def limit_graph_size(graph: KnowledgeGraph, max_nodes: int = 100, max_links: int = 200) -> KnowledgeGraph:
    """
    Builder-side size limit: rank by degree, sources and confidence, then keep
    at most `max_links` links between the surviving nodes.
    """
    if len(graph.nodes) <= max_nodes and len(graph.links) <= max_links:
        return graph

    degree = {n.id: 0 for n in graph.nodes}
    for link in graph.links:
        degree[link.source] = degree.get(link.source, 0) + 1
        degree[link.target] = degree.get(link.target, 0) + 1

    def score(node):
        confidence = 0.5 if node.confidence is None else node.confidence
        return degree.get(node.id, 0) * 2 + node.source_count + confidence * 5

    top = sorted(graph.nodes, key=score, reverse=True)[:max_nodes]
    limited = _induced(graph, top)
    return KnowledgeGraph(limited.nodes, limited.links[:max_links])


# --- TYPE FILTER ---
def _as_type_set(types: Optional[Iterable[str]]):
    if types is None:
        return None
    values = {getattr(t, "value", t) for t in types}
    # An empty selection behaves like "everything visible"
    return values or None


def filter_by_type(graph: KnowledgeGraph,
                   visible_node_types: Optional[Iterable[str]] = None,
                   visible_link_types: Optional[Iterable[str]] = None) -> KnowledgeGraph:
    node_types = _as_type_set(visible_node_types)
    link_types = _as_type_set(visible_link_types)

    if node_types is None:
        nodes = graph.nodes
    else:
        nodes = [n for n in graph.nodes if n.type.value in node_types]

    if link_types is None:
        return _induced(graph, nodes)
    return _induced(graph, nodes, lambda l: l.type.value in link_types)


def toggle_type(current: Optional[Sequence[str]], type_name: str,
                all_types: Sequence[str]) -> Optional[List[str]]:
    """
    Flip one type in a visibility selection.

    `None` means every type is visible. Unchecking from that state produces an
    explicit list without the type; a selection that ends up covering every
    type collapses back to `None`.
    """
    selected = list(all_types) if current is None else list(current)
    if type_name in selected:
        selected = [t for t in selected if t != type_name]
    else:
        selected.append(type_name)

    if set(all_types) <= set(selected):
        return None
    # Keep the canonical ordering so the same selection compares equal
    return [t for t in all_types if t in selected]


# --- EGO GRAPH ---
def ego_graph(graph: KnowledgeGraph, center_id: str, depth: int = DEFAULT_EGO_DEPTH) -> KnowledgeGraph:
    """
    Induced subgraph of everything within `depth` hops of `center_id`.

    Links are walked in both directions. The loop runs exactly `depth` times
    over the link list, so cycles cannot keep it going. A center that is not
    in the graph gives an empty graph.
    """
    if depth < 0:
        raise ValueError("depth must be >= 0")
    if not graph.has_node(center_id):
        logger.debug(f"Ego graph center {center_id!r} not in graph")
        return KnowledgeGraph.empty()
    if depth == 0:
        return KnowledgeGraph([graph.get_node(center_id)], [])

    # Links pointing at missing nodes must not act as bridges
    links = graph.without_dangling_links().links
    visited = {center_id}
    frontier = {center_id}
    for _ in range(depth):
        next_frontier = set()
        for link in links:
            if link.source in frontier or link.target in frontier:
                next_frontier.add(link.source)
                next_frontier.add(link.target)
        next_frontier -= visited
        if not next_frontier:
            break
        visited |= next_frontier
        frontier = next_frontier

    nodes = [n for n in graph.nodes if n.id in visited]
    return _induced(graph, nodes)


# --- ANALYSIS ---
def related_entities(graph: KnowledgeGraph, node_id: str, top_n: int = 10) -> List[Tuple[str, int]]:
    """
    Nodes sharing the most neighbours with `node_id` (common-neighbour score).
    For an event this surfaces other events touching the same actors.
    """
    if not graph.has_node(node_id):
        return []

    scores = {}
    for neighbor in graph.neighbors(node_id):
        for second in graph.neighbors(neighbor):
            if second == node_id:
                continue
            scores[second] = scores.get(second, 0) + 1

    ranked = sorted(scores.items(), key=lambda x: x[1], reverse=True)
    return ranked[:top_n]


def apply_pipeline(graph: KnowledgeGraph,
                   max_nodes: int = DEFAULT_MAX_NODES,
                   visible_node_types=None,
                   visible_link_types=None,
                   center_id: Optional[str] = None,
                   depth: int = DEFAULT_EGO_DEPTH) -> CapResult:
    """capping -> type filter -> optional ego extraction, in that order."""
    capped = cap_nodes(graph, max_nodes)
    result = filter_by_type(capped.graph, visible_node_types, visible_link_types)
    if center_id:
        result = ego_graph(result, center_id, depth)
    return CapResult(result, capped.capped_message)
