"""
Builds a KnowledgeGraph from search results and extracted relationships.

Results become event nodes, their entities become typed nodes, and explicit
relationships become links. Entities that show up in the same result are
linked with `related_to`. When the graph of a previous search is supplied, the
new graph is merged into it temporally: links that disappeared are closed
(validTo set) instead of being deleted.
"""
import logging
from dataclasses import replace
from datetime import datetime, timezone

from graphFilters import limit_graph_size
from graphModel import (GraphLink, GraphNode, GraphValidationError,
                        KnowledgeGraph, LinkType, NodeType)

logger = logging.getLogger(__name__)

CO_OCCURRENCE_STRENGTH = 0.5
MENTION_STRENGTH = 0.7
BUILD_MAX_NODES = 100
BUILD_MAX_LINKS = 200


def _now():
    return datetime.now(timezone.utc).isoformat()


def result_confidence(result):
    """Weighted mix of source, relevance and impact scores (0.5 when missing)."""
    source = _score(result, "sourceScore")
    relevance = _score(result, "relevanceScore")
    impact = _score(result, "impactScore")
    return min(1.0, source * 0.4 + relevance * 0.3 + impact * 0.3)


def _score(record, key, default=0.5):
    """Numeric field of a session record; only a missing value takes the default."""
    value = record.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise GraphValidationError(f"{key} must be a number, got {value!r}") from None


class _NodeTable:
    """Insertion-ordered node records keyed by id; repeats bump sourceCount."""

    def __init__(self, previous, now):
        self.records = {}
        self.previous = {n.id: n for n in previous.nodes} if previous else {}
        self.now = now

    def add(self, node_id, **fields):
        if node_id in self.records:
            rec = self.records[node_id]
            rec["source_count"] += 1
            rec["valid_to"] = None
            return
        prev = self.previous.get(node_id)
        self.records[node_id] = dict(
            id=node_id,
            source_count=1,
            valid_from=prev.valid_from if prev and prev.valid_from else self.now,
            valid_to=None,
            **fields,
        )

    def __contains__(self, node_id):
        return node_id in self.records

    def nodes(self):
        return [GraphNode(**rec) for rec in self.records.values()]


def _with_id(records, kind):
    """Keep the records that are objects with an id; log and skip the rest."""
    kept = []
    for record in records or []:
        if isinstance(record, dict) and record.get("id"):
            kept.append(record)
        else:
            logger.warning(f"Skipping {kind} without an id: {record!r}")
    return kept


def _resolve(ref, table, results):
    """Map a relationship endpoint to a node id by id, then by entity name."""
    if not isinstance(ref, (str, int)):
        return None
    if ref in table:
        return ref
    wanted = str(ref).lower()
    for result in results:
        if result.get("id") == ref:
            return result["id"] if result["id"] in table else None
        for entity in result.get("entities") or []:
            if entity.get("id") == ref or str(entity.get("name", "")).lower() == wanted:
                return entity["id"] if entity["id"] in table else None
    return None


def build_graph(results, relationships, previous=None, max_nodes=BUILD_MAX_NODES,
                max_links=BUILD_MAX_LINKS, now=None):
    now = now or _now()
    results = [
        dict(result, entities=_with_id(result.get("entities"), "entity"))
        for result in _with_id(results, "result")
    ]
    table = _NodeTable(previous, now)
    prev_links = {l.key: l for l in previous.links} if previous else {}

    for result in results:
        table.add(
            result["id"],
            label=result.get("title") or result["id"],
            # Articles and documents are drawn as events
            type=NodeType.EVENT,
            confidence=result_confidence(result),
            data=dict(result),
        )

    for result in results:
        for entity in result.get("entities") or []:
            try:
                entity_type = NodeType(entity.get("type"))
            except ValueError:
                logger.warning(f"Skipping entity {entity['id']} with type {entity.get('type')!r}")
                continue
            try:
                confidence = _score(entity, "confidence", default=None)
            except GraphValidationError as e:
                logger.warning(f"Skipping entity {entity['id']}: {e}")
                continue
            if confidence is not None and not 0.0 <= confidence <= 1.0:
                logger.warning(f"Skipping entity {entity['id']}: confidence {confidence} outside [0, 1]")
                continue
            table.add(
                entity["id"],
                label=entity.get("name") or entity["id"],
                type=entity_type,
                confidence=confidence,
                data={"entity": dict(entity)},
            )

    links = []
    seen_pairs = set()

    def add_link(source, target, link_type, strength, confidence, keep_history=True):
        prev = prev_links.get((source, target, link_type.value)) if keep_history else None
        links.append(GraphLink(
            source=source,
            target=target,
            type=link_type,
            strength=strength,
            confidence=confidence,
            source_count=1 + (prev.source_count if prev else 0),
            valid_from=prev.valid_from if prev and prev.valid_from else now,
            valid_to=None,
        ))
        seen_pairs.add(frozenset((source, target)))

    for rel in relationships or []:
        if not isinstance(rel, dict):
            logger.warning(f"Skipping relationship {rel!r}")
            continue
        try:
            link_type = LinkType(rel.get("type"))
        except ValueError:
            logger.warning(f"Skipping relationship with type {rel.get('type')!r}")
            continue
        source = _resolve(rel.get("source"), table, results)
        target = _resolve(rel.get("target"), table, results)
        if source is None or target is None:
            logger.debug(f"Unresolved relationship {rel.get('source')} -> {rel.get('target')}")
            continue
        try:
            strength = _score(rel, "strength")
            confidence = _score(rel, "confidence", default=strength)
        except GraphValidationError as e:
            logger.warning(f"Skipping relationship {source} -> {target}: {e}")
            continue
        add_link(source, target, link_type, strength, confidence)

    # Implicit links: co-mentioned entities, and each result to its entities
    for result in results:
        entity_ids = [e["id"] for e in result.get("entities") or [] if e.get("id") in table]
        for i, first in enumerate(entity_ids):
            for second in entity_ids[i + 1:]:
                if first != second and frozenset((first, second)) not in seen_pairs:
                    add_link(first, second, LinkType.RELATED_TO,
                             CO_OCCURRENCE_STRENGTH, CO_OCCURRENCE_STRENGTH, keep_history=False)
        for entity_id in entity_ids:
            if entity_id != result["id"] and frozenset((result["id"], entity_id)) not in seen_pairs:
                add_link(result["id"], entity_id, LinkType.RELATED_TO,
                         MENTION_STRENGTH, MENTION_STRENGTH, keep_history=False)

    graph = KnowledgeGraph(table.nodes(), links)
    limited = limit_graph_size(graph, max_nodes=max_nodes, max_links=max_links)
    logger.info(f"Built graph: {len(limited.nodes)} nodes, {len(limited.links)} links "
                f"(from {len(results)} results, {len(relationships or [])} relationships)")

    if previous is not None:
        return merge_temporal_graphs(previous, limited, now=now)
    return limited


def merge_temporal_graphs(previous, current, now=None):
    """
    Fold `current` into `previous`. Previous links missing from `current` are
    closed at `now`; nodes present in both keep their first validFrom and
    accumulate sourceCount.
    """
    now = now or _now()
    current_keys = {l.key for l in current.links}
    closed = [replace(l, valid_to=now) for l in previous.links if l.key not in current_keys]

    merged = {n.id: n for n in previous.nodes}
    for node in current.nodes:
        existing = merged.get(node.id)
        if existing is None:
            merged[node.id] = node
            continue
        merged[node.id] = replace(
            node,
            valid_from=existing.valid_from or node.valid_from,
            valid_to=None,
            source_count=existing.source_count + (node.source_count or 1),
        )
    return KnowledgeGraph(list(merged.values()), closed + list(current.links))


def merge_graphs(first, second):
    """Union of two graphs; links are deduplicated by (source, target, type)."""
    merged = {n.id: n for n in first.nodes}
    for node in second.nodes:
        existing = merged.get(node.id)
        if existing is None:
            merged[node.id] = node
        else:
            merged[node.id] = replace(existing, data={**existing.data, **node.data})

    links, seen = [], set()
    for link in first.links:
        if link.key not in seen:
            links.append(link)
            seen.add(link.key)
    for link in second.links:
        if link.key in seen:
            continue
        if link.source in merged and link.target in merged:
            links.append(link)
            seen.add(link.key)
    return KnowledgeGraph(list(merged.values()), links)


def graph_from_session(payload, previous=None, now=None,
                       max_nodes=BUILD_MAX_NODES, max_links=BUILD_MAX_LINKS):
    """Build from a saved `{results: [...], relationships: [...]}` session payload."""
    if not isinstance(payload, dict):
        raise GraphValidationError("Session payload must be an object")
    return build_graph(
        payload.get("results") or [],
        payload.get("relationships") or [],
        previous=previous,
        max_nodes=max_nodes,
        max_links=max_links,
        now=now,
    )
