"""
Graph data model for the knowledge graph explorer.

Nodes and links are frozen value objects. A KnowledgeGraph is built fresh for
every search/session result and is never mutated afterwards: the filters in
graphFilters return new graphs, and the force layout keeps node positions in
its own arrays (see forceLayout.py).
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import networkx as nx

logger = logging.getLogger(__name__)


class GraphError(Exception):
    """Base class for knowledge graph errors."""


class GraphValidationError(GraphError, ValueError):
    """Raised when a graph payload breaks the data model rules."""


class SimulationStoppedError(GraphError, RuntimeError):
    """Raised when a stopped force simulation is ticked again."""


class ConfigError(GraphError):
    """Raised for missing or malformed configuration."""


class NodeType(str, Enum):
    EVENT = "event"
    COUNTRY = "country"
    COMPANY = "company"
    COMMODITY = "commodity"
    ORGANIZATION = "organization"
    PERSON = "person"


class LinkType(str, Enum):
    CAUSES = "causes"
    PRECEDES = "precedes"
    RELATED_TO = "related_to"
    OPERATES_IN = "operates_in"
    EXPOSES_TO = "exposes_to"
    IMPACTS = "impacts"

    @property
    def display_name(self):
        return self.value.replace("_", " ")


NODE_TYPES = tuple(t.value for t in NodeType)
LINK_TYPES = tuple(t.value for t in LinkType)


def link_endpoint_id(endpoint: Any) -> str:
    """
    Normalize a link endpoint to a node id.

    Payloads coming back from a layout engine carry resolved node objects
    instead of id strings, so both forms are accepted.
    """
    if isinstance(endpoint, str):
        return endpoint
    if isinstance(endpoint, Mapping):
        if "id" in endpoint:
            return str(endpoint["id"])
    elif hasattr(endpoint, "id"):
        return str(endpoint.id)
    raise GraphValidationError(f"Cannot resolve link endpoint: {endpoint!r}")


@dataclass(frozen=True)
class GraphNode:
    id: str
    label: str
    type: NodeType
    source_count: int = 0
    confidence: Optional[float] = None
    data: Dict[str, Any] = field(default_factory=dict, hash=False)
    valid_from: Optional[str] = None
    valid_to: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise GraphValidationError("Node id must be a non-empty string")
        if not isinstance(self.type, NodeType):
            object.__setattr__(self, "type", _coerce(NodeType, self.type, "node"))
        if self.source_count < 0:
            raise GraphValidationError(f"Node {self.id}: sourceCount must be >= 0")
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise GraphValidationError(f"Node {self.id}: confidence must be in [0, 1]")

    @property
    def importance(self) -> float:
        """sourceCount weighted by confidence; a missing confidence counts as 0.5."""
        confidence = 0.5 if self.confidence is None else self.confidence
        return self.source_count * confidence

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "GraphNode":
        return cls(
            id=str(payload["id"]),
            label=str(payload.get("label") or payload["id"]),
            type=_coerce(NodeType, payload.get("type"), "node"),
            source_count=_int(payload.get("sourceCount"), 0),
            confidence=_optional_float(payload.get("confidence")),
            data=dict(payload.get("data") or {}),
            valid_from=payload.get("validFrom"),
            valid_to=payload.get("validTo"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "label": self.label,
            "type": self.type.value,
            "sourceCount": self.source_count,
            "data": dict(self.data),
        }
        if self.confidence is not None:
            out["confidence"] = self.confidence
        if self.valid_from is not None:
            out["validFrom"] = self.valid_from
            out["validTo"] = self.valid_to
        return out


@dataclass(frozen=True)
class GraphLink:
    source: str
    target: str
    type: LinkType
    strength: float = 0.5
    confidence: Optional[float] = None
    source_count: int = 1
    valid_from: Optional[str] = None
    valid_to: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "source", link_endpoint_id(self.source))
        object.__setattr__(self, "target", link_endpoint_id(self.target))
        if not isinstance(self.type, LinkType):
            object.__setattr__(self, "type", _coerce(LinkType, self.type, "link"))

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.source, self.target, self.type.value)

    def touches(self, node_id: str) -> bool:
        return self.source == node_id or self.target == node_id

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "GraphLink":
        return cls(
            source=link_endpoint_id(payload["source"]),
            target=link_endpoint_id(payload["target"]),
            type=_coerce(LinkType, payload.get("type"), "link"),
            strength=_optional_float(payload.get("strength"), 0.5),
            confidence=_optional_float(payload.get("confidence")),
            source_count=_int(payload.get("sourceCount"), 1),
            valid_from=payload.get("validFrom"),
            valid_to=payload.get("validTo"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "source": self.source,
            "target": self.target,
            "type": self.type.value,
            "strength": self.strength,
            "sourceCount": self.source_count,
        }
        if self.confidence is not None:
            out["confidence"] = self.confidence
        if self.valid_from is not None:
            out["validFrom"] = self.valid_from
            out["validTo"] = self.valid_to
        return out


@dataclass(frozen=True)
class KnowledgeGraph:
    nodes: Tuple[GraphNode, ...] = ()
    links: Tuple[GraphLink, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "links", tuple(self.links))
        seen = set()
        for node in self.nodes:
            if node.id in seen:
                raise GraphValidationError(f"Duplicate node id: {node.id}")
            seen.add(node.id)

    @classmethod
    def empty(cls) -> "KnowledgeGraph":
        return cls((), ())

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    @property
    def node_ids(self) -> frozenset:
        return frozenset(n.id for n in self.nodes)

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def has_node(self, node_id: str) -> bool:
        return self.get_node(node_id) is not None

    def neighbors(self, node_id: str) -> List[str]:
        """Adjacent node ids in link order, ignoring direction."""
        out = []
        for link in self.links:
            if link.source == node_id:
                other = link.target
            elif link.target == node_id:
                other = link.source
            else:
                continue
            if other != node_id and other not in out:
                out.append(other)
        return out

    def without_dangling_links(self) -> "KnowledgeGraph":
        ids = self.node_ids
        kept = tuple(l for l in self.links if l.source in ids and l.target in ids)
        if len(kept) == len(self.links):
            return self
        return KnowledgeGraph(self.nodes, kept)

    def to_networkx(self) -> nx.MultiDiGraph:
        G = nx.MultiDiGraph()
        for node in self.nodes:
            G.add_node(
                node.id,
                label=node.label,
                type=node.type.value,
                source_count=node.source_count,
                confidence=node.confidence,
            )
        for link in self.links:
            if link.source in G and link.target in G:
                G.add_edge(link.source, link.target, key=link.type.value,
                           type=link.type.value, weight=link.strength)
        return G

    @classmethod
    def from_dict(cls, payload: Optional[Mapping[str, Any]], strict: bool = True) -> "KnowledgeGraph":
        """
        Parse a `{nodes: [...], links: [...]}` payload.

        With strict=False, a node or link with an unknown type or a malformed
        value is dropped with a warning instead of failing the whole graph.
        """
        if not payload:
            return cls.empty()
        if not isinstance(payload, Mapping):
            raise GraphValidationError("Graph payload must be an object")
        nodes = _parse_records(_record_list(payload, "nodes"), GraphNode.from_dict, "node", strict)
        links = _parse_records(_record_list(payload, "links"), GraphLink.from_dict, "link", strict)
        if not strict:
            unique = {}
            for node in nodes:
                if node.id in unique:
                    logger.warning(f"Skipping duplicate node id: {node.id}")
                    continue
                unique[node.id] = node
            nodes = list(unique.values())
        return cls(nodes, links)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "links": [l.to_dict() for l in self.links],
        }


def _record_list(payload, key):
    records = payload.get(key) or []
    if not isinstance(records, (list, tuple)):
        raise GraphValidationError(f"'{key}' must be a list")
    return records


def _parse_records(records: Iterable[Mapping[str, Any]], parse, kind: str, strict: bool) -> list:
    out = []
    for record in records:
        try:
            if not isinstance(record, Mapping):
                raise GraphValidationError("record is not an object")
            out.append(parse(record))
        except (GraphValidationError, KeyError) as e:
            if strict:
                raise GraphValidationError(f"Invalid {kind} {record!r}: {e}") from e
            logger.warning(f"Skipping invalid {kind}: {e}")
    return out


def _coerce(enum_cls, value, kind):
    try:
        return enum_cls(value)
    except ValueError:
        raise GraphValidationError(f"Unknown {kind} type: {value!r}") from None


def _optional_float(value, default=None):
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise GraphValidationError(f"Expected a number, got {value!r}") from None


def _int(value, default):
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise GraphValidationError(f"Expected an integer, got {value!r}") from None
