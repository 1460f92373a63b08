"""
Rendering for the knowledge graph: styling tables, simulation ownership and
the vis-network page embedded by the Streamlit explorer.
"""
import json
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from pyvis.network import Network

import graphConfig
from forceLayout import ForceSimulation, NodePosition
from graphModel import GraphNode, KnowledgeGraph, LinkType, NodeType
from graphShell import KEYBOARD_SHORTCUTS, MAX_ZOOM, MIN_ZOOM, ZOOM_FACTOR

logger = logging.getLogger(__name__)

# --- STYLE TABLES ---
NODE_COLORS = {
    NodeType.EVENT: "#E1463E",
    NodeType.COUNTRY: "#3B82F6",
    NodeType.COMPANY: "#10B981",
    NodeType.COMMODITY: "#F59E0B",
    NodeType.ORGANIZATION: "#8B5CF6",
    NodeType.PERSON: "#EC4899",
}
LINK_COLORS = {
    LinkType.CAUSES: "#EF4444",
    LinkType.PRECEDES: "#3B82F6",
    LinkType.RELATED_TO: "#6B7280",
    LinkType.OPERATES_IN: "#10B981",
    LinkType.EXPOSES_TO: "#F59E0B",
    LinkType.IMPACTS: "#E1463E",
}
NODE_BASE_SIZES = {
    NodeType.EVENT: 12,
    NodeType.COUNTRY: 10,
    NodeType.COMPANY: 8,
    NodeType.COMMODITY: 8,
    NodeType.ORGANIZATION: 8,
    NodeType.PERSON: 6,
}
FALLBACK_COLOR = "#6B7280"
FALLBACK_SIZE = 8
BACKGROUND = "#0A0A0A"

MIN_RADIUS = 5
MAX_RADIUS = 24
LABEL_MAX_LEN_NORMAL = 15
LABEL_MAX_LEN_FULLSCREEN = 30
LABEL_VISIBLE_ZOOM = 0.5
LINK_LABEL_VISIBLE_ZOOM = 1.2
CLICK_DELAY_MS = 250

# Every enum member needs an entry; a new type must be styled explicitly
if not set(NODE_COLORS) == set(NodeType) == set(NODE_BASE_SIZES):
    raise RuntimeError("NODE_COLORS and NODE_BASE_SIZES must cover every NodeType")
if set(LINK_COLORS) != set(LinkType):
    raise RuntimeError("LINK_COLORS must cover every LinkType")


def _enum_or_none(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def node_color(node_type) -> str:
    member = _enum_or_none(NodeType, node_type)
    return NODE_COLORS[member] if member else FALLBACK_COLOR


def link_color(link_type) -> str:
    member = _enum_or_none(LinkType, link_type)
    return LINK_COLORS[member] if member else FALLBACK_COLOR


def node_radius(node: GraphNode) -> float:
    member = _enum_or_none(NodeType, node.type)
    base = NODE_BASE_SIZES[member] if member else FALLBACK_SIZE
    mult = 1 + min(node.source_count / 5, 2)
    return min(MAX_RADIUS, max(MIN_RADIUS, base * mult))


def truncate_label(label: str, fullscreen: bool = False) -> str:
    limit = LABEL_MAX_LEN_FULLSCREEN if fullscreen else LABEL_MAX_LEN_NORMAL
    if len(label) > limit:
        return label[:limit] + "..."
    return label


def node_tooltip(node: GraphNode) -> str:
    lines = [node.label, node.type.value]
    if node.confidence is not None:
        lines.append(f"Confidence: {round(node.confidence * 100)}%")
    lines.append(f"Sources: {node.source_count}")
    return "\n".join(lines)


def link_tooltip(link) -> str:
    return f"Type: {link.type.display_name}\nStrength: {link.strength:.1f}"


# --- INTERACTION ---
def classify_click(ctrl: bool = False, meta: bool = False, double: bool = False) -> str:
    """A modified click or a double click explores; a plain click selects."""
    if double or ctrl or meta:
        return "explore"
    return "select"


class NodeInteraction:
    """
    Routes node clicks to the embedding page's callbacks. Exactly one callback
    fires per physical click.
    """

    def __init__(self, graph: KnowledgeGraph,
                 on_node_click: Optional[Callable[[str], None]] = None,
                 on_node_explore: Optional[Callable[[str, str], None]] = None):
        self.graph = graph
        self.on_node_click = on_node_click
        self.on_node_explore = on_node_explore

    def dispatch(self, node_id: str, ctrl=False, meta=False, double=False) -> Optional[str]:
        node = self.graph.get_node(node_id)
        if node is None:
            logger.debug(f"Click on unknown node {node_id!r} ignored")
            return None
        action = classify_click(ctrl, meta, double)
        if action == "explore":
            if self.on_node_explore:
                self.on_node_explore(node.id, node.label)
        elif self.on_node_click:
            self.on_node_click(node.id)
        return action

    def dispatch_query_params(self, params) -> Optional[str]:
        """Replay an action the embedded page wrote into the URL."""
        if params.get("explore"):
            return self.dispatch(params["explore"], double=True)
        if params.get("node"):
            return self.dispatch(params["node"])
        return None


# --- LAYOUT OWNERSHIP ---
@dataclass
class GraphLayout:
    graph: KnowledgeGraph
    positions: Dict[str, NodePosition]
    width: float
    height: float
    fullscreen: bool = False
    focus_node_id: Optional[str] = None
    ticks: int = 0


@dataclass
class _Mounted:
    simulation: ForceSimulation
    layout: GraphLayout


class RenderSession:
    """
    Owns the force simulations behind the normal and fullscreen views.

    Each view mode gets its own simulation. Whatever was running is stopped
    before a new simulation starts (new graph, mode switch or resize), so
    there is never more than one live simulation per session.
    """
    MODES = ("normal", "fullscreen")

    def __init__(self, simulation_factory=ForceSimulation, max_ticks=300):
        self.simulation_factory = simulation_factory
        self.max_ticks = max_ticks
        self._mounted: Dict[str, _Mounted] = {}
        self.active_mode: Optional[str] = None

    def simulation(self, mode: str) -> Optional[ForceSimulation]:
        mounted = self._mounted.get(mode)
        return mounted.simulation if mounted else None

    @property
    def live_simulations(self):
        return [m.simulation for m in self._mounted.values() if not m.simulation.stopped]

    def mount(self, graph: KnowledgeGraph, mode: str = "normal",
              width: float = graphConfig.GRAPH_WIDTH, height: float = graphConfig.GRAPH_HEIGHT,
              focus_node_id: Optional[str] = None) -> Optional[GraphLayout]:
        if mode not in self.MODES:
            raise ValueError(f"Unknown view mode: {mode}")

        current = self._mounted.get(mode)
        if (current is not None and not current.simulation.stopped
                and self.active_mode == mode
                and current.layout.graph == graph
                and (current.layout.width, current.layout.height) == (width, height)):
            # Same input on a rerun: keep the settled layout
            current.layout.focus_node_id = focus_node_id
            return current.layout

        self.stop_all()
        self.active_mode = mode
        if graph.is_empty:
            self._mounted.pop(mode, None)
            return None

        sim = self.simulation_factory(
            graph, width, height,
            link_distance=graphConfig.LINK_DISTANCE,
            charge_strength=graphConfig.CHARGE_STRENGTH,
            collision_radius=graphConfig.COLLISION_RADIUS,
            alpha_decay=graphConfig.ALPHA_DECAY,
            seed=graphConfig.LAYOUT_SEED,
        )
        ticks = sim.run(self.max_ticks)
        layout = GraphLayout(
            graph=graph,
            positions=sim.positions(),
            width=width,
            height=height,
            fullscreen=(mode == "fullscreen"),
            focus_node_id=focus_node_id,
            ticks=ticks,
        )
        self._mounted[mode] = _Mounted(sim, layout)
        logger.info(f"Laid out {len(graph.nodes)} nodes ({mode}) in {ticks} ticks")
        return layout

    def resize(self, width: float, height: float) -> Optional[GraphLayout]:
        """Fullscreen resize: full re-layout, positions are not carried over."""
        mounted = self._mounted.get("fullscreen")
        if mounted is None:
            return None
        graph, focus = mounted.layout.graph, mounted.layout.focus_node_id
        self.stop("fullscreen")
        return self.mount(graph, "fullscreen", width, height, focus)

    def stop(self, mode: str):
        mounted = self._mounted.get(mode)
        if mounted is not None:
            mounted.simulation.stop()

    def stop_all(self):
        for mode in list(self._mounted):
            self.stop(mode)

    def unmount(self):
        self.stop_all()
        self._mounted.clear()
        self.active_mode = None


# --- HTML ---
EMPTY_STATE_TITLE = "No graph yet."
EMPTY_STATE_BODY = "Run a search or load a saved session to build the knowledge graph."
EMPTY_STATE_ACTION = "Run a search"


def _network_options():
    return {
        "nodes": {"shape": "dot", "font": {"color": "white", "size": 10}},
        "edges": {
            "smooth": {"type": "continuous"},
            "arrows": {"to": {"enabled": True, "scaleFactor": 0.4}},
            "font": {"color": "rgba(148,163,184,0.9)", "size": 9, "strokeWidth": 0},
        },
        "interaction": {"hover": True, "keyboard": False, "zoomView": True, "dragView": True},
        # The Python layout is final: what is drawn is what gets exported.
        # A dragged node stays where it is dropped.
        "physics": {"enabled": False},
    }


def build_network(layout: GraphLayout) -> Network:
    net = Network(
        height=f"{int(layout.height)}px",
        width="100%",
        bgcolor=BACKGROUND,
        font_color="white",
        directed=True,
        cdn_resources="remote",
    )
    for node in layout.graph.nodes:
        pos = layout.positions.get(node.id)
        extra = {"x": pos.x, "y": pos.y} if pos else {}
        net.add_node(
            node.id,
            label=truncate_label(node.label, layout.fullscreen),
            title=node_tooltip(node),
            color=node_color(node.type),
            size=node_radius(node),
            group=node.type.value,
            borderWidth=1.5,
            **extra,
        )
    ids = layout.graph.node_ids
    for link in layout.graph.links:
        if link.source not in ids or link.target not in ids:
            continue
        net.add_edge(
            link.source,
            link.target,
            title=link_tooltip(link),
            label=link.type.display_name,
            color=link_color(link.type),
            width=link.strength * 3,
        )
    net.set_options(json.dumps(_network_options()))
    return net


def _interaction_script(layout: GraphLayout) -> str:
    cfg = {
        "labelZoom": LABEL_VISIBLE_ZOOM,
        "linkLabelZoom": LINK_LABEL_VISIBLE_ZOOM,
        "focusNodeId": layout.focus_node_id,
        "clickDelay": CLICK_DELAY_MS,
        "shortcuts": KEYBOARD_SHORTCUTS,
        "zoomFactor": ZOOM_FACTOR,
        "minZoom": MIN_ZOOM,
        "maxZoom": MAX_ZOOM,
        "fullscreen": layout.fullscreen,
    }
    return f"""
<script type="text/javascript">
(function() {{
    const cfg = {json.dumps(cfg)};
    if (typeof network === 'undefined') return;

    function applyLabelZoom(k) {{
        network.setOptions({{
            nodes: {{ font: {{ size: k >= cfg.labelZoom ? 10 : 0 }} }},
            edges: {{ font: {{ size: k >= cfg.linkLabelZoom ? 9 : 0 }} }}
        }});
    }}
    network.on('zoom', function(params) {{ applyLabelZoom(params.scale); }});
    applyLabelZoom(network.getScale());

    function report(key, value) {{
        try {{
            const url = new URL(window.parent.location.href);
            ['node', 'explore', 'label', 'fullscreen'].forEach(k => url.searchParams.delete(k));
            Object.keys(value).forEach(k => url.searchParams.set(k, value[k]));
            window.parent.location.href = url.toString();
        }} catch (e) {{
            console.warn('Graph action not delivered: ' + key, e);
        }}
    }}

    let clickTimer = null;
    network.on('click', function(params) {{
        if (!params.nodes.length) return;
        const nodeId = params.nodes[0];
        const src = params.event && params.event.srcEvent ? params.event.srcEvent : {{}};
        if (src.ctrlKey || src.metaKey) {{
            report('explore', {{ explore: nodeId }});
            return;
        }}
        clearTimeout(clickTimer);
        clickTimer = setTimeout(function() {{ report('select', {{ node: nodeId }}); }}, cfg.clickDelay);
    }});
    network.on('doubleClick', function(params) {{
        clearTimeout(clickTimer);
        if (params.nodes.length) report('explore', {{ explore: params.nodes[0] }});
    }});

    if (cfg.focusNodeId && network.body.nodes[cfg.focusNodeId]) {{
        network.once('afterDrawing', function() {{
            network.focus(cfg.focusNodeId, {{ scale: 1, animation: false }});
        }});
    }}

    function zoomBy(factor) {{
        const k = Math.min(cfg.maxZoom, Math.max(cfg.minZoom, network.getScale() * factor));
        network.moveTo({{ scale: k }});
        applyLabelZoom(k);
    }}
    if (cfg.fullscreen) document.addEventListener('keydown', function(e) {{
        const target = document.activeElement;
        const tag = target && target.tagName ? target.tagName.toUpperCase() : '';
        if (tag === 'INPUT' || tag === 'TEXTAREA') return;
        const action = cfg.shortcuts[e.key];
        if (!action) return;
        if (action === 'close_fullscreen') {{
            report('close', {{ fullscreen: '0' }});
        }} else if (action === 'reset_zoom') {{
            network.moveTo({{ scale: 1, position: {{ x: 0, y: 0 }} }});
            network.fit();
            applyLabelZoom(network.getScale());
        }} else if (action === 'zoom_in') {{
            e.preventDefault();
            zoomBy(cfg.zoomFactor);
        }} else if (action === 'zoom_out') {{
            e.preventDefault();
            zoomBy(1 / cfg.zoomFactor);
        }}
    }});
}})();
</script>
"""


def render_html(layout: GraphLayout) -> str:
    """Full HTML document for `components.html`."""
    net = build_network(layout)
    html = net.generate_html()
    script = _interaction_script(layout)
    if "</body>" in html:
        return html.replace("</body>", script + "</body>", 1)
    return html + script


def legend_entries():
    """(kind, label, color) rows for the legend panel, in enum order."""
    rows = [("node", t.value, NODE_COLORS[t]) for t in NodeType]
    rows += [("link", t.display_name, LINK_COLORS[t]) for t in LinkType]
    return rows


def empty_state_markdown() -> str:
    return f"**{EMPTY_STATE_TITLE}**\n\n{EMPTY_STATE_BODY}"
