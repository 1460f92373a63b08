"""
Tests for node styling, click routing, simulation ownership and the HTML page.
"""
import pytest

from forceLayout import NodePosition
from graphModel import GraphNode, KnowledgeGraph, LinkType, NodeType
from graphRenderer import (BACKGROUND, FALLBACK_COLOR, LINK_COLORS, MAX_RADIUS,
                           MIN_RADIUS, NODE_BASE_SIZES, NODE_COLORS, GraphLayout,
                           NodeInteraction, RenderSession, _network_options,
                           build_network, classify_click, empty_state_markdown,
                           legend_entries, link_color, node_color, node_radius,
                           render_html, truncate_label)

from conftest import make_node


class FakeSimulation:
    """Stands in for ForceSimulation; records lifecycle calls."""
    created = []

    def __init__(self, graph, width, height, **kwargs):
        self.graph = graph
        self.size = (width, height)
        self.kwargs = kwargs
        self.stopped = False
        FakeSimulation.created.append(self)

    def run(self, max_ticks):
        return 7

    def stop(self):
        self.stopped = True
        return self

    def positions(self):
        return {n.id: NodePosition(float(i * 10), 0.0) for i, n in enumerate(self.graph.nodes)}


@pytest.fixture
def session():
    FakeSimulation.created = []
    return RenderSession(simulation_factory=FakeSimulation)


class TestStyling:

    def test_every_type_has_a_color(self):
        assert set(NODE_COLORS) == set(NodeType) == set(NODE_BASE_SIZES)
        assert set(LINK_COLORS) == set(LinkType)
        assert node_color("country") == "#3B82F6"
        assert link_color(LinkType.CAUSES) == "#EF4444"

    def test_unknown_type_falls_back_to_gray(self):
        assert node_color("planet") == FALLBACK_COLOR
        assert link_color("teleports") == FALLBACK_COLOR

    @pytest.mark.parametrize("node_type,source_count,expected", [
        ("event", 0, 12),
        ("event", 5, 24),
        ("event", 50, 24),
        ("person", 0, 6),
        ("person", 20, 18),
        ("country", 10, 24),
    ])
    def test_radius(self, node_type, source_count, expected):
        node = make_node("x", node_type, source_count=source_count)
        assert node_radius(node) == pytest.approx(expected)

    def test_radius_always_clamped(self):
        for node_type in NodeType:
            for sc in range(0, 40, 3):
                r = node_radius(make_node("x", node_type, source_count=sc))
                assert MIN_RADIUS <= r <= MAX_RADIUS

    def test_truncate_label(self):
        assert truncate_label("Short") == "Short"
        assert truncate_label("x" * 15) == "x" * 15
        assert truncate_label("Strait of Hormuz closure") == "Strait of Hormu..."
        assert truncate_label("Strait of Hormuz closure", fullscreen=True) == "Strait of Hormuz closure"
        assert truncate_label("y" * 31, fullscreen=True) == "y" * 30 + "..."

    def test_legend_lists_every_type(self):
        rows = legend_entries()
        assert len(rows) == len(NodeType) + len(LinkType)
        assert ("link", "related to", "#6B7280") in rows


class TestClickRouting:

    @pytest.mark.parametrize("ctrl,meta,double,expected", [
        (False, False, False, "select"),
        (True, False, False, "explore"),
        (False, True, False, "explore"),
        (False, False, True, "explore"),
    ])
    def test_classify_click(self, ctrl, meta, double, expected):
        assert classify_click(ctrl, meta, double) == expected

    def test_exactly_one_callback_per_click(self, abc_graph):
        calls = []
        interaction = NodeInteraction(
            abc_graph,
            on_node_click=lambda node_id: calls.append(("click", node_id)),
            on_node_explore=lambda node_id, label: calls.append(("explore", node_id, label)),
        )
        interaction.dispatch("A")
        interaction.dispatch("B", ctrl=True)
        interaction.dispatch("C", double=True)
        assert calls == [("click", "A"), ("explore", "B", "B"), ("explore", "C", "C")]

    def test_unknown_node_ignored(self, abc_graph):
        calls = []
        interaction = NodeInteraction(abc_graph, on_node_click=calls.append)
        assert interaction.dispatch("ghost") is None
        assert calls == []

    def test_missing_callbacks_are_fine(self, abc_graph):
        assert NodeInteraction(abc_graph).dispatch("A", meta=True) == "explore"

    def test_query_params(self, abc_graph):
        calls = []
        interaction = NodeInteraction(
            abc_graph,
            on_node_click=lambda node_id: calls.append(("click", node_id)),
            on_node_explore=lambda node_id, label: calls.append(("explore", node_id)),
        )
        assert interaction.dispatch_query_params({"explore": "A", "node": "B"}) == "explore"
        assert interaction.dispatch_query_params({"node": "B"}) == "select"
        assert interaction.dispatch_query_params({}) is None
        assert calls == [("explore", "A"), ("click", "B")]


class TestRenderSession:

    def test_mount_builds_layout(self, session, abc_graph):
        layout = session.mount(abc_graph, "normal", 800, 600, focus_node_id="B")
        assert set(layout.positions) == {"A", "B", "C"}
        assert layout.ticks == 7
        assert layout.focus_node_id == "B"
        assert not layout.fullscreen
        sim = FakeSimulation.created[0]
        assert sim.kwargs["link_distance"] == 100
        assert sim.kwargs["charge_strength"] == -300
        assert sim.kwargs["collision_radius"] == 30

    def test_rerun_reuses_layout(self, session, abc_graph):
        first = session.mount(abc_graph, "normal", 800, 600)
        second = session.mount(abc_graph, "normal", 800, 600)
        assert first is second
        assert len(FakeSimulation.created) == 1

    def test_new_graph_stops_previous_simulation(self, session, abc_graph, cyclic_graph):
        session.mount(abc_graph, "normal", 800, 600)
        session.mount(cyclic_graph, "normal", 800, 600)
        old, new = FakeSimulation.created
        assert old.stopped and not new.stopped
        assert session.live_simulations == [new]

    def test_mode_switch_keeps_one_live_simulation(self, session, abc_graph):
        session.mount(abc_graph, "normal", 800, 600)
        layout = session.mount(abc_graph, "fullscreen", 1600, 900)
        assert layout.fullscreen
        assert session.live_simulations == [session.simulation("fullscreen")]
        session.mount(abc_graph, "normal", 800, 600)
        assert len(FakeSimulation.created) == 3
        assert session.live_simulations == [session.simulation("normal")]

    def test_resize_relayouts_fullscreen(self, session, abc_graph):
        session.mount(abc_graph, "fullscreen", 1600, 900, focus_node_id="A")
        layout = session.resize(1200, 700)
        assert (layout.width, layout.height) == (1200, 700)
        assert layout.focus_node_id == "A"
        assert FakeSimulation.created[0].stopped

    def test_resize_without_fullscreen(self, session):
        assert session.resize(100, 100) is None

    def test_empty_graph_mounts_nothing(self, session, abc_graph):
        session.mount(abc_graph, "normal", 800, 600)
        assert session.mount(KnowledgeGraph.empty(), "normal", 800, 600) is None
        assert session.live_simulations == []

    def test_unknown_mode(self, session, abc_graph):
        with pytest.raises(ValueError):
            session.mount(abc_graph, "theatre")

    def test_unmount(self, session, abc_graph):
        session.mount(abc_graph, "normal", 800, 600)
        session.unmount()
        assert session.simulation("normal") is None
        assert FakeSimulation.created[0].stopped

    def test_empty_state_text(self):
        assert "Run a search" in empty_state_markdown()


class TestRenderHtml:

    def layout(self, graph, fullscreen=False):
        positions = {n.id: NodePosition(float(i), float(i)) for i, n in enumerate(graph.nodes)}
        return GraphLayout(graph, positions, 800, 600, fullscreen=fullscreen, focus_node_id="B")

    def test_contains_nodes_and_script(self, abc_graph):
        html = render_html(self.layout(abc_graph))
        for node_id in ("A", "B", "C"):
            assert f'"id": "{node_id}"' in html
        assert BACKGROUND in html
        assert "doubleClick" in html
        assert '"focusNodeId": "B"' in html
        assert html.index("doubleClick") < html.index("</body>")

    def test_shortcuts_only_bound_in_fullscreen(self, abc_graph):
        assert '"fullscreen": false' in render_html(self.layout(abc_graph))
        assert '"fullscreen": true' in render_html(self.layout(abc_graph, fullscreen=True))

    def test_long_labels_truncated(self):
        graph = KnowledgeGraph([GraphNode(id="n", label="A very long event title", type="event")], [])
        html = render_html(self.layout(graph))
        assert "A very long eve..." in html

    def test_drawn_positions_are_the_exported_ones(self, abc_graph):
        # No browser-side physics, so the view matches the PNG/SVG exports
        assert _network_options()["physics"] == {"enabled": False}
        layout = self.layout(abc_graph)
        net = build_network(layout)
        for node_id, pos in layout.positions.items():
            drawn = net.get_node(node_id)
            assert (drawn["x"], drawn["y"]) == (pos.x, pos.y)
