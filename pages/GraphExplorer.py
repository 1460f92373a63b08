import json

import pandas as pd
import streamlit as st
import streamlit.components.v1 as components

import graphConfig
from graphData import load_graph, load_search_session
from graphExport import PNG_FILENAME, SVG_FILENAME, export_png, export_svg
from graphFilters import apply_pipeline, related_entities, toggle_type
from graphModel import LINK_TYPES, NODE_TYPES, GraphError, KnowledgeGraph, LinkType
from graphRenderer import (EMPTY_STATE_ACTION, NodeInteraction, RenderSession,
                           empty_state_markdown, legend_entries, render_html)
from graphShell import ShellState
from logSetup import setup_logger

# --- PAGE CONFIG ---
st.set_page_config(layout="wide", page_title="Knowledge Graph Explorer")
logger = setup_logger(level=graphConfig.LOG_LEVEL, log_file=graphConfig.LOG_FILE)


# --- 1. LOAD DATA (Cached) ---
@st.cache_resource
def load_data():
    data = {"graph": KnowledgeGraph.empty(), "source": None}
    try:
        graph = load_graph(graphConfig.GRAPH_FILE)
        source = graphConfig.GRAPH_FILE
        if graph.is_empty:
            graph = load_search_session(graphConfig.SESSION_FILE)
            source = graphConfig.SESSION_FILE
    except (GraphError, json.JSONDecodeError) as e:
        st.error(f"Could not load the knowledge graph: {e}")
        return data
    data["graph"] = graph
    data["source"] = source if not graph.is_empty else None
    return data


data = load_data()
G = data["graph"]

# --- 2. SESSION STATE ---
if "render_session" not in st.session_state:
    st.session_state["render_session"] = RenderSession()
if "shell" not in st.session_state:
    st.session_state["shell"] = ShellState()
st.session_state.setdefault("visible_node_types", None)
st.session_state.setdefault("visible_link_types", None)
st.session_state.setdefault("selected_node", None)
st.session_state.setdefault("center_node", None)
st.session_state.setdefault("view_nonce", 0)

session = st.session_state["render_session"]
shell = st.session_state["shell"]


def select_node(node_id):
    st.session_state["selected_node"] = node_id


def explore_node(node_id, label):
    st.session_state["center_node"] = node_id
    st.session_state["selected_node"] = node_id
    st.session_state["explore_query"] = label
    logger.info(f"Exploring around {node_id} ({label})")


# Actions written into the URL by the embedded graph
params = st.query_params
focus_node_id = params.get("focus") or params.get("highlight")
NodeInteraction(G, on_node_click=select_node, on_node_explore=explore_node).dispatch_query_params(params)
if params.get("fullscreen") == "0":
    shell.fullscreen = False
for key in ("node", "explore", "fullscreen"):
    if key in params:
        del params[key]


def label_for(node_id):
    node = G.get_node(node_id)
    return node.label if node else node_id


# --- SIDEBAR CONTROLS ---
st.sidebar.title("🔍 Graph Controls")

max_nodes = st.sidebar.slider("Max Nodes", 10, 500, graphConfig.MAX_NODES,
                              help="Above this, only the most corroborated nodes are drawn.")

center_options = [None] + [n.id for n in sorted(G.nodes, key=lambda n: n.label.lower())]
center_index = center_options.index(st.session_state["center_node"]) \
    if st.session_state["center_node"] in center_options else 0
center_node = st.sidebar.selectbox(
    "Focus Entity (ego graph)",
    center_options,
    index=center_index,
    format_func=lambda x: "Whole graph" if x is None else f"{label_for(x)} ({x})",
)
st.session_state["center_node"] = center_node
depth = st.sidebar.slider("Graph Depth", 0, graphConfig.MAX_EGO_DEPTH, graphConfig.EGO_DEPTH,
                          help="0 = the entity alone. 1 = direct connections. 2 = connections of connections.",
                          disabled=center_node is None)


def _on_toggle(state_key, type_name, all_types):
    st.session_state[state_key] = toggle_type(st.session_state[state_key], type_name, all_types)


with st.sidebar.expander("Filters", expanded=shell.filters_open):
    st.markdown("**Node types**")
    for t in NODE_TYPES:
        current = st.session_state["visible_node_types"]
        st.checkbox(t, value=current is None or t in current, key=f"node_type_{t}",
                    on_change=_on_toggle, args=("visible_node_types", t, NODE_TYPES))
    st.markdown("**Link types**")
    for t in LINK_TYPES:
        current = st.session_state["visible_link_types"]
        st.checkbox(LinkType(t).display_name, value=current is None or t in current, key=f"link_type_{t}",
                    on_change=_on_toggle, args=("visible_link_types", t, LINK_TYPES))

# --- PIPELINE ---
result = apply_pipeline(
    G,
    max_nodes=max_nodes,
    visible_node_types=st.session_state["visible_node_types"],
    visible_link_types=st.session_state["visible_link_types"],
    center_id=center_node,
    depth=depth,
)
display_graph = result.graph

# --- RENDER PAGE ---
st.title("Knowledge Graph Explorer 🕸️")
if st.session_state.get("explore_query"):
    st.caption(f"Query: {st.session_state['explore_query']}")

toolbar = st.columns([1, 1, 1, 1, 1])
if toolbar[0].button("Reset zoom"):
    shell.reset_zoom()
    st.session_state["view_nonce"] += 1
if toolbar[1].button("Hide legend" if shell.legend_open else "Legend"):
    shell.toggle_legend()
if toolbar[2].button("Exit fullscreen" if shell.fullscreen else "Fullscreen"):
    shell.toggle_fullscreen()

if result.capped:
    st.caption(result.capped_message)

if shell.fullscreen:
    layout = session.mount(display_graph, "fullscreen",
                           graphConfig.FULLSCREEN_WIDTH, graphConfig.FULLSCREEN_HEIGHT, focus_node_id)
else:
    layout = session.mount(display_graph, "normal",
                           graphConfig.GRAPH_WIDTH, graphConfig.GRAPH_HEIGHT, focus_node_id)

if layout is None:
    st.info(empty_state_markdown())
    st.page_link("app.py", label=EMPTY_STATE_ACTION, icon="🔎")
else:
    html_data = render_html(layout) + f"\n<!-- view {st.session_state['view_nonce']} -->"
    components.html(html_data, height=int(layout.height) + 20, scrolling=False)
    st.caption("Click a node for details. Ctrl/Cmd-click or double-click to explore around it. "
               + ("Esc closes fullscreen, R resets zoom, +/- zoom." if shell.fullscreen else ""))

    svg = export_svg(layout)
    png = export_png(layout)
    if toolbar[3].download_button("Export SVG", svg, file_name=SVG_FILENAME, mime="image/svg+xml"):
        logger.info("SVG exported")
    if png is not None:
        toolbar[4].download_button("Export PNG", png, file_name=PNG_FILENAME, mime="image/png")
    else:
        toolbar[4].caption("PNG export unavailable")

if shell.legend_open:
    legend = pd.DataFrame(legend_entries(), columns=["Kind", "Type", "Color"])
    st.dataframe(
        legend.style.apply(lambda col: [f"background-color: {c}" for c in col], subset=["Color"]),
        hide_index=True,
    )

# --- METRICS & ANALYSIS ---
selected = st.session_state["selected_node"]
node = G.get_node(selected) if selected else None
if node is not None:
    st.markdown("---")
    st.subheader(f"📊 {node.label}")
    confidence = f"{round(node.confidence * 100)}%" if node.confidence is not None else "n/a"
    st.write(f"**Type:** {node.type.value} · **Confidence:** {confidence} · **Sources:** {node.source_count}")

    col1, col2 = st.columns(2)

    with col1:
        st.markdown("#### 🔗 Links")
        conn_data = []
        for link in G.links:
            if not link.touches(node.id):
                continue
            other = link.target if link.source == node.id else link.source
            conn_data.append({
                "Direction": "→" if link.source == node.id else "←",
                "Entity": label_for(other),
                "Type": link.type.display_name,
                "Strength": round(link.strength, 2),
            })
        if conn_data:
            conn_df = pd.DataFrame(conn_data).sort_values("Strength", ascending=False)
            st.dataframe(conn_df.head(15), hide_index=True)
        else:
            st.write("No connections found.")

    with col2:
        st.markdown("#### 🤝 Related Entities (Shared Connections)")
        related_data = [
            {"Name": label_for(node_id), "Shared Connections": score}
            for node_id, score in related_entities(G, node.id, top_n=15)
        ]
        if related_data:
            st.dataframe(pd.DataFrame(related_data), hide_index=True)
        else:
            st.write("No related entities found.")

    if node.data.get("url"):
        st.markdown(f"[Open source article]({node.data['url']})")
elif not G.is_empty:
    st.markdown("""
    ### How to use:
    1. **Click a node** to see its links and related entities.
    2. **Double-click** (or Ctrl/Cmd-click) to explore the graph around it.
    3. **Use the filters** in the sidebar to hide node and link types.
    """)
