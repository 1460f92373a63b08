import json

import streamlit as st

import graphConfig
from graphBuilder import graph_from_session
from graphData import load_graph
from graphModel import GraphError, KnowledgeGraph
from logSetup import setup_logger

# --- PAGE CONFIG ---
st.set_page_config(layout="wide", page_title="SignalWeb")
logger = setup_logger(level=graphConfig.LOG_LEVEL, log_file=graphConfig.LOG_FILE)

# --- NAVIGATION SETUP ---
# Streamlit picks up pages/ on its own; this file is the landing page.

st.title("SignalWeb 🛰️")

st.markdown("""
## Geopolitical Knowledge Graph

Events, countries, companies, commodities, organizations and people pulled out of
search results, and the causal links between them.

### 🕸️ **Graph Explorer**
* **Focus** on one entity and its neighbourhood.
* **Filter** node and link types.
* **Export** the current view as PNG or SVG.

---

**👈 Load a search session below, then open the Graph Explorer from the sidebar.**
""")


# --- SHARED DATA LOADER ---
@st.cache_resource
def load_data():
    try:
        return load_graph(graphConfig.GRAPH_FILE)
    except (GraphError, json.JSONDecodeError) as e:
        st.error(f"❌ Could not read {graphConfig.GRAPH_FILE}: {e}")
        return KnowledgeGraph.empty()


G = load_data()

col1, col2 = st.columns(2)
col1.metric("Nodes", len(G.nodes))
col2.metric("Links", len(G.links))

# --- SEARCH SESSION IMPORT ---
st.subheader("Run a search")
uploaded = st.file_uploader("Search session (JSON with `results` and `relationships`)", type=["json"])
merge = st.checkbox("Merge into the current graph", value=not G.is_empty,
                    help="Links missing from the new session are closed instead of removed.")

if uploaded is not None and st.button("Build graph"):
    try:
        payload = json.load(uploaded)
        graph = graph_from_session(
            payload,
            previous=G if merge and not G.is_empty else None,
            max_nodes=graphConfig.BUILD_MAX_NODES,
            max_links=graphConfig.BUILD_MAX_LINKS,
        )
    except (GraphError, json.JSONDecodeError) as e:
        st.error(f"❌ Invalid search session: {e}")
    else:
        with open(graphConfig.GRAPH_FILE, "w", encoding="utf-8") as f:
            json.dump(graph.to_dict(), f)
        logger.info(f"Saved graph to {graphConfig.GRAPH_FILE}: {len(graph.nodes)} nodes")
        st.cache_resource.clear()
        st.success(f"✅ Built graph with {len(graph.nodes)} nodes and {len(graph.links)} links.")
        st.page_link("pages/GraphExplorer.py", label="Open Graph Explorer", icon="🕸️")
