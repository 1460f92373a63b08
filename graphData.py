import json
import logging
import os

from supabase import create_client, Client

import graphConfig
from graphBuilder import graph_from_session
from graphModel import ConfigError, KnowledgeGraph

logger = logging.getLogger(__name__)

_client = None


def get_supabase() -> Client:
    """Supabase client built on first use from SUPABASE_URL / SUPABASE_KEY."""
    global _client
    if _client is None:
        if not graphConfig.SUPABASE_URL or not graphConfig.SUPABASE_KEY:
            raise ConfigError("SUPABASE_URL and SUPABASE_KEY must be set to download graph assets")
        _client = create_client(graphConfig.SUPABASE_URL, graphConfig.SUPABASE_KEY)
    return _client


def ensure_local_file(filename, bucket=graphConfig.BUCKET, client=None):
    """
    Checks if a file exists locally. If not, attempts to download it
    from Supabase Storage and save it to disk.
    """
    if os.path.exists(filename):
        return True

    logger.info(f"File {filename} not found locally. Downloading from bucket '{bucket}'...")
    try:
        client = client or get_supabase()
        file_bytes = client.storage.from_(bucket).download(os.path.basename(filename))
    except ConfigError as e:
        logger.warning(str(e))
        return False
    except Exception as e:
        # storage3 raises its own error types; anything here means "not available"
        logger.warning(f"Failed to download {filename} from bucket '{bucket}': {e}")
        return False

    with open(filename, "wb") as f:
        f.write(file_bytes)
    logger.info(f"Downloaded {filename}")
    return True


def _read_json(path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_graph(path=graphConfig.GRAPH_FILE, client=None):
    """Graph payload from disk (or the storage bucket). Missing file -> empty graph."""
    if not ensure_local_file(path, client=client):
        return KnowledgeGraph.empty()
    graph = KnowledgeGraph.from_dict(_read_json(path), strict=False)
    logger.info(f"Loaded graph from {path}: {len(graph.nodes)} nodes, {len(graph.links)} links")
    return graph


def load_search_session(path=graphConfig.SESSION_FILE, client=None):
    """Saved search session (results + relationships) turned into a graph."""
    if not ensure_local_file(path, client=client):
        return KnowledgeGraph.empty()
    return graph_from_session(
        _read_json(path),
        max_nodes=graphConfig.BUILD_MAX_NODES,
        max_links=graphConfig.BUILD_MAX_LINKS,
    )
