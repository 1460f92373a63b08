import os

from graphModel import ConfigError

# --- CONFIGURATION ---
GRAPH_FILE = os.environ.get("SIGNALWEB_GRAPH_FILE", "knowledge_graph.json")
SESSION_FILE = os.environ.get("SIGNALWEB_SESSION_FILE", "search_session.json")
BUCKET = os.environ.get("SIGNALWEB_BUCKET", "graph_assets")
LOG_LEVEL = os.environ.get("SIGNALWEB_LOG_LEVEL", "INFO")
LOG_FILE = os.environ.get("SIGNALWEB_LOG_FILE")  # unset = console only

SUPABASE_URL = os.environ.get("SUPABASE_URL")
SUPABASE_KEY = os.environ.get("SUPABASE_KEY")


def _env_number(name, default, cast=int, minimum=None):
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


# Rendering limits
MAX_NODES = _env_number("SIGNALWEB_MAX_NODES", 150, minimum=1)
EGO_DEPTH = _env_number("SIGNALWEB_EGO_DEPTH", 2, minimum=0)
MAX_EGO_DEPTH = 5

# Builder limits (applied before the graph is stored)
BUILD_MAX_NODES = _env_number("SIGNALWEB_BUILD_MAX_NODES", 100, minimum=1)
BUILD_MAX_LINKS = _env_number("SIGNALWEB_BUILD_MAX_LINKS", 200, minimum=0)

# Viewport
GRAPH_HEIGHT = _env_number("SIGNALWEB_GRAPH_HEIGHT", 600, minimum=200)
GRAPH_WIDTH = _env_number("SIGNALWEB_GRAPH_WIDTH", 1000, minimum=200)
FULLSCREEN_HEIGHT = _env_number("SIGNALWEB_FULLSCREEN_HEIGHT", 900, minimum=200)
FULLSCREEN_WIDTH = _env_number("SIGNALWEB_FULLSCREEN_WIDTH", 1600, minimum=200)

# Physics
LINK_DISTANCE = 100
CHARGE_STRENGTH = -300
COLLISION_RADIUS = 30
ALPHA_DECAY = _env_number("SIGNALWEB_ALPHA_DECAY", 0.06, cast=float, minimum=0.0)
LAYOUT_SEED = 42
