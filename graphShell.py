"""
Fullscreen shell state and keyboard shortcuts for the graph view.

The shortcut table is shared with the embedded page (graphRenderer injects it
as JSON), so Python and the browser agree on what each key does.
"""
from dataclasses import dataclass
from typing import Optional

ZOOM_FACTOR = 1.2
MIN_ZOOM = 0.1
MAX_ZOOM = 4.0

KEYBOARD_SHORTCUTS = {
    "Escape": "close_fullscreen",
    "r": "reset_zoom",
    "R": "reset_zoom",
    "+": "zoom_in",
    "=": "zoom_in",
    "-": "zoom_out",
}

TEXT_INPUT_TAGS = {"INPUT", "TEXTAREA"}


def resolve_shortcut(key: str, active_tag: Optional[str] = None) -> Optional[str]:
    """Action for a key press, or None while the user is typing in a text field."""
    if active_tag and active_tag.upper() in TEXT_INPUT_TAGS:
        return None
    return KEYBOARD_SHORTCUTS.get(key)


def zoom_step(k: float, direction: str) -> float:
    if direction == "in":
        k = k * ZOOM_FACTOR
    elif direction == "out":
        k = k / ZOOM_FACTOR
    else:
        raise ValueError(f"Unknown zoom direction: {direction}")
    return min(MAX_ZOOM, max(MIN_ZOOM, k))


@dataclass
class ShellState:
    fullscreen: bool = False
    legend_open: bool = False
    filters_open: bool = False
    zoom: float = 1.0

    def toggle_fullscreen(self):
        self.fullscreen = not self.fullscreen
        return self.fullscreen

    def toggle_legend(self):
        self.legend_open = not self.legend_open
        return self.legend_open

    def reset_zoom(self):
        self.zoom = 1.0

    def handle_key(self, key: str, active_tag: Optional[str] = None) -> Optional[str]:
        # Shortcuts are only bound while the fullscreen view is open
        if not self.fullscreen:
            return None
        action = resolve_shortcut(key, active_tag)
        if action == "close_fullscreen":
            self.fullscreen = False
        elif action == "reset_zoom":
            self.reset_zoom()
        elif action == "zoom_in":
            self.zoom = zoom_step(self.zoom, "in")
        elif action == "zoom_out":
            self.zoom = zoom_step(self.zoom, "out")
        return action
