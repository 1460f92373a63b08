"""
PNG and SVG export of a laid-out knowledge graph.

SVG is serialized by hand from the layout. PNG is rasterized with matplotlib
onto an opaque dark background; the plain SVG has no background and would come
out transparent.
"""
import io
import logging
from xml.sax.saxutils import escape, quoteattr

import matplotlib
matplotlib.use("Agg")
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.collections import LineCollection
from matplotlib.figure import Figure

from graphRenderer import (BACKGROUND, GraphLayout, link_color, node_color,
                           node_radius, truncate_label)

logger = logging.getLogger(__name__)

EXPORT_BASENAME = "knowledge-graph"
PNG_FILENAME = f"{EXPORT_BASENAME}.png"
SVG_FILENAME = f"{EXPORT_BASENAME}.svg"
PADDING = 40
DPI = 100


def _fit(layout: GraphLayout):
    """Map simulation coordinates into the export viewport, keeping aspect ratio."""
    points = [(p.x, p.y) for p in layout.positions.values()]
    if not points:
        return lambda x, y: (x, y)
    xs, ys = [p[0] for p in points], [p[1] for p in points]
    min_x, max_x, min_y, max_y = min(xs), max(xs), min(ys), max(ys)
    span_x = max(max_x - min_x, 1.0)
    span_y = max(max_y - min_y, 1.0)
    scale = min((layout.width - 2 * PADDING) / span_x,
                (layout.height - 2 * PADDING) / span_y, 1.0)
    off_x = (layout.width - span_x * scale) / 2
    off_y = (layout.height - span_y * scale) / 2

    def transform(x, y):
        return (off_x + (x - min_x) * scale, off_y + (y - min_y) * scale)
    return transform


def _drawable(layout: GraphLayout):
    transform = _fit(layout)
    nodes = []
    for node in layout.graph.nodes:
        pos = layout.positions.get(node.id)
        if pos is None:
            continue
        x, y = transform(pos.x, pos.y)
        nodes.append((node, x, y))
    placed = {node.id: (x, y) for node, x, y in nodes}
    links = [
        (link, placed[link.source], placed[link.target])
        for link in layout.graph.links
        if link.source in placed and link.target in placed
    ]
    return nodes, links


def export_svg(layout: GraphLayout) -> str:
    width, height = int(layout.width), int(layout.height)
    nodes, links = _drawable(layout)

    out = [
        f"<svg xmlns='http://www.w3.org/2000/svg' width='{width}' height='{height}' "
        f"viewBox='0 0 {width} {height}'>"
    ]
    out.append("<g class='links'>")
    for link, (x1, y1), (x2, y2) in links:
        out.append(
            f"<line x1='{x1:.1f}' y1='{y1:.1f}' x2='{x2:.1f}' y2='{y2:.1f}' "
            f"stroke='{link_color(link.type)}' stroke-opacity='0.6' "
            f"stroke-width='{link.strength * 3:.2f}'/>"
        )
    out.append("</g>")
    out.append("<g class='nodes'>")
    for node, x, y in nodes:
        out.append(
            f"<circle cx='{x:.1f}' cy='{y:.1f}' r='{node_radius(node):.1f}' "
            f"fill='{node_color(node.type)}' stroke='#fff' stroke-width='1.5' "
            f"data-id={quoteattr(node.id)}/>"
        )
    out.append("</g>")
    out.append("<g class='labels' font-size='10px' fill='#fff' text-anchor='middle'>")
    for node, x, y in nodes:
        label = escape(truncate_label(node.label, layout.fullscreen))
        out.append(f"<text x='{x:.1f}' y='{y + node_radius(node) + 12:.1f}'>{label}</text>")
    out.append("</g>")
    out.append("</svg>")
    return "\n".join(out)


def export_png(layout: GraphLayout):
    """PNG bytes, or None when rasterizing fails."""
    width, height = layout.width, layout.height
    nodes, links = _drawable(layout)
    try:
        fig = Figure(figsize=(width / DPI, height / DPI), dpi=DPI, facecolor=BACKGROUND)
        FigureCanvasAgg(fig)
        ax = fig.add_axes([0, 0, 1, 1])
        ax.set_facecolor(BACKGROUND)
        ax.set_xlim(0, width)
        ax.set_ylim(height, 0)
        ax.axis("off")

        if links:
            segments = [[start, end] for _, start, end in links]
            ax.add_collection(LineCollection(
                segments,
                colors=[link_color(l.type) for l, _, _ in links],
                linewidths=[max(l.strength * 3 * 0.72, 0.3) for l, _, _ in links],
                alpha=0.6,
            ))
        if nodes:
            ax.scatter(
                [x for _, x, _ in nodes],
                [y for _, _, y in nodes],
                s=[(node_radius(n) * 2 * 0.72) ** 2 for n, _, _ in nodes],
                c=[node_color(n.type) for n, _, _ in nodes],
                edgecolors="white",
                linewidths=1.0,
                zorder=2,
            )
            for node, x, y in nodes:
                ax.text(x, y + node_radius(node) + 12, truncate_label(node.label, layout.fullscreen),
                        color="white", fontsize=7, ha="center", va="center", zorder=3)

        buf = io.BytesIO()
        fig.savefig(buf, format="png", facecolor=BACKGROUND)
        return buf.getvalue()
    except (ValueError, RuntimeError, OSError) as e:
        logger.warning(f"PNG export failed: {e}")
        return None
