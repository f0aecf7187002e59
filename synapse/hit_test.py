# synapse/hit_test.py
import math
from typing import Optional, Tuple

from .config import Config
from .focus import ViewTransform
from .graph_store import Graph, Point


def resolve(cursor: Optional[Point], graph: Graph, transform: ViewTransform,
            width: float, height: float, radius: float = None) -> Optional[str]:
    """
    Nearest node to a normalized cursor, in screen pixels.

    Node positions go through transform.project, the same formula the
    renderer uses. Only nodes closer than `radius` count.
    """
    if cursor is None:
        return None
    radius = Config.hit_test.RADIUS if radius is None else radius
    cx, cy = cursor[0] * width, cursor[1] * height

    hit = None
    best = radius
    for node in graph.nodes.values():
        if node.position is None:
            continue
        sx, sy = transform.project(*node.position)
        dist = math.hypot(sx - cx, sy - cy)
        if dist < best:
            hit = node.id
            best = dist
    return hit


class HitTester:
    """Tracks the hovered node across cursor samples."""

    def __init__(self):
        self.hover_id: Optional[str] = None

    def update(self, cursor: Optional[Point], graph: Graph, transform: ViewTransform,
               width: float, height: float) -> Tuple[Optional[str], bool]:
        """Recompute hover; returns (hover_id, changed)."""
        hit = resolve(cursor, graph, transform, width, height)
        changed = hit != self.hover_id
        self.hover_id = hit
        return hit, changed

    def clear(self) -> bool:
        changed = self.hover_id is not None
        self.hover_id = None
        return changed
