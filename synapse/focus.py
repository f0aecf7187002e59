# synapse/focus.py
"""
Focus state and the view transform it implies.

ViewTransform.project is the one projection formula: the renderer and the
hit tester both go through it so hover and visuals never diverge.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

from .config import Config
from .graph_store import Graph, Point

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewTransform:
    """translate(tx, ty) scale(k)"""
    tx: float
    ty: float
    k: float

    def project(self, x: float, y: float) -> Point:
        return (x * self.k + self.tx, y * self.k + self.ty)

    def invert(self, sx: float, sy: float) -> Point:
        return ((sx - self.tx) / self.k, (sy - self.ty) / self.k)

    def lerp(self, other: "ViewTransform", t: float) -> "ViewTransform":
        return ViewTransform(
            self.tx + (other.tx - self.tx) * t,
            self.ty + (other.ty - self.ty) * t,
            self.k + (other.k - self.k) * t,
        )

    def to_dict(self) -> Dict[str, float]:
        return {"tx": self.tx, "ty": self.ty, "k": self.k}

    def to_svg(self) -> str:
        return f"translate({self.tx}, {self.ty}) scale({self.k})"


def compute_view_transform(focus_position: Optional[Point], zoom: float,
                           width: float, height: float) -> ViewTransform:
    """Center the focused node at the focus zoom, or the origin at the global zoom."""
    if focus_position is not None:
        k = Config.focus.FOCUS_ZOOM
        x, y = focus_position
        return ViewTransform(width / 2 - x * k, height / 2 - y * k, k)
    return ViewTransform(width / 2, height / 2, zoom)


def ease_cubic_out(t: float) -> float:
    t = min(1.0, max(0.0, t))
    return 1 - (1 - t) ** 3


@dataclass
class TransformAnimation:
    start: ViewTransform
    end: ViewTransform
    started_at: float
    duration: float  # seconds

    def sample(self, now: float) -> ViewTransform:
        if self.done(now):
            return self.end
        return self.start.lerp(self.end, ease_cubic_out((now - self.started_at) / self.duration))

    def done(self, now: float) -> bool:
        return now - self.started_at >= self.duration


class FocusController:
    """Unfocused / Focused(node_id) plus the global zoom level."""

    def __init__(self, width: float = None, height: float = None):
        self.width = width if width is not None else Config.viewport.WIDTH
        self.height = height if height is not None else Config.viewport.HEIGHT
        self.focused_id: Optional[str] = None
        self.zoom = 1.0
        self._animation: Optional[TransformAnimation] = None
        self._displayed = ViewTransform(self.width / 2, self.height / 2, self.zoom)

    @property
    def is_focused(self) -> bool:
        return self.focused_id is not None

    def enter_focus(self, node_id: str, graph: Graph) -> bool:
        """Focus a node; ignored when the node does not exist."""
        if node_id not in graph.nodes:
            logger.debug(f"Ignoring focus on unknown node '{node_id}'")
            return False
        self.focused_id = node_id
        return True

    def exit_focus(self) -> bool:
        was_focused = self.focused_id is not None
        self.focused_id = None
        return was_focused

    def validate(self, graph: Graph) -> bool:
        """Drop a focus whose node is gone. Returns True if it was cleared."""
        if self.focused_id is not None and self.focused_id not in graph.nodes:
            logger.info(f"Focused node '{self.focused_id}' no longer exists, clearing focus")
            self.focused_id = None
            return True
        return False

    # Interaction mapping
    def background_interaction(self) -> bool:
        return self.exit_focus()

    def enter_interaction(self, node_id: str, graph: Graph) -> bool:
        return self.enter_focus(node_id, graph)

    # --- Zoom ---
    def set_zoom(self, level: float) -> float:
        cfg = Config.focus
        self.zoom = min(cfg.MAX_ZOOM, max(cfg.MIN_ZOOM, float(level)))
        return self.zoom

    def zoom_in(self) -> float:
        return self.set_zoom(self.zoom + Config.focus.ZOOM_STEP)

    def zoom_out(self) -> float:
        return self.set_zoom(self.zoom - Config.focus.ZOOM_STEP)

    def reset(self):
        self.focused_id = None
        self.zoom = 1.0

    def set_viewport(self, width: float, height: float):
        self.width, self.height = width, height

    # --- Transform ---
    def view_transform(self, graph: Graph) -> ViewTransform:
        """Target transform for the current focus, zoom and node positions."""
        position = None
        if self.focused_id is not None:
            node = graph.nodes.get(self.focused_id)
            if node is not None:
                position = node.position
        return compute_view_transform(position, self.zoom, self.width, self.height)

    def animate_to(self, target: ViewTransform, now: float = None) -> TransformAnimation:
        """Start easing toward target from whatever is on screen; replaces any running animation."""
        now = time.monotonic() if now is None else now
        start = self.displayed_transform(now)
        self._animation = TransformAnimation(start, target, now, Config.focus.TRANSITION_MS / 1000.0)
        return self._animation

    def displayed_transform(self, now: float = None) -> ViewTransform:
        now = time.monotonic() if now is None else now
        if self._animation is not None:
            self._displayed = self._animation.sample(now)
            if self._animation.done(now):
                self._animation = None
        return self._displayed

    @property
    def animating(self) -> bool:
        return self._animation is not None

    def abandon_animation(self):
        self._animation = None
