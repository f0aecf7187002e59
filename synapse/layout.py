# synapse/layout.py
"""
Continuous force-directed layout over the concept graph.

The integrator follows d3-force: a cooling `alpha`, velocity damping, and
link / many-body / collision / positional forces applied once per tick.
Each visual mode contributes a ForceProfile built by a pure function; the
integrator never mutates a shared force object when the mode changes.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from .config import Config
from .graph_store import Graph, GraphNode, LinkKey, Point, reconcile

logger = logging.getLogger(__name__)

INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))


class VisMode(str, Enum):
    NETWORK = "network"
    STREAM = "stream"
    LAYERS = "layers"
    CLUSTER = "cluster"


@dataclass(frozen=True)
class PositionBias:
    """Target coordinates and pull strength on each axis."""
    x: float = 0.0
    x_strength: float = 0.0
    y: float = 0.0
    y_strength: float = 0.0


@dataclass(frozen=True)
class ForceProfile:
    link_distance: float
    link_strength: Optional[float]  # None: d3 default of 1 / min(degree)
    charge: float
    collision_radius: Callable[[GraphNode], float]
    collide_strength: float
    position_bias: Callable[[GraphNode, int, Sequence[GraphNode]], PositionBias]


# --- Mode profiles ---
def network_profile(focused: bool, width: float, height: float) -> ForceProfile:
    return ForceProfile(
        link_distance=200.0 if focused else 150.0,
        link_strength=None,
        charge=-800.0 if focused else -500.0,
        collision_radius=lambda node: max(30.0, node.importance * 4),
        collide_strength=1.0,
        position_bias=lambda node, i, nodes: PositionBias(0.0, 0.05, 0.0, 0.05),
    )


def stream_profile(focused: bool, width: float, height: float) -> ForceProfile:
    def bias(node: GraphNode, i: int, nodes: Sequence[GraphNode]) -> PositionBias:
        count = len(nodes)
        if count > 1:
            x = -width / 2.5 + (i / (count - 1)) * width * 0.8
        else:
            x = 0.0  # a lone node sits in the middle of the stream
        return PositionBias(x, 2.0, 0.0, 0.3)

    return ForceProfile(
        link_distance=80.0,
        link_strength=0.5,
        charge=-100.0,
        collision_radius=lambda node: 30.0,
        collide_strength=1.0,
        position_bias=bias,
    )


def importance_tier_y(importance: float, height: float) -> float:
    """Vertical band for the layers view."""
    importance = min(10.0, max(1.0, importance))
    if importance > 7:
        return -height / 3 + 50
    if importance > 4:
        return 0.0
    return height / 3 - 50


def layers_profile(focused: bool, width: float, height: float) -> ForceProfile:
    return ForceProfile(
        link_distance=100.0,
        link_strength=0.1,
        charge=-200.0,
        collision_radius=lambda node: 40.0,
        collide_strength=1.0,
        position_bias=lambda node, i, nodes: PositionBias(
            0.0, 0.05, importance_tier_y(node.importance, height), 1.5
        ),
    )


def cluster_profile(focused: bool, width: float, height: float) -> ForceProfile:
    return ForceProfile(
        link_distance=30.0,
        link_strength=0.01,
        charge=-10.0,
        collision_radius=lambda node: node.importance * 4 + 15,
        collide_strength=0.9,
        position_bias=lambda node, i, nodes: PositionBias(0.0, 0.2, 0.0, 0.2),
    )


PROFILES: Dict[VisMode, Callable[[bool, float, float], ForceProfile]] = {
    VisMode.NETWORK: network_profile,
    VisMode.STREAM: stream_profile,
    VisMode.LAYERS: layers_profile,
    VisMode.CLUSTER: cluster_profile,
}


def build_profile(mode: VisMode, focused: bool, width: float, height: float) -> ForceProfile:
    return PROFILES[VisMode(mode)](focused, width, height)


def _fmt(v: float) -> str:
    return f"{v:.2f}"


def link_path(mode: VisMode, source: Point, target: Point) -> str:
    """SVG path for a link: a horizontal-tangent bezier in stream mode, a straight segment otherwise."""
    sx, sy = source
    tx, ty = target
    if VisMode(mode) == VisMode.STREAM:
        d = abs(tx - sx) * 0.5
        return (
            f"M{_fmt(sx)},{_fmt(sy)} C{_fmt(sx + d)},{_fmt(sy)} "
            f"{_fmt(tx - d)},{_fmt(ty)} {_fmt(tx)},{_fmt(ty)}"
        )
    return f"M{_fmt(sx)},{_fmt(sy)} L{_fmt(tx)},{_fmt(ty)}"


# --- Simulation ---
class LayoutEngine:
    """Force simulation that keeps node positions relaxing tick after tick."""

    def __init__(self, mode: VisMode = VisMode.NETWORK, width: float = None,
                 height: float = None, seed: int = None):
        cfg = Config.layout
        self.mode = VisMode(mode)
        self.width = width if width is not None else Config.viewport.WIDTH
        self.height = height if height is not None else Config.viewport.HEIGHT
        self.focused_id: Optional[str] = None
        self.graph = Graph()

        self.alpha = 1.0
        self.alpha_target = 0.0
        self.alpha_min = cfg.ALPHA_MIN
        self.alpha_decay = cfg.ALPHA_DECAY
        self.velocity_decay = cfg.VELOCITY_DECAY
        self._running = True
        self._rng = np.random.default_rng(Config.core.SEED if seed is None else seed)

        self._ids: List[str] = []
        self._index: Dict[str, int] = {}
        self._pos = np.zeros((0, 2))
        self._vel = np.zeros((0, 2))
        self._profile = build_profile(self.mode, False, self.width, self.height)
        self._prepare_forces()

    # --- State changes ---
    def set_graph(self, graph: Graph):
        """Adopt a new graph, seeding every known node at its last position."""
        diff = reconcile(self.graph, graph)
        ids = list(graph.nodes)
        pos = np.zeros((len(ids), 2))
        vel = np.zeros((len(ids), 2))
        for i, nid in enumerate(ids):
            old = self._index.get(nid)
            node = graph.nodes[nid]
            if old is not None:
                pos[i] = self._pos[old]
                vel[i] = self._vel[old]
            elif node.position is not None:
                pos[i] = node.position
            else:
                radius = Config.layout.INITIAL_RADIUS * math.sqrt(0.5 + i)
                angle = i * INITIAL_ANGLE
                pos[i] = (radius * math.cos(angle), radius * math.sin(angle))

        self.graph = graph
        self._ids = ids
        self._index = {nid: i for i, nid in enumerate(ids)}
        self._pos, self._vel = pos, vel
        if self.focused_id is not None and self.focused_id not in graph.nodes:
            self.focused_id = None
            self._rebuild_profile()
        self._prepare_forces()

        if not diff.empty:
            if diff.structural:
                logger.debug(
                    f"Layout graph: +{len(diff.entered_nodes)} nodes, +{len(diff.entered_links)} links"
                )
            self.reheat()

    def set_mode(self, mode: VisMode):
        mode = VisMode(mode)
        if mode == self.mode:
            return
        self.mode = mode
        self._rebuild_profile()
        self.reheat()

    def set_focus(self, node_id: Optional[str]):
        if node_id == self.focused_id:
            return
        self.focused_id = node_id
        self._rebuild_profile()
        self.reheat()

    def set_viewport(self, width: float, height: float):
        if (width, height) == (self.width, self.height):
            return
        self.width, self.height = width, height
        self._rebuild_profile()
        self.reheat()

    def reheat(self):
        """Restart the relaxation at full energy, keeping current positions."""
        self.alpha = 1.0
        self._running = True

    @property
    def is_active(self) -> bool:
        return self._running

    # --- Dragging ---
    def drag_start(self, node_id: str):
        node = self.graph.nodes[node_id]
        i = self._index[node_id]
        node.pinned_position = (float(self._pos[i, 0]), float(self._pos[i, 1]))
        self.alpha_target = Config.layout.DRAG_ALPHA_TARGET
        self._running = True

    def drag(self, node_id: str, x: float, y: float):
        self.graph.nodes[node_id].pinned_position = (float(x), float(y))

    def drag_end(self, node_id: str):
        self.graph.nodes[node_id].pinned_position = None
        self.alpha_target = 0.0

    # --- Integration ---
    def tick(self) -> bool:
        """Advance one step. Returns False once the simulation has cooled."""
        if not self._running or not self._ids:
            return False

        self.alpha += (self.alpha_target - self.alpha) * self.alpha_decay
        alpha = self.alpha

        self._apply_links(alpha)
        self._apply_charge(alpha)
        self._apply_collide()
        self._apply_position(alpha)

        pinned = self._pinned_mask()
        free = ~pinned
        self._vel[free] *= 1 - self.velocity_decay
        self._pos[free] += self._vel[free]
        for i in np.flatnonzero(pinned):
            self._pos[i] = self.graph.nodes[self._ids[i]].pinned_position
            self._vel[i] = 0.0

        for i, nid in enumerate(self._ids):
            self.graph.nodes[nid].position = (float(self._pos[i, 0]), float(self._pos[i, 1]))

        if self.alpha < self.alpha_min:
            self._running = False
        return True

    def run(self, max_ticks: int = 300) -> int:
        """Tick until cooled or max_ticks reached; returns ticks performed."""
        ticks = 0
        while ticks < max_ticks and self.tick():
            ticks += 1
        return ticks

    def positions(self) -> Dict[str, Point]:
        return {nid: n.position for nid, n in self.graph.nodes.items() if n.position is not None}

    def link_paths(self) -> Dict[LinkKey, str]:
        paths = {}
        for key, link in self.graph.links.items():
            src = self.graph.nodes.get(link.source_id)
            tgt = self.graph.nodes.get(link.target_id)
            if src is None or tgt is None or src.position is None or tgt.position is None:
                continue
            paths[key] = link_path(self.mode, src.position, tgt.position)
        return paths

    # --- Force preparation ---
    def _rebuild_profile(self):
        self._profile = build_profile(self.mode, self.focused_id is not None, self.width, self.height)
        self._prepare_forces()

    def _prepare_forces(self):
        profile = self._profile
        nodes = [self.graph.nodes[nid] for nid in self._ids]
        n = len(nodes)

        self._radii = np.array([profile.collision_radius(node) for node in nodes], dtype=float)
        biases = [profile.position_bias(node, i, nodes) for i, node in enumerate(nodes)]
        self._bias = np.array([[b.x, b.x_strength, b.y, b.y_strength] for b in biases], dtype=float).reshape(n, 4)

        src, tgt = [], []
        for link in self.graph.links.values():
            s = self._index.get(link.source_id)
            t = self._index.get(link.target_id)
            if s is None or t is None or s == t:
                continue
            src.append(s)
            tgt.append(t)
        self._link_src = np.array(src, dtype=int)
        self._link_tgt = np.array(tgt, dtype=int)

        degree = np.bincount(np.concatenate([self._link_src, self._link_tgt]), minlength=n).astype(float)
        if len(src):
            ds, dt = degree[self._link_src], degree[self._link_tgt]
            self._link_bias = ds / (ds + dt)
            if profile.link_strength is None:
                self._link_strength = 1.0 / np.minimum(ds, dt)
            else:
                self._link_strength = np.full(len(src), profile.link_strength)
        else:
            self._link_bias = np.zeros(0)
            self._link_strength = np.zeros(0)

    def _pinned_mask(self) -> np.ndarray:
        return np.array(
            [self.graph.nodes[nid].pinned_position is not None for nid in self._ids], dtype=bool
        )

    def _jiggle(self, shape) -> np.ndarray:
        return (self._rng.random(shape) - 0.5) * 1e-6

    # --- Forces ---
    def _apply_links(self, alpha: float):
        if not len(self._link_src):
            return
        s, t = self._link_src, self._link_tgt
        d = (self._pos[t] + self._vel[t]) - (self._pos[s] + self._vel[s])
        zero = (d == 0)
        d[zero] = self._jiggle(int(zero.sum()))
        length = np.hypot(d[:, 0], d[:, 1])
        scale = (length - self._profile.link_distance) / length * alpha * self._link_strength
        d *= scale[:, None]
        np.add.at(self._vel, t, -d * self._link_bias[:, None])
        np.add.at(self._vel, s, d * (1 - self._link_bias)[:, None])

    def _apply_charge(self, alpha: float):
        n = len(self._ids)
        if n < 2:
            return
        # delta[i, j] points from node i to node j
        delta = self._pos[None, :, :] - self._pos[:, None, :]
        dist2 = np.einsum("ijk,ijk->ij", delta, delta)
        coincident = (dist2 == 0)
        np.fill_diagonal(coincident, False)
        if coincident.any():
            delta[coincident] = self._jiggle((int(coincident.sum()), 2))
            dist2 = np.einsum("ijk,ijk->ij", delta, delta)
        dist2 = np.where(dist2 < 1.0, np.sqrt(dist2), dist2)
        np.fill_diagonal(dist2, np.inf)
        weight = self._profile.charge * alpha / dist2
        self._vel += np.einsum("ij,ijk->ik", weight, delta)

    def _apply_collide(self):
        n = len(self._ids)
        if n < 2:
            return
        strength = self._profile.collide_strength
        p = self._pos + self._vel
        delta = p[:, None, :] - p[None, :, :]
        dist2 = np.einsum("ijk,ijk->ij", delta, delta)
        reach = self._radii[:, None] + self._radii[None, :]
        overlap = np.triu(dist2 < reach ** 2, k=1)
        ii, jj = np.nonzero(overlap)
        if not len(ii):
            return

        d = delta[ii, jj]
        zero = (d == 0)
        d[zero] = self._jiggle(int(zero.sum()))
        length = np.hypot(d[:, 0], d[:, 1])
        r = reach[ii, jj]
        scale = (r - length) / length * strength
        d *= scale[:, None]
        ri2, rj2 = self._radii[ii] ** 2, self._radii[jj] ** 2
        share = rj2 / (ri2 + rj2)
        np.add.at(self._vel, ii, d * share[:, None])
        np.add.at(self._vel, jj, -d * (1 - share)[:, None])

    def _apply_position(self, alpha: float):
        if not len(self._ids):
            return
        b = self._bias
        self._vel[:, 0] += (b[:, 0] - self._pos[:, 0]) * b[:, 1] * alpha
        self._vel[:, 1] += (b[:, 2] - self._pos[:, 1]) * b[:, 3] * alpha
