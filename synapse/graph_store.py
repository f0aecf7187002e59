# synapse/graph_store.py
"""
Canonical concept graph and the streaming merge algorithm.

Nodes live in an insertion-ordered id map, links store endpoint ids only.
Positions are resolved by id lookup wherever they are needed.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Deque, Dict, FrozenSet, List, Mapping, Optional, Tuple

from .config import Config

logger = logging.getLogger(__name__)

Point = Tuple[float, float]
LinkKey = Tuple[str, str]


# --- Data models ---
@dataclass
class GraphNode:
    id: str
    label: str
    importance: float
    position: Optional[Point] = None         # written by LayoutEngine
    pinned_position: Optional[Point] = None  # set while dragged


@dataclass
class GraphLink:
    source_id: str
    target_id: str
    strength: float

    @property
    def key(self) -> LinkKey:
        return link_key(self.source_id, self.target_id)


@dataclass
class ConceptEvent:
    id: str
    label: str
    importance: float


@dataclass
class RelationshipEvent:
    source_id: str
    target_id: str
    strength: float


@dataclass
class GraphUpdate:
    concepts: List[ConceptEvent] = field(default_factory=list)
    relationships: List[RelationshipEvent] = field(default_factory=list)


def link_key(source_id: str, target_id: str) -> LinkKey:
    return (source_id, target_id)


@dataclass
class Graph:
    nodes: Dict[str, GraphNode] = field(default_factory=dict)
    links: Dict[LinkKey, GraphLink] = field(default_factory=dict)

    def find_link(self, a: str, b: str) -> Optional[GraphLink]:
        """Link between a and b in either direction."""
        return self.links.get(link_key(a, b)) or self.links.get(link_key(b, a))

    def copy(self) -> "Graph":
        return Graph(
            nodes={nid: replace(n) for nid, n in self.nodes.items()},
            links={k: replace(l) for k, l in self.links.items()},
        )

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        """Serialized form with plain-id endpoints."""
        return {
            "nodes": [{"id": n.id, "label": n.label, "val": n.importance} for n in self.nodes.values()],
            "links": [
                {"source": l.source_id, "target": l.target_id, "value": l.strength}
                for l in self.links.values()
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Graph":
        graph = cls()
        for n in data.get("nodes", []):
            graph.nodes[str(n["id"])] = GraphNode(
                id=str(n["id"]), label=str(n.get("label", n["id"])), importance=float(n.get("val", 1))
            )
        for l in data.get("links", []):
            src, tgt = _endpoint_id(l["source"]), _endpoint_id(l["target"])
            if src not in graph.nodes or tgt not in graph.nodes or graph.find_link(src, tgt):
                continue
            graph.links[link_key(src, tgt)] = GraphLink(src, tgt, float(l.get("value", 1)))
        return graph


def _endpoint_id(endpoint: Any) -> str:
    # Older exports may carry the whole node object as an endpoint
    if isinstance(endpoint, Mapping):
        return str(endpoint["id"])
    return str(endpoint)


# --- Parsing ---
def _first(entry: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if entry.get(k) is not None:
            return entry[k]
    return None


def _number(value: Any, default: float = 1.0) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    return float(value)


def parse_update(raw: Mapping[str, Any]) -> GraphUpdate:
    """
    Build a GraphUpdate from an extractor payload.

    Malformed entries are skipped one by one; the rest of the batch survives.
    Relationship endpoints are accepted as source_id/target_id or sourceId/targetId.
    """
    update = GraphUpdate()

    for entry in raw.get("concepts") or []:
        try:
            cid = _first(entry, "id")
            label = _first(entry, "label")
            if not isinstance(cid, str) or not cid.strip() or label is None or not str(label).strip():
                raise ValueError("missing id or label")
            importance = _number(_first(entry, "importance"))
        except (TypeError, ValueError, AttributeError) as e:
            logger.debug(f"Skipping malformed concept {entry!r}: {e}")
            continue
        update.concepts.append(ConceptEvent(cid, str(label), importance))

    for entry in raw.get("relationships") or []:
        try:
            src = _first(entry, "source_id", "sourceId")
            tgt = _first(entry, "target_id", "targetId")
            if not isinstance(src, str) or not isinstance(tgt, str):
                raise ValueError("missing endpoint")
            strength = _number(_first(entry, "strength"))
        except (TypeError, ValueError, AttributeError) as e:
            logger.debug(f"Skipping malformed relationship {entry!r}: {e}")
            continue
        update.relationships.append(RelationshipEvent(src, tgt, strength))

    return update


# --- Merge ---
def apply_update(graph: Graph, update: GraphUpdate, focused_node_id: Optional[str] = None) -> Graph:
    """
    Fold one update into a copy of `graph`.

    Concepts are merged before relationships so a relationship may name a
    concept from the same batch. Growth is capped, creation is not.
    """
    cfg = Config.graph
    result = graph.copy()
    nodes, links = result.nodes, result.links

    for c in update.concepts:
        existing = nodes.get(c.id)
        if existing is not None:
            existing.importance = min(cfg.IMPORTANCE_CAP, existing.importance + c.importance * cfg.GROWTH_FACTOR)
            continue

        nodes[c.id] = GraphNode(id=c.id, label=c.label, importance=c.importance)

        # Contextual link from the current focus to anything new
        if focused_node_id and focused_node_id != c.id and focused_node_id in nodes:
            if result.find_link(focused_node_id, c.id) is None:
                links[link_key(focused_node_id, c.id)] = GraphLink(
                    focused_node_id, c.id, cfg.CONTEXT_LINK_STRENGTH
                )

    for r in update.relationships:
        if r.source_id not in nodes or r.target_id not in nodes:
            continue
        existing = result.find_link(r.source_id, r.target_id)
        if existing is not None:
            existing.strength = min(cfg.STRENGTH_CAP, existing.strength + r.strength * cfg.GROWTH_FACTOR)
        else:
            links[link_key(r.source_id, r.target_id)] = GraphLink(r.source_id, r.target_id, r.strength)

    return result


# --- Reconciliation ---
@dataclass(frozen=True)
class GraphDiff:
    entered_nodes: FrozenSet[str] = frozenset()
    updated_nodes: FrozenSet[str] = frozenset()
    exited_nodes: FrozenSet[str] = frozenset()
    entered_links: FrozenSet[LinkKey] = frozenset()
    updated_links: FrozenSet[LinkKey] = frozenset()
    exited_links: FrozenSet[LinkKey] = frozenset()

    @property
    def structural(self) -> bool:
        """True when the node or link set itself changed."""
        return bool(self.entered_nodes or self.exited_nodes or self.entered_links or self.exited_links)

    @property
    def empty(self) -> bool:
        return not (self.structural or self.updated_nodes or self.updated_links)


def reconcile(previous: Graph, current: Graph) -> GraphDiff:
    """Enter/update/exit sets between two graph states."""
    prev_nodes, cur_nodes = set(previous.nodes), set(current.nodes)
    prev_links, cur_links = set(previous.links), set(current.links)

    updated_nodes = {
        nid for nid in prev_nodes & cur_nodes
        if (previous.nodes[nid].label, previous.nodes[nid].importance)
        != (current.nodes[nid].label, current.nodes[nid].importance)
    }
    updated_links = {
        k for k in prev_links & cur_links
        if previous.links[k].strength != current.links[k].strength
    }
    return GraphDiff(
        entered_nodes=frozenset(cur_nodes - prev_nodes),
        updated_nodes=frozenset(updated_nodes),
        exited_nodes=frozenset(prev_nodes - cur_nodes),
        entered_links=frozenset(cur_links - prev_links),
        updated_links=frozenset(updated_links),
        exited_links=frozenset(prev_links - cur_links),
    )


# --- Stateful store ---
class GraphStore:
    """Holds the current graph and applies queued updates in arrival order."""

    def __init__(self, graph: Optional[Graph] = None):
        self.graph = graph if graph is not None else Graph()
        self._pending: Deque[GraphUpdate] = deque()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, update: Any):
        if not isinstance(update, GraphUpdate):
            update = parse_update(update)
        self._pending.append(update)

    def drain(self, focused_node_id: Optional[str] = None) -> GraphDiff:
        """Apply every queued update, oldest first."""
        previous = self.graph
        while self._pending:
            self.graph = apply_update(self.graph, self._pending.popleft(), focused_node_id)
        return reconcile(previous, self.graph)

    def apply(self, update: Any, focused_node_id: Optional[str] = None) -> GraphDiff:
        self.submit(update)
        return self.drain(focused_node_id)

    def reset(self):
        self.graph = Graph()
        self._pending.clear()

    def replace(self, graph: Graph):
        self.graph = graph.copy()
        self._pending.clear()

    def snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        return self.graph.to_dict()
