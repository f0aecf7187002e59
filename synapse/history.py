# synapse/history.py
"""
Saved sessions: snapshot records, persistence and export.
"""
from __future__ import annotations

import json
import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import Config
from .graph_store import Graph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionRecord:
    id: str
    timestamp: int          # epoch ms
    transcript: str
    graph: Dict[str, List[Dict[str, Any]]] = field(default_factory=lambda: {"nodes": [], "links": []})

    @classmethod
    def capture(cls, graph: Graph, transcript: str, record_id: str = None,
                timestamp: int = None) -> "SessionRecord":
        return cls(
            id=record_id or str(uuid.uuid4()),
            timestamp=int(time.time() * 1000) if timestamp is None else timestamp,
            transcript=transcript,
            graph=graph.to_dict(),
        )

    def to_graph(self) -> Graph:
        return Graph.from_dict(self.graph)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "transcript": self.transcript,
            "graph": {
                "nodes": [dict(n) for n in self.graph.get("nodes", [])],
                "links": [dict(l) for l in self.graph.get("links", [])],
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        # Normalizes endpoints to plain ids on the way in
        graph = data.get("graph") or data.get("graphData") or {}
        return cls(
            id=str(data["id"]),
            timestamp=int(data.get("timestamp", 0)),
            transcript=data.get("transcript") or "",
            graph=Graph.from_dict(graph).to_dict(),
        )


def example_record() -> SessionRecord:
    """Bundled example shown when no history exists yet."""
    nodes = [
        ("problem_solving", "Problem Solving", 20),
        ("divergent_thinking", "Divergent Thinking", 15),
        ("convergent_thinking", "Convergent Thinking", 15),
        ("creativity", "Creativity", 10),
        ("many_ideas", "Many Ideas", 8),
        ("exploration", "Exploration", 8),
        ("logic", "Logic", 10),
        ("selection", "Selection", 8),
        ("single_solution", "Single Solution", 8),
    ]
    links = [
        ("problem_solving", "divergent_thinking", 5),
        ("problem_solving", "convergent_thinking", 5),
        ("divergent_thinking", "creativity", 3),
        ("divergent_thinking", "many_ideas", 3),
        ("divergent_thinking", "exploration", 3),
        ("convergent_thinking", "logic", 3),
        ("convergent_thinking", "selection", 3),
        ("convergent_thinking", "single_solution", 3),
        ("divergent_thinking", "convergent_thinking", 2),
    ]
    return SessionRecord(
        id="example-divergent-convergent",
        timestamp=int(time.time() * 1000),
        transcript=(
            "Divergent thinking is about generating many ideas, exploring possibilities, and "
            "thinking outside the box. It represents creativity and quantity. Convergent thinking, "
            "in contrast, is about narrowing down choices to find the single best correct answer. "
            "It represents logic and selection. Effective problem solving often uses both: "
            "diverging to create options, then converging to pick the solution."
        ),
        graph={
            "nodes": [{"id": i, "label": l, "val": v} for i, l, v in nodes],
            "links": [{"source": s, "target": t, "value": v} for s, t, v in links],
        },
    )


# --- Export ---
def export_json(record: SessionRecord) -> str:
    return json.dumps(record.to_dict(), indent=2)


def export_markdown(record: SessionRecord) -> str:
    when = datetime.fromtimestamp(record.timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
    md = f"# MindMap Session - {when}\n\n"
    md += f"## Transcript Summary\n> {record.transcript or '(No transcript captured)'}\n\n"
    md += "## Key Concepts\n"
    for node in sorted(record.graph.get("nodes", []), key=lambda n: n["val"], reverse=True):
        md += f"- **{node['label']}** (Importance: {node['val']:.1f})\n"
    return md


def export_filename(record: SessionRecord, ext: str) -> str:
    stamp = datetime.fromtimestamp(record.timestamp / 1000, tz=timezone.utc)
    iso = stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return f"mindmap_{iso}.{ext}"


# --- Persistence ---
class JsonBackend:
    """Whole-history JSON file, rewritten on every change."""

    def __init__(self, path: str):
        self.path = Path(path)

    def initialized(self) -> bool:
        return self.path.exists()

    def load_records(self) -> List[SessionRecord]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to parse history at {self.path}: {e}")
            return []
        return [SessionRecord.from_dict(item) for item in data]

    def save_records(self, records: List[SessionRecord]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps([r.to_dict() for r in records], indent=2), encoding="utf-8")

    def close(self):
        pass


class SessionHistory:
    """Newest-first list of saved sessions."""

    def __init__(self, path: Optional[str] = None, use_sqlite: bool = None):
        if use_sqlite is None:
            use_sqlite = Config.storage.USE_SQLITE
        path = path or Config.history_path()
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)

        if use_sqlite:
            from .storage.sqlite_store import SqliteBackend
            self.backend = SqliteBackend(path)
        else:
            self.backend = JsonBackend(path)

        if self.backend.initialized():
            self.records: List[SessionRecord] = self.backend.load_records()
        else:
            self.records = [example_record()]
            self._persist()
        logger.info(f"Loaded {len(self.records)} saved session(s) from {path}")

    def _persist(self):
        self.backend.save_records(self.records)

    def list(self) -> List[SessionRecord]:
        return list(self.records)

    def get(self, record_id: str) -> Optional[SessionRecord]:
        for r in self.records:
            if r.id == record_id:
                return r
        return None

    def add(self, record: SessionRecord):
        self.records.insert(0, record)
        self._persist()

    def delete(self, record_id: str) -> bool:
        before = len(self.records)
        self.records = [r for r in self.records if r.id != record_id]
        if len(self.records) == before:
            return False
        self._persist()
        return True

    def close(self):
        self.backend.close()
