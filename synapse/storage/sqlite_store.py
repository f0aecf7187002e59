import sqlite3
import json
from typing import List, Optional
from ..history import SessionRecord


class SqliteBackend:
    def __init__(self, path: str):
        self.path = path
        self.conn = sqlite3.connect(path, check_same_thread=False)
        self._init_schema()

    def _init_schema(self):
        with self.conn:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id TEXT PRIMARY KEY,
                    position INTEGER,
                    timestamp INTEGER,
                    transcript TEXT,
                    graph TEXT
                )
            """)
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

    def save_meta(self, key: str, value: str):
        with self.conn:
            self.conn.execute("INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", (key, value))

    def load_meta(self, key: str) -> Optional[str]:
        cur = self.conn.execute("SELECT value FROM meta WHERE key = ?", (key,))
        row = cur.fetchone()
        return row[0] if row else None

    def initialized(self) -> bool:
        return self.load_meta("initialized") == "true"

    def save_records(self, records: List[SessionRecord]):
        # Position keeps the newest-first ordering of the history list
        with self.conn:
            self.conn.execute("DELETE FROM sessions")
            for position, record in enumerate(records):
                self.conn.execute(
                    "INSERT INTO sessions (session_id, position, timestamp, transcript, graph) VALUES (?, ?, ?, ?, ?)",
                    (record.id, position, record.timestamp, record.transcript, json.dumps(record.graph))
                )
            self.conn.execute(
                "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", ("initialized", "true")
            )

    def load_records(self) -> List[SessionRecord]:
        records = []
        cur = self.conn.execute(
            "SELECT session_id, timestamp, transcript, graph FROM sessions ORDER BY position"
        )
        for row in cur:
            session_id, timestamp, transcript, graph_json = row
            records.append(SessionRecord(
                id=session_id,
                timestamp=timestamp,
                transcript=transcript or "",
                graph=json.loads(graph_json),
            ))
        return records

    def close(self):
        self.conn.close()
