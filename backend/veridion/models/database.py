"""
SQLite Persistence Layer — Veridion Insights
Stores drift/robustness/pattern runs, detected incident patterns,
improvement recommendations and evidence events.
Thread-safe; file databases use WAL mode for concurrent reads.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from veridion.utils.serialization import to_serializable

MEMORY_PATH = ":memory:"

# Sequenced display ids: PAT-<year>-0001, REC-<year>-0001
SEQUENCED_IDS = {
    "PAT": ("incident_patterns", "pattern_id"),
    "REC": ("recommendations", "recommendation_id"),
}

SCHEMA = """
CREATE TABLE IF NOT EXISTS analysis_results (
    id          TEXT PRIMARY KEY,
    kind        TEXT NOT NULL,          -- 'drift' | 'robustness' | 'patterns'
    label       TEXT,
    score       REAL,
    severity    TEXT,
    elapsed_ms  REAL,
    full_json   TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_results_kind ON analysis_results(kind);
CREATE INDEX IF NOT EXISTS idx_results_created ON analysis_results(created_at DESC);

CREATE TABLE IF NOT EXISTS incident_patterns (
    id          TEXT PRIMARY KEY,
    pattern_id  TEXT NOT NULL,
    type        TEXT NOT NULL,
    categories  TEXT NOT NULL,          -- JSON list of affected categories
    status      TEXT NOT NULL,
    confidence  REAL,
    full_json   TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_patterns_type ON incident_patterns(type);
CREATE UNIQUE INDEX IF NOT EXISTS idx_patterns_pattern_id ON incident_patterns(pattern_id);

CREATE TABLE IF NOT EXISTS recommendations (
    id          TEXT PRIMARY KEY,
    recommendation_id TEXT NOT NULL,
    title       TEXT NOT NULL,
    status      TEXT NOT NULL,
    priority    TEXT,
    source_type TEXT,
    full_json   TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_recs_title_status ON recommendations(title, status);
CREATE UNIQUE INDEX IF NOT EXISTS idx_recs_recommendation_id ON recommendations(recommendation_id);

CREATE TABLE IF NOT EXISTS evidence_events (
    id          TEXT PRIMARY KEY,
    event_type  TEXT NOT NULL,
    severity    TEXT NOT NULL,
    full_json   TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_type ON evidence_events(event_type);
"""


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dumps(obj: Any) -> str:
    return json.dumps(to_serializable(obj))


class ResultStore:
    """
    One SQLite database. File databases get a connection per thread;
    an in-memory database is a single shared connection guarded by a lock,
    since every new ':memory:' connection would be a separate empty database.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or MEMORY_PATH
        self._local = threading.local()
        self._lock = threading.RLock()
        self._shared: Optional[sqlite3.Connection] = None
        self.init_db()

    # ── Connections ───────────────────────────────────────────────────────────
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        if self.path != MEMORY_PATH:
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _get_conn(self) -> sqlite3.Connection:
        if self.path == MEMORY_PATH:
            if self._shared is None:
                self._shared = self._connect()
            return self._shared
        if getattr(self._local, "conn", None) is None:
            self._local.conn = self._connect()
        return self._local.conn

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            conn = self._get_conn()
            rows = conn.execute(sql, params).fetchall()
            conn.commit()
            return rows

    def init_db(self) -> None:
        """Create tables if they don't exist."""
        with self._lock:
            conn = self._get_conn()
            conn.executescript(SCHEMA)
            conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._shared is not None:
                self._shared.close()
                self._shared = None
            conn = getattr(self._local, "conn", None)
            if conn is not None:
                conn.close()
                self._local.conn = None

    @contextmanager
    def locked(self):
        """Hold the store lock across a read-then-insert sequence."""
        with self._lock:
            yield self

    def next_sequence(self, prefix: str, year: int) -> int:
        """One past the highest stored '<prefix>-<year>-NNNN' sequence number."""
        table, column = SEQUENCED_IDS[prefix]
        stem = f"{prefix}-{year}-"
        rows = self._execute(
            f"SELECT {column} FROM {table} WHERE {column} LIKE ?", (stem + "%",)
        )
        seqs = [int(r[0][len(stem):]) for r in rows if r[0][len(stem):].isdigit()]
        return max(seqs, default=0) + 1

    # ── Analysis results ──────────────────────────────────────────────────────
    def save_result(self, result: Dict[str, Any], kind: str,
                    label: Optional[str] = None) -> str:
        """Persist an analysis result. Returns the stored ID."""
        rid = result.get("analysis_id") or str(uuid.uuid4())
        if kind == "drift":
            score = result.get("overall_drift_score", result.get("drift_score"))
        else:
            score = result.get("overall_robustness_score", result.get("score"))
        self._execute(
            """
            INSERT OR REPLACE INTO analysis_results
                (id, kind, label, score, severity, elapsed_ms, full_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                rid,
                kind,
                label,
                score,
                result.get("max_severity") or result.get("severity"),
                result.get("processing_time_ms"),
                _dumps(result),
                _utcnow(),
            ),
        )
        return rid

    def get_result(self, rid: str, kind: Optional[str] = None) -> Optional[Dict[str, Any]]:
        if kind:
            rows = self._execute(
                "SELECT full_json FROM analysis_results WHERE id = ? AND kind = ?", (rid, kind)
            )
        else:
            rows = self._execute("SELECT full_json FROM analysis_results WHERE id = ?", (rid,))
        return json.loads(rows[0]["full_json"]) if rows else None

    def get_history(self, kind: Optional[str] = None, limit: int = 20) -> List[Dict[str, Any]]:
        """Recent results as lightweight summary rows."""
        cols = "id, kind, label, score, severity, elapsed_ms, created_at"
        if kind:
            rows = self._execute(
                f"SELECT {cols} FROM analysis_results WHERE kind=? ORDER BY created_at DESC LIMIT ?",
                (kind, limit),
            )
        else:
            rows = self._execute(
                f"SELECT {cols} FROM analysis_results ORDER BY created_at DESC LIMIT ?",
                (limit,),
            )
        return [dict(r) for r in rows]

    # ── Incident patterns ─────────────────────────────────────────────────────
    def find_pattern(self, pattern_type: str, categories: Sequence[str],
                     exclude: Sequence[str] = ()) -> Optional[Dict[str, Any]]:
        """First stored pattern of this type sharing at least one affected category."""
        wanted = set(categories)
        skip = set(exclude)
        rows = self._execute(
            "SELECT id, categories, full_json FROM incident_patterns WHERE type = ? ORDER BY created_at",
            (pattern_type,),
        )
        for row in rows:
            if row["id"] in skip:
                continue
            stored = set(json.loads(row["categories"]))
            if (not wanted and not stored) or (wanted & stored):
                return json.loads(row["full_json"])
        return None

    def insert_pattern(self, pattern: Dict[str, Any]) -> None:
        self._execute(
            """
            INSERT INTO incident_patterns
                (id, pattern_id, type, categories, status, confidence, full_json, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                pattern["id"],
                pattern["pattern_id"],
                pattern["type"],
                json.dumps(pattern["characteristics"]["affected_categories"]),
                pattern["status"],
                pattern["confidence_score"],
                _dumps(pattern),
                pattern["created_at"],
                pattern["updated_at"],
            ),
        )

    def update_pattern(self, pattern: Dict[str, Any]) -> None:
        self._execute(
            """
            UPDATE incident_patterns
               SET status = ?, confidence = ?, full_json = ?, updated_at = ?
             WHERE id = ?
            """,
            (pattern["status"], pattern["confidence_score"], _dumps(pattern),
             pattern["updated_at"], pattern["id"]),
        )

    def list_patterns(self, pattern_type: Optional[str] = None,
                      status: Optional[str] = None) -> List[Dict[str, Any]]:
        clauses, params = [], []
        if pattern_type:
            clauses.append("type = ?")
            params.append(pattern_type)
        if status:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._execute(
            f"SELECT full_json FROM incident_patterns {where} ORDER BY confidence DESC, created_at",
            params,
        )
        return [json.loads(r["full_json"]) for r in rows]

    # ── Recommendations ───────────────────────────────────────────────────────
    def find_open_recommendation(self, title: str,
                                 open_statuses: Sequence[str]) -> Optional[Dict[str, Any]]:
        marks = ",".join("?" for _ in open_statuses)
        rows = self._execute(
            f"SELECT full_json FROM recommendations WHERE title = ? AND status IN ({marks}) LIMIT 1",
            (title, *open_statuses),
        )
        return json.loads(rows[0]["full_json"]) if rows else None

    def insert_recommendation(self, rec: Dict[str, Any]) -> None:
        self._execute(
            """
            INSERT INTO recommendations
                (id, recommendation_id, title, status, priority, source_type,
                 full_json, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (rec["id"], rec["recommendation_id"], rec["title"], rec["status"], rec["priority"],
             rec["source_type"], _dumps(rec), rec["created_at"], rec["updated_at"]),
        )

    def update_recommendation(self, rec: Dict[str, Any]) -> None:
        self._execute(
            "UPDATE recommendations SET status = ?, full_json = ?, updated_at = ? WHERE id = ?",
            (rec["status"], _dumps(rec), rec["updated_at"], rec["id"]),
        )

    def get_recommendation(self, rec_id: str) -> Optional[Dict[str, Any]]:
        rows = self._execute("SELECT full_json FROM recommendations WHERE id = ?", (rec_id,))
        return json.loads(rows[0]["full_json"]) if rows else None

    def list_recommendations(self, status: Optional[str] = None,
                             priority: Optional[str] = None) -> List[Dict[str, Any]]:
        clauses, params = [], []
        if status:
            clauses.append("status = ?")
            params.append(status)
        if priority:
            clauses.append("priority = ?")
            params.append(priority)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._execute(
            f"SELECT full_json FROM recommendations {where} ORDER BY created_at DESC",
            params,
        )
        return [json.loads(r["full_json"]) for r in rows]

    # ── Evidence events ───────────────────────────────────────────────────────
    def insert_event(self, event: Dict[str, Any]) -> None:
        self._execute(
            "INSERT INTO evidence_events (id, event_type, severity, full_json, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (event["event_id"], event["event_type"], event["severity"],
             _dumps(event), event["created_at"]),
        )

    def list_events(self, event_type: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        if event_type:
            rows = self._execute(
                "SELECT full_json FROM evidence_events WHERE event_type = ? "
                "ORDER BY created_at DESC LIMIT ?",
                (event_type, limit),
            )
        else:
            rows = self._execute(
                "SELECT full_json FROM evidence_events ORDER BY created_at DESC LIMIT ?",
                (limit,),
            )
        return [json.loads(r["full_json"]) for r in rows]

    def get_stats(self) -> Dict[str, Any]:
        """Aggregate counts across all tables."""
        by_kind = self._execute("SELECT kind, COUNT(*) AS n FROM analysis_results GROUP BY kind")
        by_status = self._execute("SELECT status, COUNT(*) AS n FROM recommendations GROUP BY status")
        return {
            "analyses": {r["kind"]: r["n"] for r in by_kind},
            "patterns": self._execute("SELECT COUNT(*) FROM incident_patterns")[0][0],
            "recommendations": {r["status"]: r["n"] for r in by_status},
            "evidence_events": self._execute("SELECT COUNT(*) FROM evidence_events")[0][0],
        }
