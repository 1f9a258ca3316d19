"""SQLite-backed archive of finished jobs and their leads."""

from __future__ import annotations

import csv
import io
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from leadscout.models import JobResult

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS jobs (
    id              TEXT PRIMARY KEY,
    status          TEXT NOT NULL,
    started_at      TEXT NOT NULL,
    ended_at        TEXT NOT NULL,
    video_ref       TEXT,
    total_leads     INTEGER DEFAULT 0,
    hot_leads       INTEGER DEFAULT 0,
    warm_leads      INTEGER DEFAULT 0,
    cold_leads      INTEGER DEFAULT 0,
    payload         TEXT NOT NULL,
    archived_at     TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS stages (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id          TEXT NOT NULL REFERENCES jobs(id),
    position        INTEGER NOT NULL,
    stage_name      TEXT NOT NULL,
    outcome         TEXT NOT NULL,
    attempts        INTEGER DEFAULT 0,
    duration_ms     INTEGER DEFAULT 0,
    media_ref       TEXT,
    error_kind      TEXT,
    error_message   TEXT DEFAULT '',
    UNIQUE(job_id, position)
);

CREATE TABLE IF NOT EXISTS leads (
    id              TEXT PRIMARY KEY,
    job_id          TEXT NOT NULL REFERENCES jobs(id),
    author_handle   TEXT NOT NULL,
    display_name    TEXT,
    text            TEXT NOT NULL,
    thread_url      TEXT,
    likes           INTEGER DEFAULT 0,
    replies         INTEGER DEFAULT 0,
    reposts         INTEGER DEFAULT 0,
    views           INTEGER DEFAULT 0,
    score           REAL NOT NULL,
    category        TEXT NOT NULL,
    captured_at     TEXT NOT NULL,
    media_ref       TEXT
);
"""


class LeadArchive:
    """Persistent job and lead history stored in SQLite.

    Leads are keyed by their derived id, so re-discovering a thread in a
    later job refreshes its row instead of duplicating it.
    """

    def __init__(self, db_path: str | Path) -> None:
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        logger.info("Lead archive ready at %s.", db_path)

    # ---- writes ----

    def save_job(self, result: JobResult) -> None:
        """Store *result*, its stage trace and its leads in one transaction."""
        now = datetime.now(timezone.utc).isoformat()
        data = result.to_dict()
        counts = data["summary"]
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO jobs (id, status, started_at, ended_at, video_ref, "
                "total_leads, hot_leads, warm_leads, cold_leads, payload, archived_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    result.job_id,
                    data["status"],
                    data["started_at"],
                    data["ended_at"],
                    result.video_ref,
                    len(result.leads),
                    counts["hot"],
                    counts["warm"],
                    counts["cold"],
                    json.dumps(data),
                    now,
                ),
            )
            self._conn.execute("DELETE FROM stages WHERE job_id=?", (result.job_id,))
            for position, stage in enumerate(data["stages"]):
                error = stage["error"] or {}
                self._conn.execute(
                    "INSERT INTO stages (job_id, position, stage_name, outcome, attempts, "
                    "duration_ms, media_ref, error_kind, error_message) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        result.job_id,
                        position,
                        stage["stage_name"],
                        stage["outcome"],
                        stage["attempts"],
                        stage["duration_ms"],
                        stage["media_ref"],
                        error.get("kind"),
                        error.get("message", ""),
                    ),
                )
            for lead in data["leads"]:
                metrics = lead["metrics"]
                self._conn.execute(
                    "INSERT OR REPLACE INTO leads (id, job_id, author_handle, display_name, "
                    "text, thread_url, likes, replies, reposts, views, score, category, "
                    "captured_at, media_ref) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        lead["id"],
                        result.job_id,
                        lead["author_handle"],
                        lead["display_name"],
                        lead["text"],
                        lead["thread_url"],
                        metrics["likes"],
                        metrics["replies"],
                        metrics["reposts"],
                        metrics["views"],
                        lead["score"],
                        lead["category"],
                        lead["captured_at"],
                        lead["media_ref"],
                    ),
                )
        logger.info("Archived job %s (%d lead(s)).", result.job_id, len(result.leads))

    # ---- queries ----

    def get_job(self, job_id: str) -> dict | None:
        """Return the archived JobResult payload for *job_id*."""
        cur = self._conn.execute("SELECT payload FROM jobs WHERE id=?", (job_id,))
        row = cur.fetchone()
        return json.loads(row["payload"]) if row else None

    def get_job_summary(self, job_id: str) -> dict | None:
        cur = self._conn.execute(
            "SELECT id, status, started_at, ended_at, total_leads, hot_leads, warm_leads, "
            "cold_leads FROM jobs WHERE id=?",
            (job_id,),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def get_stage_trace(self, job_id: str) -> list[dict]:
        cur = self._conn.execute(
            "SELECT stage_name, outcome, attempts, duration_ms, media_ref, error_kind, "
            "error_message FROM stages WHERE job_id=? ORDER BY position",
            (job_id,),
        )
        return [dict(r) for r in cur.fetchall()]

    def get_recent_leads(self, limit: int = 20, category: str = "") -> list[dict]:
        query = (
            "SELECT id, job_id, author_handle, text, thread_url, score, category, captured_at "
            "FROM leads "
        )
        params: list = []
        if category:
            query += "WHERE category=? "
            params.append(category.lower())
        query += "ORDER BY captured_at DESC, score DESC LIMIT ?"
        params.append(limit)
        cur = self._conn.execute(query, params)
        return [dict(r) for r in cur.fetchall()]

    # ---- export ----

    def export_json(self, since_date: str = "") -> str:
        """Export archived leads as JSON, best score first."""
        query = (
            "SELECT l.id, l.job_id, l.author_handle, l.display_name, l.text, l.thread_url, "
            "l.likes, l.replies, l.reposts, l.views, l.score, l.category, l.captured_at, "
            "l.media_ref FROM leads l "
        )
        params: list[str] = []
        if since_date:
            query += "WHERE l.captured_at >= ? "
            params.append(since_date)
        query += "ORDER BY l.score DESC, l.captured_at DESC"
        cur = self._conn.execute(query, params)
        rows = [dict(r) for r in cur.fetchall()]
        return json.dumps(rows, indent=2)

    def export_csv(self, since_date: str = "") -> str:
        """Export archived leads as a CSV string."""
        data = json.loads(self.export_json(since_date))
        if not data:
            return ""
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=list(data[0].keys()), lineterminator="\n")
        writer.writeheader()
        writer.writerows(data)
        return buf.getvalue()

    def close(self) -> None:
        self._conn.close()
