from __future__ import annotations

import json
import sqlite3
from contextlib import AbstractContextManager
from datetime import datetime, timezone
from pathlib import Path

from career_watch.guards import JobInsert
from career_watch.models import PersistedJob, TrackedSite, job_from_record, site_from_record


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


class SiteStore(AbstractContextManager["SiteStore"]):
    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    def _init_schema(self) -> None:
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS companies (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT,
                    name TEXT NOT NULL,
                    url TEXT NOT NULL,
                    career_page_url TEXT NOT NULL,
                    keywords TEXT NOT NULL,
                    priority TEXT NOT NULL,
                    check_interval_minutes INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    last_checked_at TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    company_id INTEGER NOT NULL REFERENCES companies (id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    url TEXT NOT NULL,
                    company_name TEXT,
                    matched_keywords TEXT NOT NULL,
                    date_found TEXT NOT NULL,
                    description TEXT,
                    application_deadline TEXT,
                    status TEXT NOT NULL,
                    priority TEXT NOT NULL,
                    salary TEXT,
                    requirements TEXT,
                    UNIQUE (company_id, url)
                )
                """
            )

    def add_site(
        self,
        *,
        name: str,
        url: str,
        career_page_url: str,
        keywords: list[str],
        priority: str = "medium",
        check_interval_minutes: int = 1440,
        status: str = "active",
        last_checked_at: str | None = None,
        user_id: str | None = None,
    ) -> TrackedSite:
        with self.conn:
            cursor = self.conn.execute(
                """
                INSERT INTO companies (
                    user_id, name, url, career_page_url, keywords, priority,
                    check_interval_minutes, status, last_checked_at, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    name,
                    url,
                    career_page_url,
                    json.dumps(keywords),
                    priority,
                    check_interval_minutes,
                    status,
                    last_checked_at,
                    _utc_now_iso(),
                ),
            )
        site = self.get_site(int(cursor.lastrowid))
        if site is None:
            raise RuntimeError(f"site {cursor.lastrowid} vanished right after insert")
        return site

    def get_site(self, company_id: int) -> TrackedSite | None:
        row = self.conn.execute("SELECT * FROM companies WHERE id = ?", (company_id,)).fetchone()
        if row is None:
            return None
        return site_from_record(dict(row))

    def list_sites(self, status: str | None = None) -> list[TrackedSite]:
        if status is None:
            rows = self.conn.execute("SELECT * FROM companies ORDER BY id").fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM companies WHERE status = ? ORDER BY id", (status,)
            ).fetchall()
        return [site_from_record(dict(row)) for row in rows]

    def delete_site(self, company_id: int) -> bool:
        with self.conn:
            self.conn.execute("DELETE FROM jobs WHERE company_id = ?", (company_id,))
            cursor = self.conn.execute("DELETE FROM companies WHERE id = ?", (company_id,))
        return cursor.rowcount == 1

    def update_site_priority(self, company_id: int, priority: str) -> bool:
        with self.conn:
            cursor = self.conn.execute(
                "UPDATE companies SET priority = ? WHERE id = ?", (priority, company_id)
            )
            self.conn.execute(
                "UPDATE jobs SET priority = ? WHERE company_id = ?", (priority, company_id)
            )
        return cursor.rowcount == 1

    def touch_site(self, company_id: int, checked_at_utc: str | None = None) -> None:
        checked_at = checked_at_utc or _utc_now_iso()
        with self.conn:
            self.conn.execute(
                "UPDATE companies SET last_checked_at = ? WHERE id = ?",
                (checked_at, company_id),
            )

    def existing_job_urls(self, company_id: int) -> set[str]:
        rows = self.conn.execute(
            "SELECT url FROM jobs WHERE company_id = ?", (company_id,)
        ).fetchall()
        return {str(row["url"]) for row in rows}

    def insert_jobs(self, jobs: list[JobInsert]) -> int:
        inserted = 0
        with self.conn:
            for job in jobs:
                cursor = self.conn.execute(
                    """
                    INSERT OR IGNORE INTO jobs (
                        company_id, title, url, company_name, matched_keywords, date_found,
                        description, application_deadline, status, priority, salary,
                        requirements
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        job.company_id,
                        job.title,
                        job.url,
                        job.company_name,
                        json.dumps(job.matched_keywords),
                        job.date_found,
                        job.description,
                        job.application_deadline,
                        job.status,
                        job.priority,
                        job.salary,
                        json.dumps(job.requirements) if job.requirements is not None else None,
                    ),
                )
                inserted += cursor.rowcount
        return inserted

    def list_jobs(self, company_id: int | None = None) -> list[PersistedJob]:
        if company_id is None:
            rows = self.conn.execute("SELECT * FROM jobs ORDER BY id").fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM jobs WHERE company_id = ? ORDER BY id", (company_id,)
            ).fetchall()
        return [job_from_record(dict(row)) for row in rows]

    def delete_job(self, job_id: int) -> bool:
        with self.conn:
            cursor = self.conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
        return cursor.rowcount == 1

    def update_job_status(self, job_id: int, status: str) -> bool:
        with self.conn:
            cursor = self.conn.execute("UPDATE jobs SET status = ? WHERE id = ?", (status, job_id))
        return cursor.rowcount == 1

    def count_jobs(self, company_id: int | None = None) -> int:
        if company_id is None:
            row = self.conn.execute("SELECT COUNT(*) AS c FROM jobs").fetchone()
        else:
            row = self.conn.execute(
                "SELECT COUNT(*) AS c FROM jobs WHERE company_id = ?", (company_id,)
            ).fetchone()
        return int(row["c"]) if row else 0

    def close(self) -> None:
        self.conn.close()

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()
