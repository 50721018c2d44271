"""SQLiteStore: local file-based store for analyses and drafted emails.

Schema:
  forks             one row per fork repository (owner/name unique)
  prs               one row per recreated PR in a fork (fork/number unique)
  pr_analyses       the latest analysis of each PR; older rows are deleted
  generated_emails  drafted emails, removed together with their analysis
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone

from prscout_store.base import BaseStore
from prscout_store.models import AnalysisRecord, EmailRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS forks (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    repo_owner  TEXT NOT NULL,
    repo_name   TEXT NOT NULL,
    fork_url    TEXT NOT NULL,
    created_at  TEXT,
    UNIQUE (repo_owner, repo_name)
);
CREATE TABLE IF NOT EXISTS prs (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    fork_id              INTEGER NOT NULL REFERENCES forks (id) ON DELETE CASCADE,
    pr_number            INTEGER NOT NULL,
    pr_title             TEXT,
    forked_pr_url        TEXT NOT NULL,
    original_pr_url      TEXT,
    original_pr_title    TEXT,
    has_macroscope_bugs  INTEGER DEFAULT 0,
    bug_count            INTEGER DEFAULT 0,
    created_by_user      TEXT,
    updated_at           TEXT,
    UNIQUE (fork_id, pr_number)
);
CREATE TABLE IF NOT EXISTS pr_analyses (
    id                     INTEGER PRIMARY KEY AUTOINCREMENT,
    pr_id                  INTEGER NOT NULL REFERENCES prs (id) ON DELETE CASCADE,
    analyzed_at            TEXT NOT NULL,
    meaningful_bugs_found  INTEGER NOT NULL,
    analysis_json          TEXT NOT NULL,
    created_by_user        TEXT,
    model                  TEXT
);
CREATE TABLE IF NOT EXISTS generated_emails (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    pr_analysis_id  INTEGER NOT NULL REFERENCES pr_analyses (id) ON DELETE CASCADE,
    email_content   TEXT NOT NULL,
    model           TEXT,
    generated_at    TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_prs_forked_url ON prs (forked_pr_url);
CREATE INDEX IF NOT EXISTS idx_analyses_pr ON pr_analyses (pr_id);
CREATE INDEX IF NOT EXISTS idx_emails_analysis ON generated_emails (pr_analysis_id);
"""

_SELECT_ANALYSIS = """
SELECT a.id, a.analyzed_at, a.meaningful_bugs_found, a.analysis_json, a.model,
       a.created_by_user, p.pr_number, p.pr_title, p.forked_pr_url, p.original_pr_url,
       p.original_pr_title, p.bug_count, f.repo_owner, f.repo_name
FROM pr_analyses a
JOIN prs p ON p.id = a.pr_id
JOIN forks f ON f.id = p.fork_id
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteStore(BaseStore):
    """Stores analysis history in a local SQLite database file.

    The database file path defaults to `.prscout.db` in the current working
    directory. Configure via .prscout.yml: `store_path: /path/to/prscout.db`.
    """

    def __init__(self, db_path: str = ".prscout.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def save_analysis(self, record: AnalysisRecord) -> int | None:
        with self._conn:
            fork_id = self._upsert_fork(record.repo_owner, record.repo_name)
            pr_id = self._upsert_pr(fork_id, record)
            deleted = self._conn.execute("DELETE FROM pr_analyses WHERE pr_id = ?", (pr_id,)).rowcount
            if deleted:
                logger.debug("Replaced %d earlier analysis row(s) for %s", deleted, record.forked_pr_url)
            cursor = self._conn.execute(
                """
                INSERT INTO pr_analyses
                  (pr_id, analyzed_at, meaningful_bugs_found, analysis_json, created_by_user, model)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    pr_id,
                    record.analyzed_at,
                    int(record.meaningful_bugs_found),
                    record.analysis_json,
                    record.created_by_user,
                    record.model,
                ),
            )
        return cursor.lastrowid

    def get_latest_analysis(self, forked_pr_url: str) -> AnalysisRecord | None:
        row = self._conn.execute(
            _SELECT_ANALYSIS + "WHERE p.forked_pr_url = ? ORDER BY a.analyzed_at DESC, a.id DESC LIMIT 1",
            (forked_pr_url,),
        ).fetchone()
        return self._row_to_record(row) if row else None

    def list_analyses(self, repo: str | None = None, limit: int = 20) -> list[AnalysisRecord]:
        if repo:
            owner, _, name = repo.partition("/")
            rows = self._conn.execute(
                _SELECT_ANALYSIS
                + "WHERE f.repo_owner = ? AND f.repo_name = ? ORDER BY a.analyzed_at DESC, a.id DESC LIMIT ?",
                (owner, name, limit),
            ).fetchall()
        else:
            rows = self._conn.execute(
                _SELECT_ANALYSIS + "ORDER BY a.analyzed_at DESC, a.id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def save_email(self, analysis_id: int, email_content: str, model: str | None = None) -> int | None:
        with self._conn:
            cursor = self._conn.execute(
                "INSERT INTO generated_emails (pr_analysis_id, email_content, model, generated_at) VALUES (?, ?, ?, ?)",
                (analysis_id, email_content, model, _now()),
            )
        return cursor.lastrowid

    def get_latest_email(self, analysis_id: int) -> EmailRecord | None:
        row = self._conn.execute(
            "SELECT * FROM generated_emails WHERE pr_analysis_id = ? ORDER BY generated_at DESC, id DESC LIMIT 1",
            (analysis_id,),
        ).fetchone()
        if row is None:
            return None
        return EmailRecord(
            id=row["id"],
            analysis_id=row["pr_analysis_id"],
            email_content=row["email_content"],
            model=row["model"],
            generated_at=row["generated_at"],
        )

    def close(self) -> None:
        self._conn.close()

    def _upsert_fork(self, owner: str, name: str) -> int:
        self._conn.execute(
            """
            INSERT INTO forks (repo_owner, repo_name, fork_url, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (repo_owner, repo_name) DO UPDATE SET fork_url = excluded.fork_url
            """,
            (owner, name, f"https://github.com/{owner}/{name}", _now()),
        )
        row = self._conn.execute(
            "SELECT id FROM forks WHERE repo_owner = ? AND repo_name = ?",
            (owner, name),
        ).fetchone()
        return row["id"]

    def _upsert_pr(self, fork_id: int, record: AnalysisRecord) -> int:
        # COALESCE keeps known titles and URLs when a later save lacks them.
        self._conn.execute(
            """
            INSERT INTO prs
              (fork_id, pr_number, pr_title, forked_pr_url, original_pr_url, original_pr_title,
               has_macroscope_bugs, bug_count, created_by_user, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (fork_id, pr_number) DO UPDATE SET
              pr_title = COALESCE(excluded.pr_title, prs.pr_title),
              forked_pr_url = excluded.forked_pr_url,
              original_pr_url = COALESCE(excluded.original_pr_url, prs.original_pr_url),
              original_pr_title = COALESCE(excluded.original_pr_title, prs.original_pr_title),
              has_macroscope_bugs = excluded.has_macroscope_bugs,
              bug_count = excluded.bug_count,
              created_by_user = COALESCE(excluded.created_by_user, prs.created_by_user),
              updated_at = excluded.updated_at
            """,
            (
                fork_id,
                record.pr_number,
                record.pr_title,
                record.forked_pr_url,
                record.original_pr_url,
                record.original_pr_title,
                int(record.meaningful_bugs_found),
                record.bug_count,
                record.created_by_user,
                _now(),
            ),
        )
        row = self._conn.execute(
            "SELECT id FROM prs WHERE fork_id = ? AND pr_number = ?",
            (fork_id, record.pr_number),
        ).fetchone()
        return row["id"]

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> AnalysisRecord:
        return AnalysisRecord(
            id=row["id"],
            repo_owner=row["repo_owner"],
            repo_name=row["repo_name"],
            pr_number=row["pr_number"],
            pr_title=row["pr_title"],
            forked_pr_url=row["forked_pr_url"],
            original_pr_url=row["original_pr_url"] or "",
            original_pr_title=row["original_pr_title"],
            meaningful_bugs_found=bool(row["meaningful_bugs_found"]),
            bug_count=row["bug_count"] or 0,
            analysis_json=row["analysis_json"],
            model=row["model"],
            created_by_user=row["created_by_user"],
            analyzed_at=row["analyzed_at"],
        )
