"""Analysis history data models.

Decoupled from prscout_core so the store layer can be used independently
and prscout_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class AnalysisRecord:
    """A completed PR analysis persisted to the store.

    Created by the CLI layer after analyze_pr() returns an AnalysisOutcome.
    ``analysis_json`` holds the serialized result exactly as decoded, so
    either schema version can be read back.
    """

    repo_owner: str
    repo_name: str
    pr_number: int
    forked_pr_url: str
    original_pr_url: str
    meaningful_bugs_found: bool
    bug_count: int
    analysis_json: str
    analyzed_at: str  # ISO-8601 UTC timestamp
    pr_title: str | None = None
    original_pr_title: str | None = None
    model: str | None = None
    created_by_user: str | None = None
    id: int | None = None

    @property
    def repo(self) -> str:
        return f"{self.repo_owner}/{self.repo_name}"


@dataclass
class EmailRecord:
    """An outreach email drafted from a stored analysis."""

    analysis_id: int
    email_content: str
    generated_at: str  # ISO-8601 UTC timestamp
    model: str | None = None
    id: int | None = None
