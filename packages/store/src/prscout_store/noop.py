"""No-op store, used when ``store: none`` is configured.

Using a NoOpStore rather than None lets the CLI always call
store.save_analysis() without conditional checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prscout_store.base import BaseStore

if TYPE_CHECKING:
    from prscout_store.models import AnalysisRecord, EmailRecord


class NoOpStore(BaseStore):
    """Silently discards everything. Every analysis runs fresh."""

    def save_analysis(self, record: AnalysisRecord) -> int | None:
        return None

    def get_latest_analysis(self, forked_pr_url: str) -> AnalysisRecord | None:
        return None

    def list_analyses(self, repo: str | None = None, limit: int = 20) -> list[AnalysisRecord]:
        return []

    def save_email(self, analysis_id: int, email_content: str, model: str | None = None) -> int | None:
        return None

    def get_latest_email(self, analysis_id: int) -> EmailRecord | None:
        return None
