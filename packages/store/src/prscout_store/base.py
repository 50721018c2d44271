"""Abstract store interface.

The CLI depends on BaseStore, not on a concrete backend, so backends are
swappable without touching CLI code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prscout_store.models import AnalysisRecord, EmailRecord


class BaseStore(ABC):
    """Pluggable persistence layer for analyses and drafted emails."""

    @abstractmethod
    def save_analysis(self, record: AnalysisRecord) -> int | None:
        """Persist an analysis and return its id.

        Only the latest analysis per PR is kept; earlier ones are replaced.
        """

    @abstractmethod
    def get_latest_analysis(self, forked_pr_url: str) -> AnalysisRecord | None:
        """Return the stored analysis for a forked PR, or None."""

    @abstractmethod
    def list_analyses(self, repo: str | None = None, limit: int = 20) -> list[AnalysisRecord]:
        """Return analyses newest first, optionally for one ``owner/name`` fork.

        Returns an empty list if nothing is stored. Never raises.
        """

    @abstractmethod
    def save_email(self, analysis_id: int, email_content: str, model: str | None = None) -> int | None:
        """Persist a drafted email for an analysis and return its id."""

    @abstractmethod
    def get_latest_email(self, analysis_id: int) -> EmailRecord | None:
        """Return the most recent email drafted for an analysis, or None."""

    def close(self) -> None:
        """Release any resources held by the store.

        Default is a no-op so callers can always call close() safely.
        """
