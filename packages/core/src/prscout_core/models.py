"""Data models for bot review comments and LLM analysis results.

Two result shapes exist because the pr-analysis prompt has been revised over
time and the stored template decides which one the model emits:

- V2 (current): every bot comment is triaged individually in ``all_comments``
  together with a ``summary`` block.
- V1 (legacy): a flat ``meaningful_bugs_found`` flag with either a ``reason``
  or a list of ``bugs``.

Field names match the JSON keys the prompt asks for, so ``asdict`` gives the
wire form directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field

CATEGORIES = (
    "bug_critical",
    "bug_high",
    "bug_medium",
    "bug_low",
    "suggestion",
    "style",
    "nitpick",
)


@dataclass(frozen=True)
class MacroscopeComment:
    """One review comment left by the review bot on a forked PR."""

    id: int
    path: str
    line: int | None
    body: str
    diff_hunk: str
    created_at: str  # ISO-8601


@dataclass
class AnalysisComment:
    """The LLM's verdict on a single bot comment (V2)."""

    index: int  # position of the source comment in the list sent to the LLM
    file_path: str
    category: str
    title: str
    is_meaningful_bug: bool
    outreach_ready: bool
    line_number: int | None = None
    # Only filled in for bug_critical / bug_high to save output tokens.
    explanation: str | None = None
    explanation_short: str | None = None
    impact_scenario: str | None = None
    code_suggestion: str | None = None
    outreach_skip_reason: str | None = None
    # Populated by normalizer.backfill() from the original comment.
    macroscope_comment_text: str | None = None


@dataclass
class AnalysisSummary:
    bugs_by_severity: dict[str, int]
    recommendation: str
    non_bugs: dict[str, int] = field(default_factory=dict)


@dataclass
class PRAnalysisResultV2:
    total_comments_processed: int
    meaningful_bugs_count: int
    outreach_ready_count: int
    best_bug_for_outreach_index: int | None
    all_comments: list[AnalysisComment]
    summary: AnalysisSummary


@dataclass
class BugSnippet:
    """A meaningful bug in the legacy (V1) shape."""

    title: str
    explanation: str
    file_path: str
    severity: str  # "critical" | "high" | "medium"
    is_most_impactful: bool = False
    macroscope_comment_text: str | None = None
    explanation_short: str | None = None
    impact_scenario: str | None = None
    code_suggestion: str | None = None


@dataclass
class PRAnalysisResultV1:
    """Legacy result: either ``reason`` (no bugs) or ``bugs`` is meaningful."""

    meaningful_bugs_found: bool
    reason: str | None = None
    bugs: list[BugSnippet] = field(default_factory=list)
    total_macroscope_bugs_found: int = 0
    macroscope_comments_found: int | None = None


AnalysisResult = PRAnalysisResultV1 | PRAnalysisResultV2
