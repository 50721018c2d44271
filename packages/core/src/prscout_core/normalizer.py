"""Decode, validate and normalize pr-analysis responses from the LLM.

The model answers in one of two JSON shapes depending on which prompt
revision is active, and nothing in the payload says which one. decode()
turns the untrusted dict into exactly one of two typed results:

    raw dict → classify() → validate_v2() | validate_v1() → typed result
                                 ↓ (V2 only)
                             backfill(original comments)

Everything after decoding works on the typed results. Indices coming from
the model (``index``, ``best_bug_for_outreach_index``) are treated as
untrusted references into the original comment list: they are always
bounds-checked or looked up by value, never used to index directly.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, replace
from enum import Enum
from typing import Any

from prscout_core.errors import SchemaMismatchError, SchemaValidationError
from prscout_core.models import (
    CATEGORIES,
    AnalysisComment,
    AnalysisResult,
    AnalysisSummary,
    BugSnippet,
    MacroscopeComment,
    PRAnalysisResultV1,
    PRAnalysisResultV2,
)

logger = logging.getLogger(__name__)

# Lower rank sorts first. Unknown categories sort after every known one.
_CATEGORY_RANK = {category: rank for rank, category in enumerate(CATEGORIES)}

_CATEGORY_SEVERITY = {
    "bug_critical": "critical",
    "bug_high": "high",
    "bug_medium": "medium",
    "bug_low": "medium",
}

_V2_COUNT_FIELDS = ("total_comments_processed", "meaningful_bugs_count", "outreach_ready_count")
_NULLABLE_TEXT_FIELDS = (
    "explanation",
    "explanation_short",
    "impact_scenario",
    "code_suggestion",
    "outreach_skip_reason",
    "macroscope_comment_text",
)


class SchemaVersion(str, Enum):
    V1 = "v1"
    V2 = "v2"


class SchemaVariant(str, Enum):
    """Which revision of the V2 comment schema to validate against.

    LENIENT matches the current prompt, which tells the model to omit
    ``macroscope_comment_text`` and to null out explanations for minor
    findings. STRICT matches older prompt revisions that still required both
    fields from the model.
    """

    LENIENT = "lenient"
    STRICT = "strict"


# --------------------------------------------------------------------------- #
# Classification and validation                                               #
# --------------------------------------------------------------------------- #


def classify(result: Any) -> SchemaVersion:
    """Return which response schema ``result`` matches.

    Raises SchemaMismatchError when it matches neither. There is no silent
    fallback, the caller has to surface the failure.
    """
    if isinstance(result, PRAnalysisResultV2):
        return SchemaVersion.V2
    if isinstance(result, PRAnalysisResultV1):
        return SchemaVersion.V1
    if isinstance(result, dict):
        if isinstance(result.get("all_comments"), list) and isinstance(result.get("summary"), dict):
            return SchemaVersion.V2
        if isinstance(result.get("meaningful_bugs_found"), bool):
            return SchemaVersion.V1
        keys = ", ".join(sorted(str(k) for k in result)) or "<none>"
        raise SchemaMismatchError(f"LLM response matches no known analysis schema (keys: {keys})")
    raise SchemaMismatchError(f"LLM response is not a JSON object (got {type(result).__name__})")


def _is_int(value: Any) -> bool:
    # bool is an int subclass; a count of True is not a count.
    return isinstance(value, int) and not isinstance(value, bool)


def _require(container: dict, key: str, path: str) -> Any:
    if key not in container or container[key] is None:
        raise SchemaValidationError(path, f"missing required field '{path}'")
    return container[key]


def _require_int(container: dict, key: str, path: str) -> int:
    value = _require(container, key, path)
    if not _is_int(value):
        raise SchemaValidationError(path, f"'{path}' must be an integer")
    return value


def _require_str(container: dict, key: str, path: str) -> str:
    value = _require(container, key, path)
    if not isinstance(value, str):
        raise SchemaValidationError(path, f"'{path}' must be a string")
    return value


def _require_bool(container: dict, key: str, path: str) -> bool:
    value = _require(container, key, path)
    if not isinstance(value, bool):
        raise SchemaValidationError(path, f"'{path}' must be a boolean")
    return value


def _optional_str(container: dict, key: str, path: str) -> str | None:
    value = container.get(key)
    if value is not None and not isinstance(value, str):
        raise SchemaValidationError(path, f"'{path}' must be a string or null")
    return value


def _validate_comment(item: Any, position: int, variant: SchemaVariant) -> AnalysisComment:
    prefix = f"all_comments[{position}]"
    if not isinstance(item, dict):
        raise SchemaValidationError(prefix, f"'{prefix}' must be an object")

    index = _require_int(item, "index", f"{prefix}.index")
    file_path = _require_str(item, "file_path", f"{prefix}.file_path")
    category = _require_str(item, "category", f"{prefix}.category")
    title = _require_str(item, "title", f"{prefix}.title")
    is_meaningful_bug = _require_bool(item, "is_meaningful_bug", f"{prefix}.is_meaningful_bug")
    outreach_ready = _require_bool(item, "outreach_ready", f"{prefix}.outreach_ready")

    if variant == SchemaVariant.STRICT:
        _require_str(item, "explanation", f"{prefix}.explanation")
        _require_str(item, "macroscope_comment_text", f"{prefix}.macroscope_comment_text")

    text = {key: _optional_str(item, key, f"{prefix}.{key}") for key in _NULLABLE_TEXT_FIELDS}

    line_number = item.get("line_number")
    if line_number is not None and not _is_int(line_number):
        raise SchemaValidationError(f"{prefix}.line_number", f"'{prefix}.line_number' must be an integer or null")

    return AnalysisComment(
        index=index,
        file_path=file_path,
        category=category,
        title=title,
        is_meaningful_bug=is_meaningful_bug,
        outreach_ready=outreach_ready,
        line_number=line_number,
        **text,
    )


def validate_v2(candidate: Any, variant: SchemaVariant | str = SchemaVariant.LENIENT) -> PRAnalysisResultV2:
    """Structurally validate a V2 payload and return the typed result.

    Only presence and types are checked. ``best_bug_for_outreach_index`` is
    not required to match a comment; consumers look it up by value.
    """
    variant = SchemaVariant(variant)
    if not isinstance(candidate, dict):
        raise SchemaValidationError("", "response must be a JSON object")

    counts = {key: _require_int(candidate, key, key) for key in _V2_COUNT_FIELDS}

    raw_comments = _require(candidate, "all_comments", "all_comments")
    if not isinstance(raw_comments, list):
        raise SchemaValidationError("all_comments", "'all_comments' must be an array")

    raw_summary = _require(candidate, "summary", "summary")
    if not isinstance(raw_summary, dict):
        raise SchemaValidationError("summary", "'summary' must be an object")

    bugs_by_severity = _require(raw_summary, "bugs_by_severity", "summary.bugs_by_severity")
    if not isinstance(bugs_by_severity, dict):
        raise SchemaValidationError("summary.bugs_by_severity", "'summary.bugs_by_severity' must be an object")

    recommendation = _require_str(raw_summary, "recommendation", "summary.recommendation")
    if not recommendation.strip():
        raise SchemaValidationError("summary.recommendation", "'summary.recommendation' must not be empty")

    non_bugs = raw_summary.get("non_bugs")
    if not isinstance(non_bugs, dict):
        non_bugs = {}

    best_index = candidate.get("best_bug_for_outreach_index")
    if best_index is not None and not _is_int(best_index):
        raise SchemaValidationError(
            "best_bug_for_outreach_index", "'best_bug_for_outreach_index' must be an integer or null"
        )

    comments = [_validate_comment(item, position, variant) for position, item in enumerate(raw_comments)]

    return PRAnalysisResultV2(
        total_comments_processed=counts["total_comments_processed"],
        meaningful_bugs_count=counts["meaningful_bugs_count"],
        outreach_ready_count=counts["outreach_ready_count"],
        best_bug_for_outreach_index=best_index,
        all_comments=comments,
        summary=AnalysisSummary(
            bugs_by_severity=dict(bugs_by_severity),
            recommendation=recommendation,
            non_bugs=dict(non_bugs),
        ),
    )


def validate_v1(candidate: Any) -> PRAnalysisResultV1:
    """Validate a legacy V1 payload and return the typed result."""
    if not isinstance(candidate, dict):
        raise SchemaValidationError("", "response must be a JSON object")

    found = candidate.get("meaningful_bugs_found")
    if not isinstance(found, bool):
        raise SchemaValidationError("meaningful_bugs_found", "missing meaningful_bugs_found field")

    comments_found = candidate.get("macroscope_comments_found")
    if not _is_int(comments_found):
        comments_found = None

    if not found:
        reason = candidate.get("reason")
        if not reason or not isinstance(reason, str):
            raise SchemaValidationError("reason", "missing reason for no meaningful bugs")
        return PRAnalysisResultV1(meaningful_bugs_found=False, reason=reason, macroscope_comments_found=comments_found)

    raw_bugs = candidate.get("bugs")
    if not isinstance(raw_bugs, list):
        raise SchemaValidationError("bugs", "missing bugs array for meaningful bugs")
    if not raw_bugs:
        raise SchemaValidationError("bugs", "bugs array is empty")

    bugs = []
    for position, bug in enumerate(raw_bugs):
        prefix = f"bugs[{position}]"
        if not isinstance(bug, dict):
            raise SchemaValidationError(prefix, f"'{prefix}' must be an object")
        for key in ("title", "explanation", "file_path", "severity"):
            if not bug.get(key):
                raise SchemaValidationError(f"{prefix}.{key}", f"bug missing required field '{prefix}.{key}'")
            if not isinstance(bug[key], str):
                raise SchemaValidationError(f"{prefix}.{key}", f"'{prefix}.{key}' must be a string")
        bugs.append(
            BugSnippet(
                title=bug["title"],
                explanation=bug["explanation"],
                file_path=bug["file_path"],
                severity=bug["severity"],
                is_most_impactful=bug.get("is_most_impactful") is True,
                macroscope_comment_text=bug.get("macroscope_comment_text"),
                explanation_short=bug.get("explanation_short"),
                impact_scenario=bug.get("impact_scenario"),
                code_suggestion=bug.get("code_suggestion"),
            )
        )

    total = candidate.get("total_macroscope_bugs_found")
    return PRAnalysisResultV1(
        meaningful_bugs_found=True,
        bugs=bugs,
        total_macroscope_bugs_found=total if _is_int(total) else len(bugs),
        macroscope_comments_found=comments_found,
    )


def decode(raw: Any, variant: SchemaVariant | str = SchemaVariant.LENIENT) -> AnalysisResult:
    """Classify ``raw`` and validate it against the matching schema."""
    if classify(raw) == SchemaVersion.V2:
        return validate_v2(raw, variant)
    return validate_v1(raw)


# --------------------------------------------------------------------------- #
# Backfill                                                                    #
# --------------------------------------------------------------------------- #


def backfill(result: PRAnalysisResultV2, original_comments: list[MacroscopeComment]) -> PRAnalysisResultV2:
    """Return a copy of ``result`` with server-known fields filled in.

    ``macroscope_comment_text`` always comes from the original comment at
    ``index``; whatever the model sent is discarded. An index outside the
    original list is an LLM hallucination and gets "" instead of an error.
    """
    comments = []
    for comment in result.all_comments:
        if 0 <= comment.index < len(original_comments):
            text = original_comments[comment.index].body
        else:
            logger.warning(
                "Analysis comment index %d is out of range for %d original comment(s); leaving text empty",
                comment.index,
                len(original_comments),
            )
            text = ""
        comments.append(replace(comment, macroscope_comment_text=text))
    return replace(result, all_comments=comments)


def normalize(
    raw: Any,
    original_comments: list[MacroscopeComment],
    variant: SchemaVariant | str = SchemaVariant.LENIENT,
) -> AnalysisResult:
    """Decode an LLM response and, for V2, backfill it from the originals."""
    result = decode(raw, variant)
    if isinstance(result, PRAnalysisResultV2):
        return backfill(result, original_comments)
    return result


# --------------------------------------------------------------------------- #
# Accessors                                                                   #
# --------------------------------------------------------------------------- #


def has_meaningful_bugs(result: AnalysisResult) -> bool:
    if isinstance(result, PRAnalysisResultV2):
        return result.meaningful_bugs_count > 0
    if isinstance(result, PRAnalysisResultV1):
        return result.meaningful_bugs_found
    raise SchemaMismatchError(f"Not an analysis result: {type(result).__name__}")


def best_bug_for_outreach(result: PRAnalysisResultV2) -> AnalysisComment | None:
    """Return the comment the model picked for outreach, or None if it drifted."""
    if result.best_bug_for_outreach_index is None:
        return None
    for comment in result.all_comments:
        if comment.index == result.best_bug_for_outreach_index:
            return comment
    return None


def category_rank(category: str) -> int:
    return _CATEGORY_RANK.get(category, len(CATEGORIES))


def severity_for_category(category: str) -> str:
    """Collapse a V2 category into a V1 severity; unknown categories become medium."""
    return _CATEGORY_SEVERITY.get(category, "medium")


def meaningful_bugs_sorted(result: PRAnalysisResultV2) -> list[AnalysisComment]:
    """Meaningful bugs, most severe first; equal categories keep their original order."""
    # sorted() is stable, so ties stay in all_comments order.
    return sorted(
        (c for c in result.all_comments if c.is_meaningful_bug),
        key=lambda c: category_rank(c.category),
    )


def outreach_ready(result: PRAnalysisResultV2) -> list[AnalysisComment]:
    return [c for c in result.all_comments if c.outreach_ready]


def comment_to_bug_snippet(comment: AnalysisComment, is_most_impactful: bool = False) -> BugSnippet:
    return BugSnippet(
        title=comment.title,
        # Minor findings have no long explanation; V1 consumers always expect text.
        explanation=comment.explanation or comment.explanation_short or "",
        file_path=comment.file_path,
        severity=severity_for_category(comment.category),
        is_most_impactful=is_most_impactful,
        macroscope_comment_text=comment.macroscope_comment_text,
        explanation_short=comment.explanation_short,
        impact_scenario=comment.impact_scenario,
        code_suggestion=comment.code_suggestion,
    )


def to_v1(result: PRAnalysisResultV2) -> PRAnalysisResultV1:
    """Convert a V2 result for consumers that only understand the legacy shape."""
    meaningful = meaningful_bugs_sorted(result)
    if not meaningful:
        return PRAnalysisResultV1(
            meaningful_bugs_found=False,
            reason=result.summary.recommendation,
        )

    bugs = []
    flagged = False
    for comment in meaningful:
        is_best = not flagged and comment.index == result.best_bug_for_outreach_index
        flagged = flagged or is_best
        bugs.append(comment_to_bug_snippet(comment, is_most_impactful=is_best))

    return PRAnalysisResultV1(
        meaningful_bugs_found=True,
        bugs=bugs,
        total_macroscope_bugs_found=len(bugs),
        macroscope_comments_found=result.total_comments_processed,
    )


def most_impactful_bug(result: PRAnalysisResultV1) -> BugSnippet | None:
    """The bug flagged as most impactful, falling back to the first one."""
    if not result.meaningful_bugs_found:
        return None
    for bug in result.bugs:
        if bug.is_most_impactful:
            return bug
    return result.bugs[0] if result.bugs else None


# --------------------------------------------------------------------------- #
# Serialization                                                               #
# --------------------------------------------------------------------------- #


def to_dict(result: AnalysisResult) -> dict:
    """Return the JSON-ready form of a result, as stored in ``analysis_json``.

    V2 always carries every key (absent values are explicit None). V1 emits
    only the keys that belong to its branch.
    """
    if isinstance(result, PRAnalysisResultV2):
        return asdict(result)
    if not isinstance(result, PRAnalysisResultV1):
        raise SchemaMismatchError(f"Not an analysis result: {type(result).__name__}")

    if result.meaningful_bugs_found:
        data: dict = {
            "meaningful_bugs_found": True,
            "bugs": [asdict(bug) for bug in result.bugs],
            "total_macroscope_bugs_found": result.total_macroscope_bugs_found,
        }
    else:
        data = {"meaningful_bugs_found": False, "reason": result.reason}
    if result.macroscope_comments_found is not None:
        data["macroscope_comments_found"] = result.macroscope_comments_found
    return data
