"""Outreach email drafting for a single analysed bug.

The draft keeps merge fields such as ``{ First Name }`` and
``{ Company Name }`` in place for the sales tool to fill in later.
"""

from __future__ import annotations

import logging
import re

from prscout_core.models import AnalysisResult, BugSnippet, PRAnalysisResultV2
from prscout_core.normalizer import best_bug_for_outreach, comment_to_bug_snippet, most_impactful_bug
from prscout_core.prompts import get_prompt_metadata, load_prompt

logger = logging.getLogger(__name__)

EMAIL_PROMPT = "email-generation"
DEFAULT_EMAIL_MODEL = "claude-sonnet-4-20250514"

_ORG_RE = re.compile(r"github\.com/([\w.-]+)/")
_PR_NUMBER_RE = re.compile(r"/pull/(\d+)")


def extract_company_from_url(url: str) -> str | None:
    """Guess a display name from the GitHub org: ``growth-book`` → ``GrowthBook``."""
    match = _ORG_RE.search(url or "")
    if not match:
        return None
    return "".join(word[:1].upper() + word[1:] for word in match.group(1).split("-"))


def extract_pr_number(url: str) -> str | None:
    match = _PR_NUMBER_RE.search(url or "")
    return match.group(1) if match else None


def best_bug_for_email(result: AnalysisResult, selected_index: int | None = None) -> BugSnippet | None:
    """Pick the bug to write about.

    For V2 results an explicit ``selected_index`` wins, then the model's
    outreach pick, then the first meaningful bug. Indices that match no
    comment are skipped rather than trusted.
    """
    if not isinstance(result, PRAnalysisResultV2):
        return most_impactful_bug(result)

    if selected_index is not None:
        for comment in result.all_comments:
            if comment.index == selected_index:
                return comment_to_bug_snippet(comment, is_most_impactful=True)
        logger.warning("No comment with index %d; falling back to the default pick", selected_index)

    best = best_bug_for_outreach(result)
    if best is not None:
        return comment_to_bug_snippet(best, is_most_impactful=True)

    for comment in result.all_comments:
        if comment.is_meaningful_bug:
            return comment_to_bug_snippet(comment, is_most_impactful=True)
    return None


def resolve_email_model(model: str | None = None, prompts_dir: str | None = None) -> str:
    """Explicit model, else the template header's Model:, else the built-in default."""
    return model or get_prompt_metadata(EMAIL_PROMPT, prompts_dir)["model"] or DEFAULT_EMAIL_MODEL


def generate_email(
    client,
    bug: BugSnippet | None,
    original_pr_url: str,
    forked_pr_url: str,
    total_bugs: int,
    pr_title: str | None = None,
    model: str | None = None,
    prompts_dir: str | None = None,
) -> str:
    """Draft an outreach email about ``bug`` and return its text.

    Raises ValueError when a URL or the bug is missing, or the original PR
    number cannot be read from its URL.
    """
    if not original_pr_url or not forked_pr_url or bug is None:
        raise ValueError("Missing required fields for email generation")

    pr_number = extract_pr_number(original_pr_url)
    if not pr_number:
        raise ValueError(f"Could not extract PR number from original URL: {original_pr_url}")

    prompt = load_prompt(
        EMAIL_PROMPT,
        {
            "ORIGINAL_PR_NUMBER": pr_number,
            "ORIGINAL_PR_URL": original_pr_url,
            "PR_TITLE": pr_title or f"PR #{pr_number}",
            "FORKED_PR_URL": forked_pr_url,
            "BUG_TITLE": bug.title,
            "BUG_EXPLANATION": bug.explanation_short or bug.explanation,
            "BUG_SEVERITY": bug.severity,
            "TOTAL_BUGS": str(total_bugs),
            "BUG_FIX_SUGGESTION": bug.code_suggestion or "Not provided.",
        },
        prompts_dir=prompts_dir,
    )

    email = client.send_message(
        prompt,
        model=resolve_email_model(model, prompts_dir),
        max_tokens=2048,
        temperature=0.3,
    )
    return email.strip()
