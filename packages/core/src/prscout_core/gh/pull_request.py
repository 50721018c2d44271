from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from github import Github

from prscout_core.models import MacroscopeComment

logger = logging.getLogger(__name__)

_PR_URL_VALID_RE = re.compile(r"^https://github\.com/[\w.-]+/[\w.-]+/pull/\d+")
_PR_URL_PARTS_RE = re.compile(r"github\.com/([\w.-]+)/([\w.-]+)/pull/(\d+)")

_URL = r"(https://github\.com/[\w.-]+/[\w.-]+/pull/\d+)"
# Recreated PRs link back to the source PR in their description.
_ORIGINAL_PR_PATTERNS = [
    re.compile(r"\*\*Original PR:\*\*\s*" + _URL, re.IGNORECASE),
    re.compile(r"Original PR:\s*" + _URL, re.IGNORECASE),
    re.compile(r"Recreated from\s*" + _URL, re.IGNORECASE),
]


@dataclass(frozen=True)
class PullRequestRef:
    owner: str
    repo: str
    number: int

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def is_valid_pr_url(url: str) -> bool:
    return bool(_PR_URL_VALID_RE.match(url or ""))


def parse_pr_url(url: str) -> PullRequestRef:
    """Split a GitHub pull request URL into owner, repo and number.

    Raises ValueError for anything that is not a PR URL.
    """
    match = _PR_URL_PARTS_RE.search(url or "")
    if not match:
        raise ValueError(f"Invalid GitHub PR URL: {url!r}")
    return PullRequestRef(owner=match.group(1), repo=match.group(2), number=int(match.group(3)))


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def fetch_macroscope_comments(pr, bot_login: str) -> list[MacroscopeComment]:
    """Return the review bot's inline comments on ``pr`` in GitHub's order."""
    comments = []
    for c in pr.get_review_comments():
        if c.user is None or c.user.login != bot_login:
            continue
        comments.append(
            MacroscopeComment(
                id=c.id,
                path=c.path,
                line=c.line or c.original_line or None,
                body=c.body or "",
                diff_hunk=c.diff_hunk or "",
                created_at=c.created_at.isoformat() if c.created_at else "",
            )
        )
    logger.debug("Found %d comment(s) from %s on PR #%s", len(comments), bot_login, pr.number)
    return comments


def extract_original_pr_url(body: str | None) -> str | None:
    """Find the source PR link in a recreated PR's description, if any."""
    if not body:
        return None
    for pattern in _ORIGINAL_PR_PATTERNS:
        match = pattern.search(body)
        if match:
            return match.group(1)
    return None
