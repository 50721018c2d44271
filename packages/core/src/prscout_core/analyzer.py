"""Core PR analysis orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from github import GithubException
from rich.console import Console
from rich.table import Table

from prscout_core.gh.pull_request import (
    extract_original_pr_url,
    fetch_macroscope_comments,
    get_pull,
    get_repo,
    is_valid_pr_url,
    parse_pr_url,
)
from prscout_core.models import AnalysisResult, PRAnalysisResultV1, PRAnalysisResultV2
from prscout_core.normalizer import (
    has_meaningful_bugs,
    meaningful_bugs_sorted,
    normalize,
    severity_for_category,
)
from prscout_core.prompts import format_comments_for_prompt, get_prompt_metadata, load_prompt, output_rules
from prscout_core.providers.anthropic import AnthropicClient
from prscout_core.providers.openai import OpenAIClient

console = Console()
logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = "pr-analysis"

NO_COMMENTS_REASON = (
    "No Macroscope review comments were found on this PR. "
    "The bot may not have reviewed it yet, or there were no issues to report."
)

_SEVERITY_STYLE = {"critical": "bold red", "high": "red", "medium": "yellow"}


@dataclass
class AnalysisOutcome:
    """Result returned by analyze_pr, with enough context for the CLI to persist it.

    Decoupled from prscout_store so prscout_core has no dependency on the store layer.
    """

    forked_pr_url: str
    original_pr_url: str
    result: AnalysisResult
    pr_title: str | None = None
    original_pr_title: str | None = None
    comments_found: int = 0
    model: str | None = None
    analyzed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def meaningful_bugs_found(self) -> bool:
        return has_meaningful_bugs(self.result)

    @property
    def bug_count(self) -> int:
        if isinstance(self.result, PRAnalysisResultV2):
            return self.result.meaningful_bugs_count
        return len(self.result.bugs)


def get_client(config: dict):
    provider = config["provider"]
    if provider == "anthropic":
        return AnthropicClient(api_key=config["anthropic_api_key"])
    if provider == "openai":
        return OpenAIClient(api_key=config["openai_api_key"])
    raise ValueError(f"Unknown model provider: {provider!r}. Choose 'anthropic' or 'openai'.")


def _fetch_original_title(original_pr_url: str, token: str | None) -> str | None:
    ref = parse_pr_url(original_pr_url)
    try:
        return get_pull(get_repo(ref.full_name, token=token), ref.number).title
    except GithubException as e:
        logger.warning("Could not fetch original PR title for %s: %s", original_pr_url, e)
        return None


def _pick_model(config: dict, client, prompts_dir: str | None) -> str:
    if config.get("analysis_model"):
        return config["analysis_model"]
    metadata = get_prompt_metadata(ANALYSIS_PROMPT, prompts_dir)
    return metadata["model"] or client.MODEL


def build_analysis_prompt(
    forked_pr_url: str,
    original_pr_url: str,
    comments: list,
    prompts_dir: str | None = None,
    schema_variant: str = "lenient",
) -> str:
    prompt = load_prompt(
        ANALYSIS_PROMPT,
        {
            "FORKED_PR_URL": forked_pr_url,
            "ORIGINAL_PR_URL": original_pr_url,
            "TOTAL_COMMENTS": str(len(comments)),
            "MACROSCOPE_COMMENTS": format_comments_for_prompt(comments),
        },
        prompts_dir=prompts_dir,
    )
    return prompt + output_rules(schema_variant)


def analyze_pr(
    forked_pr_url: str,
    config: dict,
    original_pr_url: str | None = None,
    client=None,
    repo_obj=None,
) -> AnalysisOutcome:
    """Analyse the review bot's comments on a recreated PR.

    Args:
        forked_pr_url: URL of the recreated PR in our fork.
        config: Merged configuration dict (see load_config).
        original_pr_url: Source PR URL. Read from the forked PR body when omitted.
        client: LLM client to use. Built from config when omitted.
        repo_obj: Pre-fetched PyGithub Repository for the fork. Avoids a
            second API call when the caller already has it.

    Raises:
        ValueError: for invalid URLs or a missing original PR link.
        LLMResponseError: when the model call fails or returns unusable JSON.
        SchemaMismatchError, SchemaValidationError: when the JSON has the wrong shape.
    """
    if not is_valid_pr_url(forked_pr_url):
        raise ValueError(f"Invalid forked PR URL: {forked_pr_url!r}")
    ref = parse_pr_url(forked_pr_url)
    token = config.get("github_token")

    repo = repo_obj or get_repo(ref.full_name, token=token)
    try:
        pr = get_pull(repo, ref.number)
    except GithubException as e:
        raise ValueError(f"Could not fetch PR #{ref.number} from {ref.full_name}: {e}") from e

    if not original_pr_url:
        original_pr_url = extract_original_pr_url(pr.body)
        if not original_pr_url:
            raise ValueError(
                "Could not find the original PR URL in the PR description. "
                "Pass it explicitly with --original-url."
            )
    if not is_valid_pr_url(original_pr_url):
        raise ValueError(f"Invalid original PR URL: {original_pr_url!r}")

    original_title = _fetch_original_title(original_pr_url, token)

    console.print(f"Fetching review comments from [bold]{config['bot_login']}[/bold]...")
    comments = fetch_macroscope_comments(pr, config["bot_login"])
    if not comments:
        console.print("[yellow]No review bot comments found on this PR.[/yellow]")
        return AnalysisOutcome(
            forked_pr_url=forked_pr_url,
            original_pr_url=original_pr_url,
            pr_title=pr.title,
            original_pr_title=original_title,
            result=PRAnalysisResultV1(meaningful_bugs_found=False, reason=NO_COMMENTS_REASON),
        )

    client = client or get_client(config)
    prompts_dir = config.get("prompts_dir")
    prompt = build_analysis_prompt(forked_pr_url, original_pr_url, comments, prompts_dir, config["schema_variant"])
    model = _pick_model(config, client, prompts_dir)

    console.print(f"Analysing {len(comments)} comment(s) with [bold]{model}[/bold]...")
    raw = client.send_message_and_parse_json(prompt, model=model, max_tokens=config["max_tokens"], temperature=0)
    result = normalize(raw, comments, config["schema_variant"])
    logger.debug("Analysis of %s decoded as %s", forked_pr_url, type(result).__name__)

    return AnalysisOutcome(
        forked_pr_url=forked_pr_url,
        original_pr_url=original_pr_url,
        pr_title=pr.title,
        original_pr_title=original_title,
        result=result,
        comments_found=len(comments),
        model=model,
    )


def print_analysis(result: AnalysisResult, show_all: bool = False) -> None:
    """Render an analysis result to the terminal."""
    if not has_meaningful_bugs(result) and (not show_all or isinstance(result, PRAnalysisResultV1)):
        reason = result.reason if isinstance(result, PRAnalysisResultV1) else result.summary.recommendation
        console.print(f"[yellow]No meaningful bugs found.[/yellow] {reason or ''}")
        return

    if isinstance(result, PRAnalysisResultV1):
        table = Table(title="Meaningful bugs", show_header=True, header_style="bold cyan")
        table.add_column("Severity", width=10)
        table.add_column("File", max_width=40)
        table.add_column("Title")
        for bug in result.bugs:
            style = _SEVERITY_STYLE.get(bug.severity, "white")
            marker = " *" if bug.is_most_impactful else ""
            table.add_row(f"[{style}]{bug.severity}[/{style}]", bug.file_path, bug.title + marker)
        console.print(table)
        return

    rows = result.all_comments if show_all else meaningful_bugs_sorted(result)
    title = "All comments" if show_all else "Meaningful bugs"
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", width=4)
    table.add_column("Category", width=13)
    table.add_column("File", max_width=40)
    table.add_column("Title")
    table.add_column("Outreach", width=9)
    for c in rows:
        style = _SEVERITY_STYLE.get(severity_for_category(c.category), "white") if c.is_meaningful_bug else "dim"
        location = f"{c.file_path}:{c.line_number}" if c.line_number else c.file_path
        best = " *" if c.index == result.best_bug_for_outreach_index else ""
        table.add_row(
            str(c.index),
            f"[{style}]{c.category}[/{style}]",
            location,
            c.title + best,
            "yes" if c.outreach_ready else "",
        )
    console.print(table)
    console.print(f"[bold]Recommendation:[/bold] {result.summary.recommendation}")
