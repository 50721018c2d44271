"""analyze command: triage the review bot's comments on a recreated PR."""

from __future__ import annotations

import json
import logging

import click
from github import GithubException
from rich.console import Console

from prscout_core.analyzer import AnalysisOutcome, analyze_pr, print_analysis
from prscout_core.errors import PRScoutError
from prscout_core.gh.pull_request import parse_pr_url
from prscout_core.normalizer import decode, to_dict
from prscout_store.models import AnalysisRecord

console = Console()
logger = logging.getLogger(__name__)


def _outcome_to_record(outcome: AnalysisOutcome, user: str | None) -> AnalysisRecord:
    """Map an AnalysisOutcome returned by analyze_pr() to an AnalysisRecord for the store.

    The CLI owns this mapping. prscout_core has no store knowledge and
    prscout_store has no core knowledge.
    """
    ref = parse_pr_url(outcome.forked_pr_url)
    return AnalysisRecord(
        repo_owner=ref.owner,
        repo_name=ref.repo,
        pr_number=ref.number,
        pr_title=outcome.pr_title,
        forked_pr_url=outcome.forked_pr_url,
        original_pr_url=outcome.original_pr_url,
        original_pr_title=outcome.original_pr_title,
        meaningful_bugs_found=outcome.meaningful_bugs_found,
        bug_count=outcome.bug_count,
        analysis_json=json.dumps(to_dict(outcome.result)),
        model=outcome.model,
        created_by_user=user,
        analyzed_at=outcome.analyzed_at,
    )


@click.command("analyze")
@click.option("--pr-url", required=True, help="URL of the recreated PR in the fork.")
@click.option(
    "--original-url",
    default=None,
    help="URL of the original PR. Read from the forked PR description when omitted.",
)
@click.option("--force", is_flag=True, help="Re-run the analysis even if a stored one exists.")
@click.option("--user", default=None, help="Name recorded as the creator of this analysis.")
@click.option(
    "--provider",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="LLM provider. Overrides config file.",
)
@click.pass_context
def analyze_cmd(
    ctx,
    pr_url: str,
    original_url: str | None,
    force: bool,
    user: str | None,
    provider: str | None,
):
    """Analyse Macroscope's review comments on a recreated PR.

    Classifies every bot comment, picks out meaningful bugs and the best one
    for outreach, and stores the result. A stored analysis is shown instead
    of re-running unless --force is given.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub token (or use gh CLI)
      ANTHROPIC_API_KEY    Required when using --provider anthropic
      OPENAI_API_KEY       Required when using --provider openai
    """
    from prscout_cli.auth import require_provider_key

    config = dict(ctx.obj["config"])
    if provider:
        config["provider"] = provider
    store = ctx.obj["store"]

    if not force:
        existing = store.get_latest_analysis(pr_url)
        if existing is not None:
            console.print(
                f"[dim]Using stored analysis from {existing.analyzed_at[:19].replace('T', ' ')}. "
                "Pass --force to re-run.[/dim]"
            )
            print_analysis(decode(json.loads(existing.analysis_json)))
            return

    if not config.get("github_token"):
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    require_provider_key(config)

    try:
        outcome = analyze_pr(pr_url, config, original_pr_url=original_url)
    except (ValueError, PRScoutError, GithubException) as e:
        raise click.ClickException(f"Analysis failed: {e}")

    try:
        analysis_id = store.save_analysis(_outcome_to_record(outcome, user))
    except Exception as e:
        logger.exception("Could not save analysis for %s", pr_url)
        console.print(f"[yellow]Analysis finished but could not be saved: {e}[/yellow]")
    else:
        if analysis_id is not None:
            logger.debug("Saved analysis %d for %s", analysis_id, pr_url)

    print_analysis(outcome.result)
    console.print(
        f"\n[bold]{outcome.bug_count}[/bold] meaningful bug(s) from "
        f"{outcome.comments_found} bot comment(s). Original PR: {outcome.original_pr_url}"
    )
