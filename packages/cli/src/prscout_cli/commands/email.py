"""email command: draft an outreach email from a stored analysis."""

from __future__ import annotations

import logging

import click
from rich.console import Console
from rich.panel import Panel

from prscout_cli.commands.show import load_stored_analysis
from prscout_core.analyzer import get_client
from prscout_core.emailer import best_bug_for_email, extract_company_from_url, generate_email, resolve_email_model
from prscout_core.errors import PRScoutError
from prscout_core.normalizer import has_meaningful_bugs

console = Console()
logger = logging.getLogger(__name__)


@click.command("email")
@click.option("--pr-url", required=True, help="URL of the recreated PR in the fork.")
@click.option(
    "--bug-index",
    type=int,
    default=None,
    help="Index of the comment to write about. Defaults to the model's outreach pick.",
)
@click.pass_context
def email_cmd(ctx, pr_url: str, bug_index: int | None):
    """Draft an outreach email about one bug from a stored analysis."""
    from prscout_cli.auth import require_provider_key

    config = ctx.obj["config"]
    store = ctx.obj["store"]
    record, result = load_stored_analysis(store, pr_url)

    if not has_meaningful_bugs(result):
        raise click.ClickException("The stored analysis has no meaningful bugs to write about.")
    bug = best_bug_for_email(result, selected_index=bug_index)
    if bug is None:
        raise click.ClickException("Could not pick a bug to write about.")

    require_provider_key(config)
    model = resolve_email_model(config.get("email_model"), config.get("prompts_dir"))
    try:
        content = generate_email(
            get_client(config),
            bug,
            original_pr_url=record.original_pr_url,
            forked_pr_url=record.forked_pr_url,
            total_bugs=record.bug_count,
            pr_title=record.original_pr_title,
            model=model,
            prompts_dir=config.get("prompts_dir"),
        )
    except (ValueError, PRScoutError) as e:
        raise click.ClickException(f"Email generation failed: {e}")

    if record.id is not None:
        try:
            store.save_email(record.id, content, model)
        except Exception as e:
            logger.exception("Could not save email for analysis %d", record.id)
            console.print(f"[yellow]Email drafted but could not be saved: {e}[/yellow]")

    company = extract_company_from_url(record.original_pr_url) or "prospect"
    console.print(Panel(content, title=f"Email for {company}: {bug.title}", expand=False))
