"""show command: print a stored analysis."""

from __future__ import annotations

import json

import click
from rich.console import Console

from prscout_core.analyzer import print_analysis
from prscout_core.errors import PRScoutError
from prscout_core.normalizer import decode

console = Console()


def load_stored_analysis(store, pr_url: str):
    """Return the stored record and its decoded result, or raise UsageError."""
    record = store.get_latest_analysis(pr_url)
    if record is None:
        raise click.UsageError(f"No stored analysis for {pr_url}. Run `prscout analyze --pr-url {pr_url}` first.")
    try:
        result = decode(json.loads(record.analysis_json))
    except (ValueError, PRScoutError) as e:
        raise click.ClickException(f"Stored analysis for {pr_url} is unreadable: {e}")
    return record, result


@click.command("show")
@click.option("--pr-url", required=True, help="URL of the recreated PR in the fork.")
@click.option("--all", "show_all", is_flag=True, help="List every bot comment, not only meaningful bugs.")
@click.pass_context
def show_cmd(ctx, pr_url: str, show_all: bool):
    """Print the stored analysis for a recreated PR."""
    record, result = load_stored_analysis(ctx.obj["store"], pr_url)

    console.print(f"[bold]{record.pr_title or pr_url}[/bold]")
    console.print(f"Original PR: {record.original_pr_url}")
    if record.original_pr_title:
        console.print(f"Original title: {record.original_pr_title}")
    console.print(f"Analysed: {record.analyzed_at[:19].replace('T', ' ')} ({record.model or 'unknown model'})\n")
    print_analysis(result, show_all=show_all)
