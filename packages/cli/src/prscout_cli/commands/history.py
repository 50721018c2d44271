"""history command: list recent analyses from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.command("history")
@click.option("--repo", default=None, help="Only show analyses for this fork (owner/name).")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, repo: str | None, limit: int):
    """Show recent PR analyses, newest first."""
    from prscout_store.noop import NoOpStore

    store = ctx.obj.get("store") if ctx.obj else None
    if store is None or isinstance(store, NoOpStore):
        raise click.UsageError("No store configured. Set 'store: sqlite' in .prscout.yml.")

    records = store.list_analyses(repo=repo, limit=limit)
    if not records:
        console.print("[yellow]No analyses found.[/yellow]")
        return

    table = Table(title=f"Analysis History: {repo}" if repo else "Analysis History", header_style="bold cyan")
    table.add_column("Fork PR", style="bold")
    table.add_column("Original PR", max_width=50)
    table.add_column("Bugs", justify="right", width=5)
    table.add_column("Model", width=24)
    table.add_column("By", width=12)
    table.add_column("Analysed At", width=20)

    for r in records:
        bugs = f"[red]{r.bug_count}[/red]" if r.meaningful_bugs_found else "[dim]0[/dim]"
        table.add_row(
            f"{r.repo}#{r.pr_number}",
            r.original_pr_title or r.original_pr_url,
            bugs,
            r.model or "",
            r.created_by_user or "",
            r.analyzed_at[:19].replace("T", " "),
        )

    console.print(table)
