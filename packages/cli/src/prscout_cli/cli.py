"""CLI entry point for prscout.

Commands:
  analyze  triage the review bot's comments on a recreated PR
  show     print a stored analysis
  email    draft an outreach email from a stored analysis
  history  list recent analyses
"""

from __future__ import annotations

import importlib.metadata

import click
from rich.console import Console

from prscout_cli.commands.analyze import analyze_cmd
from prscout_cli.commands.email import email_cmd
from prscout_cli.commands.history import history_cmd
from prscout_cli.commands.show import show_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .prscout.yml settings.

    Store selection:
      store: sqlite  SQLiteStore at store_path (default .prscout.db)
      store: none    NoOpStore, nothing is persisted
    """
    from prscout_store.noop import NoOpStore

    store_type = config.get("store", "sqlite")

    if store_type == "sqlite":
        from prscout_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path") or ".prscout.db")

    if store_type not in ("none", "noop", None):
        console.print(f"[yellow]Unknown store {store_type!r}. Falling back to no store.[/yellow]")
    return NoOpStore()


@click.group()
@click.version_option(
    version=importlib.metadata.version("prscout"),
    prog_name="prscout",
)
@click.option(
    "--config",
    "config_path",
    default=".prscout.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRSCOUT_CONFIG",
)
@click.pass_context
def main(ctx: click.Context, config_path: str):
    """Find outreach-worthy bugs in AI code reviews of recreated PRs."""
    from prscout_cli.auth import resolve_github_token
    from prscout_core.config import load_config

    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ValueError as e:
        raise click.UsageError(str(e))

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(analyze_cmd)
main.add_command(show_cmd)
main.add_command(email_cmd)
main.add_command(history_cmd)
