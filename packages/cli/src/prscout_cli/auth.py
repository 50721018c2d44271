"""Credential resolution for the CLI.

GitHub token resolution order (stops at first success):
  1. GITHUB_TOKEN, then GITHUB_BOT_TOKEN environment variables
  2. `gh auth token` (GitHub CLI session, works after `gh auth login`)
"""

from __future__ import annotations

import logging
import os
import subprocess

import click

logger = logging.getLogger(__name__)

_PROVIDER_KEYS = {
    "anthropic": ("anthropic_api_key", "ANTHROPIC_API_KEY"),
    "openai": ("openai_api_key", "OPENAI_API_KEY"),
}


def resolve_github_token() -> str | None:
    """Return a GitHub token or None if no valid source is available.

    Never raises. Callers should check for None and emit a UsageError.
    """
    for var in ("GITHUB_TOKEN", "GITHUB_BOT_TOKEN"):
        token = os.environ.get(var)
        if token:
            return token

    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            gh_token = result.stdout.strip()
            if gh_token:
                logger.debug("Resolved GitHub token via gh CLI session.")
                return gh_token
    except (FileNotFoundError, subprocess.TimeoutExpired):
        # gh is not installed or timed out.
        pass

    return None


def require_provider_key(config: dict) -> None:
    """Raise UsageError unless the API key for ``config["provider"]`` is set."""
    provider = config.get("provider")
    if provider not in _PROVIDER_KEYS:
        raise click.UsageError(f"Unknown provider {provider!r}. Choose 'anthropic' or 'openai'.")
    config_key, env_var = _PROVIDER_KEYS[provider]
    if not config.get(config_key):
        raise click.UsageError(f"{env_var} environment variable is not set.")
