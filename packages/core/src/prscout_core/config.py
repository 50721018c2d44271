import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "provider": "anthropic",
    "analysis_model": None,  # None = use the prompt header's Model:, then the provider default
    "email_model": None,
    "bot_login": "macroscopeapp[bot]",
    "max_tokens": 8192,
    "schema_variant": "lenient",  # "strict" for prompt revisions that still emit macroscope_comment_text
    "prompts_dir": None,  # None = built-in prompts; set to a directory of <name>.md files to override
    "store": "sqlite",
    "store_path": ".prscout.db",
}

_VALID_VARIANTS = ("lenient", "strict")


def load_config(config_path: str = ".prscout.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prscout.yml in the current directory
      3. CLI argument overrides
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    if config["schema_variant"] not in _VALID_VARIANTS:
        raise ValueError(
            f"Unknown schema_variant: {config['schema_variant']!r}. Choose one of {', '.join(_VALID_VARIANTS)}."
        )

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN") or os.environ.get("GITHUB_BOT_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config
