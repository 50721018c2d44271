"""Prompt templates for the analysis and email calls.

A prompt file is markdown with three parts separated by ``---`` lines:

    # Title
    Model: <model id>
    Purpose: <one line>
    ---
    <body with {PLACEHOLDERS}>
    ---
    Variables:
    - PLACEHOLDER: description

Only the body is sent to the model. Teams can edit the templates by pointing
``prompts_dir`` at a directory of their own ``<name>.md`` files; anything not
found there falls back to the copies shipped in ``templates/``.
"""

from __future__ import annotations

import re
from pathlib import Path

from prscout_core.models import MacroscopeComment

BUILTIN_PROMPTS_DIR = Path(__file__).parent / "templates"

_HEADER_RE = re.compile(r"^#.*?\n([\s\S]*?)---")
_MODEL_RE = re.compile(r"Model:\s*(.+)")
_PURPOSE_RE = re.compile(r"Purpose:\s*(.+)")

# Appended to every pr-analysis prompt, whatever template revision is loaded.
# Older stored templates still ask for macroscope_comment_text and full
# explanations; these rules override that, and normalizer.backfill() restores
# the text from the original comments afterwards.
_TRIM_RULES = """
- Do NOT include a "macroscope_comment_text" field in any all_comments entry. It is filled in server-side.
- Set "explanation", "impact_scenario" and "code_suggestion" to null for every comment whose category is not \
"bug_critical" or "bug_high". Always provide "explanation_short"."""

_FORMAT_RULES = """
- "index" is the zero-based position of the comment in the list above (Comment 1 has index 0).
- Return only the JSON object, with no text before or after it."""

_RULES_HEADING = """

## Output rules (these override anything above)"""

OUTPUT_RULES = _RULES_HEADING + _TRIM_RULES + _FORMAT_RULES

# Strict validation expects macroscope_comment_text and explanation on every
# comment, so the trimming rules are left out.
STRICT_OUTPUT_RULES = _RULES_HEADING + _FORMAT_RULES


def output_rules(schema_variant: str = "lenient") -> str:
    """Return the fixed rules to append for ``schema_variant``."""
    return STRICT_OUTPUT_RULES if schema_variant == "strict" else OUTPUT_RULES


def _resolve_prompt_path(prompt_name: str, prompts_dir: str | None = None) -> Path:
    if prompts_dir:
        custom = Path(prompts_dir) / f"{prompt_name}.md"
        if custom.exists():
            return custom
    builtin = BUILTIN_PROMPTS_DIR / f"{prompt_name}.md"
    if builtin.exists():
        return builtin
    raise FileNotFoundError(f"Prompt file not found: {prompt_name}.md")


def load_prompt(prompt_name: str, variables: dict[str, str] | None = None, prompts_dir: str | None = None) -> str:
    """Return the body of a prompt template with ``{KEY}`` placeholders filled in."""
    content = _resolve_prompt_path(prompt_name, prompts_dir).read_text(encoding="utf-8")

    parts = content.split("---")
    if len(parts) >= 2:
        body_parts = parts[1:]
        variables_at = next(
            (i for i, part in enumerate(body_parts) if part.strip().startswith("Variables:")),
            None,
        )
        if variables_at is not None:
            body_parts = body_parts[:variables_at]
        content = "---".join(body_parts).strip()

    for key, value in (variables or {}).items():
        content = content.replace(f"{{{key}}}", value)

    return content


def get_prompt_metadata(prompt_name: str, prompts_dir: str | None = None) -> dict:
    """Return ``model`` and ``purpose`` from the template header (None when absent)."""
    content = _resolve_prompt_path(prompt_name, prompts_dir).read_text(encoding="utf-8")
    header = _HEADER_RE.match(content)
    if not header:
        return {"model": None, "purpose": None}

    model = _MODEL_RE.search(header.group(1))
    purpose = _PURPOSE_RE.search(header.group(1))
    return {
        "model": model.group(1).strip() if model else None,
        "purpose": purpose.group(1).strip() if purpose else None,
    }


def format_comments_for_prompt(comments: list[MacroscopeComment]) -> str:
    """Render the bot's comments as numbered sections for the analysis prompt."""
    if not comments:
        return "No Macroscope review comments found on this PR."

    sections = []
    for index, comment in enumerate(comments):
        location = f"{comment.path}:{comment.line}" if comment.line else comment.path
        sections.append(
            f"""
### Comment {index + 1} (index: {index}): {location}

**Code context:**
```
{comment.diff_hunk}
```

**Macroscope's finding:**
{comment.body}
"""
        )
    return "\n---\n".join(sections)
