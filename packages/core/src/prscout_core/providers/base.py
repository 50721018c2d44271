"""Base LLM client implementing the Template Method pattern.

All providers share the same request flow:
    send_message_and_parse_json() → send_message()
        → _call_with_retry() → _call_api()   ← only this differs per provider
        → extract_json()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

Retry, backoff and JSON extraction live here so every provider behaves the
same way when the model wraps its JSON in prose or the reply is cut off.
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any

from prscout_core.errors import LLMResponseError

logger = logging.getLogger(__name__)

# Shared defaults. Subclasses may override as class attributes if needed.
_MAX_RETRIES = 3
_MAX_TOKENS = 4096

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def _slice_json(text: str) -> str:
    """Cut ``text`` down to the first complete JSON object or array.

    Brackets inside string values are ignored. If the closing bracket is
    never reached the text is returned from the opening bracket onwards, and
    the caller's truncation check rejects it.
    """
    first_brace = text.find("{")
    first_bracket = text.find("[")
    if first_brace == -1 and first_bracket == -1:
        return text
    if first_brace != -1 and (first_bracket == -1 or first_brace < first_bracket):
        start, open_char, close_char = first_brace, "{", "}"
    else:
        start, open_char, close_char = first_bracket, "[", "]"

    depth = 0
    in_string = False
    escape_next = False
    for i in range(start, len(text)):
        char = text[i]
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return text[start:]


def _looks_complete(text: str) -> bool:
    return text.rstrip().endswith(("}", "]"))


def extract_json(response: str) -> Any:
    """Parse the JSON payload out of a model reply.

    Handles markdown fences, prose before or after the JSON, and stray
    control characters. Raises LLMResponseError when the reply was truncated
    (usually the token limit) or is not JSON at all.
    """
    text = response.strip()
    fenced = _FENCE_RE.search(text)
    candidate = _slice_json(fenced.group(1).strip()) if fenced else None
    # A fence inside a JSON string value ends the regex match early.
    text = candidate if candidate and _looks_complete(candidate) else _slice_json(text)

    if not _looks_complete(text):
        raise LLMResponseError(
            f"LLM response was truncated ({len(response)} chars). The PR may have too many comments "
            f'for the token limit. Response ends with: "{text[-100:]}"'
        )

    try:
        return json.loads(text, strict=False)
    except json.JSONDecodeError as e:
        logger.debug("JSON parse failed (%s); retrying without control characters", e)
        try:
            return json.loads(_CONTROL_CHARS_RE.sub("", text), strict=False)
        except json.JSONDecodeError:
            raise LLMResponseError(
                f"Failed to parse JSON response from the LLM: {e}. Raw response preview: {response[:500]}"
            ) from e


class BaseClient(ABC):
    MODEL: str = ""
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS
    TEMPERATURE: float = 0.0

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def send_message(
        self,
        prompt: str,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Send a single-turn prompt and return the text reply.

        Raises LLMResponseError once every retry has failed.
        """
        return self._call_with_retry(
            prompt,
            model or self.MODEL,
            max_tokens or self.MAX_TOKENS,
            self.TEMPERATURE if temperature is None else temperature,
        )

    def send_message_and_parse_json(
        self,
        prompt: str,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> Any:
        """Send a prompt and return the JSON value parsed from the reply."""
        return extract_json(self.send_message(prompt, model, max_tokens, temperature))

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                 #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, prompt: str, model: str, max_tokens: int, temperature: float) -> str:
        """Make a single API call and return the raw text response.

        This is the only method subclasses must implement. It should raise
        on failure; _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, prompt: str, model: str, max_tokens: int, temperature: float) -> str:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(prompt, model, max_tokens, temperature)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    raise LLMResponseError(
                        f"{self.__class__.__name__} API failed after {self.MAX_RETRIES} attempts: {e}"
                    ) from e
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)
        raise LLMResponseError(f"{self.__class__.__name__}: MAX_RETRIES must be at least 1")
