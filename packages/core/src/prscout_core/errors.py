"""Exceptions raised by the analysis pipeline.

Schema and validation errors are fatal for the request that produced them:
the LLM answer cannot be trusted, so callers surface the message instead of
guessing. Index drift is not an error here: the normalizer degrades to
None / "" and logs a warning.
"""

from __future__ import annotations


class PRScoutError(Exception):
    """Base class for all prscout errors."""


class SchemaMismatchError(PRScoutError):
    """The LLM output matches neither the V1 nor the V2 response schema."""


class SchemaValidationError(PRScoutError):
    """A recognised schema is missing a required field or has the wrong type.

    ``field`` holds the dotted path of the offending field, including the
    array position for comment entries (``all_comments[2].title``).
    """

    def __init__(self, field: str, message: str):
        super().__init__(f"Invalid response: {message}")
        self.field = field


class LLMResponseError(PRScoutError):
    """The LLM call failed or its reply could not be turned into JSON."""
