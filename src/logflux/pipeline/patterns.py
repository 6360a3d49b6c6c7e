"""Grok pattern engine.

Wraps pygrok so the rest of the pipeline deals in plain
dict[str, str] captures. Compiled expressions are cached per
expression string; compiling reloads every pattern file, so each
expression is compiled once for the life of the engine.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from pygrok import Grok

from logflux.errors import ExtractionError, StartupError

logger = logging.getLogger("logflux.pipeline.patterns")


class PatternEngine:
    """Named-capture extraction with grok expressions.

    Args:
        directory: Optional directory of extra pattern definition files,
            loaded on top of the builtin grok library.
    """

    def __init__(self, directory: Optional[str] = None):
        if directory and not os.path.isdir(directory):
            raise StartupError(f"pattern directory not found: {directory}")
        self.directory = directory or None
        self._compiled: dict[str, Grok] = {}

    def _compile(self, pattern: str) -> Grok:
        grok = self._compiled.get(pattern)
        if grok is not None:
            return grok
        try:
            grok = Grok(
                pattern,
                custom_patterns_dir=self.directory,
            )
        except Exception as e:
            raise ExtractionError(f"bad pattern {pattern!r}: {e}") from e
        logger.debug("Compiled pattern %r", pattern)
        self._compiled[pattern] = grok
        return grok

    def validate(self, pattern: str) -> None:
        """Compile pattern eagerly, raising ExtractionError if it is unusable."""
        self._compile(pattern)

    def parse(self, pattern: str, text: str) -> dict[str, str]:
        """Apply pattern to text and return its named captures.

        Returns an empty dict when the text does not match. Unmatched
        optional groups come back as empty strings and every value is
        a string, whatever type hint the pattern carries.
        """
        matched = self._compile(pattern).match(text)
        if not matched:
            return {}
        return {k: "" if v is None else str(v) for k, v in matched.items()}
