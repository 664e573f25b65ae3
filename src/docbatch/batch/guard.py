"""Integrity guard against writing one file's result into another file.

A wrong correlation (duplicate basenames, moved files, stale indices) would
otherwise overwrite a source file with unrelated content. The guard rejects
a pair when either side looks like a stray test snippet: test-framework
calls, no import/module syntax, and short. It accepts a small false-reject
rate in exchange.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from docbatch.config.defaults import GUARD_MAX_SUSPECT_LENGTH

logger = logging.getLogger(__name__)

_TEST_CALL = re.compile(
    r"\bdescribe\s*\("
    r"|^\s*(?:it|test)(?:\.\w+)?\s*\("
    r"|^\s*def\s+test_\w*\s*\(",
    re.MULTILINE,
)

_MODULE_SYNTAX = re.compile(
    r"\bimport\b"
    r"|\brequire\s*\("
    r"|^\s*export\b"
    r"|\bmodule\.exports\b",
    re.MULTILINE,
)


@dataclass(frozen=True)
class GuardVerdict:
    accepted: bool
    reason: Optional[str] = None


class IntegrityGuard:
    """Heuristic check run before every write.

    Args:
        max_length: Texts at or above this many characters are never
            considered suspect
    """

    def __init__(self, max_length: int = GUARD_MAX_SUSPECT_LENGTH):
        self.max_length = max_length

    def looks_unrelated(self, text: str) -> bool:
        """True if ``text`` looks like a test snippet rather than a module."""
        if len(text) >= self.max_length:
            return False
        if not _TEST_CALL.search(text):
            return False
        return not _MODULE_SYNTAX.search(text)

    def check(self, original: str, candidate: str, path: str) -> GuardVerdict:
        if self.looks_unrelated(original):
            logger.warning(
                f"File {path} appears to be a test file and not valid source. "
                f"Skipping to prevent overwriting with test content."
            )
            return GuardVerdict(False, "original looks like test code")
        if self.looks_unrelated(candidate):
            logger.warning(
                f"Response for {path} appears to be test code, not the requested output. "
                f"Skipping to prevent overwriting with test content."
            )
            return GuardVerdict(False, "response looks like test code")
        return GuardVerdict(True)
