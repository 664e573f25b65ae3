"""Commit-consistency check between a job and the working tree.

A job records the revision its sources were read from. Before results are
written back the working tree revision is compared with it:

- lenient (default): drift is logged as a warning and processing continues
- strict: the recorded revision is checked out for the duration of the
  commit and the previous branch is restored afterwards (at the latest on
  interpreter exit)
"""

from __future__ import annotations

import atexit
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from docbatch.batch.errors import CommitMismatchError
from docbatch.batch.models import JobRegistry
from docbatch.tools.git import GitError, git_checkout, git_current_branch, git_current_revision

logger = logging.getLogger(__name__)


class Consistency(str, Enum):
    MATCH = "match"
    DRIFT = "drift"
    UNKNOWN = "unknown"
    CHECKED_OUT = "checked_out"


@dataclass
class ConsistencyResult:
    state: Consistency
    expected: Optional[str] = None
    current: Optional[str] = None


class CommitConsistencyCheck:
    """Compare (and in strict mode enforce) the revision a job was built from.

    Execution Traces:
    - Happy: HEAD equals the recorded revision, nothing to do
    - Failure: strict mode and checkout fails, CommitMismatchError
    - Edge: no recorded revision or not a git tree, warning only
    """

    def __init__(self, strict: bool = False):
        self.strict = strict
        self._restore_ref: Optional[str] = None
        self._restore_cwd: Optional[Path] = None
        self._atexit_registered = False

    def verify(self, registry: JobRegistry) -> ConsistencyResult:
        expected = registry.source_revision
        cwd = Path(registry.package_path)
        if not expected:
            logger.warning(
                f"No source revision stored with job {registry.job_id}. "
                f"Code version consistency cannot be guaranteed."
            )
            return ConsistencyResult(Consistency.UNKNOWN)

        try:
            current = git_current_revision(cwd)
        except GitError as e:
            logger.warning(f"Failed to verify source revision: {e}")
            logger.warning("Proceeding without revision verification.")
            return ConsistencyResult(Consistency.UNKNOWN, expected=expected)

        if current == expected:
            logger.info(f"Working tree matches the revision job {registry.job_id} was built from ({expected})")
            return ConsistencyResult(Consistency.MATCH, expected=expected, current=current)

        logger.warning(
            f"Current revision ({current}) doesn't match the one used when creating job "
            f"{registry.job_id} ({expected})"
        )
        if not self.strict:
            logger.warning(
                "Proceeding with current revision. Set DOCBATCH_FORCE_COMMIT_MATCH=true "
                "to check out the recorded revision automatically."
            )
            return ConsistencyResult(Consistency.DRIFT, expected=expected, current=current)

        self._checkout(expected, current, cwd)
        return ConsistencyResult(Consistency.CHECKED_OUT, expected=expected, current=current)

    def _checkout(self, expected: str, current: str, cwd: Path) -> None:
        try:
            previous = git_current_branch(cwd) or current
            git_checkout(expected, cwd)
        except GitError as e:
            raise CommitMismatchError(expected, current, str(e)) from e

        logger.info(f"Checked out {expected} to ensure code version consistency")
        if self._restore_ref is None:
            self._restore_ref = previous
            self._restore_cwd = cwd
        if not self._atexit_registered:
            atexit.register(self.restore)
            self._atexit_registered = True

    def restore(self) -> None:
        """Switch back to the branch that was checked out before ``verify``."""
        if self._restore_ref is None:
            return
        ref, cwd = self._restore_ref, self._restore_cwd
        self._restore_ref = None
        self._restore_cwd = None
        try:
            git_checkout(ref, cwd)
            logger.info(f"Switched back to {ref}")
        except GitError as e:
            logger.error(f"Failed to switch back to {ref}: {e}")
