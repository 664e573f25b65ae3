from __future__ import annotations
"""
Git helpers for docbatch.

Only the read/checkout operations the job lifecycle needs:
- git_current_revision: HEAD commit of a working tree
- git_current_branch: checked-out branch name (empty when detached)
- git_checkout: switch the working tree to a ref
"""

import os
import subprocess
from pathlib import Path
from typing import Optional

GIT_TIMEOUT_SECONDS = 30


class GitError(RuntimeError):
    """A git command failed or git is not available."""


def _run_command(
    cmd: list[str],
    timeout: int = GIT_TIMEOUT_SECONDS,
    cwd: Optional[Path] = None,
) -> subprocess.CompletedProcess:
    """Shared subprocess.run wrapper."""
    return subprocess.run(
        cmd,
        cwd=str(cwd) if cwd else None,
        capture_output=True,
        text=True,
        timeout=timeout,
        env=os.environ.copy(),
    )


def _git(args: list[str], cwd: Optional[Path] = None) -> str:
    try:
        result = _run_command(["git", *args], cwd=cwd)
    except (OSError, subprocess.SubprocessError) as e:
        raise GitError(f"git {' '.join(args)} failed: {e}") from e
    if result.returncode != 0:
        raise GitError(f"git {' '.join(args)} failed: {result.stderr.strip() or result.stdout.strip()}")
    return result.stdout.strip()


def git_current_revision(cwd: Optional[Path] = None) -> str:
    """Return the full commit hash of HEAD."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def git_current_branch(cwd: Optional[Path] = None) -> str:
    """Return the current branch name, or "" on a detached HEAD."""
    return _git(["branch", "--show-current"], cwd=cwd)


def git_checkout(ref: str, cwd: Optional[Path] = None) -> None:
    """Check out ``ref`` in the working tree."""
    _git(["checkout", ref], cwd=cwd)
