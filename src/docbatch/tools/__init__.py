from __future__ import annotations
"""
docbatch tools - thin wrappers around external commands.

- git: revision capture, branch lookup and checkout for commit consistency
"""

from docbatch.tools.git import (
    GitError,
    git_checkout,
    git_current_branch,
    git_current_revision,
)

__all__ = ["GitError", "git_checkout", "git_current_branch", "git_current_revision"]
