"""Default configuration values for docbatch.

This module centralizes the hard-coded defaults (timeouts, limits, file
names, provider endpoints) into a single location. All modules should
import these constants instead of hard-coding values.

Usage:
    from docbatch.config.defaults import (
        DEFAULT_CONCURRENCY,
        REGISTRY_FILE_PREFIX,
    )
"""

from __future__ import annotations

# =============================================================================
# Provider Defaults
# =============================================================================

OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENAI_BATCH_ENDPOINT = "/v1/chat/completions"
OPENAI_COMPLETION_WINDOW = "24h"
OPENAI_DEFAULT_MODEL = "gpt-4o-mini"

REQUEST_MAX_TOKENS = 4000
REQUEST_TEMPERATURE = 0.7

# =============================================================================
# Timeout Defaults
# =============================================================================

CONNECT_TIMEOUT_SECONDS = 10.0
READ_TIMEOUT_SECONDS = 120.0

# =============================================================================
# Queueing Defaults
# =============================================================================

# Parallel file reads while building a job
DEFAULT_CONCURRENCY = 5

# Files picked up by `docbatch submit PACKAGE` when no files are given
SOURCE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".py")
IGNORED_DIRECTORIES = ("node_modules", "dist", "build", ".git", "__pycache__", ".venv")
ENTRY_POINT_NAMES = ("index.ts", "index.tsx", "index.js", "__init__.py")

# =============================================================================
# Storage Layout
# =============================================================================

DEFAULT_DATA_DIR = "~/.docbatch/batch-data"

REGISTRY_FILE_PREFIX = "items-"
RESULTS_CACHE_PREFIX = ".batch-results-"
ARCHIVED_RESULTS_PREFIX = "results-"
DEBUG_STATUS_PREFIX = "debug-batch-status-"
INPUT_FILE_PREFIX = "batch-input-"
FAILURE_REPORT_PREFIX = "failure-"

PROCESSED_DIR_NAME = "processed"
FAILED_DIR_NAME = "failed"
SUBMITTED_DIR_NAME = "submitted"

RUN_HISTORY_FILE = ".docbatchrc.json"
RUN_HISTORY_VERSION = "1.0.0"

# =============================================================================
# Integrity Guard Defaults
# =============================================================================

# Texts at or above this length are never flagged as stray test snippets
GUARD_MAX_SUSPECT_LENGTH = 500

# =============================================================================
# Test Mode Defaults
# =============================================================================

TEST_MODE_MAX_FILES = 5
