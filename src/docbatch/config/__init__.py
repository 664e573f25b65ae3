"""Runtime configuration for docbatch.

BatchConfig collects every environment-driven setting in one place. The CLI
loads a .env file (python-dotenv) before the first call to get_config().
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from docbatch.config import defaults
from docbatch.config.paths import get_data_dir

_TRUTHY = ("1", "true", "yes", "on")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


@dataclass
class BatchConfig:
    """Configuration for batch submission and processing."""

    api_key: Optional[str] = None
    base_url: str = defaults.OPENAI_BASE_URL
    model: str = defaults.OPENAI_DEFAULT_MODEL
    max_tokens: int = defaults.REQUEST_MAX_TOKENS
    temperature: float = defaults.REQUEST_TEMPERATURE

    data_dir: Path = field(default_factory=get_data_dir)
    concurrency: int = defaults.DEFAULT_CONCURRENCY

    # Commit consistency: False warns on drift, True checks out the recorded revision
    force_commit_match: bool = False

    test_mode: bool = False
    test_max_files: int = defaults.TEST_MODE_MAX_FILES

    guard_max_length: int = defaults.GUARD_MAX_SUSPECT_LENGTH

    connect_timeout: float = defaults.CONNECT_TIMEOUT_SECONDS
    read_timeout: float = defaults.READ_TIMEOUT_SECONDS

    def __post_init__(self):
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.test_max_files < 1:
            raise ValueError("test_max_files must be at least 1")
        self.data_dir = Path(self.data_dir).expanduser()

    @classmethod
    def from_env(cls) -> "BatchConfig":
        """Create config from environment variables."""
        return cls(
            api_key=os.environ.get("OPENAI_API_KEY") or None,
            base_url=os.environ.get("OPENAI_BASE_URL", defaults.OPENAI_BASE_URL).rstrip("/"),
            model=os.environ.get("DOCBATCH_MODEL", defaults.OPENAI_DEFAULT_MODEL),
            max_tokens=_env_int("DOCBATCH_MAX_TOKENS", defaults.REQUEST_MAX_TOKENS),
            temperature=_env_float("DOCBATCH_TEMPERATURE", defaults.REQUEST_TEMPERATURE),
            data_dir=get_data_dir(),
            concurrency=_env_int("DOCBATCH_CONCURRENCY", defaults.DEFAULT_CONCURRENCY),
            force_commit_match=_env_bool("DOCBATCH_FORCE_COMMIT_MATCH"),
            test_mode=_env_bool("DOCBATCH_TEST_MODE"),
            test_max_files=_env_int("DOCBATCH_TEST_FILES", defaults.TEST_MODE_MAX_FILES),
            guard_max_length=_env_int(
                "DOCBATCH_GUARD_MAX_LENGTH", defaults.GUARD_MAX_SUSPECT_LENGTH
            ),
            connect_timeout=_env_float(
                "DOCBATCH_CONNECT_TIMEOUT", defaults.CONNECT_TIMEOUT_SECONDS
            ),
            read_timeout=_env_float("DOCBATCH_READ_TIMEOUT", defaults.READ_TIMEOUT_SECONDS),
        )


# Global config instance
_config: Optional[BatchConfig] = None


def get_config() -> BatchConfig:
    """Get global batch config."""
    global _config
    if _config is None:
        _config = BatchConfig.from_env()
    return _config


def set_config(config: Optional[BatchConfig]) -> None:
    """Set (or reset with None) the global batch config."""
    global _config
    _config = config


__all__ = ["BatchConfig", "get_config", "set_config"]
