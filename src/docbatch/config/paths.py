"""Path resolution for docbatch – single source of truth for the batch data root."""

from pathlib import Path
import os

from docbatch.config.defaults import DEFAULT_DATA_DIR


def get_data_dir() -> Path:
    """Return the absolute path to the batch data root.

    Checks environment variable DOCBATCH_DATA_DIR first; otherwise uses
    ~/.docbatch/batch-data.
    """
    env_path = os.environ.get("DOCBATCH_DATA_DIR")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path(DEFAULT_DATA_DIR).expanduser()
