"""
Atomic-write persistence layer for docbatch.

Job registries, cached results and committed source files all go through
these helpers so that a crash mid-write never leaves a truncated file
behind, and a crash mid-move never loses the only copy of a record.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _fsync_directory(directory: Path) -> None:
    dir_fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


def atomic_write_with_fsync(path: Path, content: str) -> None:
    """
    Write content to a file atomically with fsync for durability.

    This function:
    1. Writes content to a temporary file in the same directory
    2. Flushes the file buffers and calls fsync
    3. Atomically renames the temp file to the target path
    4. Syncs the parent directory so the rename persists

    Args:
        path: Target file path
        content: Content to write to the file

    Raises:
        OSError: If the write operation fails
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    # Temp file in same directory (for atomic rename)
    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp"
    )

    try:
        with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        if path.exists():
            shutil.copymode(path, temp_path)

        os.replace(temp_path, path)
        _fsync_directory(path.parent)

    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


def atomic_write_json(path: Path, data: Any) -> None:
    """Serialize ``data`` as indented JSON and write it atomically."""
    atomic_write_with_fsync(Path(path), json.dumps(data, indent=2, ensure_ascii=False) + "\n")


def read_json(path: Path) -> Any:
    """Read and parse a JSON document.

    Raises:
        OSError: If the file cannot be read
        json.JSONDecodeError: If the content is not valid JSON
    """
    return json.loads(Path(path).read_text(encoding="utf-8"))


def copy_file(source: Path, destination_dir: Path, new_name: str = None) -> Path:
    """Copy a file into ``destination_dir`` and fsync the copy.

    Raises:
        OSError: If the copy fails
    """
    source = Path(source)
    destination_dir = Path(destination_dir)
    destination_dir.mkdir(parents=True, exist_ok=True)
    destination = destination_dir / (new_name or source.name)

    shutil.copy2(source, destination)
    with open(destination, "rb") as f:
        os.fsync(f.fileno())
    _fsync_directory(destination_dir)
    return destination


def move_file(source: Path, destination_dir: Path, new_name: str = None) -> Path:
    """
    Move a file into ``destination_dir`` by copying first and deleting second.

    The copy is fsynced before the source is removed, so a crash at any
    point leaves at least one complete copy on disk. An existing file of
    the same name in the destination is overwritten.

    Args:
        source: File to move
        destination_dir: Directory to move it into (created if missing)
        new_name: Optional new file name inside the destination

    Returns:
        Path of the file in its new location

    Raises:
        OSError: If copying fails (the source is left untouched)
    """
    source = Path(source)
    destination = copy_file(source, destination_dir, new_name)
    source.unlink()
    logger.debug(f"Moved {source} -> {destination}")
    return destination
