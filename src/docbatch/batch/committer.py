"""Write matched results back into the package and tally per-job counters."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import List, Sequence, Tuple

from docbatch.batch.guard import IntegrityGuard
from docbatch.batch.matcher import MatchReport
from docbatch.batch.models import JobItem, JobRegistry, JobStats
from docbatch.batch.payloads import clean_response
from docbatch.config.defaults import RUN_HISTORY_FILE, RUN_HISTORY_VERSION, TEST_MODE_MAX_FILES
from docbatch.persistence import atomic_write_json, atomic_write_with_fsync, read_json

logger = logging.getLogger(__name__)

_DOC_BLOCK = re.compile(r"/\*\*[\s\S]*?\*/")
_PY_DOCSTRING_QUOTES = re.compile(r'"""|\'\'\'')
_TEST_CASE = re.compile(
    r"^\s*(?:it|test)(?:\.\w+)?\s*\(|^\s*(?:async\s+)?def\s+test_\w*",
    re.MULTILINE,
)


def count_doc_blocks(code: str) -> int:
    """Count documentation blocks: JSDoc comments plus Python docstrings."""
    return len(_DOC_BLOCK.findall(code)) + len(_PY_DOCSTRING_QUOTES.findall(code)) // 2


def count_test_cases(code: str) -> int:
    return len(_TEST_CASE.findall(code))


def resolve_item_path(registry: JobRegistry, item: JobItem) -> Path:
    """Locate an item's source file under the registry's package path.

    The package-relative stable id is preferred so that a job resumed on
    another host (or with a repository path override) still finds its files.
    """
    if item.stable_id:
        return Path(registry.package_path).joinpath(*PurePosixPath(item.stable_id).parts)
    return Path(item.file_path)


def generated_test_path(source: Path) -> Path:
    """Path of the test file generated for ``source``.

    ``foo.py`` -> ``test_foo.py``, ``foo.ts`` -> ``foo.test.ts``.
    """
    if source.suffix == ".py":
        return source.with_name(f"test_{source.name}")
    return source.with_name(f"{source.stem}.test{source.suffix}")


def select_for_test_mode(
    pairs: Sequence[Tuple[JobItem, str]],
    max_files: int = TEST_MODE_MAX_FILES,
) -> List[Tuple[JobItem, str]]:
    """Pick at most ``max_files`` pairs, entry points first."""
    entry_points = [p for p in pairs if p[0].is_entry_point]
    others = [p for p in pairs if not p[0].is_entry_point]
    return (entry_points + others)[:max_files]


class FileCommitter:
    """Apply a job's matched results to disk.

    Never writes content the IntegrityGuard rejects. Per-item problems
    (missing file, unreadable file, failed write) are counted as skipped
    and do not stop the remaining items.
    """

    def __init__(
        self,
        guard: IntegrityGuard = None,
        test_mode: bool = False,
        test_max_files: int = TEST_MODE_MAX_FILES,
    ):
        self.guard = guard or IntegrityGuard()
        self.test_mode = test_mode
        self.test_max_files = test_max_files

    def commit(self, registry: JobRegistry, report: MatchReport) -> JobStats:
        stats = JobStats(files_skipped=report.skipped_count)

        pairs = report.matched
        if self.test_mode and len(pairs) > self.test_max_files:
            pairs = select_for_test_mode(pairs, self.test_max_files)
            logger.info(
                f"Test mode: limiting commit to {len(pairs)} of {len(report.matched)} files"
            )

        for item, content in pairs:
            self._commit_one(registry, item, content, stats)

        logger.info(
            f"Job {registry.job_id}: wrote {stats.files_written}, skipped {stats.files_skipped}, "
            f"prevented {stats.files_mismatched} content mixups, unit delta {stats.units_delta:+d}"
        )
        return stats

    def _commit_one(self, registry: JobRegistry, item: JobItem, content: str, stats: JobStats) -> None:
        source = resolve_item_path(registry, item)
        if not source.is_file():
            logger.error(f"File not found: {source}")
            stats.files_skipped += 1
            return
        try:
            original = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read {source}: {e}")
            stats.files_skipped += 1
            return

        candidate = clean_response(content)
        verdict = self.guard.check(original, candidate, str(source))
        if not verdict.accepted:
            stats.files_mismatched += 1
            return

        if registry.task == "tests":
            target = generated_test_path(source)
            try:
                previous = target.read_text(encoding="utf-8") if target.is_file() else ""
            except (OSError, UnicodeDecodeError):
                previous = ""
            delta = count_test_cases(candidate) - count_test_cases(previous)
        else:
            target = source
            delta = count_doc_blocks(candidate) - count_doc_blocks(original)

        try:
            atomic_write_with_fsync(target, candidate)
        except OSError as e:
            logger.error(f"Failed to write to file: {target} - {e}")
            stats.files_skipped += 1
            return

        stats.files_written += 1
        stats.units_delta += delta
        logger.info(f"Updated file {target} ({delta:+d} units)")

    def record_run(self, registry: JobRegistry, stats: JobStats) -> None:
        """Append this job's counters to the package's run history file."""
        path = Path(registry.package_path) / RUN_HISTORY_FILE
        history = {"version": RUN_HISTORY_VERSION, "runs": []}
        if path.exists():
            try:
                loaded = read_json(path)
                if isinstance(loaded, dict) and isinstance(loaded.get("runs"), list):
                    history = loaded
            except (OSError, ValueError) as e:
                logger.warning(f"Ignoring unreadable run history {path}: {e}")

        history["runs"].append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "job_id": registry.job_id,
            "task": registry.task,
            "test_mode": self.test_mode,
            **stats.to_dict(),
        })
        try:
            atomic_write_json(path, history)
        except OSError as e:
            logger.warning(f"Failed to update run history {path}: {e}")
