"""
JobStore - on-disk layout for job registries and their artifacts.

Layout under the data root:

    items-<job_id>.json                active job registry
    .batch-results-<job_id>.json       cached normalized results
    debug-batch-status-<job_id>.json   last raw status response
    batch-input-<stamp>.jsonl          raw submission envelope (until accepted)
    submitted/                         accepted submission envelopes
    processed/                         registries + results of committed jobs
    failed/                            registries + results of failed jobs
    failed/failure-<job_id>.json       diagnostic written when a job fails

A directory scan of the root always reflects the true set of pending jobs:
registries leave the root only through ``archive``, which copies every
artifact before it deletes any.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from docbatch.batch.errors import RegistryError
from docbatch.batch.models import JobOutcome, JobRegistry, ResultRecord
from docbatch.config.defaults import (
    ARCHIVED_RESULTS_PREFIX,
    DEBUG_STATUS_PREFIX,
    FAILED_DIR_NAME,
    FAILURE_REPORT_PREFIX,
    INPUT_FILE_PREFIX,
    PROCESSED_DIR_NAME,
    REGISTRY_FILE_PREFIX,
    RESULTS_CACHE_PREFIX,
    SUBMITTED_DIR_NAME,
)
from docbatch.persistence import atomic_write_json, atomic_write_with_fsync, copy_file, move_file, read_json

logger = logging.getLogger(__name__)


class JobStore:
    """File-based storage for job registries.

    Execution Traces:
    - Happy: registry saved at submission, archived to processed/ after commit
    - Failure: remote failure or empty results, archived to failed/
    - Edge: unreadable registry in the active area is reported and left in place
    """

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()

    # ------------------------------------------------------------------ paths

    @property
    def processed_dir(self) -> Path:
        return self.root / PROCESSED_DIR_NAME

    @property
    def failed_dir(self) -> Path:
        return self.root / FAILED_DIR_NAME

    @property
    def submitted_dir(self) -> Path:
        return self.root / SUBMITTED_DIR_NAME

    def area_dir(self, outcome: JobOutcome) -> Path:
        if outcome is JobOutcome.PROCESSED:
            return self.processed_dir
        if outcome is JobOutcome.FAILED:
            return self.failed_dir
        return self.root

    def registry_path(self, job_id: str) -> Path:
        return self.root / f"{REGISTRY_FILE_PREFIX}{job_id}.json"

    def results_cache_path(self, job_id: str) -> Path:
        return self.root / f"{RESULTS_CACHE_PREFIX}{job_id}.json"

    def debug_snapshot_path(self, job_id: str) -> Path:
        return self.root / f"{DEBUG_STATUS_PREFIX}{job_id}.json"

    @staticmethod
    def job_id_from_registry_name(name: str) -> Optional[str]:
        if name.startswith(REGISTRY_FILE_PREFIX) and name.endswith(".json"):
            return name[len(REGISTRY_FILE_PREFIX):-len(".json")] or None
        return None

    @staticmethod
    def job_id_from_results_name(name: str) -> Optional[str]:
        for prefix in (RESULTS_CACHE_PREFIX, ARCHIVED_RESULTS_PREFIX):
            if name.startswith(prefix) and name.endswith(".json"):
                return name[len(prefix):-len(".json")] or None
        return None

    # -------------------------------------------------------------- registries

    def save_registry(self, registry: JobRegistry) -> Path:
        path = self.registry_path(registry.job_id)
        atomic_write_json(path, registry.to_dict())
        logger.info(f"Job registry for {registry.job_id} saved to {path}")
        return path

    def load_registry_file(self, path: Path) -> JobRegistry:
        try:
            data = read_json(path)
        except (OSError, json.JSONDecodeError) as e:
            raise RegistryError(f"Cannot read job registry {path}: {e}") from e
        try:
            return JobRegistry.from_dict(data)
        except (TypeError, ValueError) as e:
            raise RegistryError(f"Malformed job registry {path}: {e}") from e

    def load_registry(self, job_id: str) -> JobRegistry:
        path = self.registry_path(job_id)
        if not path.exists():
            raise RegistryError(f"No active job registry for {job_id} in {self.root}")
        return self.load_registry_file(path)

    def has_active(self, job_id: str) -> bool:
        return self.registry_path(job_id).exists()

    def list_active(self) -> List[Tuple[Path, JobRegistry]]:
        """Return active registries, oldest first.

        Files that cannot be parsed are logged and skipped; they stay in the
        active area for the operator to inspect.
        """
        return self._list_area(self.root)

    def list_archived(self, outcome: JobOutcome) -> List[Tuple[Path, JobRegistry]]:
        return self._list_area(self.area_dir(outcome))

    def _list_area(self, directory: Path) -> List[Tuple[Path, JobRegistry]]:
        if not directory.is_dir():
            return []
        entries = []
        for path in sorted(directory.glob(f"{REGISTRY_FILE_PREFIX}*.json")):
            try:
                registry = self.load_registry_file(path)
            except RegistryError as e:
                logger.warning(f"Skipping unreadable job registry {path.name}: {e}")
                continue
            entries.append((path, registry))
        entries.sort(key=lambda entry: entry[1].created_at)
        return entries

    # ----------------------------------------------------------------- results

    def save_results(self, job_id: str, records: List[ResultRecord]) -> Path:
        path = self.results_cache_path(job_id)
        atomic_write_json(path, [record.to_dict() for record in records])
        logger.info(f"Cached {len(records)} results for job {job_id} at {path}")
        return path

    def read_results_file(self, path: Path) -> List[ResultRecord]:
        """Parse a results artifact.

        Raises:
            ValueError: If the file is empty, not a JSON array, or holds no
                valid records
            OSError: If the file cannot be read
        """
        text = Path(path).read_text(encoding="utf-8")
        if not text.strip():
            raise ValueError(f"Results file {path} is empty")
        data = json.loads(text)
        if not isinstance(data, list) or not data:
            raise ValueError(f"Results file {path} does not contain a non-empty list")
        records = []
        for entry in data:
            try:
                records.append(ResultRecord.from_dict(entry))
            except (KeyError, TypeError):
                logger.warning(f"Ignoring malformed entry in {Path(path).name}: {str(entry)[:100]}")
        if not records:
            raise ValueError(f"Results file {path} holds no valid records")
        return records

    def discard_results_cache(self, job_id: str) -> None:
        path = self.results_cache_path(job_id)
        if path.exists():
            path.unlink()
            logger.info(f"Discarded results cache {path.name}")

    # ------------------------------------------------------------- diagnostics

    def save_debug_snapshot(self, job_id: str, raw: Dict[str, Any]) -> Path:
        path = self.debug_snapshot_path(job_id)
        atomic_write_json(path, raw)
        return path

    # ------------------------------------------------------- submission inputs

    def write_input_artifact(self, stamp: str, content: str) -> Path:
        path = self.root / f"{INPUT_FILE_PREFIX}{stamp}.jsonl"
        atomic_write_with_fsync(path, content)
        return path

    def mark_submitted(self, input_path: Path) -> Optional[Path]:
        """Relocate an accepted submission envelope into submitted/."""
        try:
            return move_file(input_path, self.submitted_dir)
        except OSError as e:
            logger.warning(f"Failed to move {input_path.name} to {self.submitted_dir}: {e}")
            return None

    # ---------------------------------------------------------------- archival

    def save_failure_report(self, job_id: str, report: Dict[str, Any]) -> Path:
        """Write the diagnostic for a failed job next to its archived registry."""
        path = self.failed_dir / f"{FAILURE_REPORT_PREFIX}{job_id}.json"
        atomic_write_json(path, report)
        logger.info(f"Failure diagnostic for job {job_id} written to {path}")
        return path

    def archive(
        self,
        job_id: str,
        outcome: JobOutcome,
        results_path: Optional[Path] = None,
    ) -> Path:
        """Relocate a job's registry and artifacts into processed/ or failed/.

        Every artifact is copied into the archive area before any original
        is removed. Removing the active registry is the commit point: if a
        copy fails, the job and its results cache stay in the active area
        untouched and the next scan retries it.

        Args:
            job_id: Job to archive
            outcome: JobOutcome.PROCESSED or JobOutcome.FAILED
            results_path: Results artifact to archive instead of the cache
                (used when processing a results file directly; the cache,
                if any, is discarded)

        Returns:
            Path of the archived registry

        Raises:
            ValueError: If outcome is PENDING
            RegistryError: If the job has no active registry
            OSError: If the registry or results could not be copied
        """
        if outcome is JobOutcome.PENDING:
            raise ValueError("Pending jobs stay in the active area")
        registry_path = self.registry_path(job_id)
        if not registry_path.exists():
            raise RegistryError(f"No active job registry for {job_id} to archive")

        target_dir = self.area_dir(outcome)
        cache_path = self.results_cache_path(job_id)
        results_source = Path(results_path) if results_path else cache_path
        results_target = target_dir / f"{ARCHIVED_RESULTS_PREFIX}{job_id}.json"
        debug_path = self.debug_snapshot_path(job_id)

        # Already in place when re-processing an archived results file
        if results_source.exists() and results_source.resolve() == results_target.resolve():
            results_source = None

        copies = []
        try:
            if results_source is not None and results_source.exists():
                copies.append(copy_file(results_source, target_dir, results_target.name))
            archived = copy_file(registry_path, target_dir)
        except OSError:
            for copy in copies:
                copy.unlink()
            raise

        if debug_path.exists():
            try:
                copy_file(debug_path, target_dir)
            except OSError as e:
                logger.warning(f"Failed to archive debug snapshot for {job_id}: {e}")
                debug_path = None

        registry_path.unlink()
        logger.info(f"Archived job {job_id} to {target_dir}")

        leftovers = [debug_path, cache_path]
        if results_source is not None:
            leftovers.append(results_source)
        for path in leftovers:
            if path is None or not path.exists():
                continue
            try:
                path.unlink()
            except OSError as e:
                logger.warning(f"Failed to remove {path} after archiving job {job_id}: {e}")
        return archived
