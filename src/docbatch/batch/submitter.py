"""
Batch submission: turn queued files into one provider job plus its registry.

Flow:
1. queue_files() - read file contents with bounded concurrency
2. submit() - build the JSONL envelope, upload it, create the job,
   then (and only then) write the job registry
"""

from __future__ import annotations

import json
import logging
import os
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Sequence

import aiofiles

from docbatch.batch.errors import EmptySubmissionError, ProviderError, SubmissionError
from docbatch.batch.matcher import encode_token
from docbatch.batch.models import JobItem, JobRegistry
from docbatch.batch.store import JobStore
from docbatch.config import BatchConfig, get_config
from docbatch.config.defaults import (
    ENTRY_POINT_NAMES,
    IGNORED_DIRECTORIES,
    OPENAI_BATCH_ENDPOINT,
    SOURCE_EXTENSIONS,
)
from docbatch.llm.batch import batch_process
from docbatch.llm.openai_batch import BatchClient
from docbatch.llm.prompts import PromptBuilder, get_prompt_builder
from docbatch.tools.git import GitError, git_current_revision

logger = logging.getLogger(__name__)

TASKS = ("docs", "tests")


@dataclass(frozen=True)
class PendingItem:
    """A queued request: the registry item plus the source it was built from."""

    item: JobItem
    content: str


def _is_test_file(path: Path) -> bool:
    name = path.name
    return (
        ".test." in name
        or ".spec." in name
        or name.startswith("test_")
        or name.endswith("_test.py")
        or "__tests__" in path.parts
    )


def discover_source_files(package_path: Path) -> List[Path]:
    """List documentable source files under a package, sorted by path.

    Skips build/vendor directories and existing test files.
    """
    package_path = Path(package_path)
    found = []
    for root, dirs, files in os.walk(package_path):
        dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIRECTORIES and not d.startswith("."))
        for name in files:
            path = Path(root) / name
            if path.suffix in SOURCE_EXTENSIONS and not name.endswith(".d.ts") and not _is_test_file(path):
                found.append(path)
    return sorted(found)


def is_package_entry_point(package_path: Path, file_path: Path) -> bool:
    """True for index/__init__ files at the package root or directly under src/."""
    if file_path.name not in ENTRY_POINT_NAMES:
        return False
    parent = file_path.parent.resolve()
    root = Path(package_path).resolve()
    return parent == root or parent == root / "src"


def stable_id_for(package_path: Path, file_path: Path) -> Optional[str]:
    """Package-relative, '/'-separated path of a file (None if outside the package)."""
    try:
        relative = Path(file_path).resolve().relative_to(Path(package_path).resolve())
    except ValueError:
        return None
    return PurePosixPath(*relative.parts).as_posix()


async def _read_text(path: Path) -> str:
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        return await f.read()


class BatchSubmitter:
    """Build and submit one job per package.

    Args:
        client: Batch provider client
        store: JobStore the registry is written to
        config: BatchConfig (defaults to the global config)
        prompt_builder: Overrides the task's default prompt builder
        dry_run: Skip the provider, generate a local job id
    """

    def __init__(
        self,
        client: Optional[BatchClient],
        store: JobStore,
        config: Optional[BatchConfig] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        dry_run: bool = False,
    ):
        if client is None and not dry_run:
            raise ValueError("A batch client is required unless dry_run is set")
        self.client = client
        self.store = store
        self.config = config or get_config()
        self.prompt_builder = prompt_builder
        self.dry_run = dry_run

    async def queue_files(
        self,
        package_path: Path,
        files: Sequence[Path],
        entry_points: Optional[Iterable[Path]] = None,
    ) -> List[PendingItem]:
        """Read every file and assign stable indices in input order.

        Files that cannot be read are logged and left out before indices are
        assigned, so indices are always 0..n-1.
        """
        package_path = Path(package_path)
        explicit_entry_points = {Path(p).resolve() for p in (entry_points or ())}
        files = [Path(f) for f in files]
        logger.info(f"Reading {len(files)} files with concurrency level: {self.config.concurrency}")

        contents = await batch_process(
            files,
            _read_text,
            max_concurrent=self.config.concurrency,
            return_exceptions=True,
        )

        pending: List[PendingItem] = []
        base_request_id = int(time.time() * 1000)
        for path, content in zip(files, contents):
            if isinstance(content, BaseException):
                logger.warning(f"Failed to read {path}: {content}")
                continue
            resolved = path.resolve()
            index = len(pending)
            item = JobItem(
                stable_index=index,
                file_path=str(resolved),
                is_entry_point=(
                    resolved in explicit_entry_points or is_package_entry_point(package_path, resolved)
                ),
                stable_id=stable_id_for(package_path, resolved),
                request_id=base_request_id + index,
            )
            pending.append(PendingItem(item=item, content=content))
        logger.info(f"Queued {len(pending)} files for {package_path}")
        return pending

    def build_envelope(self, pending: Sequence[PendingItem], token_prefix: str, task: str) -> str:
        """Serialize requests as JSONL in the provider's batch input format."""
        builder = self.prompt_builder or get_prompt_builder(task)
        lines = []
        for entry in pending:
            prompt = builder(entry.content, entry.item.stable_id or entry.item.file_path, entry.item.is_entry_point)
            lines.append(json.dumps({
                "custom_id": encode_token(token_prefix, entry.item.stable_index),
                "method": "POST",
                "url": OPENAI_BATCH_ENDPOINT,
                "body": {
                    "model": self.config.model,
                    "messages": [{"role": "user", "content": prompt}],
                    "temperature": self.config.temperature,
                    "max_tokens": self.config.max_tokens,
                },
            }))
        return "\n".join(lines) + "\n"

    async def submit(
        self,
        package_path: Path,
        pending: Sequence[PendingItem],
        task: str = "docs",
    ) -> JobRegistry:
        """Submit queued items as one job and persist its registry.

        Raises:
            EmptySubmissionError: If ``pending`` is empty (before any I/O)
            SubmissionError: If the provider rejects the upload or job
                creation; no registry is written
        """
        if not pending:
            raise EmptySubmissionError()
        if task not in TASKS:
            raise ValueError(f"Unknown task: {task}. Supported tasks: {list(TASKS)}")

        package_path = Path(package_path).resolve()
        now = datetime.now(timezone.utc)
        stamp = now.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        envelope = self.build_envelope(pending, f"request-{stamp}", task)
        source_revision = self._capture_revision(package_path)

        input_path = None
        input_file_id = None
        if self.dry_run:
            job_id = f"batch_dryrun_{secrets.token_hex(6)}"
            logger.info(f"DRY RUN: skipping provider submission, using generated job ID: {job_id}")
        else:
            logger.info(f"Submitting {len(pending)} requests to the batch API...")
            try:
                input_path = self.store.write_input_artifact(stamp, envelope)
            except OSError as e:
                logger.error(f"Failed to write batch input file: {e}")
                raise SubmissionError(f"Failed to write batch input file: {e}") from e
            try:
                input_file_id = await self.client.upload_file(input_path.name, envelope)
                batch = await self.client.create_batch(input_file_id)
            except ProviderError as e:
                self._drop_input(input_path)
                logger.error(f"Batch submission failed: {e}")
                raise SubmissionError(f"Failed to submit batch: {e}") from e
            job_id = batch["id"]

        registry = JobRegistry(
            job_id=job_id,
            package_path=str(package_path),
            items=[entry.item for entry in pending],
            created_at=now,
            source_revision=source_revision,
            task=task,
            model=self.config.model,
            input_file_id=input_file_id,
        )
        try:
            self.store.save_registry(registry)
        except OSError as e:
            logger.error(f"Job {job_id} was created but its registry could not be written: {e}")
            raise SubmissionError(f"Failed to write registry for job {job_id}: {e}") from e

        if input_path is not None:
            self.store.mark_submitted(input_path)

        logger.info(f"Job {job_id} submitted with {len(registry.items)} items")
        return registry

    async def submit_package(
        self,
        package_path: Path,
        files: Optional[Sequence[Path]] = None,
        task: str = "docs",
        entry_points: Optional[Iterable[Path]] = None,
    ) -> JobRegistry:
        """Queue ``files`` (default: every source file in the package) and submit them."""
        package_path = Path(package_path)
        if not package_path.is_dir():
            raise SubmissionError(f"Package path does not exist: {package_path}")
        if files is None:
            files = discover_source_files(package_path)
        pending = await self.queue_files(package_path, files, entry_points)
        return await self.submit(package_path, pending, task)

    @staticmethod
    def _capture_revision(package_path: Path) -> Optional[str]:
        try:
            revision = git_current_revision(package_path)
        except GitError as e:
            logger.warning(f"Failed to get current commit hash: {e}")
            logger.warning("Code version consistency cannot be guaranteed when processing this job")
            return None
        logger.info(f"Captured source revision for job: {revision}")
        return revision

    @staticmethod
    def _drop_input(input_path: Path) -> None:
        try:
            input_path.unlink()
        except OSError as e:
            logger.warning(f"Failed to remove unsubmitted input {input_path}: {e}")
