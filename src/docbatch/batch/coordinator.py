"""
BatchCoordinator - drives every active job one step through its lifecycle.

Flow per job (scan_all):
1. probe()      - one status query, never blocks waiting for completion
2. retrieve()   - cached or downloaded results (completed jobs only)
3. verify()     - source revision vs. working tree
4. match/commit - index-based matching, guarded writes
5. archive()    - registry and artifacts to processed/ or failed/
6. cancel_job() - release the provider-side job (best effort)

Jobs are handled one at a time. Transient problems leave the job pending in
the active area so the next scan picks it up again.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from docbatch.batch.committer import FileCommitter
from docbatch.batch.consistency import CommitConsistencyCheck
from docbatch.batch.errors import (
    CommitMismatchError,
    EmptyResultsError,
    ProviderError,
    RegistryError,
    StatusProbeError,
)
from docbatch.batch.guard import IntegrityGuard
from docbatch.batch.matcher import match_results
from docbatch.batch.models import (
    JobOutcome,
    JobRegistry,
    JobResult,
    ResultRecord,
    ScanSummary,
    StatusReport,
)
from docbatch.batch.prober import StatusProber
from docbatch.batch.retriever import ResultRetriever
from docbatch.batch.store import JobStore
from docbatch.config import BatchConfig, get_config
from docbatch.llm.openai_batch import BatchClient

logger = logging.getLogger(__name__)

DRY_RUN_PREFIX = "batch_dryrun_"


def apply_repo_override(registry: JobRegistry, repo_path: Optional[Union[str, Path]]) -> JobRegistry:
    """Point a registry at a different checkout of its package.

    An absolute ``repo_path`` replaces the recorded package path. A relative
    one is joined with the basename of the recorded path, so
    ``--repo-path ../other`` finds ``../other/<package>``.
    """
    if not repo_path:
        return registry
    override = Path(repo_path).expanduser()
    if override.is_absolute():
        new_path = override
    else:
        new_path = (override / Path(registry.package_path).name).resolve()
    logger.info(f"Using repository path override for job {registry.job_id}: {new_path}")
    return dataclasses.replace(registry, package_path=str(new_path))


class BatchCoordinator:
    """Scan the active area and process every job that is ready.

    Args:
        client: Batch provider client
        store: JobStore holding the registries
        config: BatchConfig (defaults to the global config)
        committer: FileCommitter (built from config when omitted)
        consistency: CommitConsistencyCheck (built from config when omitted)
        cancel_after_commit: Release the provider job once its results are committed
    """

    def __init__(
        self,
        client: BatchClient,
        store: JobStore,
        config: Optional[BatchConfig] = None,
        committer: Optional[FileCommitter] = None,
        consistency: Optional[CommitConsistencyCheck] = None,
        cancel_after_commit: bool = True,
    ):
        self.config = config or get_config()
        self.client = client
        self.store = store
        self.prober = StatusProber(client, store)
        self.retriever = ResultRetriever(client, store)
        self.committer = committer or FileCommitter(
            guard=IntegrityGuard(max_length=self.config.guard_max_length),
            test_mode=self.config.test_mode,
            test_max_files=self.config.test_max_files,
        )
        self.consistency = consistency or CommitConsistencyCheck(
            strict=self.config.force_commit_match
        )
        self.cancel_after_commit = cancel_after_commit

    async def status(self, job_id: str) -> StatusReport:
        """Probe one job without touching its registry."""
        return await self.prober.probe(job_id)

    async def scan_all(self, repo_path: Optional[Union[str, Path]] = None) -> ScanSummary:
        """Process every active job once and return the per-job outcomes."""
        summary = ScanSummary()
        entries = self.store.list_active()
        if not entries:
            logger.info(f"No pending jobs found in {self.store.root}")
            return summary

        logger.info(f"Found {len(entries)} pending jobs")
        for path, registry in entries:
            logger.info(f"Processing job {registry.job_id} from {path.name}")
            summary.add(await self.process_job(registry, repo_path))

        totals = summary.totals
        logger.info(
            f"Scan complete: {summary.processed} processed, {summary.pending} pending, "
            f"{summary.failed} failed; {totals.files_written} files written, "
            f"{totals.files_skipped} skipped, {totals.files_mismatched} mismatched"
        )
        return summary

    async def process_job(
        self,
        registry: JobRegistry,
        repo_path: Optional[Union[str, Path]] = None,
    ) -> JobResult:
        """Move one job a single step forward.

        Execution Traces:
        - Happy: completed, results committed, archived to processed/
        - Failure: remote failure or empty results, archived to failed/
        - Edge: probe or download error, job left pending
        """
        job_id = registry.job_id
        try:
            report = await self.prober.probe(job_id)
        except StatusProbeError as e:
            logger.error(f"{e}. Will retry next run.")
            return self._result(registry, JobOutcome.PENDING, str(e))

        if not report.terminal:
            logger.info(f"Job {job_id} is still {report.provider_status or 'pending'}. Will check again later.")
            return self._result(registry, JobOutcome.PENDING, report.provider_status)

        if not report.succeeded:
            detail = report.error_detail or f"job ended as {report.provider_status}"
            logger.error(f"Job {job_id} {report.status.value}: {detail}")
            return await self._fail(registry, detail, report)

        try:
            records = await self.retriever.retrieve(report)
        except EmptyResultsError as e:
            logger.error(str(e))
            return await self._fail(registry, str(e), report)
        except ProviderError as e:
            logger.error(f"Failed to download results of job {job_id}: {e}. Will retry next run.")
            return self._result(registry, JobOutcome.PENDING, str(e))

        return await self.commit_job(registry, records, repo_path)

    async def process_results_file(
        self,
        results_path: Union[str, Path],
        repo_path: Optional[Union[str, Path]] = None,
    ) -> JobResult:
        """Commit a results artifact directly, without contacting the provider.

        The job id is taken from the file name (``.batch-results-<id>.json``
        or ``results-<id>.json``); its registry must still be active.

        Raises:
            RegistryError: If the file name carries no job id or the job has
                no active registry
            EmptyResultsError: If the file holds no usable results
        """
        results_path = Path(results_path)
        job_id = JobStore.job_id_from_results_name(results_path.name)
        if not job_id:
            raise RegistryError(f"Could not extract a job id from results file name: {results_path.name}")
        registry = self.store.load_registry(job_id)
        try:
            records = self.store.read_results_file(results_path)
        except (OSError, ValueError) as e:
            raise EmptyResultsError(job_id, str(e)) from e
        logger.info(f"Processing {len(records)} results for job {job_id} from {results_path}")
        return await self.commit_job(registry, records, repo_path, results_path=results_path)

    async def commit_job(
        self,
        registry: JobRegistry,
        records: List[ResultRecord],
        repo_path: Optional[Union[str, Path]] = None,
        results_path: Optional[Path] = None,
    ) -> JobResult:
        """Verify, match, commit and archive one job's results."""
        job_id = registry.job_id
        target = apply_repo_override(registry, repo_path)

        try:
            self.consistency.verify(target)
        except CommitMismatchError as e:
            logger.error(f"Not committing job {job_id}: {e}")
            return self._result(registry, JobOutcome.PENDING, str(e))

        try:
            report = match_results(target.items, records)
            stats = self.committer.commit(target, report)
            self.committer.record_run(target, stats)
        finally:
            self.consistency.restore()

        try:
            self.store.archive(job_id, JobOutcome.PROCESSED, results_path)
        except (OSError, RegistryError) as e:
            logger.error(f"Committed job {job_id} but failed to archive it: {e}")
            return JobResult(job_id, registry.package_path, JobOutcome.PENDING, stats, str(e))

        if self.cancel_after_commit:
            await self.cancel_job(job_id)
        return JobResult(job_id, registry.package_path, JobOutcome.PROCESSED, stats)

    async def cancel_job(self, job_id: str) -> bool:
        """Ask the provider to release a job. Failure is only a warning."""
        if job_id.startswith(DRY_RUN_PREFIX):
            return False
        try:
            cancelled = await self.client.cancel_batch(job_id)
        except ProviderError as e:
            logger.warning(f"Failed to cancel job {job_id}: {e}")
            return False
        if cancelled:
            logger.info(f"Cancelled job {job_id}")
        else:
            logger.warning(f"Failed to cancel job {job_id}")
        return cancelled

    async def _fail(self, registry: JobRegistry, detail: str, report: StatusReport) -> JobResult:
        try:
            self.store.save_failure_report(registry.job_id, await self._failure_report(detail, report))
        except OSError as e:
            logger.error(f"Failed to write failure diagnostic for job {registry.job_id}: {e}")
        try:
            self.store.archive(registry.job_id, JobOutcome.FAILED)
        except (OSError, RegistryError) as e:
            logger.error(f"Failed to archive job {registry.job_id} to {self.store.failed_dir}: {e}")
        return self._result(registry, JobOutcome.FAILED, detail)

    async def _failure_report(self, detail: str, report: StatusReport) -> dict:
        diagnostic = {
            "job_id": report.job_id,
            "status": report.status.value,
            "provider_status": report.provider_status,
            "detail": detail,
            "failed_at": datetime.now(timezone.utc).isoformat(),
            "output_file_id": report.output_file_id,
            "error_file_id": report.error_file_id,
        }
        if report.error_file_id:
            # Per-request errors when every request in the job failed
            try:
                diagnostic["error_file"] = await self.client.download_file(report.error_file_id)
            except ProviderError as e:
                logger.warning(f"Failed to download error file {report.error_file_id}: {e}")
                diagnostic["error_file_download_error"] = str(e)
        return diagnostic

    @staticmethod
    def _result(registry: JobRegistry, outcome: JobOutcome, detail: Optional[str] = None) -> JobResult:
        return JobResult(registry.job_id, registry.package_path, outcome, detail=detail)
