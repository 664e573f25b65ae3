"""Retrieval and caching of completed job results.

Execution Traces:
- Happy: cache hit, provider not contacted
- Happy: cache miss, output downloaded, parsed, cached
- Failure: output empty twice in a row, EmptyResultsError
- Edge: cache present but empty/corrupt, discarded and fetched once
"""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from docbatch.batch.errors import EmptyResultsError
from docbatch.batch.models import ResultRecord, StatusReport
from docbatch.batch.payloads import normalize
from docbatch.batch.store import JobStore
from docbatch.llm.openai_batch import BatchClient

logger = logging.getLogger(__name__)


def parse_output(text: str, job_id: str = "") -> List[ResultRecord]:
    """Parse line-delimited JSON output into ResultRecords.

    Lines that are not valid JSON, or whose shape carries no content, are
    skipped with a log entry; they never abort the whole parse.
    """
    records = []
    lines = [line for line in (text or "").splitlines() if line.strip()]
    for number, line in enumerate(lines):
        try:
            raw = json.loads(line)
        except json.JSONDecodeError:
            logger.error(f"Failed to parse output line {number} of job {job_id}: {line[:200]}")
            continue
        record = normalize(raw)
        if record is not None:
            records.append(record)
    logger.info(f"Parsed {len(records)} results from {len(lines)} output lines of job {job_id}")
    return records


class ResultRetriever:
    """Fetch, normalize and cache the results of a completed job."""

    def __init__(self, client: BatchClient, store: JobStore):
        self.client = client
        self.store = store

    async def fetch(self, job_id: str, output_file_id: Optional[str]) -> List[ResultRecord]:
        """Download and parse a job's output file.

        Raises:
            ProviderError: If the download itself fails
        """
        if not output_file_id:
            logger.error(f"No output file ID found for job {job_id}")
            return []
        text = await self.client.download_file(output_file_id)
        if not text or not text.strip():
            logger.error(f"Output file {output_file_id} of job {job_id} is empty")
            return []
        return parse_output(text, job_id)

    def load_cached(self, job_id: str) -> Optional[List[ResultRecord]]:
        """Return cached results, or None when there is no usable cache.

        An empty or corrupt cache file is deleted.
        """
        path = self.store.results_cache_path(job_id)
        if not path.exists():
            return None
        try:
            records = self.store.read_results_file(path)
        except (OSError, ValueError) as e:
            logger.error(f"Results cache for job {job_id} is unusable ({e}). Deleting it.")
            self.store.discard_results_cache(job_id)
            return None
        logger.info(f"Using existing results file for job {job_id} ({len(records)} results)")
        return records

    async def retrieve(self, report: StatusReport) -> List[ResultRecord]:
        """Return the normalized results of a completed job.

        Raises:
            EmptyResultsError: If no usable results could be retrieved
            ProviderError: If the provider cannot be reached (job stays pending)
        """
        job_id = report.job_id
        had_cache = self.store.results_cache_path(job_id).exists()
        cached = self.load_cached(job_id)
        if cached is not None:
            return cached

        # A corrupt cache already cost the first attempt
        attempts = 1 if had_cache else 2
        for attempt in range(1, attempts + 1):
            logger.info(f"Retrieving results for job {job_id} (attempt {attempt}/{attempts})...")
            records = await self.fetch(job_id, report.output_file_id)
            if records:
                self.store.save_results(job_id, records)
                return records
            logger.error(f"Retrieved empty or invalid results for job {job_id} from the provider")

        raise EmptyResultsError(
            job_id,
            f"no usable results after {attempts} attempt(s)"
            + (f"; provider error: {report.error_detail}" if report.error_detail else ""),
        )
