"""Status probing for submitted jobs."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from docbatch.batch.errors import ProviderError, StatusProbeError
from docbatch.batch.models import JobStatus, StatusReport
from docbatch.batch.store import JobStore
from docbatch.llm.openai_batch import BatchClient

logger = logging.getLogger(__name__)


def _format_time(value: Any) -> Optional[str]:
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
    return None


def extract_error_detail(raw: Dict[str, Any]) -> Optional[str]:
    """Collect the provider's error information into one string."""
    parts = []
    error = raw.get("error")
    if error:
        parts.append(error if isinstance(error, str) else json.dumps(error))
    errors = raw.get("errors")
    if isinstance(errors, dict) and isinstance(errors.get("data"), list):
        for entry in errors["data"]:
            if isinstance(entry, dict):
                code = entry.get("code") or "error"
                parts.append(f"{code}: {entry.get('message', '')}".strip())
    return "; ".join(parts) or None


class StatusProber:
    """One non-blocking status query per call.

    Safe to call repeatedly; the only side effect is the debug snapshot of
    the raw provider response.
    """

    def __init__(self, client: BatchClient, store: Optional[JobStore] = None):
        self.client = client
        self.store = store

    async def probe(self, job_id: str) -> StatusReport:
        logger.info(f"Checking status of job {job_id}...")
        try:
            raw = await self.client.get_batch(job_id)
        except ProviderError as e:
            raise StatusProbeError(job_id, str(e)) from e
        if not isinstance(raw, dict):
            raise StatusProbeError(job_id, f"unexpected status payload {raw!r}")

        self._snapshot(job_id, raw)

        provider_status = str(raw.get("status") or "")
        status = JobStatus.from_provider(provider_status)
        report = StatusReport(
            job_id=job_id,
            status=status,
            provider_status=provider_status,
            error_detail=extract_error_detail(raw),
            output_file_id=raw.get("output_file_id"),
            error_file_id=raw.get("error_file_id"),
            raw=raw,
        )

        logger.info(f"Job {job_id} status: {provider_status or 'unknown'} ({status.value})")
        for label, key in (("Created", "created_at"), ("Completed", "completed_at"), ("Failed", "failed_at")):
            stamp = _format_time(raw.get(key))
            if stamp:
                logger.debug(f"{label} at: {stamp}")
        counts = raw.get("request_counts")
        if isinstance(counts, dict):
            logger.info(
                f"Requests: {counts.get('completed', 0)} completed, "
                f"{counts.get('failed', 0)} failed, {counts.get('total', 0)} total"
            )
        if report.error_detail:
            logger.error(f"Job {job_id} error: {report.error_detail}")
        return report

    def _snapshot(self, job_id: str, raw: Dict[str, Any]) -> None:
        if self.store is None:
            return
        try:
            path = self.store.save_debug_snapshot(job_id, raw)
            logger.debug(f"Wrote raw job status to {path}")
        except (OSError, TypeError, ValueError) as e:
            logger.debug(f"Failed to save debug snapshot: {e}")
