"""Exceptions raised by the batch job lifecycle."""

from __future__ import annotations

from typing import Optional


class DocBatchError(Exception):
    """Base class for all docbatch errors."""


class ProviderError(DocBatchError):
    """The batch provider answered with an error status or an unusable body."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderAuthError(ProviderError):
    """The provider rejected the API key (or none was configured)."""


class SubmissionError(DocBatchError):
    """Job submission failed. No registry was written; retrying is safe."""


class EmptySubmissionError(SubmissionError):
    """Raised before any I/O when there is nothing to submit."""

    def __init__(self) -> None:
        super().__init__("Cannot submit a batch job with no items")


class StatusProbeError(DocBatchError):
    """Status query failed. Transient: the job stays pending."""

    def __init__(self, job_id: str, reason: str) -> None:
        super().__init__(f"Failed to check status of job {job_id}: {reason}")
        self.job_id = job_id
        self.reason = reason


class EmptyResultsError(DocBatchError):
    """The provider reported success but no usable results could be retrieved."""

    def __init__(self, job_id: str, detail: str = "") -> None:
        message = f"Retrieved empty or invalid results for job {job_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.job_id = job_id
        self.detail = detail


class RegistryError(DocBatchError):
    """A job registry file is missing or cannot be parsed."""


class CommitMismatchError(DocBatchError):
    """Strict commit matching is enabled and the recorded revision could not be checked out."""

    def __init__(self, expected: str, actual: Optional[str], reason: str = "") -> None:
        message = f"Working tree is at {actual or 'an unknown revision'}, job was built from {expected}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.expected = expected
        self.actual = actual
