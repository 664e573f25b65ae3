"""Data classes for the batch job lifecycle.

JobItem and JobRegistry are the durable record of a submitted job. They
serialize to plain JSON documents so a job created on one host can be
resumed on another. ``from_dict`` also reads the camelCase field names
written by earlier versions of the tool (``batchId``, ``commitHash``,
``filePathIndex`` ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from docbatch.batch.errors import RegistryError


def _first(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str) and value:
        # Python < 3.11 does not accept a trailing "Z"
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise RegistryError(f"Invalid timestamp: {value!r}")


@dataclass(frozen=True)
class JobItem:
    """One file's transformation request within a job.

    Fields:
        stable_index: Position within the job; the canonical correlation key
        file_path: Absolute path of the file the result is written back to
        is_entry_point: Whether the file is a package entry point
        stable_id: Path relative to the package root ('/' separated)
        request_id: Opaque id of the queued request, kept for diagnostics
    """

    stable_index: int
    file_path: str
    is_entry_point: bool = False
    stable_id: Optional[str] = None
    request_id: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.stable_index, bool) or not isinstance(self.stable_index, int):
            raise RegistryError(f"stable_index must be an int, got {self.stable_index!r}")
        if self.stable_index < 0:
            raise RegistryError(f"stable_index must be non-negative, got {self.stable_index}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stable_index": self.stable_index,
            "file_path": self.file_path,
            "is_entry_point": self.is_entry_point,
            "stable_id": self.stable_id,
            "request_id": self.request_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobItem":
        index = _first(data, "stable_index", "filePathIndex")
        file_path = _first(data, "file_path", "filePath")
        if index is None or file_path is None:
            raise RegistryError(f"Job item is missing its index or file path: {data}")
        return cls(
            stable_index=int(index),
            file_path=str(file_path),
            is_entry_point=bool(_first(data, "is_entry_point", "isEntryPoint", default=False)),
            stable_id=_first(data, "stable_id", "filePathId"),
            request_id=_first(data, "request_id", "requestId"),
        )


@dataclass
class JobRegistry:
    """Durable record of one submitted job.

    Written once at submission; afterwards only relocated between the
    active, processed and failed areas.
    """

    job_id: str
    package_path: str
    items: List[JobItem]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source_revision: Optional[str] = None
    task: str = "docs"
    model: Optional[str] = None
    input_file_id: Optional[str] = None

    def __post_init__(self):
        if not self.job_id:
            raise RegistryError("Job registry requires a job id")
        if not self.package_path:
            raise RegistryError(f"Job registry {self.job_id} requires a package path")
        seen = set()
        for item in self.items:
            if item.stable_index in seen:
                raise RegistryError(
                    f"Duplicate stable_index {item.stable_index} in job {self.job_id}"
                )
            seen.add(item.stable_index)

    def item_by_index(self, index: int) -> Optional[JobItem]:
        for item in self.items:
            if item.stable_index == index:
                return item
        return None

    @property
    def indices(self) -> List[int]:
        return [item.stable_index for item in self.items]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "package_path": self.package_path,
            "created_at": self.created_at.isoformat(),
            "source_revision": self.source_revision,
            "task": self.task,
            "model": self.model,
            "input_file_id": self.input_file_id,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobRegistry":
        if not isinstance(data, dict):
            raise RegistryError(f"Job registry must be a JSON object, got {type(data).__name__}")
        raw_items = data.get("items")
        if not isinstance(raw_items, list):
            raise RegistryError("Job registry has no item list")
        return cls(
            job_id=_first(data, "job_id", "batchId", default=""),
            package_path=_first(data, "package_path", "packagePath", default=""),
            items=[JobItem.from_dict(item) for item in raw_items],
            created_at=_parse_timestamp(_first(data, "created_at", "timestamp")),
            source_revision=_first(data, "source_revision", "commitHash"),
            task=_first(data, "task", default="docs"),
            model=data.get("model"),
            input_file_id=_first(data, "input_file_id", "fileId"),
        )


@dataclass(frozen=True)
class ResultRecord:
    """One normalized provider result: correlation token plus generated text."""

    correlation_token: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"correlation_token": self.correlation_token, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResultRecord":
        return cls(correlation_token=str(data["correlation_token"]), content=str(data["content"]))


class JobStatus(str, Enum):
    """Job state as seen by the coordinator."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self is not JobStatus.PENDING

    @classmethod
    def from_provider(cls, status: Optional[str]) -> "JobStatus":
        """Map a provider status string onto the four coordinator states.

        Unknown states are treated as pending so the job is probed again.
        """
        value = (status or "").strip().lower()
        if value == "completed":
            return cls.COMPLETED
        if value in ("failed", "expired"):
            return cls.FAILED
        if value == "cancelled":
            return cls.CANCELLED
        return cls.PENDING


@dataclass
class StatusReport:
    """Result of one status probe."""

    job_id: str
    status: JobStatus
    provider_status: str = ""
    error_detail: Optional[str] = None
    output_file_id: Optional[str] = None
    error_file_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.status.terminal

    @property
    def succeeded(self) -> bool:
        return self.status is JobStatus.COMPLETED


@dataclass
class JobStats:
    """Per-job counters accumulated by the file committer."""

    files_written: int = 0
    files_skipped: int = 0
    files_mismatched: int = 0
    units_delta: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "files_written": self.files_written,
            "files_skipped": self.files_skipped,
            "files_mismatched": self.files_mismatched,
            "units_delta": self.units_delta,
        }


class JobOutcome(str, Enum):
    PROCESSED = "processed"
    PENDING = "pending"
    FAILED = "failed"


@dataclass
class JobResult:
    """Outcome of handling one job during a scan."""

    job_id: str
    package_path: str
    outcome: JobOutcome
    stats: JobStats = field(default_factory=JobStats)
    detail: Optional[str] = None


@dataclass
class ScanSummary:
    """Counts reported by one scan-all invocation."""

    results: List[JobResult] = field(default_factory=list)

    def add(self, result: JobResult) -> None:
        self.results.append(result)

    def _count(self, outcome: JobOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def processed(self) -> int:
        return self._count(JobOutcome.PROCESSED)

    @property
    def pending(self) -> int:
        return self._count(JobOutcome.PENDING)

    @property
    def failed(self) -> int:
        return self._count(JobOutcome.FAILED)

    @property
    def totals(self) -> JobStats:
        total = JobStats()
        for result in self.results:
            total.files_written += result.stats.files_written
            total.files_skipped += result.stats.files_skipped
            total.files_mismatched += result.stats.files_mismatched
            total.units_delta += result.stats.units_delta
        return total
