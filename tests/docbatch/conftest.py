"""Shared fixtures for docbatch tests: fake provider, temporary stores and packages."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from docbatch.batch.errors import ProviderError
from docbatch.batch.models import JobItem, JobRegistry
from docbatch.batch.store import JobStore
from docbatch.config import BatchConfig, set_config


class FakeBatchClient:
    """In-memory stand-in for the batch provider.

    ``batches`` maps job id -> raw batch object; ``files`` maps file id ->
    content. Every call is recorded in ``calls``.
    """

    def __init__(self):
        self.batches: Dict[str, Dict[str, Any]] = {}
        self.files: Dict[str, str] = {}
        self.uploads: List[str] = []
        self.calls: List[tuple] = []
        self.fail_upload: Optional[Exception] = None
        self.fail_create: Optional[Exception] = None
        self.fail_status: Optional[Exception] = None
        self.fail_download: Optional[Exception] = None
        self.cancel_result = True

    async def upload_file(self, filename: str, content: str) -> str:
        self.calls.append(("upload_file", filename))
        if self.fail_upload:
            raise self.fail_upload
        file_id = f"file-input-{len(self.uploads)}"
        self.uploads.append(content)
        self.files[file_id] = content
        return file_id

    async def create_batch(self, input_file_id: str) -> Dict[str, Any]:
        self.calls.append(("create_batch", input_file_id))
        if self.fail_create:
            raise self.fail_create
        job_id = f"batch_{len(self.batches) + 1}"
        self.batches[job_id] = {"id": job_id, "status": "validating", "input_file_id": input_file_id}
        return self.batches[job_id]

    async def get_batch(self, batch_id: str) -> Dict[str, Any]:
        self.calls.append(("get_batch", batch_id))
        if self.fail_status:
            raise self.fail_status
        if batch_id not in self.batches:
            raise ProviderError(f"No such batch: {batch_id}", status_code=404)
        return self.batches[batch_id]

    async def download_file(self, file_id: str) -> str:
        self.calls.append(("download_file", file_id))
        if self.fail_download:
            raise self.fail_download
        return self.files.get(file_id, "")

    async def cancel_batch(self, batch_id: str) -> bool:
        self.calls.append(("cancel_batch", batch_id))
        return self.cancel_result

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def complete(self, job_id: str, lines: List[Dict[str, Any]], output_file_id: str = None) -> None:
        """Mark a job completed with the given output lines."""
        output_file_id = output_file_id or f"file-output-{job_id}"
        self.files[output_file_id] = "\n".join(json.dumps(line) for line in lines)
        self.batches[job_id] = {
            "id": job_id,
            "status": "completed",
            "output_file_id": output_file_id,
            "request_counts": {"total": len(lines), "completed": len(lines), "failed": 0},
        }


def chat_line(token: str, content: str) -> Dict[str, Any]:
    """One output line in the provider's envelope format."""
    return {
        "id": f"resp-{token}",
        "custom_id": token,
        "response": {
            "status_code": 200,
            "body": {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]},
        },
        "error": None,
    }


@pytest.fixture
def fake_client():
    return FakeBatchClient()


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "batch-data"
    path.mkdir()
    return path


@pytest.fixture
def store(data_dir):
    return JobStore(data_dir)


@pytest.fixture
def config(data_dir):
    """A BatchConfig isolated from the environment, installed as global config."""
    cfg = BatchConfig(api_key="sk-test", data_dir=data_dir)
    set_config(cfg)
    yield cfg
    set_config(None)


@pytest.fixture
def package(tmp_path):
    """A small package with three source files."""
    root = tmp_path / "pkg"
    (root / "src").mkdir(parents=True)
    (root / "src" / "index.ts").write_text("export * from './a';\nexport * from './b';\n")
    (root / "src" / "a.ts").write_text("export function a(x: number) {\n  return x + 1;\n}\n")
    (root / "src" / "b.ts").write_text("export function b(s: string) {\n  return s.trim();\n}\n")
    return root


def make_registry(package_path: Path, stable_ids: List[str], job_id: str = "batch_1", **kwargs) -> JobRegistry:
    """Registry with one item per stable id, indices in list order."""
    items = [
        JobItem(
            stable_index=i,
            file_path=str(package_path / stable_id),
            is_entry_point=stable_id.endswith("index.ts"),
            stable_id=stable_id,
        )
        for i, stable_id in enumerate(stable_ids)
    ]
    return JobRegistry(job_id=job_id, package_path=str(package_path), items=items, **kwargs)


@pytest.fixture
def registry_factory():
    return make_registry


@pytest.fixture
def chat_line_factory():
    return chat_line
