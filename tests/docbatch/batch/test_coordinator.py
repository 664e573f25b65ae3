"""Tests for the scan/process loop."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from docbatch.batch.coordinator import BatchCoordinator, apply_repo_override
from docbatch.batch.errors import CommitMismatchError, EmptyResultsError, ProviderError, RegistryError
from docbatch.batch.models import JobOutcome, ResultRecord
from docbatch.persistence import copy_file

PREFIX = "request-2025-01-01T00-00-00-000000Z"
IDS = ["src/index.ts", "src/a.ts", "src/b.ts"]

DOCS = {
    0: "/** Package entry. */\nexport * from './a';\nexport * from './b';\n",
    1: "/** Add one. */\nexport function a(x: number) {\n  return x + 1;\n}\n",
    2: "/** Trim a string. */\nexport function b(s: string) {\n  return s.trim();\n}\n",
}


@pytest.fixture
def registry(store, package, registry_factory):
    registry = registry_factory(package, IDS)
    store.save_registry(registry)
    return registry


@pytest.fixture
def coordinator(fake_client, store, config):
    return BatchCoordinator(fake_client, store, config)


def _lines(chat_line_factory, indices):
    return [chat_line_factory(f"{PREFIX}-{i}", DOCS[i]) for i in indices]


class TestScanAll:
    """One scan over the active area."""

    @pytest.mark.asyncio
    async def test_no_jobs(self, coordinator, fake_client):
        summary = await coordinator.scan_all()

        assert summary.results == []
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_partial_results_processed(self, coordinator, fake_client, store, package, registry, chat_line_factory):
        """Results for indices 2 and 0 only: two files written, one skipped."""
        fake_client.complete("batch_1", _lines(chat_line_factory, [2, 0]))
        original_a = (package / "src" / "a.ts").read_text()

        summary = await coordinator.scan_all()

        assert summary.processed == 1
        result = summary.results[0]
        assert result.outcome is JobOutcome.PROCESSED
        assert result.stats.files_written == 2
        assert result.stats.files_skipped == 1
        assert result.stats.files_mismatched == 0
        assert (package / "src" / "index.ts").read_text() == DOCS[0]
        assert (package / "src" / "b.ts").read_text() == DOCS[2]
        assert (package / "src" / "a.ts").read_text() == original_a
        assert not store.has_active("batch_1")
        assert (store.processed_dir / "items-batch_1.json").exists()
        assert (store.processed_dir / "results-batch_1.json").exists()
        assert fake_client.count("cancel_batch") == 1

    @pytest.mark.asyncio
    async def test_pending_job_probed_once_and_kept(self, coordinator, fake_client, store, registry):
        fake_client.batches["batch_1"] = {"id": "batch_1", "status": "in_progress"}

        summary = await coordinator.scan_all()

        assert summary.pending == 1
        assert fake_client.count("get_batch") == 1
        assert fake_client.count("download_file") == 0
        assert store.has_active("batch_1")

    @pytest.mark.asyncio
    async def test_remote_failure_archived_to_failed(self, coordinator, fake_client, store, registry):
        fake_client.batches["batch_1"] = {
            "id": "batch_1",
            "status": "failed",
            "errors": {"data": [{"code": "invalid_jsonl", "message": "line 1"}]},
        }

        summary = await coordinator.scan_all()

        assert summary.failed == 1
        assert "invalid_jsonl" in summary.results[0].detail
        assert (store.failed_dir / "items-batch_1.json").exists()
        assert not store.has_active("batch_1")

    @pytest.mark.asyncio
    async def test_empty_results_twice_archived_to_failed(self, coordinator, fake_client, store, registry):
        fake_client.batches["batch_1"] = {"id": "batch_1", "status": "completed", "output_file_id": "file-out"}
        fake_client.files["file-out"] = ""

        summary = await coordinator.scan_all()

        assert summary.failed == 1
        assert fake_client.count("download_file") == 2
        assert (store.failed_dir / "items-batch_1.json").exists()
        assert fake_client.count("cancel_batch") == 0
        diagnostic = json.loads((store.failed_dir / "failure-batch_1.json").read_text())
        assert diagnostic["status"] == "completed"
        assert diagnostic["output_file_id"] == "file-out"
        assert diagnostic["detail"] == summary.results[0].detail

    @pytest.mark.asyncio
    async def test_failure_diagnostic_includes_error_file(self, coordinator, fake_client, store, registry):
        """When every request failed, the provider's error file is kept with the job."""
        fake_client.batches["batch_1"] = {
            "id": "batch_1",
            "status": "completed",
            "output_file_id": "file-out",
            "error_file_id": "file-err",
        }
        fake_client.files["file-out"] = ""
        fake_client.files["file-err"] = '{"custom_id": "request-x-0", "error": {"code": "context_length_exceeded"}}'

        summary = await coordinator.scan_all()

        assert summary.failed == 1
        diagnostic = json.loads((store.failed_dir / "failure-batch_1.json").read_text())
        assert diagnostic["error_file_id"] == "file-err"
        assert "context_length_exceeded" in diagnostic["error_file"]

    @pytest.mark.asyncio
    async def test_probe_error_keeps_job_pending(self, coordinator, fake_client, store, registry):
        fake_client.fail_status = ProviderError("connection refused")

        summary = await coordinator.scan_all()

        assert summary.pending == 1
        assert store.has_active("batch_1")

    @pytest.mark.asyncio
    async def test_download_error_keeps_job_pending(self, coordinator, fake_client, store, registry):
        fake_client.batches["batch_1"] = {"id": "batch_1", "status": "completed", "output_file_id": "file-out"}
        fake_client.fail_download = ProviderError("502 bad gateway", status_code=502)

        summary = await coordinator.scan_all()

        assert summary.pending == 1
        assert store.has_active("batch_1")

    @pytest.mark.asyncio
    async def test_second_scan_is_idempotent(self, coordinator, fake_client, store, package, registry, chat_line_factory):
        fake_client.complete("batch_1", _lines(chat_line_factory, [0, 1, 2]))
        await coordinator.scan_all()
        written = {i: (package / stable_id).read_text() for i, stable_id in enumerate(IDS)}

        summary = await coordinator.scan_all()

        assert summary.results == []
        assert {i: (package / stable_id).read_text() for i, stable_id in enumerate(IDS)} == written

    @pytest.mark.asyncio
    async def test_cached_results_reused_without_download(self, coordinator, fake_client, store, package, registry):
        fake_client.batches["batch_1"] = {"id": "batch_1", "status": "completed", "output_file_id": "file-out"}
        store.save_results("batch_1", [ResultRecord(f"{PREFIX}-1", DOCS[1])])

        summary = await coordinator.scan_all()

        assert summary.processed == 1
        assert fake_client.count("download_file") == 0
        assert (package / "src" / "a.ts").read_text() == DOCS[1]

    @pytest.mark.asyncio
    async def test_archive_failure_keeps_results_cache(self, coordinator, fake_client, store, package, registry, chat_line_factory):
        """A committed job whose registry cannot be archived is resumed from its cache."""
        fake_client.complete("batch_1", _lines(chat_line_factory, [0, 1, 2]))

        def failing_copy(source, destination_dir, new_name=None):
            if Path(source).name.startswith("items-"):
                raise OSError("disk full")
            return copy_file(source, destination_dir, new_name)

        with patch("docbatch.batch.store.copy_file", side_effect=failing_copy):
            first = await coordinator.scan_all()

        assert first.pending == 1
        assert store.has_active("batch_1")
        assert store.results_cache_path("batch_1").exists()
        assert not (store.processed_dir / "results-batch_1.json").exists()

        # Provider output has expired by the next run
        fake_client.files.clear()
        second = await coordinator.scan_all()

        assert second.processed == 1
        assert fake_client.count("download_file") == 1
        assert (store.processed_dir / "items-batch_1.json").exists()
        assert (store.processed_dir / "results-batch_1.json").exists()
        assert not store.results_cache_path("batch_1").exists()

    @pytest.mark.asyncio
    async def test_strict_mismatch_keeps_job_pending(self, fake_client, store, config, package, registry, chat_line_factory):
        fake_client.complete("batch_1", _lines(chat_line_factory, [0, 1, 2]))
        consistency = MagicMock()
        consistency.verify.side_effect = CommitMismatchError("abc123", "def456", "checkout failed")
        original = (package / "src" / "a.ts").read_text()
        coordinator = BatchCoordinator(fake_client, store, config, consistency=consistency)

        summary = await coordinator.scan_all()

        assert summary.pending == 1
        assert store.has_active("batch_1")
        assert (package / "src" / "a.ts").read_text() == original

    @pytest.mark.asyncio
    async def test_restore_called_after_commit(self, fake_client, store, config, registry, chat_line_factory):
        fake_client.complete("batch_1", _lines(chat_line_factory, [0]))
        consistency = MagicMock()
        coordinator = BatchCoordinator(fake_client, store, config, consistency=consistency)

        await coordinator.scan_all()

        consistency.restore.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancel_failure_only_warns(self, coordinator, fake_client, store, registry, chat_line_factory):
        fake_client.complete("batch_1", _lines(chat_line_factory, [0]))
        fake_client.cancel_result = False

        summary = await coordinator.scan_all()

        assert summary.processed == 1
        assert fake_client.count("cancel_batch") == 1

    @pytest.mark.asyncio
    async def test_cancel_disabled(self, fake_client, store, config, registry, chat_line_factory):
        fake_client.complete("batch_1", _lines(chat_line_factory, [0]))
        coordinator = BatchCoordinator(fake_client, store, config, cancel_after_commit=False)

        await coordinator.scan_all()

        assert fake_client.count("cancel_batch") == 0

    @pytest.mark.asyncio
    async def test_jobs_processed_in_creation_order(self, coordinator, fake_client, store, package, registry_factory):
        now = datetime.now(timezone.utc)
        store.save_registry(registry_factory(package, IDS, job_id="batch_b", created_at=now))
        store.save_registry(registry_factory(package, IDS, job_id="batch_a", created_at=now - timedelta(minutes=5)))
        for job_id in ("batch_a", "batch_b"):
            fake_client.batches[job_id] = {"id": job_id, "status": "in_progress"}

        summary = await coordinator.scan_all()

        assert [r.job_id for r in summary.results] == ["batch_a", "batch_b"]


class TestProcessResultsFile:
    """Direct processing of a results artifact."""

    @pytest.mark.asyncio
    async def test_process_results_file(self, coordinator, fake_client, store, package, registry, tmp_path):
        results = tmp_path / "results-batch_1.json"
        results.write_text(json.dumps([{"correlation_token": f"{PREFIX}-1", "content": DOCS[1]}]))

        result = await coordinator.process_results_file(results)

        assert result.outcome is JobOutcome.PROCESSED
        assert result.stats.files_written == 1
        assert fake_client.count("get_batch") == 0
        assert (package / "src" / "a.ts").read_text() == DOCS[1]
        assert (store.processed_dir / "results-batch_1.json").exists()

    @pytest.mark.asyncio
    async def test_results_file_clears_stale_cache(self, coordinator, store, package, registry, tmp_path):
        store.save_results("batch_1", [ResultRecord(f"{PREFIX}-2", DOCS[2])])
        results = tmp_path / "results-batch_1.json"
        results.write_text(json.dumps([{"correlation_token": f"{PREFIX}-1", "content": DOCS[1]}]))

        result = await coordinator.process_results_file(results)

        assert result.outcome is JobOutcome.PROCESSED
        assert not store.results_cache_path("batch_1").exists()
        assert store.list_active() == []

    @pytest.mark.asyncio
    async def test_unknown_job(self, coordinator, tmp_path):
        results = tmp_path / "results-batch_zzz.json"
        results.write_text("[]")

        with pytest.raises(RegistryError):
            await coordinator.process_results_file(results)

    @pytest.mark.asyncio
    async def test_empty_file(self, coordinator, registry, tmp_path):
        results = tmp_path / "results-batch_1.json"
        results.write_text("[]")

        with pytest.raises(EmptyResultsError):
            await coordinator.process_results_file(results)

    @pytest.mark.asyncio
    async def test_repo_override(self, coordinator, store, package, registry, tmp_path):
        clone = tmp_path / "clone"
        (clone / "src").mkdir(parents=True)
        (clone / "src" / "a.ts").write_text("export function a(x: number) {\n  return x + 1;\n}\n")
        original = (package / "src" / "a.ts").read_text()
        results = tmp_path / "results-batch_1.json"
        results.write_text(json.dumps([{"correlation_token": f"{PREFIX}-1", "content": DOCS[1]}]))

        result = await coordinator.process_results_file(results, repo_path=str(clone))

        assert result.stats.files_written == 1
        assert (clone / "src" / "a.ts").read_text() == DOCS[1]
        assert (package / "src" / "a.ts").read_text() == original


class TestApplyRepoOverride:
    """Repository path overrides."""

    def test_absolute_replaces(self, tmp_path, registry_factory):
        registry = registry_factory(Path("/old/host/pkg"), ["a.ts"])

        moved = apply_repo_override(registry, str(tmp_path / "elsewhere"))

        assert moved.package_path == str(tmp_path / "elsewhere")
        assert registry.package_path == "/old/host/pkg"

    def test_relative_joins_basename(self, tmp_path, registry_factory, monkeypatch):
        monkeypatch.chdir(tmp_path)
        registry = registry_factory(Path("/old/host/pkg"), ["a.ts"])

        moved = apply_repo_override(registry, "checkouts")

        assert moved.package_path == str((tmp_path / "checkouts" / "pkg").resolve())

    def test_none_keeps_registry(self, registry_factory):
        registry = registry_factory(Path("/old/host/pkg"), ["a.ts"])
        assert apply_repo_override(registry, None) is registry
