"""Tests for the docbatch command line."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from docbatch.batch.models import JobOutcome, JobResult, JobStats, ScanSummary
from docbatch.cli.main import build_parser, main


class TestParser:
    """Argument parsing."""

    def test_submit_arguments(self):
        args = build_parser().parse_args(
            ["submit", "pkg", "pkg/a.ts", "--task", "tests", "--dry-run", "--entry-point", "pkg/a.ts"]
        )

        assert args.command == "submit"
        assert args.package == "pkg"
        assert args.files == ["pkg/a.ts"]
        assert args.task == "tests"
        assert args.dry_run is True
        assert args.entry_points == ["pkg/a.ts"]

    def test_process_arguments(self):
        args = build_parser().parse_args(
            ["process", "--results-file", "r.json", "--repo-path", "../x", "--strict-commit", "--no-cancel"]
        )

        assert args.results_file == "r.json"
        assert args.repo_path == "../x"
        assert args.strict_commit is True
        assert args.no_cancel is True

    def test_invalid_task_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["submit", "pkg", "--task", "translate"])


class TestCommands:
    """End-to-end command runs against a temporary data directory."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1

    def test_version(self, capsys):
        assert main(["version"]) == 0
        assert "docbatch" in capsys.readouterr().out

    @patch("docbatch.batch.submitter.git_current_revision", return_value="abc123")
    def test_submit_dry_run_then_list(self, _mock_rev, config, store, package, capsys):
        assert main(["submit", str(package), "--dry-run"]) == 0

        entries = store.list_active()
        assert len(entries) == 1
        registry = entries[0][1]
        assert registry.job_id.startswith("batch_dryrun_")
        assert len(registry.items) == 3

        assert main(["list"]) == 0
        assert "Active jobs" in capsys.readouterr().out

    def test_submit_missing_package(self, config, tmp_path):
        assert main(["submit", str(tmp_path / "missing"), "--dry-run"]) == 1

    def test_process_prints_summary(self, config, capsys):
        summary = ScanSummary()
        summary.add(JobResult("batch_1", "/p/pkg", JobOutcome.PROCESSED, JobStats(files_written=2)))

        with patch("docbatch.cli.commands.process.BatchCoordinator") as mock_cls:
            mock_cls.return_value.scan_all = AsyncMock(return_value=summary)
            assert main(["process", "--no-cancel"]) == 0

        assert mock_cls.call_args.kwargs["cancel_after_commit"] is False
        out = capsys.readouterr().out
        assert "1 processed" in out
        assert "2 written" in out

    def test_process_strict_commit_does_not_touch_global_config(self, config):
        with patch("docbatch.cli.commands.process.BatchCoordinator") as mock_cls:
            mock_cls.return_value.scan_all = AsyncMock(return_value=ScanSummary())
            assert main(["process", "--strict-commit"]) == 0

        passed_config = mock_cls.call_args.args[2]
        assert passed_config.force_commit_match is True
        assert config.force_commit_match is False

    def test_process_results_file_unknown_job(self, config, tmp_path):
        results = tmp_path / "results-batch_unknown.json"
        results.write_text(json.dumps([{"correlation_token": "request-x-0", "content": "x"}]))

        assert main(["process", "--results-file", str(results)]) == 1
