#!/usr/bin/env python
"""
Output formatting with Rich console.
"""

from __future__ import annotations

from typing import Iterable, Tuple
from pathlib import Path

from rich.console import Console
from rich.table import Table
from rich.theme import Theme

from docbatch.batch.models import JobOutcome, JobRegistry, ScanSummary, StatusReport


# Custom theme for the docbatch CLI
custom_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
    "success": "green",
})

_OUTCOME_STYLES = {
    JobOutcome.PROCESSED: "success",
    JobOutcome.PENDING: "warning",
    JobOutcome.FAILED: "error",
}


class ConsoleOutput:
    """Console output with Rich formatting."""

    def __init__(self, console: Console = None):
        self.console = console or Console(theme=custom_theme)

    def print(self, text: str = "", **kwargs):
        """Print text to console."""
        self.console.print(text, **kwargs)

    def print_error(self, text: str):
        self.console.print(f"[error]Error:[/error] {text}")

    def print_success(self, text: str):
        self.console.print(f"[success]Success:[/success] {text}")

    def print_warning(self, text: str):
        self.console.print(f"[warning]Warning:[/warning] {text}")

    def print_dim(self, text: str):
        self.console.print(f"[dim]{text}[/dim]")

    def print_summary(self, summary: ScanSummary):
        """Print per-job outcomes followed by the aggregate counters."""
        table = Table(title="Batch processing summary")
        table.add_column("Job")
        table.add_column("Package")
        table.add_column("Outcome")
        table.add_column("Written", justify="right")
        table.add_column("Skipped", justify="right")
        table.add_column("Mismatched", justify="right")
        table.add_column("Units", justify="right")
        for result in summary.results:
            style = _OUTCOME_STYLES.get(result.outcome, "info")
            table.add_row(
                result.job_id,
                Path(result.package_path).name,
                f"[{style}]{result.outcome.value}[/{style}]",
                str(result.stats.files_written),
                str(result.stats.files_skipped),
                str(result.stats.files_mismatched),
                f"{result.stats.units_delta:+d}",
            )
        if summary.results:
            self.console.print(table)

        totals = summary.totals
        self.console.print(
            f"[bold]Jobs:[/bold] [success]{summary.processed} processed[/success], "
            f"[warning]{summary.pending} pending[/warning], "
            f"[error]{summary.failed} failed[/error]"
        )
        self.console.print(
            f"[bold]Files:[/bold] {totals.files_written} written, "
            f"{totals.files_skipped} skipped, {totals.files_mismatched} mismatched "
            f"(unit delta {totals.units_delta:+d})"
        )

    def print_registries(self, title: str, entries: Iterable[Tuple[Path, JobRegistry]]):
        """Print one table row per job registry."""
        entries = list(entries)
        if not entries:
            self.print_dim(f"{title}: none")
            return
        table = Table(title=title)
        table.add_column("Job")
        table.add_column("Created")
        table.add_column("Task")
        table.add_column("Items", justify="right")
        table.add_column("Package")
        for _, registry in entries:
            table.add_row(
                registry.job_id,
                registry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                registry.task,
                str(len(registry.items)),
                registry.package_path,
            )
        self.console.print(table)

    def print_status(self, report: StatusReport):
        """Print one status probe result."""
        style = "success" if report.succeeded else ("error" if report.terminal else "warning")
        self.console.print(
            f"[bold]{report.job_id}[/bold]: [{style}]{report.status.value}[/{style}] "
            f"(provider status: {report.provider_status or 'unknown'})"
        )
        counts = report.raw.get("request_counts") if isinstance(report.raw, dict) else None
        if isinstance(counts, dict):
            self.print_dim(
                f"Requests: {counts.get('completed', 0)} completed, "
                f"{counts.get('failed', 0)} failed, {counts.get('total', 0)} total"
            )
        if report.output_file_id:
            self.print_dim(f"Output file: {report.output_file_id}")
        if report.error_detail:
            self.print_error(report.error_detail)
