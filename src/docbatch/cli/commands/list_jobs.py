#!/usr/bin/env python
"""
List command - show active, processed and failed job registries.
"""

from __future__ import annotations

from docbatch.batch.models import JobOutcome
from docbatch.batch.store import JobStore
from docbatch.cli.formatting.output import ConsoleOutput
from docbatch.config import get_config


def run() -> int:
    """Run the list command."""
    console = ConsoleOutput()
    store = JobStore(get_config().data_dir)

    console.print(f"[bold]Data directory:[/bold] {store.root}")
    console.print_registries("Active jobs", store.list_active())
    console.print_registries("Processed jobs", store.list_archived(JobOutcome.PROCESSED))
    console.print_registries("Failed jobs", store.list_archived(JobOutcome.FAILED))
    return 0
