#!/usr/bin/env python
"""
Process command - scan all active jobs, or apply one results file.
"""

from __future__ import annotations

import dataclasses
from typing import Optional

from docbatch.batch.coordinator import BatchCoordinator
from docbatch.batch.errors import EmptyResultsError, RegistryError
from docbatch.batch.models import ScanSummary
from docbatch.batch.store import JobStore
from docbatch.cli.formatting.output import ConsoleOutput
from docbatch.config import get_config
from docbatch.llm.openai_batch import OpenAIBatchClient


async def run(
    results_file: Optional[str] = None,
    repo_path: Optional[str] = None,
    strict_commit: bool = False,
    no_cancel: bool = False,
) -> int:
    """Run the process command."""
    console = ConsoleOutput()
    config = get_config()
    if strict_commit:
        config = dataclasses.replace(config, force_commit_match=True)

    coordinator = BatchCoordinator(
        OpenAIBatchClient(config),
        JobStore(config.data_dir),
        config,
        cancel_after_commit=not no_cancel,
    )

    if results_file:
        try:
            result = await coordinator.process_results_file(results_file, repo_path)
        except (RegistryError, EmptyResultsError) as e:
            console.print_error(str(e))
            return 1
        summary = ScanSummary()
        summary.add(result)
    else:
        console.print_dim(f"Scanning {config.data_dir} for pending jobs...")
        summary = await coordinator.scan_all(repo_path)

    console.print_summary(summary)
    return 0
