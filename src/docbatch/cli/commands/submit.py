#!/usr/bin/env python
"""
Submit command - queue a package's source files as one batch job.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from docbatch.batch.errors import EmptySubmissionError, SubmissionError
from docbatch.batch.store import JobStore
from docbatch.batch.submitter import BatchSubmitter
from docbatch.cli.formatting.output import ConsoleOutput
from docbatch.config import get_config
from docbatch.llm.openai_batch import OpenAIBatchClient


async def run(
    package: str,
    files: Optional[List[str]] = None,
    task: str = "docs",
    dry_run: bool = False,
    entry_points: Optional[List[str]] = None,
) -> int:
    """Run the submit command."""
    console = ConsoleOutput()
    config = get_config()
    package_path = Path(package).resolve()

    if not package_path.is_dir():
        console.print_error(f"Package directory not found: {package}")
        return 1

    client = None if dry_run else OpenAIBatchClient(config)
    submitter = BatchSubmitter(client, JobStore(config.data_dir), config, dry_run=dry_run)

    try:
        registry = await submitter.submit_package(
            package_path,
            [Path(f) for f in files] if files else None,
            task=task,
            entry_points=[Path(p) for p in entry_points or ()],
        )
    except EmptySubmissionError:
        console.print_warning(f"No source files to submit in {package_path}")
        return 1
    except SubmissionError as e:
        console.print_error(str(e))
        return 1

    console.print_success(
        f"Submitted job {registry.job_id} with {len(registry.items)} files ({registry.task})"
    )
    if dry_run:
        console.print_dim("Dry run: nothing was sent to the provider")
    console.print_dim("Run 'docbatch process' later to apply the results.")
    return 0
