#!/usr/bin/env python
"""
Status command - probe one job.
"""

from __future__ import annotations

from docbatch.batch.errors import StatusProbeError
from docbatch.batch.prober import StatusProber
from docbatch.batch.store import JobStore
from docbatch.cli.formatting.output import ConsoleOutput
from docbatch.config import get_config
from docbatch.llm.openai_batch import OpenAIBatchClient


async def run(job_id: str) -> int:
    """Run the status command."""
    console = ConsoleOutput()
    config = get_config()
    prober = StatusProber(OpenAIBatchClient(config), JobStore(config.data_dir))

    try:
        report = await prober.probe(job_id)
    except StatusProbeError as e:
        console.print_error(str(e))
        return 1

    console.print_status(report)
    return 0
