#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from docbatch import __version__


def _repo_root() -> Path:
    return Path.cwd().resolve()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # Suppress per-request logs from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("docbatch").setLevel(logging.DEBUG if verbose else logging.INFO)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docbatch",
        description="docbatch - bulk documentation and test generation via the batch API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # --- Command Definitions ---
    submit_p = subparsers.add_parser("submit", help="Submit a package's files as one batch job")
    submit_p.add_argument("package", help="Package directory")
    submit_p.add_argument("files", nargs="*", help="Files to queue (default: all source files)")
    submit_p.add_argument("--task", choices=["docs", "tests"], default="docs", help="What to generate (default: docs)")
    submit_p.add_argument("--dry-run", action="store_true", help="Write the registry without contacting the provider")
    submit_p.add_argument("--entry-point", action="append", dest="entry_points", metavar="FILE", help="Mark a file as package entry point (repeatable)")

    process_p = subparsers.add_parser("process", help="Process all pending jobs once")
    process_p.add_argument("--results-file", help="Apply a results file directly instead of querying the provider")
    process_p.add_argument("--repo-path", help="Package checkout to write to (absolute, or parent of the package)")
    process_p.add_argument("--strict-commit", action="store_true", help="Check out the revision a job was built from")
    process_p.add_argument("--no-cancel", action="store_true", help="Do not cancel provider jobs after committing")

    status_p = subparsers.add_parser("status", help="Check one job's status")
    status_p.add_argument("job_id", help="Job ID")

    subparsers.add_parser("list", help="List active, processed and failed jobs")
    subparsers.add_parser("version", help="Show version")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    load_dotenv(_repo_root() / ".env")
    _configure_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        return 1
    if args.command == "version":
        print(f"docbatch {__version__}")
        return 0

    from docbatch.cli.commands import list_jobs, process, status, submit
    from docbatch.cli.formatting.output import ConsoleOutput

    try:
        if args.command == "submit":
            return asyncio.run(submit.run(
                package=args.package,
                files=args.files,
                task=args.task,
                dry_run=args.dry_run,
                entry_points=args.entry_points,
            ))
        elif args.command == "process":
            return asyncio.run(process.run(
                results_file=args.results_file,
                repo_path=args.repo_path,
                strict_commit=args.strict_commit,
                no_cancel=args.no_cancel,
            ))
        elif args.command == "status":
            return asyncio.run(status.run(args.job_id))
        elif args.command == "list":
            return list_jobs.run()
    except ValueError as e:
        # Invalid configuration values (DOCBATCH_CONCURRENCY=abc ...)
        ConsoleOutput().print_error(str(e))
        return 1
    return 1


if __name__ == "__main__":
    sys.exit(main())
