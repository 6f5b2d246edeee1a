# src/exam_tracker/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then either:
- runs the interactive console (no file arguments), or
- submits the given files, waits until nothing is pending, prints a summary
  and optionally exports the spreadsheet (batch mode).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from ..cli.bootstrap import create_initial_state
from ..cli.commands import format_job, friendly_error_message
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..errors import ExamTrackerError
from ..logging_setup import setup_logging
from ..tasks.task_api import submit_paths
from ..tasks.task_models import JobStatus

logger = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="exam-tracker",
        description="Submit exam documents for question analysis and track the jobs.",
    )
    parser.add_argument("files", nargs="*", help="Files to submit (batch mode). Omit for the console.")
    parser.add_argument(
        "--export",
        action="store_true",
        help="Batch mode: download the spreadsheet once every job has settled.",
    )
    return parser.parse_args(argv)


async def run_batch(state: AppState, paths: Sequence[str], *, export: bool) -> int:
    """Submit, wait for every job to settle, report. Returns a process exit code."""
    try:
        jobs = await submit_paths(state.submitter, paths)
    except ExamTrackerError as e:
        print(f"Upload failed: {friendly_error_message(e)}", file=sys.stderr)
        return 1

    if not jobs:
        print("The service returned no trackable jobs.", file=sys.stderr)
        return 1

    await state.scheduler.wait_idle()

    for job in state.store.all():
        print(format_job(job))
    print(f"Total questions: {state.results.total_questions(state.store.all())}")

    if not export:
        return 0

    if not any(j.status == JobStatus.COMPLETED for j in state.store.all()):
        print("Nothing to export: no job completed.", file=sys.stderr)
        return 1

    try:
        path = await state.exporter.export_completed()
    except ExamTrackerError as e:
        print(f"Export failed: {friendly_error_message(e)}", file=sys.stderr)
        return 1
    print(f"Export saved: {path}")
    return 0


async def _amain(args: argparse.Namespace) -> int:
    settings = get_settings()
    state = create_initial_state(settings=settings)
    try:
        if args.files:
            return await run_batch(state, args.files, export=args.export)
        await run_console_loop(state)
        return 0
    finally:
        await state.aclose()
        logger.info("Bye.")


def main(argv: Sequence[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    try:
        code = asyncio.run(_amain(args))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
