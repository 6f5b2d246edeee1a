# src/exam_tracker/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from ..cli.commands import format_job
from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def watch_jobs(state: AppState) -> Callable[[], None]:
    """Echo every job merge to the console. Returns the unsubscribe callable."""

    def _on_change(job_id: str) -> None:
        job = state.store.get(job_id)
        if job is not None:
            _print_ts(f"[JOB] {format_job(job)}")

    return state.store.subscribe(_on_change)


async def run_console_loop(state: AppState) -> None:
    """
    Interactive console.

    stdin is read in a worker thread so the event loop keeps polling while
    the prompt is waiting.
    """
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /upload <file> to submit, /help for commands, /exit to quit.\n")

    unsubscribe = watch_jobs(state)
    try:
        while True:
            try:
                user_input = (await asyncio.to_thread(input, ">>> ")).strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            if not user_input.startswith("/"):
                # Bare paths are treated as an upload.
                user_input = "/upload " + user_input

            try:
                response = await command_registry.handle(state, user_input, emit=_print_ts)
            except Exception:
                logger.exception("Command handler crashed.")
                response = "Internal error while handling a command."

            if response is not None:
                _print_ts(response)
    finally:
        unsubscribe()

    logger.info("Console connector finished.")
