# src/exam_tracker/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections import Counter
from collections.abc import Awaitable, Callable

from ..core.state import AppState
from ..errors import ExamTrackerError, ExportBusyError
from ..tasks.task_api import submit_paths
from ..tasks.task_models import Job, JobStatus, Question

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], str | Awaitable[str]]

logger = logging.getLogger(__name__)

_STATUS_ICONS = {
    JobStatus.COMPLETED: "✓",
    JobStatus.PROCESSING: "⟳",
    JobStatus.FAILED: "✗",
    JobStatus.REJECTED: "✗",
}


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /upload, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        Handlers may be plain functions or coroutines.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        reply = handler(state, args, emit)
        if inspect.isawaitable(reply):
            reply = await reply
        return reply

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def friendly_error_message(err: Exception) -> str:
    if isinstance(err, ExportBusyError):
        return "An export is already running. Wait for it to finish."
    if isinstance(err, ExamTrackerError):
        return str(err).strip() or err.__class__.__name__
    return "Internal error."


def _truncate(text: str, limit: int) -> str:
    if not text:
        return "-"
    one_line = " ".join(text.split())
    return one_line if len(one_line) <= limit else one_line[:limit] + "…"


def format_job(job: Job) -> str:
    icon = _STATUS_ICONS.get(job.status, "○")
    line = f"{icon} {job.name} [{job.status.value}]"
    if job.status == JobStatus.COMPLETED and job.result_count > 0:
        line += f" {job.result_count} questions"
    if job.error:
        line += f" - {job.error}"
    return line


def format_question_row(q: Question) -> str:
    school = q.school.replace("학교", "") if q.school else "-"
    return (
        f"{q.question_number:>3} | {school} | {q.grade or '-'} | "
        f"{_truncate(q.question_text, 80)} | {q.answer or '-'} | {q.question_type or '-'}"
    )


def format_question_detail(q: Question) -> str:
    sections = [
        ("Question", q.question_text),
        ("Common passage", q.common_passage),
        ("Question passage", q.question_passage),
        ("Choices/conditions", q.choices),
        ("Answer", q.answer),
        ("Type", q.question_type),
        ("School / grade", f"{q.school or '-'} / {q.grade or '-'}"),
        ("Answer source", q.answer_source or "missing"),
        ("seq / raw", f"seq={q.seq_no} / raw={q.raw_no if q.raw_no is not None else '-'}"),
        ("Source blocks", ", ".join(str(b) for b in q.source_block_ids) or "-"),
        ("Classification notes", q.notes),
        ("Item warnings", "\n".join(q.item_warnings)),
        ("Raw block", q.raw_block_text),
    ]
    lines = [f"Question {q.question_number}:"]
    for title, content in sections:
        if not content:
            continue
        lines.append(f"  [{title}]")
        lines.extend(f"    {part}" for part in content.splitlines())
    return "\n".join(lines)


def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    base_url = str(getattr(state.settings, "api_base_url", "") or "")
    counts = Counter(j.status.value for j in state.store.all())
    by_status = ", ".join(f"{k}={v}" for k, v in sorted(counts.items())) or "none"
    return (
        "Status:\n"
        f"  Service: {base_url or 'offline demo'}\n"
        f"  Scheduler: {state.scheduler.state.value} "
        f"(interval={state.scheduler.interval_seconds:.2f}s, ticks={state.scheduler.ticks})\n"
        f"  Jobs: {by_status}\n"
        f"  Questions: {state.results.total_questions(state.store.all())}\n"
        f"  Export: {'running' if state.exporter.busy else 'idle'}"
    )


async def cmd_upload(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /upload a.hwp b.hwpx ...  -> submit files as one batch
    """
    if not args:
        return "Usage: /upload <file> [<file> ...]"
    try:
        jobs = await submit_paths(state.submitter, args)
    except ExamTrackerError as e:
        return f"Upload failed: {friendly_error_message(e)}"
    if not jobs:
        return "Upload accepted but the service returned no trackable jobs."
    return "Submitted:\n" + "\n".join(f"  {format_job(j)}" for j in jobs)


def cmd_jobs(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    jobs = state.store.all()
    if not jobs:
        return "No files uploaded yet. Use /upload <file>."
    lines = ["Jobs:"]
    for job in jobs:
        line = f"  {format_job(job)}"
        if job.id in state.results.failed_ids:
            line += " (questions unavailable)"
        lines.append(line)
    return "\n".join(lines)


def cmd_questions(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /questions      -> preview of the latest fetched questions
    /questions all  -> every fetched question
    /questions N    -> first N of the preview
    """
    if args and args[0].lower() == "all":
        items = state.results.all_records()
    else:
        items = list(state.results.preview)
        if args:
            try:
                items = items[: max(0, int(args[0]))]
            except ValueError:
                return "Usage: /questions [all | N]"

    if not items:
        return "No questions fetched yet."

    total = state.results.total_questions(state.store.all())
    lines = [f"{total} questions analysed. No | School | Grade | Question | Answer | Type"]
    lines.extend(format_question_row(q) for q in items)
    return "\n".join(lines)


def cmd_detail(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /detail <question number>"
    try:
        number = int(args[0])
    except ValueError:
        return "Usage: /detail <question number>"
    for q in state.results.preview:
        if q.question_number == number:
            return format_question_detail(q)
    return f"Question {number} is not in the current preview."


async def cmd_export(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit is not None:
        emit("[EXPORT] Generating spreadsheet...")
    try:
        path = await state.exporter.export_completed()
    except ExamTrackerError as e:
        logger.info("Export failed: %s", e)
        return f"Export failed: {friendly_error_message(e)}"
    return f"Export saved: {path}"


def cmd_reset(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    n = len(state.store)
    state.reset()
    return f"Session cleared ({n} jobs dropped)."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show service, scheduler and job counts.")
registry.register("upload", cmd_upload, help_text="Submit files: /upload <file> [<file> ...].", aliases=["u"])
registry.register("jobs", cmd_jobs, help_text="List submitted jobs and their status.")
registry.register("questions", cmd_questions, help_text="Show fetched questions: /questions [all | N].", aliases=["q"])
registry.register("detail", cmd_detail, help_text="Show one question in full: /detail <number>.")
registry.register("export", cmd_export, help_text="Download the spreadsheet for all completed jobs.")
registry.register("reset", cmd_reset, help_text="Clear all jobs and results.")
