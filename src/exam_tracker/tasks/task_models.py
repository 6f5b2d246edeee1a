# src/exam_tracker/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any


class JobStatus(StrEnum):
    """
    Job lifecycle status as reported by the analysis service.

    Notes:
    - queued/processing are pending: the scheduler keeps polling them.
    - completed/failed/rejected are terminal: no further transition is accepted.
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"

    @property
    def is_pending(self) -> bool:
        return self in PENDING_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def from_wire(cls, raw: Any) -> JobStatus | None:
        if not isinstance(raw, str) or not raw.strip():
            return None
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


PENDING_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.PROCESSING})
TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.REJECTED})


def can_transition(current: JobStatus, new: JobStatus) -> bool:
    """Monotonic rule: pending -> anything, terminal -> only itself."""
    if current == new:
        return True
    return current.is_pending


@dataclass(slots=True, frozen=True)
class Job:
    id: str
    name: str
    status: JobStatus = JobStatus.QUEUED

    result_count: int = 0
    error: str | None = None
    warnings: tuple[str, ...] = ()

    # Server diagnostics, stored verbatim.
    metadata: dict[str, Any] = field(default_factory=dict)
    parse_method: str | None = None
    parse_time_ms: int | None = None

    @property
    def is_pending(self) -> bool:
        return self.status.is_pending


# Fields a merge may touch; id/name are fixed at creation.
MUTABLE_JOB_FIELDS = frozenset(
    {"status", "result_count", "error", "warnings", "metadata", "parse_method", "parse_time_ms"}
)


def _as_int(raw: Any, default: int = 0) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _as_opt_int(raw: Any) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _as_float(raw: Any, default: float = 0.0) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _as_str(raw: Any) -> str:
    return "" if raw is None else str(raw)


def _as_opt_str(raw: Any) -> str | None:
    if raw is None:
        return None
    s = str(raw).strip()
    return s or None


def _as_str_tuple(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    return tuple(str(x) for x in raw if x is not None)


@dataclass(slots=True, frozen=True)
class UploadFile:
    """One raw document payload for the submit request."""

    filename: str
    content: bytes

    @classmethod
    def from_path(cls, path: str | Path) -> UploadFile:
        p = Path(path).expanduser()
        return cls(filename=p.name, content=p.read_bytes())


@dataclass(slots=True, frozen=True)
class SubmittedEntry:
    """One element of the submit response's "files" list."""

    task_id: str | None
    filename: str
    status: JobStatus | None
    error: str | None = None

    @classmethod
    def from_payload(cls, raw: Any) -> SubmittedEntry | None:
        if not isinstance(raw, dict):
            return None
        return cls(
            task_id=_as_opt_str(raw.get("task_id")),
            filename=_as_str(raw.get("filename")),
            status=JobStatus.from_wire(raw.get("status")),
            error=_as_opt_str(raw.get("error")),
        )


@dataclass(slots=True, frozen=True)
class StatusReport:
    """Status query response for a single job."""

    status: JobStatus | None
    total_questions: int = 0
    error: str | None = None
    warnings: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    parse_method: str | None = None
    parse_time_ms: int | None = None

    @classmethod
    def from_payload(cls, raw: Any) -> StatusReport:
        if not isinstance(raw, dict):
            return cls(status=None)
        meta = raw.get("metadata")
        return cls(
            status=JobStatus.from_wire(raw.get("status")),
            total_questions=max(0, _as_int(raw.get("total_questions"))),
            error=_as_opt_str(raw.get("error")),
            warnings=_as_str_tuple(raw.get("warnings")),
            metadata=dict(meta) if isinstance(meta, dict) else {},
            parse_method=_as_opt_str(raw.get("parse_method")),
            parse_time_ms=_as_opt_int(raw.get("parse_time_ms")),
        )

    def as_update(self) -> dict[str, Any]:
        """Fields to merge into the store for a terminal report."""
        update: dict[str, Any] = {
            "status": self.status,
            "result_count": self.total_questions,
            "error": self.error,
        }
        if self.warnings:
            update["warnings"] = self.warnings
        if self.metadata:
            update["metadata"] = self.metadata
        if self.parse_method is not None:
            update["parse_method"] = self.parse_method
        if self.parse_time_ms is not None:
            update["parse_time_ms"] = self.parse_time_ms
        return update


@dataclass(slots=True, frozen=True)
class Question:
    """
    One extracted exam question (result record).

    The engine only counts these; connectors render them and the service
    turns them into spreadsheet rows on export.
    """

    question_number: int
    question_text: str = ""
    common_passage: str = ""
    question_passage: str = ""
    choices: str = ""
    answer: str = ""
    question_type: str = ""  # Vocabulary | Reading/Comprehension | Grammar | Listening
    confidence: float = 0.0
    notes: str = ""
    passage_group_id: int | None = None
    raw_block_text: str = ""
    school: str = ""
    grade: int = 0

    seq_no: int = 0
    raw_no: int | None = None
    answer_source: str = "missing"  # answer_key | inline | missing
    source_block_ids: tuple[int, ...] = ()
    item_warnings: tuple[str, ...] = ()
    choices_list: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, raw: Any) -> Question | None:
        if not isinstance(raw, dict):
            return None
        blocks = raw.get("source_block_ids")
        return cls(
            question_number=_as_int(raw.get("question_number")),
            question_text=_as_str(raw.get("question_text")),
            common_passage=_as_str(raw.get("common_passage")),
            question_passage=_as_str(raw.get("question_passage")),
            choices=_as_str(raw.get("choices")),
            answer=_as_str(raw.get("answer")),
            question_type=_as_str(raw.get("question_type")),
            confidence=_as_float(raw.get("confidence")),
            notes=_as_str(raw.get("notes")),
            passage_group_id=_as_opt_int(raw.get("passage_group_id")),
            raw_block_text=_as_str(raw.get("raw_block_text")),
            school=_as_str(raw.get("school")),
            grade=_as_int(raw.get("grade")),
            seq_no=_as_int(raw.get("seq_no")),
            raw_no=_as_opt_int(raw.get("raw_no")),
            answer_source=_as_str(raw.get("answer_source")) or "missing",
            source_block_ids=tuple(_as_int(b) for b in blocks) if isinstance(blocks, list) else (),
            item_warnings=_as_str_tuple(raw.get("item_warnings")),
            choices_list=_as_str_tuple(raw.get("choices_list")),
        )
