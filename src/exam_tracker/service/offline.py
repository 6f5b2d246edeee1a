# src/exam_tracker/service/offline.py

from __future__ import annotations

import io
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from openpyxl import Workbook

from ..errors import ServiceError
from ..tasks.task_models import JobStatus, Question, StatusReport, SubmittedEntry, UploadFile

ACCEPTED_SUFFIXES = (".hwp", ".hwpx")

EXPORT_HEADERS = [
    "번호",
    "학교",
    "학년",
    "출제문항",
    "공통지문",
    "문제지문",
    "보기/조건",
    "정답",
    "문제유형",
]

_DEMO_TYPES = ["Vocabulary", "Reading/Comprehension", "Grammar", "Listening"]


@dataclass(slots=True)
class _OfflineTask:
    filename: str
    size: int
    polls: int = 0


class OfflineAnalysisService:
    """
    Offline deterministic analysis service used for demos when no API base URL is configured.

    Behavior:
    - Upload: .hwp/.hwpx files are queued, anything else is rejected immediately
    - Status: "processing" until polled `polls_to_complete` times, then "completed"
      (empty documents end up "failed")
    - Questions: placeholder items, count derived from the file size
    - Export: a real xlsx workbook with one row per question
    """

    def __init__(self, *, polls_to_complete: int = 2) -> None:
        self._polls_to_complete = max(1, int(polls_to_complete))
        self._tasks: dict[str, _OfflineTask] = {}

    async def aclose(self) -> None:
        return

    @staticmethod
    def _question_count(size: int) -> int:
        return 1 + size % 12

    def _task(self, task_id: str) -> _OfflineTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise ServiceError(f"Task not found: {task_id}", status_code=404)
        return task

    async def submit(self, files: Sequence[UploadFile]) -> list[SubmittedEntry]:
        out: list[SubmittedEntry] = []
        for f in files:
            if not f.filename.lower().endswith(ACCEPTED_SUFFIXES):
                out.append(
                    SubmittedEntry(
                        task_id=uuid.uuid4().hex,
                        filename=f.filename,
                        status=JobStatus.REJECTED,
                        error="Only .hwp/.hwpx files are supported.",
                    )
                )
                continue
            task_id = uuid.uuid4().hex
            self._tasks[task_id] = _OfflineTask(filename=f.filename, size=len(f.content))
            out.append(SubmittedEntry(task_id=task_id, filename=f.filename, status=JobStatus.QUEUED))
        return out

    async def get_status(self, task_id: str) -> StatusReport:
        task = self._task(task_id)
        task.polls += 1

        if task.polls < self._polls_to_complete:
            return StatusReport(status=JobStatus.PROCESSING)
        if task.size == 0:
            return StatusReport(status=JobStatus.FAILED, error="Document is empty.")
        return StatusReport(
            status=JobStatus.COMPLETED,
            total_questions=self._question_count(task.size),
            parse_method="offline",
            parse_time_ms=0,
        )

    async def get_questions(self, task_id: str) -> list[Question]:
        task = self._task(task_id)
        if task.size == 0:
            return []
        return [
            Question(
                question_number=n,
                question_text=f"[offline demo] {task.filename} question {n}",
                question_type=_DEMO_TYPES[(n - 1) % len(_DEMO_TYPES)],
                answer=str(1 + (n - 1) % 5),
                answer_source="inline",
                seq_no=n,
                raw_no=n,
                notes="Generated by the offline demo service.",
            )
            for n in range(1, self._question_count(task.size) + 1)
        ]

    async def export_excel(self, task_ids: Sequence[str]) -> bytes:
        if not task_ids:
            raise ServiceError("No task ids given.", status_code=400)

        wb = Workbook()
        ws = wb.active
        ws.title = "questions"
        ws.append(EXPORT_HEADERS)

        for task_id in task_ids:
            for q in await self.get_questions(task_id):
                ws.append(
                    [
                        q.question_number,
                        q.school,
                        q.grade or None,
                        q.question_text,
                        q.common_passage,
                        q.question_passage,
                        q.choices,
                        q.answer,
                        q.question_type,
                    ]
                )

        buf = io.BytesIO()
        wb.save(buf)
        return buf.getvalue()
