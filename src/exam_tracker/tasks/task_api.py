# src/exam_tracker/tasks/task_api.py

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..core.ports import AnalysisService
from ..errors import ExamTrackerError, SubmissionError
from .task_models import Job, JobStatus, UploadFile
from .task_store import TaskStore

logger = logging.getLogger(__name__)


class SubmissionHandler:
    """
    Turns a batch upload into queued jobs.

    - one combined request per batch, no automatic retry
    - entries without a task id are dropped (current behavior of the service contract)
    - on any request failure nothing is created and SubmissionError is raised
    """

    def __init__(self, store: TaskStore, service: AnalysisService) -> None:
        self._store = store
        self._service = service

    async def submit(self, files: Sequence[UploadFile]) -> list[Job]:
        if not files:
            return []

        logger.info("Submitting %d files", len(files))
        try:
            entries = await self._service.submit(files)
        except ExamTrackerError as e:
            logger.warning("Upload failed: %s", e)
            raise SubmissionError(f"Upload failed: {e}") from e

        created: list[Job] = []
        dropped = 0
        for entry in entries:
            if not entry.task_id:
                dropped += 1
                continue
            if entry.task_id in self._store:
                logger.warning("Duplicate task_id=%s in upload response; keeping existing job", entry.task_id)
                continue

            self._store.upsert(entry.task_id, {"name": entry.filename or entry.task_id})

            # Rejected at upload time: settle it now so it is never polled.
            if entry.status is not None and entry.status.is_terminal:
                self._store.upsert(
                    entry.task_id,
                    {"status": entry.status, "error": entry.error},
                    create=False,
                )

            job = self._store.get(entry.task_id)
            if job is not None:
                created.append(job)

        if dropped:
            logger.debug("Dropped %d upload entries without task_id", dropped)
        logger.info(
            "Upload accepted: %d jobs (%d pending)",
            len(created),
            sum(1 for j in created if j.status == JobStatus.QUEUED),
        )
        return created


async def submit_paths(handler: SubmissionHandler, paths: Sequence[str]) -> list[Job]:
    """Convenience helper: read local files and submit them as one batch."""
    try:
        files = [UploadFile.from_path(p) for p in paths]
    except OSError as e:
        raise SubmissionError(f"Cannot read {e.filename}: {e.strerror}") from e
    return await handler.submit(files)
