# src/exam_tracker/results/view.py

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from ..tasks.task_models import Job, Question

logger = logging.getLogger(__name__)


class ResultsView:
    """
    Published result records, read by connectors and the export layer.

    `preview` is the most recently published non-empty set, which is what the
    console shows by default.
    """

    def __init__(self) -> None:
        self._by_job: dict[str, tuple[Question, ...]] = {}
        self._failed: set[str] = set()
        self._preview: tuple[Question, ...] = ()

    @property
    def preview(self) -> tuple[Question, ...]:
        return self._preview

    @property
    def failed_ids(self) -> frozenset[str]:
        return frozenset(self._failed)

    def publish(self, job_id: str, records: Sequence[Question]) -> None:
        items = tuple(records)
        self._by_job[job_id] = items
        self._failed.discard(job_id)
        if items:
            self._preview = items
        logger.debug("Published %d records for job_id=%s", len(items), job_id)

    def mark_failed(self, job_id: str) -> None:
        self._failed.add(job_id)

    def records_for(self, job_id: str) -> tuple[Question, ...] | None:
        return self._by_job.get(job_id)

    def all_records(self) -> list[Question]:
        out: list[Question] = []
        for items in self._by_job.values():
            out.extend(items)
        return out

    def total_questions(self, jobs: Iterable[Job]) -> int:
        if self._preview:
            return len(self._preview)
        return sum(j.result_count for j in jobs)

    def clear(self) -> None:
        self._by_job.clear()
        self._failed.clear()
        self._preview = ()
