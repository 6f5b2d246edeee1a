# src/exam_tracker/tasks/task_store.py

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import Any

from .task_models import MUTABLE_JOB_FIELDS, Job, JobStatus, can_transition

logger = logging.getLogger(__name__)

JobObserver = Callable[[str], None]


class TaskStore:
    """
    In-memory job store, the single source of truth for job state.

    - keyed by job id, iteration follows insertion order
    - jobs are frozen; every merge swaps in a new Job object
    - status merges obey the monotonic rule (see can_transition)
    - observers are called with the job id after each successful merge

    Nothing here blocks or awaits: all calls happen on the event loop thread.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._observers: list[JobObserver] = []

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    # ---- observers ----

    def subscribe(self, observer: JobObserver) -> Callable[[], None]:
        """Register observer; returns a callable that unregisters it."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def _notify(self, job_id: str) -> None:
        for observer in list(self._observers):
            try:
                observer(job_id)
            except Exception:
                logger.exception("Job observer failed job_id=%s", job_id)

    # ---- queries ----

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def all(self) -> tuple[Job, ...]:
        return tuple(self._jobs.values())

    def pending_ids(self) -> tuple[str, ...]:
        return tuple(j.id for j in self._jobs.values() if j.status.is_pending)

    def completed_ids(self) -> tuple[str, ...]:
        return tuple(j.id for j in self._jobs.values() if j.status == JobStatus.COMPLETED)

    # ---- mutation ----

    def upsert(self, job_id: str, update: Mapping[str, Any], *, create: bool = True) -> bool:
        """
        Merge `update` into the job, creating it when absent (if create=True).

        Returns True when the store changed. A status change that breaks the
        monotonic rule rejects the whole update.
        """
        if not job_id:
            raise ValueError("job_id is required")

        fields = dict(update)
        current = self._jobs.get(job_id)

        if current is None:
            if not create:
                logger.debug("Dropping update for unknown job_id=%s", job_id)
                return False
            fields.pop("id", None)
            name = str(fields.pop("name", "") or job_id)
            self._check_fields(fields)
            job = replace(Job(id=job_id, name=name), **self._normalize(fields))
            self._jobs[job_id] = job
            logger.debug("Job created id=%s name=%s status=%s", job_id, name, job.status.value)
            self._notify(job_id)
            return True

        fields.pop("id", None)
        if "name" in fields and fields["name"] != current.name:
            raise ValueError("job name is immutable")
        fields.pop("name", None)
        self._check_fields(fields)

        if "status" in fields:
            new_status = JobStatus(fields["status"])
            if not can_transition(current.status, new_status):
                logger.debug(
                    "Rejected status change id=%s %s -> %s",
                    job_id,
                    current.status.value,
                    new_status.value,
                )
                return False

        merged = replace(current, **self._normalize(fields))
        if merged == current:
            return False

        self._jobs[job_id] = merged
        logger.debug("Job merged id=%s status=%s fields=%s", job_id, merged.status.value, sorted(fields))
        self._notify(job_id)
        return True

    def clear(self) -> None:
        """Drop every job (session reset). Observers are kept."""
        n = len(self._jobs)
        self._jobs.clear()
        logger.info("TaskStore cleared (%d jobs dropped)", n)

    @staticmethod
    def _check_fields(fields: Mapping[str, Any]) -> None:
        unknown = set(fields) - MUTABLE_JOB_FIELDS
        if unknown:
            raise ValueError(f"unknown job fields: {', '.join(sorted(unknown))}")

    @staticmethod
    def _normalize(fields: dict[str, Any]) -> dict[str, Any]:
        if "status" in fields:
            fields["status"] = JobStatus(fields["status"])
        if "warnings" in fields:
            fields["warnings"] = tuple(fields["warnings"] or ())
        if "metadata" in fields:
            fields["metadata"] = dict(fields["metadata"] or {})
        if "result_count" in fields:
            fields["result_count"] = max(0, int(fields["result_count"] or 0))
        return fields
