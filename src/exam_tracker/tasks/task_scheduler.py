# src/exam_tracker/tasks/task_scheduler.py

from __future__ import annotations

"""
Poll scheduler.

A small polling loop that:
- snapshots pending job ids from the TaskStore at every tick,
- queries the analysis service once per pending id (independently),
- merges terminal reports into the store under the monotonic rule,
- triggers the one-shot result fetch for completed jobs,
- stops itself as soon as a tick finds nothing pending.

Activation is level-triggered on the pending-id set, not on job records.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from ..core.ports import AnalysisService
from ..errors import ServiceError, TransportError
from .task_models import JobStatus
from .task_store import TaskStore

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 1.5

ResultFetch = Callable[[str], Awaitable[object]]


class SchedulerState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


class PollScheduler:
    """
    Reconciles pending jobs with the analysis service on a fixed interval.

    Timer:
    - an asyncio.Task that sleeps `interval_seconds`, runs one tick, repeats
    - ticks never overlap
    - start() while active and stop() while idle are no-ops

    Per-query errors:
    - TransportError / unexpected errors -> job untouched, queried again next tick
    - ServiceError -> job recorded as failed with the service message
    """

    def __init__(
            self,
            store: TaskStore,
            service: AnalysisService,
            fetch_results: ResultFetch | None = None,
            *,
            interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self._store = store
        self._service = service
        self._fetch_results = fetch_results
        self._interval = max(0.0, float(interval_seconds))

        self._runner: asyncio.Task[None] | None = None
        self._last_pending: frozenset[str] = frozenset()
        self._fetched: set[str] = set()
        self._ticks = 0

        self._unsubscribe = store.subscribe(self._on_store_change)

    @property
    def state(self) -> SchedulerState:
        if self._runner is not None and not self._runner.done():
            return SchedulerState.ACTIVE
        return SchedulerState.IDLE

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def ticks(self) -> int:
        return self._ticks

    # ---- activation ----

    def _on_store_change(self, job_id: str) -> None:
        pending = frozenset(self._store.pending_ids())
        if pending == self._last_pending:
            return
        self._last_pending = pending
        if pending:
            self.start()

    def sync(self) -> None:
        """Start the timer if the store has pending jobs (level-triggered)."""
        pending = frozenset(self._store.pending_ids())
        self._last_pending = pending
        if pending:
            self.start()

    def start(self) -> None:
        if self.state == SchedulerState.ACTIVE:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; scheduler stays idle until sync()")
            return
        self._runner = loop.create_task(self._run(), name="poll-scheduler")
        logger.info("Poll scheduler started (interval=%.2fs)", self._interval)

    def stop(self) -> None:
        runner, self._runner = self._runner, None
        self._last_pending = frozenset()
        if runner is None or runner.done():
            return
        logger.info("Poll scheduler stopped")
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if runner is not current:
            runner.cancel()

    def close(self) -> None:
        """Stop and detach from the store (end of session)."""
        self.stop()
        self._unsubscribe()

    def forget_fetched(self) -> None:
        """Reset the exactly-once fetch bookkeeping (session reset)."""
        self._fetched.clear()

    async def wait_idle(self) -> None:
        """Wait until the scheduler is idle (nothing pending, timer finished)."""
        while True:
            runner = self._runner
            if runner is None or runner.done():
                return
            try:
                await asyncio.shield(runner)
            except asyncio.CancelledError:
                if not runner.cancelled():
                    raise

    # ---- loop ----

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                keep_going = await self.tick()
            except Exception:
                logger.exception("Scheduler tick crashed; retrying next interval")
                continue
            if not keep_going:
                return

    async def tick(self) -> bool:
        """
        Run one reconciliation pass.

        Returns False when nothing was pending (the scheduler is now idle).
        """
        pending = self._store.pending_ids()
        if not pending:
            self.stop()
            return False

        self._ticks += 1
        logger.debug("Tick %d: polling %d pending jobs", self._ticks, len(pending))
        await asyncio.gather(*(self._poll_one(job_id) for job_id in pending))
        return True

    async def _poll_one(self, job_id: str) -> None:
        try:
            report = await self._service.get_status(job_id)
        except TransportError as e:
            logger.debug("Status query failed job_id=%s (%s); retry next tick", job_id, e)
            return
        except ServiceError as e:
            logger.warning("Status query rejected job_id=%s: %s", job_id, e.message)
            self._store.upsert(
                job_id,
                {"status": JobStatus.FAILED, "error": e.message},
                create=False,
            )
            return
        except Exception:
            logger.exception("Status query crashed job_id=%s", job_id)
            return

        status = report.status
        if status is None:
            logger.warning("Unknown status for job_id=%s; ignoring", job_id)
            return
        if not status.is_terminal:
            return

        merged = self._store.upsert(job_id, report.as_update(), create=False)
        if merged:
            logger.info(
                "Job %s -> %s (questions=%d)", job_id, status.value, report.total_questions
            )

        if status == JobStatus.COMPLETED and report.total_questions > 0:
            await self._fetch_once(job_id)

    async def _fetch_once(self, job_id: str) -> None:
        if self._fetch_results is None or job_id in self._fetched:
            return
        job = self._store.get(job_id)
        if job is None or job.status != JobStatus.COMPLETED:
            return
        self._fetched.add(job_id)
        try:
            await self._fetch_results(job_id)
        except Exception:
            logger.exception("Result fetch crashed job_id=%s", job_id)
