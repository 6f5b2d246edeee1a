# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio
import logging

import httpx
import pytest

from exam_tracker.errors import ServiceError, TransportError
from exam_tracker.service.http_client import HttpAnalysisService
from exam_tracker.tasks.task_models import JobStatus
from exam_tracker.tasks.task_scheduler import PollScheduler, SchedulerState
from exam_tracker.tasks.task_store import TaskStore

from .fakes import FakeAnalysisService, entry, questions, report, shutdown, upload

SCHEDULER_LOGGER = "exam_tracker.tasks.task_scheduler"


@pytest.mark.asyncio
async def test_two_jobs_settle_over_two_ticks_then_scheduler_stops(state, service) -> None:
    service.submit_result = [entry("t1", "F1.hwp"), entry("t2", "F2.hwp")]
    service.statuses = {
        "t1": [report(JobStatus.COMPLETED, 5)],
        "t2": [report(JobStatus.PROCESSING), report(JobStatus.COMPLETED, 3)],
    }
    service.questions = {"t1": questions(5, "F1"), "t2": questions(3, "F2")}

    await state.submitter.submit(upload("F1.hwp", "F2.hwp"))
    assert [j.status for j in state.store.all()] == [JobStatus.QUEUED, JobStatus.QUEUED]
    assert state.scheduler.state == SchedulerState.ACTIVE

    # Tick 1
    assert await state.scheduler.tick() is True
    t1 = state.store.get("t1")
    assert t1.status == JobStatus.COMPLETED
    assert t1.result_count == 5
    assert state.store.get("t2").status == JobStatus.QUEUED
    assert service.question_calls == ["t1"]

    # Tick 2
    assert await state.scheduler.tick() is True
    t2 = state.store.get("t2")
    assert t2.status == JobStatus.COMPLETED
    assert t2.result_count == 3
    assert service.question_calls == ["t1", "t2"]
    assert service.status_calls == ["t1", "t2", "t2"]

    # Next tick sees nothing pending: no request, scheduler idle.
    assert await state.scheduler.tick() is False
    assert service.status_calls == ["t1", "t2", "t2"]
    assert state.scheduler.state == SchedulerState.IDLE

    await shutdown(state)


@pytest.mark.asyncio
async def test_transport_error_leaves_job_pending_and_retries_next_tick(state, service) -> None:
    service.submit_result = [entry("t1", "F1.hwp")]
    service.statuses = {
        "t1": [TransportError("connection reset"), report(JobStatus.COMPLETED, 0)],
    }

    await state.submitter.submit(upload("F1.hwp"))

    await state.scheduler.tick()
    assert state.store.get("t1").status == JobStatus.QUEUED
    assert state.store.pending_ids() == ("t1",)

    await state.scheduler.tick()
    assert service.status_calls == ["t1", "t1"]
    assert state.store.get("t1").status == JobStatus.COMPLETED
    # Zero questions: nothing to fetch.
    assert service.question_calls == []

    await shutdown(state)


@pytest.mark.asyncio
async def test_one_failing_query_does_not_block_others(state, service) -> None:
    service.submit_result = [entry("t1", "a.hwp"), entry("t2", "b.hwp")]
    service.statuses = {
        "t1": [TransportError("timeout")],
        "t2": [report(JobStatus.COMPLETED, 1)],
    }
    service.questions = {"t2": questions(1)}

    await state.submitter.submit(upload("a.hwp", "b.hwp"))
    await state.scheduler.tick()

    assert state.store.get("t1").status == JobStatus.QUEUED
    assert state.store.get("t2").status == JobStatus.COMPLETED

    await shutdown(state)


@pytest.mark.asyncio
async def test_service_error_marks_job_failed(state, service) -> None:
    service.submit_result = [entry("t1", "F1.hwp")]
    service.statuses = {"t1": [ServiceError("Task not found", status_code=404)]}

    await state.submitter.submit(upload("F1.hwp"))
    await state.scheduler.tick()

    job = state.store.get("t1")
    assert job.status == JobStatus.FAILED
    assert job.error == "Task not found"
    assert state.store.pending_ids() == ()

    await shutdown(state)


@pytest.mark.asyncio
async def test_processing_report_does_not_mutate_store(state, service) -> None:
    service.submit_result = [entry("t1", "F1.hwp")]
    seen: list[str] = []

    await state.submitter.submit(upload("F1.hwp"))
    state.store.subscribe(seen.append)

    await state.scheduler.tick()
    await state.scheduler.tick()

    assert seen == []
    assert state.store.get("t1").status == JobStatus.QUEUED

    await shutdown(state)


@pytest.mark.asyncio
async def test_fetch_happens_once_and_failure_is_swallowed(state, service) -> None:
    service.submit_result = [entry("t1", "F1.hwp")]
    service.statuses = {"t1": [report(JobStatus.COMPLETED, 4)]}
    service.questions = {"t1": TransportError("connection refused")}

    await state.submitter.submit(upload("F1.hwp"))
    await state.scheduler.tick()
    await state.scheduler.tick()
    await state.scheduler.tick()

    job = state.store.get("t1")
    assert job.status == JobStatus.COMPLETED
    assert job.result_count == 4
    assert service.question_calls == ["t1"]
    assert state.results.records_for("t1") is None
    assert "t1" in state.results.failed_ids

    await shutdown(state)


@pytest.mark.asyncio
async def test_fetched_questions_are_published(state, service) -> None:
    service.submit_result = [entry("t1", "F1.hwp")]
    service.statuses = {"t1": [report(JobStatus.COMPLETED, 2)]}
    service.questions = {"t1": questions(2)}

    await state.submitter.submit(upload("F1.hwp"))
    await state.scheduler.tick()

    assert [q.question_number for q in state.results.preview] == [1, 2]
    assert state.results.total_questions(state.store.all()) == 2

    await shutdown(state)


@pytest.mark.asyncio
async def test_field_changes_do_not_restart_timer(state, service, caplog) -> None:
    caplog.set_level(logging.INFO, logger=SCHEDULER_LOGGER)
    service.submit_result = [entry("t1", "F1.hwp")]

    await state.submitter.submit(upload("F1.hwp"))
    state.store.upsert("t1", {"warnings": ["scanned document"]})
    state.store.upsert("t1", {"metadata": {"pages": 4}})

    started = [r for r in caplog.records if "scheduler started" in r.getMessage()]
    assert len(started) == 1
    assert state.scheduler.state == SchedulerState.ACTIVE

    await shutdown(state)


@pytest.mark.asyncio
async def test_new_job_while_active_keeps_single_timer(state, service, caplog) -> None:
    caplog.set_level(logging.INFO, logger=SCHEDULER_LOGGER)

    service.submit_result = [entry("t1", "a.hwp")]
    await state.submitter.submit(upload("a.hwp"))
    service.submit_result = [entry("t2", "b.hwp")]
    await state.submitter.submit(upload("b.hwp"))

    started = [r for r in caplog.records if "scheduler started" in r.getMessage()]
    assert len(started) == 1
    assert state.store.pending_ids() == ("t1", "t2")

    await shutdown(state)


@pytest.mark.asyncio
async def test_start_and_stop_are_idempotent() -> None:
    store = TaskStore()
    scheduler = PollScheduler(store, FakeAnalysisService(), interval_seconds=3600)

    scheduler.stop()
    assert scheduler.state == SchedulerState.IDLE

    store.upsert("a", {"name": "a"})
    scheduler.start()
    scheduler.start()
    assert scheduler.state == SchedulerState.ACTIVE

    scheduler.stop()
    scheduler.stop()
    await asyncio.sleep(0)
    assert scheduler.state == SchedulerState.IDLE
    scheduler.close()


@pytest.mark.asyncio
async def test_scheduler_goes_idle_on_its_own_and_stops_querying(make_state, service) -> None:
    state = make_state(service, poll_interval_seconds=0.01)
    service.submit_result = [entry("t1", "a.hwp"), entry("t2", "b.hwp")]
    service.statuses = {
        "t1": [report(JobStatus.PROCESSING), report(JobStatus.COMPLETED, 1)],
        "t2": [report(JobStatus.FAILED, error="unreadable")],
    }
    service.questions = {"t1": questions(1)}

    await state.submitter.submit(upload("a.hwp", "b.hwp"))
    await asyncio.wait_for(state.scheduler.wait_idle(), timeout=2.0)

    assert state.scheduler.state == SchedulerState.IDLE
    calls = len(service.status_calls)
    await asyncio.sleep(0.05)
    assert len(service.status_calls) == calls
    assert state.store.get("t1").status == JobStatus.COMPLETED
    assert state.store.get("t2").error == "unreadable"

    await shutdown(state)


@pytest.mark.asyncio
async def test_scheduler_restarts_when_new_work_arrives(make_state, service) -> None:
    state = make_state(service, poll_interval_seconds=0.01)
    service.submit_result = [entry("t1", "a.hwp")]
    service.statuses = {"t1": [report(JobStatus.COMPLETED, 0)], "t2": [report(JobStatus.COMPLETED, 0)]}

    await state.submitter.submit(upload("a.hwp"))
    await asyncio.wait_for(state.scheduler.wait_idle(), timeout=2.0)
    assert state.scheduler.state == SchedulerState.IDLE

    service.submit_result = [entry("t2", "b.hwp")]
    await state.submitter.submit(upload("b.hwp"))
    assert state.scheduler.state == SchedulerState.ACTIVE
    await asyncio.wait_for(state.scheduler.wait_idle(), timeout=2.0)
    assert state.store.get("t2").status == JobStatus.COMPLETED

    await shutdown(state)


@pytest.mark.asyncio
async def test_response_after_reset_does_not_recreate_job(state, service) -> None:
    service.submit_result = [entry("t1", "F1.hwp")]
    gate = asyncio.Event()

    async def slow_status(task_id: str):
        service.status_calls.append(task_id)
        await gate.wait()
        return report(JobStatus.COMPLETED, 3)

    service.get_status = slow_status  # type: ignore[method-assign]

    await state.submitter.submit(upload("F1.hwp"))
    tick = asyncio.create_task(state.scheduler.tick())
    await asyncio.sleep(0)

    state.reset()
    gate.set()
    await tick

    assert len(state.store) == 0
    assert service.question_calls == []

    await shutdown(state)


@pytest.mark.asyncio
async def test_gateway_error_page_is_retried_over_http(make_state) -> None:
    replies = [
        httpx.Response(502, text="<html>Bad Gateway</html>"),
        httpx.Response(200, json={"status": "completed", "total_questions": 0}),
    ]
    status_calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/upload":
            return httpx.Response(
                200, json={"files": [{"task_id": "t1", "filename": "F1.hwp", "status": "queued"}]}
            )
        status_calls.append(request.url.path)
        return replies.pop(0)

    service = HttpAnalysisService("http://analysis.test", transport=httpx.MockTransport(handler))
    state = make_state(service)

    await state.submitter.submit(upload("F1.hwp"))

    # Tick 1: proxy error page, job stays pending.
    assert await state.scheduler.tick() is True
    job = state.store.get("t1")
    assert job.status == JobStatus.QUEUED
    assert job.error is None

    # Tick 2: the service answers for real.
    assert await state.scheduler.tick() is True
    assert state.store.get("t1").status == JobStatus.COMPLETED
    assert status_calls == ["/api/status/t1", "/api/status/t1"]

    await shutdown(state)
    await service.aclose()
