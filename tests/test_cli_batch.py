# tests/test_cli_batch.py

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from exam_tracker.cli.bootstrap import build_service, create_initial_state
from exam_tracker.cli.main import run_batch
from exam_tracker.service.http_client import HttpAnalysisService
from exam_tracker.service.offline import OfflineAnalysisService
from exam_tracker.tasks.task_models import JobStatus
from exam_tracker.tasks.task_scheduler import SchedulerState


def test_build_service_picks_offline_without_base_url(settings) -> None:
    assert isinstance(build_service(settings), OfflineAnalysisService)

    settings.api_base_url = "http://analysis.test"
    assert isinstance(build_service(settings), HttpAnalysisService)


@pytest.mark.asyncio
async def test_batch_run_against_offline_service(settings, tmp_path: Path, capsys) -> None:
    settings.poll_interval_seconds = 0.01
    docs = []
    for name, body in [("a.hwp", b"x" * 3), ("b.hwpx", b"y" * 14), ("c.pdf", b"z")]:
        p = tmp_path / name
        p.write_bytes(body)
        docs.append(str(p))

    state = create_initial_state(settings=settings)
    try:
        code = await run_batch(state, docs, export=True)
    finally:
        await state.aclose()

    assert code == 0
    assert state.scheduler.state == SchedulerState.IDLE
    statuses = {j.name: j.status for j in state.store.all()}
    assert statuses == {
        "a.hwp": JobStatus.COMPLETED,
        "b.hwpx": JobStatus.COMPLETED,
        "c.pdf": JobStatus.REJECTED,
    }

    exports = list((tmp_path / "exports").glob("exam_questions_*.xlsx"))
    assert len(exports) == 1

    out = capsys.readouterr().out
    assert "Export saved:" in out
    assert "Total questions:" in out


@pytest.mark.asyncio
async def test_batch_reports_undecodable_upload_instead_of_crashing(
        settings, tmp_path: Path, capsys
) -> None:
    doc = tmp_path / "a.hwp"
    doc.write_bytes(b"x")

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.DecodingError("bad content-encoding", request=request)

    service = HttpAnalysisService("http://analysis.test", transport=httpx.MockTransport(handler))
    state = create_initial_state(settings=settings, service=service)
    try:
        code = await run_batch(state, [str(doc)], export=False)
    finally:
        await state.aclose()

    assert code == 1
    assert "Upload failed:" in capsys.readouterr().err
