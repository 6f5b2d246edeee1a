# tests/conftest.py

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace

import pytest

from exam_tracker.core.ports import AnalysisService
from exam_tracker.core.state import AppState

from .fakes import FakeAnalysisService


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic. The long poll interval keeps
    the timer asleep so tests drive ticks by hand.
    """
    return SimpleNamespace(
        app_name="exam-tracker-test",
        api_base_url="",
        poll_interval_seconds=3600.0,
        export_dir=tmp_path / "exports",
        export_extension="xlsx",
        data_dir=tmp_path / "data",
        offline_polls_to_complete=2,
        http_timeout_seconds=None,
    )


@pytest.fixture()
def service() -> FakeAnalysisService:
    return FakeAnalysisService()


@pytest.fixture()
def make_state(settings: SimpleNamespace) -> Callable[..., AppState]:
    def _make(service: AnalysisService, **overrides) -> AppState:
        s = SimpleNamespace(**{**vars(settings), **overrides})
        return AppState.build(s, service)

    return _make


@pytest.fixture()
def state(make_state, service: FakeAnalysisService) -> AppState:
    """AppState wired with the scripted fake service."""
    return make_state(service)
