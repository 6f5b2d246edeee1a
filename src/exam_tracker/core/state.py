# src/exam_tracker/core/state.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..export.coordinator import ExportCoordinator
from ..results.fetcher import ResultFetcher
from ..results.view import ResultsView
from ..tasks.task_api import SubmissionHandler
from ..tasks.task_scheduler import PollScheduler
from ..tasks.task_store import TaskStore
from .ports import AnalysisService

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """
    One tracking session.

    The store is owned here and only mutated through the engine components;
    connectors read `store.all()` / `results` and call the operations.
    """

    settings: Any
    service: AnalysisService

    store: TaskStore
    results: ResultsView
    submitter: SubmissionHandler
    fetcher: ResultFetcher
    scheduler: PollScheduler
    exporter: ExportCoordinator

    @classmethod
    def build(cls, settings: Any, service: AnalysisService) -> AppState:
        store = TaskStore()
        results = ResultsView()
        fetcher = ResultFetcher(service, results)
        scheduler = PollScheduler(
            store,
            service,
            fetcher.fetch_results,
            interval_seconds=float(getattr(settings, "poll_interval_seconds", 1.5)),
        )
        exporter = ExportCoordinator(
            store,
            service,
            export_dir=getattr(settings, "export_dir", "."),
            extension=str(getattr(settings, "export_extension", "xlsx")),
        )
        return cls(
            settings=settings,
            service=service,
            store=store,
            results=results,
            submitter=SubmissionHandler(store, service),
            fetcher=fetcher,
            scheduler=scheduler,
            exporter=exporter,
        )

    def reset(self) -> None:
        """End the session: stop polling, drop every job and published result."""
        self.scheduler.stop()
        self.scheduler.forget_fetched()
        self.store.clear()
        self.results.clear()
        logger.info("Session reset")

    async def aclose(self) -> None:
        self.scheduler.close()
        await self.service.aclose()
