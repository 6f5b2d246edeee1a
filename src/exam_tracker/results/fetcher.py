# src/exam_tracker/results/fetcher.py

from __future__ import annotations

import logging

from ..core.ports import AnalysisService
from ..errors import ExamTrackerError
from .view import ResultsView

logger = logging.getLogger(__name__)


class ResultFetcher:
    """
    One-shot fetch of a completed job's question records.

    Failures are non-fatal: the job stays completed with its count and the
    view records the job id in `failed_ids`. There is no automatic retry.
    """

    def __init__(self, service: AnalysisService, view: ResultsView) -> None:
        self._service = service
        self._view = view

    async def fetch_results(self, job_id: str) -> bool:
        try:
            records = await self._service.get_questions(job_id)
        except ExamTrackerError as e:
            logger.warning("Result fetch failed job_id=%s: %s", job_id, e)
            self._view.mark_failed(job_id)
            return False
        except Exception:
            logger.exception("Result fetch crashed job_id=%s", job_id)
            self._view.mark_failed(job_id)
            return False

        self._view.publish(job_id, records)
        logger.info("Fetched %d questions for job_id=%s", len(records), job_id)
        return True
