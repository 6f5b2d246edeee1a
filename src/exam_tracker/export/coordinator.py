# src/exam_tracker/export/coordinator.py

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import date, datetime, timezone
from pathlib import Path

from ..core.ports import AnalysisService
from ..errors import ExamTrackerError, ExportBusyError, ExportError
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)

EXPORT_PREFIX = "exam_questions"


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def export_filename(day: date, extension: str = "xlsx") -> str:
    ext = extension.lstrip(".") or "xlsx"
    return f"{EXPORT_PREFIX}_{day.isoformat()}.{ext}"


class ExportCoordinator:
    """
    Requests one combined spreadsheet for every completed job and saves it locally.

    Local policy (the service is never asked to decide these):
    - only one export may be in flight: a call made while `busy` is set raises
      ExportBusyError without touching the network
    - `busy` is cleared when the in-flight call settles, whatever the outcome
    - no completed jobs -> ExportError, no request is sent
    - the file is named exam_questions_<YYYY-MM-DD>.<ext> from the UTC date
      (`today` overrides the clock) and written atomically into `export_dir`
    """

    def __init__(
            self,
            store: TaskStore,
            service: AnalysisService,
            *,
            export_dir: str | Path = ".",
            extension: str = "xlsx",
            today: Callable[[], date] | None = None,
    ) -> None:
        self._store = store
        self._service = service
        self._export_dir = Path(export_dir)
        self._extension = extension
        self._today = today or utc_today
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    async def export_completed(self) -> Path:
        if self._busy:
            raise ExportBusyError("An export is already in progress.")

        self._busy = True
        try:
            task_ids = list(self._store.completed_ids())
            if not task_ids:
                raise ExportError("No completed jobs to export.")

            logger.info("Exporting %d completed jobs", len(task_ids))
            try:
                content = await self._service.export_excel(task_ids)
            except ExamTrackerError as e:
                logger.warning("Export failed: %s", e)
                raise ExportError(f"Export failed: {e}") from e

            path = self._write(content)
            logger.info("Export saved to %s (%d bytes)", path, len(content))
            return path
        finally:
            self._busy = False

    def _write(self, content: bytes) -> Path:
        path = self._export_dir / export_filename(self._today(), self._extension)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_bytes(content)
            os.replace(tmp, path)
        except OSError as e:
            raise ExportError(f"Cannot save export to {path}: {e.strerror}") from e
        return path
