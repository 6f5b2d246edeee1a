# src/exam_tracker/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the engine.

The engine depends on Protocols instead of concrete implementations.
This keeps the HTTP client and the offline demo service swappable and makes testing easier.
"""

from collections.abc import Sequence
from typing import Protocol

from ..tasks.task_models import Question, StatusReport, SubmittedEntry, UploadFile


class AnalysisService(Protocol):
    """
    Remote question-analysis service.

    Implementations raise:
    - TransportError when the request could not complete
    - ServiceError when the service answered with an error response
    """

    async def submit(self, files: Sequence[UploadFile]) -> list[SubmittedEntry]: ...

    async def get_status(self, task_id: str) -> StatusReport: ...

    async def get_questions(self, task_id: str) -> list[Question]: ...

    async def export_excel(self, task_ids: Sequence[str]) -> bytes: ...

    async def aclose(self) -> None: ...
