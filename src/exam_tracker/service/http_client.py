# src/exam_tracker/service/http_client.py

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

import httpx

from ..errors import MalformedResponseError, ServiceError, TransportError
from ..tasks.task_models import Question, StatusReport, SubmittedEntry, UploadFile

logger = logging.getLogger(__name__)


def _error_detail(resp: httpx.Response) -> str | None:
    """
    Pull the service's {"detail": ...} message out of an error response.

    Returns None when the body is not the service's own error shape
    (a proxy's HTML error page, an empty body, foreign JSON).
    """
    try:
        data = resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(data, dict) and data.get("detail"):
        detail = data["detail"]
        return detail if isinstance(detail, str) else json.dumps(detail, ensure_ascii=False)
    return None


class HttpAnalysisService:
    """
    AnalysisService over HTTP (httpx.AsyncClient).

    Endpoints:
    - POST /api/upload             multipart "files"      -> {"files": [...]}
    - GET  /api/status/{id}                               -> {"status", "total_questions", ...}
    - GET  /api/questions/{id}                            -> {"questions": [...]}
    - POST /api/export/excel       JSON list of ids       -> xlsx bytes

    Errors:
    - any httpx.RequestError -> TransportError
    - HTTP >= 400 with a {"detail": ...} body -> ServiceError
    - HTTP >= 400 with any other body, or an undecodable 2xx body -> MalformedResponseError

    No timeouts are imposed unless `timeout_seconds` is given; httpx defaults apply.
    The client is created lazily so the service object can be built outside the event loop.
    """

    def __init__(
            self,
            base_url: str,
            *,
            timeout_seconds: float | None = None,
            transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url or not base_url.strip():
            raise ValueError("base_url is required")
        self._base_url = base_url.strip().rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client

        kwargs: dict[str, Any] = {"base_url": self._base_url}
        if self._timeout_seconds is not None:
            kwargs["timeout"] = httpx.Timeout(self._timeout_seconds)
        if self._transport is not None:
            kwargs["transport"] = self._transport

        self._client = httpx.AsyncClient(**kwargs)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._get_client().request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise TransportError(f"{method} {url} failed: {e.__class__.__name__}") from e

        if resp.status_code >= 400:
            detail = _error_detail(resp)
            logger.debug("%s %s -> %s %s", method, url, resp.status_code, detail)
            if detail is None:
                # Not from the service itself (gateway, proxy): retryable.
                raise MalformedResponseError(
                    f"{method} {url} -> HTTP {resp.status_code} without service detail"
                )
            raise ServiceError(detail, status_code=resp.status_code)
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedResponseError(f"invalid JSON from {resp.request.url}") from e

    # ---- AnalysisService ----

    async def submit(self, files: Sequence[UploadFile]) -> list[SubmittedEntry]:
        multipart = [("files", (f.filename, f.content)) for f in files]
        resp = await self._request("POST", "/api/upload", files=multipart)
        data = self._json(resp)

        raw_entries = data.get("files") if isinstance(data, dict) else None
        if not isinstance(raw_entries, list):
            logger.warning("Upload response has no files list; nothing to track")
            return []

        entries = [SubmittedEntry.from_payload(item) for item in raw_entries]
        return [e for e in entries if e is not None]

    async def get_status(self, task_id: str) -> StatusReport:
        resp = await self._request("GET", f"/api/status/{task_id}")
        return StatusReport.from_payload(self._json(resp))

    async def get_questions(self, task_id: str) -> list[Question]:
        resp = await self._request("GET", f"/api/questions/{task_id}")
        data = self._json(resp)

        raw = data.get("questions") if isinstance(data, dict) else None
        if not isinstance(raw, list):
            return []
        questions = [Question.from_payload(item) for item in raw]
        return [q for q in questions if q is not None]

    async def export_excel(self, task_ids: Sequence[str]) -> bytes:
        resp = await self._request("POST", "/api/export/excel", json=list(task_ids))
        return resp.content
