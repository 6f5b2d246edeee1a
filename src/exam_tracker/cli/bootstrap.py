# src/exam_tracker/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks the analysis service (HTTP when a base URL is configured, offline demo otherwise),
- wires the engine into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import AnalysisService
from ..core.state import AppState
from ..service.http_client import HttpAnalysisService
from ..service.offline import OfflineAnalysisService

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.export_dir.mkdir(parents=True, exist_ok=True)


def build_service(settings) -> AnalysisService:
    base_url = str(getattr(settings, "api_base_url", "") or "")
    if not base_url:
        logger.info("No EXAM_API_BASE_URL set; using the offline demo service.")
        return OfflineAnalysisService(
            polls_to_complete=int(getattr(settings, "offline_polls_to_complete", 2)),
        )
    logger.info("Using analysis service at %s", base_url)
    return HttpAnalysisService(
        base_url,
        timeout_seconds=getattr(settings, "http_timeout_seconds", None),
    )


def create_initial_state(*, settings=None, service: AnalysisService | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the service) injectable makes the app easier to test.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if service is None:
        service = build_service(settings)

    return AppState.build(settings, service)
