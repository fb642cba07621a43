"""
Thresholds API

- GET /api/diff/thresholds?suite_id=...[&viewport=...]
- PUT /api/diff/thresholds
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from regression_toolkit.api.dependencies import get_services
from regression_toolkit.api.errors import api_exception_handler
from regression_toolkit.api.services import AppServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/diff/thresholds", tags=["thresholds"])


class SetThresholdRequest(BaseModel):
    """Significance threshold (fraction 0.0 - 1.0) for a suite and viewport"""

    suite_id: str
    viewport: str
    threshold: float


@router.get("")
@api_exception_handler("get_threshold")
async def get_threshold(
    suite_id: str,
    viewport: str | None = None,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    """Effective threshold for a viewport plus all stored overrides"""
    return {
        "suite_id": suite_id,
        "viewport": viewport,
        "threshold": services.config_store.get_threshold(suite_id, viewport),
        "default_threshold": services.config_store.default_threshold,
        "configured": services.config_store.list_thresholds(suite_id),
    }


@router.put("")
@api_exception_handler("set_threshold")
async def set_threshold(
    request: SetThresholdRequest,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    stored = services.config_store.set_threshold(request.suite_id, request.viewport, request.threshold)
    return {"success": True, "threshold": stored}
