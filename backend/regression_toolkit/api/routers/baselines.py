"""
Baselines API

- GET /api/diff/baselines?suite_id=... - Current baseline of a suite
- POST /api/diff/baselines - Designate a run as the suite baseline
- DELETE /api/diff/baselines?suite_id=... - Clear the suite baseline
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from regression_toolkit.api.dependencies import get_services
from regression_toolkit.api.errors import api_exception_handler
from regression_toolkit.api.services import AppServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/diff/baselines", tags=["baselines"])


class SetBaselineRequest(BaseModel):
    """Request to set a suite baseline"""

    suite_id: str
    run_id: str
    notes: str | None = None


@router.get("")
@api_exception_handler("get_baseline")
async def get_baseline(
    suite_id: str,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    baseline = services.registry.get(suite_id)
    return {
        "has_baseline": baseline.is_set,
        "baseline": baseline.to_dict() if baseline.is_set else None,
    }


@router.post("")
@api_exception_handler("set_baseline")
async def set_baseline(
    request: SetBaselineRequest,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    """Set the baseline; the run must belong to the suite and have completed results"""
    baseline = services.registry.set(request.suite_id, request.run_id, request.notes)
    return {"success": True, "baseline": baseline.to_dict()}


@router.delete("")
@api_exception_handler("clear_baseline")
async def clear_baseline(
    suite_id: str,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    services.registry.clear(suite_id)
    return {"success": True, "message": "Baseline cleared"}
