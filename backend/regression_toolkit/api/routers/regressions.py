"""
Regression ledger API

- GET /api/diff/regressions - List regressions for a run
- GET /api/diff/regressions/stats - Status counts for a run
- GET /api/diff/regressions/trends - Daily counts for a suite
- GET /api/diff/regressions/{regression_id} - One regression
- GET /api/diff/regressions/{regression_id}/heatmap - Change density grid
- PUT /api/diff/regressions/{regression_id}/ai-analysis - Attach AI annotation
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from regression_toolkit.api.dependencies import get_services
from regression_toolkit.api.errors import api_exception_handler
from regression_toolkit.api.services import AppServices
from regression_toolkit.core.exceptions import ResourceNotFoundError
from regression_toolkit.visual_testing.comparison import generate_heatmap
from regression_toolkit.visual_testing.image import decode_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/diff/regressions", tags=["regressions"])


class AIAnalysisRequest(BaseModel):
    """Annotation produced by an external vision model"""

    analysis: dict[str, Any]


@router.get("")
@api_exception_handler("list_regressions")
async def list_regressions(
    test_run_id: str,
    status: str | None = None,
    is_significant: bool | None = None,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    """
    List regressions for a test run, largest difference first.

    Args:
        test_run_id: Run ID
        status: Filter by review status
        is_significant: Filter by significance
    """
    regressions = services.ledger.list_regressions(test_run_id, status=status, is_significant=is_significant)
    return {
        "count": len(regressions),
        "regressions": [regression.to_dict() for regression in regressions],
    }


@router.get("/stats")
@api_exception_handler("regression_stats")
async def regression_stats(
    test_run_id: str,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    """Counts by status and significance for a test run"""
    return services.trends.get_stats(test_run_id).to_dict()


@router.get("/trends")
@api_exception_handler("regression_trends")
async def regression_trends(
    suite_id: str,
    days_back: int = Query(30),
    zero_fill: bool = False,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    """Daily regression counts for a suite, oldest first"""
    points = services.trends.get_trends(suite_id, days_back=days_back, zero_fill=zero_fill)
    return {
        "suite_id": suite_id,
        "days_back": days_back,
        "trends": [point.to_dict() for point in points],
        "summary": services.trends.summarize(suite_id, days_back=days_back),
    }


@router.get("/{regression_id}")
@api_exception_handler("get_regression")
async def get_regression(
    regression_id: str,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    return services.ledger.get(regression_id).to_dict()


@router.get("/{regression_id}/heatmap")
@api_exception_handler("regression_heatmap")
async def regression_heatmap(
    regression_id: str,
    grid_size: int = Query(20),
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    """Grid of change densities (0..1) computed from the stored diff image"""
    regression = services.ledger.get(regression_id)
    diff_path = Path(regression.diff_screenshot_url) if regression.diff_screenshot_url else None
    if diff_path is None or not diff_path.is_file():
        raise ResourceNotFoundError("Diff image", regression_id)

    diff_image = decode_image(diff_path.read_bytes(), str(diff_path))
    heatmap = await asyncio.to_thread(generate_heatmap, diff_image, grid_size)
    return {"regression_id": regression_id, "grid_size": grid_size, "heatmap": heatmap}


@router.put("/{regression_id}/ai-analysis")
@api_exception_handler("attach_ai_analysis")
async def attach_ai_analysis(
    regression_id: str,
    request: AIAnalysisRequest,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    regression = services.ledger.attach_ai_analysis(regression_id, request.analysis)
    logger.info(f"Attached AI analysis to regression {regression_id}")
    return regression.to_dict()
