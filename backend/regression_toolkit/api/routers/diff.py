"""
Screenshot comparison API

- POST /api/diff/compare - Compare two uploaded screenshots
- POST /api/diff/batch-compare - Run regression analysis for a whole test run
"""

import asyncio
import base64
import logging
from typing import Any

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from regression_toolkit.api.dependencies import get_services
from regression_toolkit.api.errors import ErrorCode, api_exception_handler, create_error_response
from regression_toolkit.api.services import AppServices
from regression_toolkit.core.exceptions import PersistenceFailureError, ValidationError
from regression_toolkit.storage.config_store import validate_threshold
from regression_toolkit.visual_testing.comparison import ComparisonOptions
from regression_toolkit.visual_testing.image import decode_image
from regression_toolkit.visual_testing.models import NewRegression

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/diff", tags=["diff"])


class BatchCompareRequest(BaseModel):
    """Request to analyze a test run against its suite baseline"""

    test_run_id: str
    timeout: float | None = None


@router.post("/compare")
@api_exception_handler("compare_screenshots")
async def compare_screenshots(
    baseline: UploadFile = File(...),
    current: UploadFile = File(...),
    suite_id: str | None = Form(None),
    test_name: str | None = Form(None),
    viewport: str | None = Form(None),
    step_name: str | None = Form(None),
    test_run_id: str | None = Form(None),
    baseline_run_id: str | None = Form(None),
    threshold: float | None = Form(None),
    include_antialiasing: bool = Form(False),
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    """
    Compare two screenshots.

    Threshold and ignore regions come from the suite configuration when
    suite_id is given; an explicit threshold overrides it. When test_run_id is
    given the outcome is recorded in the ledger.
    """
    if test_run_id and not (test_name and viewport):
        raise ValidationError("test_name and viewport are required to record a regression")

    if threshold is not None:
        threshold = validate_threshold(threshold)
    elif suite_id:
        threshold = services.config_store.get_threshold(suite_id, viewport)
    else:
        threshold = services.config_store.default_threshold

    regions = (
        services.config_store.get_ignore_regions(suite_id, test_name, viewport) if suite_id else []
    )

    baseline_image = await asyncio.to_thread(
        decode_image, await baseline.read(), baseline.filename or "baseline"
    )
    current_image = await asyncio.to_thread(
        decode_image, await current.read(), current.filename or "current"
    )

    settings = services.settings
    options = ComparisonOptions(
        threshold=threshold,
        include_antialiasing=include_antialiasing,
        ignore_regions=regions,
        pixel_threshold=settings.pixel_threshold,
        diff_alpha=settings.diff_alpha,
    )
    result = await asyncio.to_thread(
        services.comparator.compare, baseline_image, current_image, options
    )
    diff_png = await asyncio.to_thread(result.diff_png)

    regression_id = None
    if test_run_id:
        try:
            regression_id = services.ledger.append(
                NewRegression(
                    test_run_id=test_run_id,
                    baseline_run_id=baseline_run_id,
                    test_name=test_name,
                    viewport=viewport,
                    step_name=step_name,
                    comparison=result,
                    baseline_screenshot_url=baseline.filename,
                    current_screenshot_url=current.filename,
                )
            )
        except PersistenceFailureError as e:
            raise create_error_response(
                ErrorCode.PERSISTENCE_FAILURE,
                f"Comparison succeeded but failed to save: {e.message}",
                500,
                recovery_hint=e.recovery_hint or None,
            )

    return {
        "success": True,
        "comparison": {
            **result.to_dict(),
            "diff_image": base64.b64encode(diff_png).decode("ascii"),
        },
        "regression_id": regression_id,
    }


@router.post("/batch-compare")
@api_exception_handler("batch_compare")
async def batch_compare(
    request: BatchCompareRequest,
    services: AppServices = Depends(get_services),
):
    """
    Run regression analysis for an entire test run.

    Returns 400 with success=false when the analysis cannot start (unknown
    run, no baseline); per-pair failures are listed in the report.
    """
    report = await services.orchestrator.run_regression_analysis(
        request.test_run_id, timeout=request.timeout
    )

    if not report.success:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": report.message or "Regression analysis failed"},
        )

    return report.to_dict()
