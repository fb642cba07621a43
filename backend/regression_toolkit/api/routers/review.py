"""
Review API

- PUT /api/diff/review - Approve, report as bug, mark as investigating or false positive
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from regression_toolkit.api.dependencies import get_services
from regression_toolkit.api.errors import api_exception_handler
from regression_toolkit.api.services import AppServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/diff/review", tags=["review"])


class ReviewRequest(BaseModel):
    """Review decision for one regression"""

    regression_id: str
    status: str
    notes: str | None = None
    reviewed_by: str | None = None


@router.put("")
@api_exception_handler("review_regression")
async def review_regression(
    request: ReviewRequest,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    """
    Update the review status of a regression.

    Unknown statuses (and "pending", which only the system assigns) are
    rejected with 400 before anything is written.
    """
    regression = services.ledger.update_status(
        request.regression_id,
        request.status,
        notes=request.notes,
        reviewed_by=request.reviewed_by,
    )
    return {"success": True, "regression": regression.to_dict()}
