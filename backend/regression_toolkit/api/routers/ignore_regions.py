"""
Ignore regions API

- GET /api/diff/ignore-regions?suite_id=...[&test_name=...&viewport=...]
- POST /api/diff/ignore-regions
- DELETE /api/diff/ignore-regions/{region_id}
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from regression_toolkit.api.dependencies import get_services
from regression_toolkit.api.errors import api_exception_handler
from regression_toolkit.api.services import AppServices
from regression_toolkit.visual_testing.regions import IgnoreRegion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/diff/ignore-regions", tags=["ignore-regions"])


class RegionBody(BaseModel):
    x: int
    y: int
    width: int
    height: int
    reason: str | None = None


class CreateIgnoreRegionRequest(BaseModel):
    """Ignore region scoped to a suite, optionally to one test and/or viewport"""

    suite_id: str
    test_name: str | None = None
    viewport: str | None = None
    region: RegionBody


@router.get("")
@api_exception_handler("list_ignore_regions")
async def list_ignore_regions(
    suite_id: str,
    test_name: str | None = None,
    viewport: str | None = None,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    """
    List ignore regions.

    Without test_name/viewport, every stored region of the suite is returned
    with its id and scope. With either filter, the regions that apply to that
    test/viewport are returned.
    """
    if test_name is None and viewport is None:
        regions = services.config_store.list_ignore_regions(suite_id)
    else:
        regions = [
            region.to_dict()
            for region in services.config_store.get_ignore_regions(suite_id, test_name, viewport)
        ]
    return {"count": len(regions), "regions": regions}


@router.post("")
@api_exception_handler("create_ignore_region")
async def create_ignore_region(
    request: CreateIgnoreRegionRequest,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    stored = services.config_store.save_ignore_region(
        request.suite_id,
        IgnoreRegion(**request.region.model_dump()),
        test_name=request.test_name,
        viewport=request.viewport,
    )
    return {"success": True, "region": stored}


@router.delete("/{region_id}")
@api_exception_handler("delete_ignore_region")
async def delete_ignore_region(
    region_id: int,
    services: AppServices = Depends(get_services),
) -> dict[str, Any]:
    services.config_store.delete_ignore_region(region_id)
    return {"success": True}
