from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from webanalyzer.features.analysis.dependencies import get_analysis_service
from webanalyzer.features.analysis.schemas.analysis import (
    AnalysisStartRequest,
    AnalysisStartResponse,
    AnalysisStatusResponse,
)
from webanalyzer.features.analysis.services.analysis_service import AnalysisService
from webanalyzer.platform.logger import get_logger
from webanalyzer.platform.response import api_response

logger = get_logger(__name__)

router = APIRouter(tags=["analysis"])


@router.post(
    "/analyze",
    summary="Start an analysis",
    description="""
    Validate the URL, create a pending analysis and queue it for the workers.

    `capabilities` selects a subset of tech, seo, performance, accessibility
    and security; leave it empty to run all of them.

    Private, loopback and otherwise reserved hosts are rejected with 400
    before anything is recorded.
    """,
)
async def start_analysis(
    body: AnalysisStartRequest,
    service: AnalysisService = Depends(get_analysis_service),
):
    record = await service.start_analysis(body.url, body.capabilities)
    return api_response(
        data=AnalysisStartResponse(id=record.id, status=record.status.value, url=record.url),
        message="Analysis queued",
        status_code=status.HTTP_202_ACCEPTED,
        headers={"Location": f"/api/v1/analysis/{record.id}/status"},
    )


@router.get("/analysis/{analysis_id}/status", summary="Get analysis status")
async def get_analysis_status(
    analysis_id: str,
    service: AnalysisService = Depends(get_analysis_service),
):
    record = await service.get_status(analysis_id)
    return api_response(
        data=AnalysisStatusResponse(
            id=record.id,
            status=record.status.value,
            url=record.url,
            created_at=record.created_at,
            updated_at=record.updated_at,
        ),
        message=f"Analysis is {record.status.value}",
    )


@router.get(
    "/analysis/{analysis_id}",
    summary="Get analysis result",
    description="Full record of a completed or failed analysis. Returns 422 while it is still running.",
)
async def get_analysis_result(
    analysis_id: str,
    service: AnalysisService = Depends(get_analysis_service),
):
    record = await service.get_result(analysis_id)
    return api_response(data=record, message="Analysis retrieved successfully")


@router.get("/recent-results", summary="List recent results")
async def list_recent_results(
    limit: Optional[int] = Query(None, description="Number of results (1-100, default 20)"),
    service: AnalysisService = Depends(get_analysis_service),
):
    results = await service.list_recent(limit)
    return api_response(
        data={"results": results, "count": len(results)},
        message="Recent results retrieved successfully",
    )
