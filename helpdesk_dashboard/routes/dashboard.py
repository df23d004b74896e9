"""
Dashboard API routes

- GET  /api/v1/dashboard              - Aggregated dashboard for a filter selection
- GET  /api/v1/dashboard/agents       - Scored agents for the agent filter
- GET  /api/v1/dashboard/connection   - Freshservice connectivity test
- POST /api/v1/dashboard/cache/clear  - Drop every cached collection
"""
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from helpdesk_dashboard.models.dashboard import (
    AgentListResult,
    ConnectionResult,
    DashboardResult,
)
from helpdesk_dashboard.models.schemas import FilterCriteria, TimeRange
from helpdesk_dashboard.services.dashboard import DashboardService
from helpdesk_dashboard.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


@lru_cache()
def get_dashboard_service() -> DashboardService:
    """Process-wide service (one cache, one rate tracker)"""
    return DashboardService()


class CacheClearResponse(BaseModel):
    success: bool = True
    cleared_entries: int = Field(..., description="Entries held before clearing")


def parse_agent_id(agent_id: str) -> object:
    value = agent_id.strip().lower()
    if value in ("", "all"):
        return "all"
    try:
        return int(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"agent_id must be an integer or 'all', got {agent_id!r}"
        )


@router.get(
    "",
    response_model=DashboardResult,
    summary="Dashboard data",
    description="Fetches, filters and aggregates tickets for the selected window"
)
async def get_dashboard(
    time_range: TimeRange = Query(TimeRange.WEEK, description="today, week, month or quarter"),
    agent_id: str = Query("all", description="Responder id or 'all'"),
    priority: Optional[List[int]] = Query(None, description="Allowed priority codes (repeatable)"),
    ticket_status: Optional[List[int]] = Query(None, alias="status", description="Allowed status codes (repeatable)"),
    force_refresh: bool = Query(False, description="Bypass cached collections"),
    service: DashboardService = Depends(get_dashboard_service)
) -> DashboardResult:
    """
    Aggregated dashboard

    Upstream failures are reported in the envelope (`success=false` with
    `error_type`), so this endpoint answers 200 whenever the request itself
    is valid.
    """
    criteria = FilterCriteria(
        time_range=time_range,
        agent_id=parse_agent_id(agent_id),
        priority=priority or None,
        status=ticket_status or None,
        force_refresh=force_refresh,
    )
    return await service.fetch_dashboard_data(criteria)


@router.get("/agents", response_model=AgentListResult, summary="Scored agents")
async def get_agents(service: DashboardService = Depends(get_dashboard_service)) -> AgentListResult:
    return await service.fetch_agent_list()


@router.get("/connection", response_model=ConnectionResult, summary="Freshservice connectivity")
async def test_connection(service: DashboardService = Depends(get_dashboard_service)) -> ConnectionResult:
    return await service.test_api_connection()


@router.post("/cache/clear", response_model=CacheClearResponse, summary="Clear cached data")
async def clear_cache(service: DashboardService = Depends(get_dashboard_service)) -> CacheClearResponse:
    entries = service.cache.stats()["entries"]
    service.clear_cache()
    logger.info(f"Cache cleared via API ({entries} entries)")
    return CacheClearResponse(cleared_entries=entries)
