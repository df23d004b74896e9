"""
Health check endpoints with dependency monitoring

Provides two endpoints:
- GET /api/v1/health - Basic health check
- GET /api/v1/health/dependencies - Freshservice reachability plus cache and
  rate window status
"""
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from helpdesk_dashboard.config import get_settings
from helpdesk_dashboard.routes.dashboard import get_dashboard_service
from helpdesk_dashboard.services.dashboard import DashboardService
from helpdesk_dashboard.services.rate_limiter import TICKETS, RateLimitTracker
from helpdesk_dashboard.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/health", tags=["health"])

# Application start time for uptime calculation
APP_START_TIME = time.time()

# Cache for upstream check results (30 seconds TTL)
_upstream_cache: Optional["DependencyStatus"] = None
_cache_timestamp: float = 0.0
CACHE_TTL_SECONDS = 30.0

CHECK_TIMEOUT_SECONDS = 5.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Pydantic Models
# ============================================================================

class HealthResponse(BaseModel):
    """Basic health check response"""
    status: str = Field(..., description="Overall status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    version: str = Field(..., description="Application version")
    uptime_seconds: float = Field(..., description="Application uptime in seconds")


class DependencyStatus(BaseModel):
    """Status of a single dependency"""
    name: str = Field(..., description="Dependency name")
    status: str = Field(..., description="Status: healthy, degraded, unhealthy")
    latency_ms: Optional[float] = Field(None, description="Response latency in milliseconds")
    error_message: Optional[str] = Field(None, description="Error message if unhealthy")
    details: Optional[Dict[str, Any]] = Field(None, description="Component statistics")


class DependencyHealth(BaseModel):
    """Dependency health check response"""
    overall_status: str = Field(..., description="Overall status: healthy, degraded, unhealthy")
    dependencies: Dict[str, DependencyStatus] = Field(..., description="Individual dependency statuses")
    checked_at: datetime = Field(default_factory=_utcnow, description="Check timestamp")


# ============================================================================
# Dependency Check Functions
# ============================================================================

async def check_freshservice_api(rate_tracker: Optional[RateLimitTracker] = None) -> DependencyStatus:
    """
    Check Freshservice API connectivity with a one-record ticket list

    The check is a ticket-category call on the shared rate window; when the
    window is full it is skipped and reported as degraded. The result is
    cached for CACHE_TTL_SECONDS so checks stay rare.
    """
    settings = get_settings()
    if not settings.freshservice_domain or not settings.freshservice_api_key:
        return DependencyStatus(
            name="freshservice_api",
            status="degraded",
            error_message="API credentials not configured"
        )

    if rate_tracker is not None:
        if not rate_tracker.can_admit(TICKETS):
            logger.warning("Rate window full, skipping Freshservice check")
            return DependencyStatus(
                name="freshservice_api",
                status="degraded",
                error_message="Check skipped: local rate budget exhausted"
            )
        rate_tracker.record_call(TICKETS)

    try:
        start = time.time()
        async with httpx.AsyncClient(timeout=CHECK_TIMEOUT_SECONDS) as client:
            response = await client.get(
                f"{settings.FRESHSERVICE_BASE_URL}/tickets",
                auth=(settings.freshservice_api_key, "X"),
                params={"per_page": 1}
            )
            response.raise_for_status()
        latency = (time.time() - start) * 1000

        return DependencyStatus(
            name="freshservice_api",
            status="healthy",
            latency_ms=round(latency, 2)
        )

    except httpx.TimeoutException:
        logger.error("Freshservice API health check timed out")
        return DependencyStatus(
            name="freshservice_api",
            status="unhealthy",
            error_message=f"Request timed out after {CHECK_TIMEOUT_SECONDS:g} seconds"
        )
    except httpx.HTTPStatusError as e:
        logger.error(f"Freshservice API health check failed: {e}")
        # Throttled means reachable
        health = "degraded" if e.response.status_code == 429 else "unhealthy"
        return DependencyStatus(
            name="freshservice_api",
            status=health,
            error_message=f"HTTP {e.response.status_code}: {str(e)}"
        )
    except httpx.HTTPError as e:
        logger.error(f"Freshservice API health check failed: {e}")
        return DependencyStatus(
            name="freshservice_api",
            status="unhealthy",
            error_message=str(e)
        )


def check_cache(service: DashboardService) -> DependencyStatus:
    return DependencyStatus(name="cache", status="healthy", details=service.cache.stats())


def check_rate_window(service: DashboardService) -> DependencyStatus:
    """Degraded while the ticket budget is exhausted"""
    tracker = service.rate_tracker
    admitting = tracker.can_admit(TICKETS)
    details = dict(tracker.stats())
    if not admitting:
        details["wait_time_ms"] = round(tracker.admission_wait_ms(TICKETS))
    return DependencyStatus(
        name="rate_limit",
        status="healthy" if admitting else "degraded",
        details=details
    )


def determine_overall_status(dependencies: Dict[str, DependencyStatus]) -> str:
    """
    Determine overall system status based on dependency health

    Rules:
    - Freshservice unhealthy -> "unhealthy"
    - Any dependency degraded or unhealthy -> "degraded"
    - All healthy -> "healthy"
    """
    upstream = dependencies.get("freshservice_api")
    if upstream is not None and upstream.status == "unhealthy":
        return "unhealthy"

    if any(dep.status in ("degraded", "unhealthy") for dep in dependencies.values()):
        return "degraded"

    return "healthy"


# ============================================================================
# API Endpoints
# ============================================================================

@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns basic application health status and uptime"
)
async def basic_health_check() -> HealthResponse:
    """
    Basic health check endpoint

    Always returns 200 OK. Does not check external dependencies.
    """
    uptime = time.time() - APP_START_TIME

    return HealthResponse(
        status="healthy",
        version="1.0.0",
        uptime_seconds=round(uptime, 2)
    )


@router.get(
    "/dependencies",
    response_model=DependencyHealth,
    status_code=status.HTTP_200_OK,
    summary="Dependency health check",
    description="Checks Freshservice reachability and reports cache and rate window status"
)
async def dependency_health_check(
    service: DashboardService = Depends(get_dashboard_service)
) -> DependencyHealth:
    """
    Dependency health check endpoint

    The Freshservice check is cached for 30 seconds; cache and rate window
    statistics are always current. Always returns 200 OK.
    """
    global _upstream_cache, _cache_timestamp

    current_time = time.time()
    if _upstream_cache is not None and (current_time - _cache_timestamp) < CACHE_TTL_SECONDS:
        logger.debug("Using cached Freshservice health check result")
        upstream = _upstream_cache
    else:
        logger.info("Performing Freshservice health check")
        upstream = await check_freshservice_api(service.rate_tracker)
        _upstream_cache = upstream
        _cache_timestamp = current_time

    dependencies = {
        "freshservice_api": upstream,
        "cache": check_cache(service),
        "rate_limit": check_rate_window(service),
    }

    unhealthy_deps = [name for name, dep in dependencies.items() if dep.status == "unhealthy"]
    if unhealthy_deps:
        logger.warning(f"Unhealthy dependencies: {', '.join(unhealthy_deps)}")

    return DependencyHealth(
        overall_status=determine_overall_status(dependencies),
        dependencies=dependencies
    )
