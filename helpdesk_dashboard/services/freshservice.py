"""
Freshservice API Client

Provides paginated list access to the Freshservice v2 API for:
- Tickets (with optional pagination metadata)
- Agents (falls back to requesters when the agents endpoint is missing)
- Departments, groups and requesters (contacts)
- Ticket conversations

Each call is a single attempt; throttling is surfaced as RateLimitedError so
the caller can apply admission control and retries.
"""
import httpx
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Union

from helpdesk_dashboard.config import Settings, get_settings
from helpdesk_dashboard.services.errors import FreshserviceError, RateLimitedError
from helpdesk_dashboard.utils.logger import get_logger

logger = get_logger(__name__)

# Response wrapper key per list endpoint
RESOURCE_KEYS = {
    "tickets": "tickets",
    "agents": "agents",
    "requesters": "requesters",
    "departments": "departments",
    "groups": "groups",
}


@dataclass
class Page:
    """One page of a list endpoint"""
    records: List[Dict[str, Any]] = field(default_factory=list)
    total_pages: Optional[int] = None
    total_entries: Optional[int] = None


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_page(payload: Union[Dict[str, Any], List[Any], None], resource: str) -> Page:
    if isinstance(payload, list):
        return Page(records=payload)
    if not isinstance(payload, dict):
        return Page()

    records = payload.get(RESOURCE_KEYS.get(resource, resource))
    meta = payload.get("meta") or {}
    return Page(
        records=records if isinstance(records, list) else [],
        total_pages=meta.get("total_pages"),
        total_entries=meta.get("total_entries"),
    )


class FreshserviceClient:
    """
    Freshservice API integration (single-attempt calls)
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.base_url = settings.FRESHSERVICE_BASE_URL
        self.api_key = settings.freshservice_api_key
        self.headers = {
            "Content-Type": "application/json",
            "Accept": "application/json"
        }
        self.timeout = settings.freshservice_timeout

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        **kwargs
    ) -> Any:
        """
        Make a single HTTP request

        Args:
            method: HTTP method (GET, POST, PUT, etc.)
            endpoint: API endpoint
            **kwargs: Additional arguments for httpx

        Returns:
            Response JSON

        Raises:
            RateLimitedError: On HTTP 429
            FreshserviceError: When the body is not valid JSON
            httpx.HTTPStatusError: On other HTTP errors
            httpx.TimeoutException: On timeout (never treated as throttling)
        """
        url = f"{self.base_url}/{endpoint}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.request(
                method=method,
                url=url,
                auth=(self.api_key, "X"),
                headers=self.headers,
                **kwargs
            )

        if response.status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(f"Freshservice throttled {method} {endpoint} (retry-after={retry_after})")
            raise RateLimitedError(
                f"Rate limit exceeded for {endpoint}",
                retry_after=retry_after
            )

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"API error {e.response.status_code} for {method} {endpoint}")
            raise

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON from {method} {endpoint}")
            raise FreshserviceError(f"Invalid JSON from {endpoint}") from e

    async def list_page(
        self,
        resource: str,
        page: int = 1,
        per_page: int = 30
    ) -> Page:
        """
        Fetch one page of a list endpoint

        Args:
            resource: Endpoint name (tickets, agents, requesters, departments, groups)
            page: 1-based page number
            per_page: Page size (max 100)

        Returns:
            Page with records and optional pagination metadata
        """
        per_page = min(per_page, 100)
        logger.debug(f"Fetching {resource} (page={page}, per_page={per_page})")
        payload = await self._make_request(
            "GET",
            resource,
            params={"page": page, "per_page": per_page}
        )
        result = _parse_page(payload, resource)
        logger.info(f"Fetched {resource} page {page}: {len(result.records)} records")
        return result

    async def get_tickets(self, page: int = 1, per_page: int = 30) -> Page:
        return await self.list_page("tickets", page, per_page)

    async def get_agents(self, page: int = 1, per_page: int = 30) -> Page:
        """Fetch agents, falling back to requesters when agents is not available"""
        try:
            return await self.list_page("agents", page, per_page)
        except httpx.HTTPStatusError as e:
            if e.response.status_code != 404:
                raise
            logger.warning("Agents endpoint not found, falling back to requesters")
            return await self.list_page("requesters", page, per_page)

    async def get_departments(self, page: int = 1, per_page: int = 30) -> Page:
        return await self.list_page("departments", page, per_page)

    async def get_groups(self, page: int = 1, per_page: int = 30) -> Page:
        return await self.list_page("groups", page, per_page)

    async def get_requesters(self, page: int = 1, per_page: int = 30) -> Page:
        return await self.list_page("requesters", page, per_page)

    async def get_ticket_conversations(self, ticket_id: int) -> List[Dict[str, Any]]:
        """
        Fetch conversations for a ticket

        Args:
            ticket_id: Freshservice ticket ID

        Returns:
            List of conversation dictionaries
        """
        payload = await self._make_request("GET", f"tickets/{ticket_id}/conversations")
        if isinstance(payload, dict):
            conversations = payload.get("conversations")
            return conversations if isinstance(conversations, list) else []
        return payload if isinstance(payload, list) else []

    async def test_connection(self) -> bool:
        """Check that the API answers a one-record ticket list"""
        logger.info(f"Testing Freshservice API connection ({self.base_url})")
        try:
            await self._make_request("GET", "tickets", params={"page": 1, "per_page": 1})
        except (httpx.HTTPError, FreshserviceError) as e:
            logger.error(f"Freshservice API connection failed: {e}")
            return False
        logger.info("Freshservice API connection successful")
        return True
