"""
Paginated Fetch Orchestrator

Assembles in-memory collections from Freshservice list endpoints while
respecting the shared cache and rate budget:
- Tickets: adaptive page budget from response metadata, early termination
  once enough recent tickets are held, graceful halt on mid-pagination errors
- Agents, departments, groups, requesters: at most two pages each; failures
  degrade to an empty collection
- Conversations: single rate-guarded call per ticket

Pages are fetched strictly sequentially; every remote call is admitted by the
RateLimitTracker first.
"""
import asyncio
import math
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from helpdesk_dashboard.config import Settings, get_settings
from helpdesk_dashboard.models.schemas import (
    Agent,
    Contact,
    Conversation,
    Department,
    Group,
    Ticket,
)
from helpdesk_dashboard.services.cache import TTLCache
from helpdesk_dashboard.services.errors import FreshserviceError, RateLimitedError
from helpdesk_dashboard.services.freshservice import FreshserviceClient, Page
from helpdesk_dashboard.services.rate_limiter import (
    AGENTS,
    OTHER,
    TICKETS,
    Category,
    RateLimitTracker,
)
from helpdesk_dashboard.services.retry import with_rate_limit_retry
from helpdesk_dashboard.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

ALL_TICKETS_KEY = "all_tickets"

# Why ticket pagination stopped
STOP_LAST_PAGE = "last_page"
STOP_TOTAL_PAGES = "total_pages"
STOP_BUDGET = "budget"
STOP_EARLY = "early_termination"
STOP_THROTTLED = "throttled"
STOP_ERROR = "error"
STOP_CACHED = "cached"


def page_cache_key(resource: str, page: int, per_page: int) -> str:
    return f"{resource}_{page}_{per_page}"


def _convert(records: List[Dict[str, Any]], model: Type[M]) -> List[M]:
    converted = []
    for record in records:
        try:
            converted.append(model.from_api(record))
        except (ValidationError, TypeError, AttributeError) as e:
            record_id = record.get("id") if isinstance(record, dict) else None
            logger.warning(f"Skipping malformed {model.__name__} record (id={record_id}): {e}")
    return converted


class DataFetcher:
    """
    Cache- and rate-aware collection loader

    Args:
        client: Freshservice API client
        cache: Shared TTL cache
        rate_tracker: Shared admission controller
        settings: Application settings
    """

    def __init__(
        self,
        client: FreshserviceClient,
        cache: TTLCache,
        rate_tracker: RateLimitTracker,
        settings: Optional[Settings] = None
    ):
        self.client = client
        self.cache = cache
        self.rate_tracker = rate_tracker
        self.settings = settings or get_settings()
        self.last_stop_reason: Optional[str] = None
        self.last_pages_fetched = 0

    # ------------------------------------------------------------------
    # Rate-guarded calls
    # ------------------------------------------------------------------

    async def _await_admission(self, category: Category) -> None:
        """Wait briefly for the window to free up, or refuse the call"""
        if self.rate_tracker.can_admit(category):
            return

        wait_seconds = self.rate_tracker.admission_wait_ms(category) / 1000
        if wait_seconds > self.settings.rate_limit_max_wait_seconds:
            raise RateLimitedError(
                f"Local rate budget exhausted for {category}",
                retry_after=math.ceil(wait_seconds),
                local=True
            )

        logger.info(f"Rate window full, waiting {wait_seconds:.1f}s before next {category} call")
        await asyncio.sleep(wait_seconds)

        if not self.rate_tracker.can_admit(category):
            raise RateLimitedError(
                f"Local rate budget exhausted for {category}",
                retry_after=math.ceil(self.rate_tracker.admission_wait_ms(category) / 1000),
                local=True
            )

    async def _call(self, category: Category, request: Callable[[], Awaitable[T]]) -> T:
        """Admit, record and run one remote call with throttling retries"""
        await self._await_admission(category)

        async def attempt() -> T:
            self.rate_tracker.record_call(category)
            return await request()

        return await with_rate_limit_retry(
            attempt,
            max_attempts=self.settings.retry_max_attempts,
            base_delay_ms=self.settings.retry_base_delay_ms
        )

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    async def _fetch_ticket_page(self, page: int, per_page: int, force_refresh: bool) -> Page:
        key = page_cache_key("tickets", page, per_page)
        if not force_refresh:
            found, cached = self.cache.lookup(key)
            if found:
                logger.debug(f"Cache hit for {key}")
                return cached

        result = await self._call(TICKETS, lambda: self.client.get_tickets(page, per_page))
        self.cache.set(key, result, ttl=self.settings.cache_tickets_ttl)
        return result

    def _page_budget(self, first_page: Page, per_page: int) -> int:
        """Number of pages to fetch, adapted from page-1 metadata"""
        budget = self.settings.ticket_page_budget

        if first_page.total_entries and first_page.total_entries > self.settings.large_dataset_threshold:
            needed = math.ceil(first_page.total_entries / per_page)
            budget = min(self.settings.ticket_page_ceiling, max(budget, needed))

        if first_page.total_pages and first_page.total_pages < budget:
            budget = first_page.total_pages

        return budget

    def _should_stop_early(self, tickets: List[Ticket], now: datetime) -> bool:
        if len(tickets) < self.settings.early_stop_min_records:
            return False
        recent_start = now - timedelta(days=self.settings.early_stop_recent_days)
        recent = sum(
            1 for ticket in tickets
            if ticket.created_at is not None and ticket.created_at >= recent_start
        )
        return recent >= self.settings.early_stop_recent_min

    async def fetch_tickets(
        self,
        force_refresh: bool = False,
        now: Optional[datetime] = None
    ) -> List[Ticket]:
        """
        Fetch the ticket collection page by page

        Args:
            force_refresh: Skip cache reads (results are still cached)
            now: Reference time for the early-termination heuristic

        Returns:
            Tickets in fetch order

        Raises:
            RateLimitedError, httpx.HTTPError: Only when page 1 cannot be fetched
        """
        if not force_refresh:
            found, cached = self.cache.lookup(ALL_TICKETS_KEY)
            if found:
                logger.info(f"Using cached ticket collection ({len(cached)} tickets)")
                self.last_stop_reason = STOP_CACHED
                self.last_pages_fetched = 0
                return cached

        now = now or datetime.now(dt_timezone.utc)
        per_page = self.settings.tickets_per_page
        delay = self.settings.inter_page_delay_ms / 1000

        first_page = await self._fetch_ticket_page(1, per_page, force_refresh)
        tickets = _convert(first_page.records, Ticket)
        pages_fetched = 1
        budget = self._page_budget(first_page, per_page)
        logger.info(
            f"Page 1: {len(first_page.records)} tickets "
            f"(total_pages={first_page.total_pages}, total_entries={first_page.total_entries}, budget={budget})"
        )

        stop_reason = STOP_BUDGET
        if len(first_page.records) < per_page:
            stop_reason = STOP_LAST_PAGE
        elif first_page.total_pages is not None and first_page.total_pages <= 1:
            stop_reason = STOP_TOTAL_PAGES
        else:
            page = 2
            while True:
                if first_page.total_pages is not None and page > first_page.total_pages:
                    stop_reason = STOP_TOTAL_PAGES
                    break
                if page > budget:
                    stop_reason = STOP_BUDGET
                    break
                if self._should_stop_early(tickets, now):
                    logger.info(f"Enough recent tickets after {pages_fetched} pages, stopping early")
                    stop_reason = STOP_EARLY
                    break

                if delay > 0:
                    await asyncio.sleep(delay)

                try:
                    result = await self._fetch_ticket_page(page, per_page, force_refresh)
                except RateLimitedError as e:
                    logger.warning(f"Rate limited on page {page}, keeping {len(tickets)} tickets: {e}")
                    stop_reason = STOP_THROTTLED
                    break
                except (httpx.HTTPError, FreshserviceError) as e:
                    logger.warning(f"Error fetching page {page}, keeping {len(tickets)} tickets: {e}")
                    stop_reason = STOP_ERROR
                    break

                tickets.extend(_convert(result.records, Ticket))
                pages_fetched += 1
                logger.info(f"Page {page}: {len(result.records)} tickets (total: {len(tickets)})")

                if len(result.records) < per_page:
                    stop_reason = STOP_LAST_PAGE
                    break
                page += 1

        self.last_stop_reason = stop_reason
        self.last_pages_fetched = pages_fetched
        logger.info(f"Fetched {len(tickets)} tickets from {pages_fetched} pages (stopped: {stop_reason})")

        # A halted pull is not a complete collection
        if stop_reason not in (STOP_THROTTLED, STOP_ERROR):
            self.cache.set(ALL_TICKETS_KEY, tickets, ttl=self.settings.cache_all_tickets_ttl)

        return tickets

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    async def _fetch_reference(
        self,
        resource: str,
        request: Callable[[int, int], Awaitable[Page]],
        model: Type[M],
        category: Category,
        force_refresh: bool,
        strict: bool = False
    ) -> List[M]:
        """
        Fetch a small collection (at most two pages)

        Failures are logged and yield an empty list unless `strict` is set,
        in which case they propagate to the caller.
        """
        key = f"all_{resource}"
        if not force_refresh:
            found, cached = self.cache.lookup(key)
            if found:
                return cached

        per_page = self.settings.reference_per_page
        try:
            first = await self._call(category, lambda: request(1, per_page))
            records = list(first.records)
            if len(first.records) >= per_page:
                second = await self._call(category, lambda: request(2, per_page))
                records.extend(second.records)
                if len(second.records) >= per_page:
                    logger.warning(f"{resource} has more than {2 * per_page} records; only two pages are loaded")
        except (httpx.HTTPError, FreshserviceError) as e:
            if strict:
                raise
            logger.warning(f"Failed to fetch {resource}, continuing without it: {e}")
            return []

        items = _convert(records, model)
        logger.info(f"Retrieved {len(items)} {resource}")
        self.cache.set(key, items, ttl=self.settings.cache_reference_ttl)
        return items

    async def fetch_agents(self, force_refresh: bool = False, strict: bool = False) -> List[Agent]:
        return await self._fetch_reference(
            "agents", self.client.get_agents, Agent, AGENTS, force_refresh, strict=strict
        )

    async def fetch_departments(self, force_refresh: bool = False) -> List[Department]:
        return await self._fetch_reference("departments", self.client.get_departments, Department, OTHER, force_refresh)

    async def fetch_groups(self, force_refresh: bool = False) -> List[Group]:
        return await self._fetch_reference("groups", self.client.get_groups, Group, OTHER, force_refresh)

    async def fetch_contacts(self, force_refresh: bool = False) -> List[Contact]:
        return await self._fetch_reference("requesters", self.client.get_requesters, Contact, OTHER, force_refresh)

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def fetch_conversations(self, ticket_id: int) -> List[Conversation]:
        """Fetch one ticket's conversations (cached with the ticket TTL)"""
        key = f"conversations_{ticket_id}"
        found, cached = self.cache.lookup(key)
        if found:
            return cached

        records = await self._call(TICKETS, lambda: self.client.get_ticket_conversations(ticket_id))
        conversations = _convert(records, Conversation)
        self.cache.set(key, conversations, ttl=self.settings.cache_tickets_ttl)
        return conversations

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    async def check_connection(self) -> bool:
        """
        One-record ticket check, counted against the rate window

        Raises:
            RateLimitedError: When the local budget refuses the check
        """
        await self._await_admission(TICKETS)
        self.rate_tracker.record_call(TICKETS)
        return await self.client.test_connection()
