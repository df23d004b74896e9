"""
Dashboard Assembly

Runs one aggregation pass: fetch -> filter -> aggregate, and wraps the
outcome in a success/failure envelope. One DashboardService (and therefore
one cache and one rate tracker) is shared by every request in the process.
"""
from datetime import datetime, timezone as dt_timezone
from typing import Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from helpdesk_dashboard.config import Settings, get_settings
from helpdesk_dashboard.models.dashboard import (
    AgentListResult,
    AgentOption,
    ConnectionResult,
    DashboardData,
    DashboardResult,
)
from helpdesk_dashboard.models.schemas import (
    Agent,
    Contact,
    Department,
    FilterCriteria,
    Ticket,
    TimeRange,
)
from helpdesk_dashboard.services.agent_scoring import (
    build_agent_scorecards,
    select_scored_agents,
    workload_distribution,
)
from helpdesk_dashboard.services.cache import TTLCache
from helpdesk_dashboard.services.errors import FreshserviceError, RateLimitedError
from helpdesk_dashboard.services.fetcher import DataFetcher
from helpdesk_dashboard.services.filters import filter_tickets
from helpdesk_dashboard.services.freshservice import FreshserviceClient
from helpdesk_dashboard.services.metrics import (
    build_stats,
    first_response_minutes,
    resolution_time_histogram,
    ticket_funnel,
    tickets_by_category,
    tickets_by_priority,
    tickets_by_status,
    tickets_trend,
)
from helpdesk_dashboard.services.rate_limiter import RateLimitTracker
from helpdesk_dashboard.utils.logger import get_logger

logger = get_logger(__name__)


def rate_limited_message(error: RateLimitedError) -> str:
    if error.retry_after:
        return f"API rate limit reached. Please wait about {error.retry_after:.0f} seconds before refreshing."
    return "API rate limit reached. Please wait a moment before refreshing."


class DashboardService:
    """
    Dashboard entry point

    Args:
        client: Freshservice API client (created from settings when omitted)
        cache: Shared TTL cache
        rate_tracker: Shared admission controller
        settings: Application settings
    """

    def __init__(
        self,
        client: Optional[FreshserviceClient] = None,
        cache: Optional[TTLCache] = None,
        rate_tracker: Optional[RateLimitTracker] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()
        self.client = client or FreshserviceClient(self.settings)
        self.cache = cache or TTLCache(default_ttl=self.settings.cache_default_ttl)
        self.rate_tracker = rate_tracker or RateLimitTracker(
            overall_limit=self.settings.rate_limit_overall,
            tickets_limit=self.settings.rate_limit_tickets,
            window_seconds=self.settings.rate_limit_window_seconds
        )
        self.fetcher = DataFetcher(self.client, self.cache, self.rate_tracker, self.settings)

        try:
            self.timezone = ZoneInfo(self.settings.report_timezone)
        except ZoneInfoNotFoundError:
            logger.warning(f"Unknown report timezone {self.settings.report_timezone!r}, using UTC")
            self.timezone = dt_timezone.utc

    def now(self) -> datetime:
        return datetime.now(self.timezone)

    def _scored_agents(self, agents, departments, groups) -> List[Agent]:
        return select_scored_agents(
            agents,
            department_id=self.settings.scored_department_id,
            department_name=self.settings.scored_department_name,
            departments=departments,
            groups=groups,
            group_ids=self.settings.scored_groups
        )

    async def sample_first_responses(
        self,
        tickets: Sequence[Ticket],
        agent_ids: Sequence[int]
    ) -> Dict[int, float]:
        """
        First-response minutes for a bounded sample of tickets

        Picks the most recently updated tickets handled by scored agents and
        reads their conversations. Stops quietly on throttling or errors.
        """
        limit = self.settings.conversation_sample_size
        if limit <= 0:
            return {}

        wanted = set(agent_ids)
        candidates = [
            t for t in tickets
            if t.responsible_agent_id in wanted and t.created_at is not None
        ]
        oldest = datetime.min.replace(tzinfo=dt_timezone.utc)
        candidates.sort(key=lambda t: t.updated_at or oldest, reverse=True)

        sampled: Dict[int, float] = {}
        for ticket in candidates[:limit]:
            try:
                conversations = await self.fetcher.fetch_conversations(ticket.id)
            except RateLimitedError as e:
                logger.warning(f"Stopping conversation sampling, rate limited: {e}")
                break
            except (httpx.HTTPError, FreshserviceError) as e:
                logger.warning(f"Stopping conversation sampling after error on ticket {ticket.id}: {e}")
                break

            minutes = first_response_minutes(ticket, conversations)
            if minutes is not None:
                sampled[ticket.id] = minutes

        logger.info(f"Sampled first responses for {len(sampled)} tickets")
        return sampled

    def filter(self, tickets: Sequence[Ticket], criteria: FilterCriteria, now: datetime) -> List[Ticket]:
        return filter_tickets(
            tickets,
            criteria,
            now=now,
            preferred_workspaces=self.settings.preferred_workspaces,
            excluded_keywords=self.settings.exclusion_vocabulary
        )

    def aggregate(
        self,
        filtered: Sequence[Ticket],
        time_range: TimeRange,
        scored: Sequence[Agent],
        departments: Sequence[Department],
        contacts: Sequence[Contact],
        now: datetime,
        sampled: Optional[Dict[int, float]] = None
    ) -> DashboardData:
        """Aggregate an already-filtered ticket set (no remote calls)"""
        scorecards = build_agent_scorecards(
            filtered,
            scored,
            sampled_responses=sampled,
            tz=now.tzinfo,
            fcr_threshold_hours=self.settings.fcr_threshold_hours
        )

        return DashboardData(
            tickets_by_status=tickets_by_status(filtered),
            tickets_by_priority=tickets_by_priority(filtered),
            tickets_by_category=tickets_by_category(
                filtered, departments, contacts, limit=self.settings.category_limit
            ),
            tickets_trend=tickets_trend(filtered, time_range, now),
            ticket_funnel=ticket_funnel(filtered),
            resolution_times=resolution_time_histogram(filtered),
            agent_performance=scorecards,
            agent_workload=workload_distribution(scorecards),
            stats=build_stats(filtered, len(scored), now, sampled),
        )

    async def fetch_dashboard_data(self, criteria: Optional[FilterCriteria] = None) -> DashboardResult:
        """
        Produce the aggregated result envelope for a filter selection

        Never raises for upstream failures; throttling and generic failures
        are reported through `error_type`.
        """
        criteria = criteria or FilterCriteria()
        logger.info(f"Fetching dashboard data with filters: {criteria.model_dump()}")
        force = criteria.force_refresh
        now = self.now()

        try:
            tickets = await self.fetcher.fetch_tickets(force_refresh=force, now=now)
        except RateLimitedError as e:
            logger.error(f"Ticket fetch throttled: {e}")
            return DashboardResult(
                success=False,
                error=rate_limited_message(e),
                error_type="rate_limited",
                retry_after_seconds=e.retry_after,
            )
        except (httpx.HTTPError, FreshserviceError) as e:
            logger.error(f"Ticket fetch failed: {e}")
            return DashboardResult(
                success=False,
                error=f"Failed to fetch dashboard data: {e}",
                error_type="unavailable",
            )

        agents = await self.fetcher.fetch_agents(force_refresh=force)
        departments = await self.fetcher.fetch_departments(force_refresh=force)
        groups = await self.fetcher.fetch_groups(force_refresh=force)
        contacts = await self.fetcher.fetch_contacts(force_refresh=force)

        filtered = self.filter(tickets, criteria, now)
        scored = self._scored_agents(agents, departments, groups)
        sampled = await self.sample_first_responses(filtered, [a.id for a in scored])

        data = self.aggregate(filtered, criteria.time_range, scored, departments, contacts, now, sampled)

        logger.info(
            f"Dashboard data processed: {len(tickets)} tickets fetched, "
            f"{data.ticket_funnel[0].value} after filters, {len(agents)} agents, "
            f"{data.stats.open_tickets} open, {data.stats.sla_breaches} SLA breaches"
        )
        logger.info(f"API usage: cache={self.cache.stats()}, rate={self.rate_tracker.stats()}")
        return DashboardResult(success=True, data=data)

    async def fetch_agent_list(self) -> AgentListResult:
        """Scored agents for filter selection, sorted by name"""
        try:
            agents = await self.fetcher.fetch_agents(strict=True)
            departments = await self.fetcher.fetch_departments()
            groups = await self.fetcher.fetch_groups()
        except RateLimitedError as e:
            return AgentListResult(success=False, error=rate_limited_message(e))
        except (httpx.HTTPError, FreshserviceError) as e:
            logger.error(f"Error fetching agent list: {e}")
            return AgentListResult(success=False, error=f"Failed to fetch agent list: {e}")

        department_names = {d.id: d.name for d in departments}
        options = []
        for agent in self._scored_agents(agents, departments, groups):
            department = agent.department
            if not department and agent.department_ids:
                department = department_names.get(agent.department_ids[0])
            options.append(AgentOption(
                id=agent.id,
                name=agent.name,
                department=department,
                active=agent.active,
            ))

        options.sort(key=lambda option: option.name.lower())
        return AgentListResult(success=True, agents=options)

    async def test_api_connection(self) -> ConnectionResult:
        try:
            connected = await self.fetcher.check_connection()
        except RateLimitedError as e:
            return ConnectionResult(success=False, error=rate_limited_message(e))
        if connected:
            return ConnectionResult(success=True)
        return ConnectionResult(success=False, error="Failed to connect to Freshservice API")

    def clear_cache(self) -> None:
        logger.info("Clearing dashboard cache")
        self.cache.clear()

    def api_stats(self) -> Dict[str, object]:
        return {"cache": self.cache.stats(), "rate_limit": self.rate_tracker.stats()}
