"""
Tests for the dashboard entry point

Covers the success/failure envelope, agent list and connection test with a
mocked Freshservice client.
"""
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, patch
import httpx

from helpdesk_dashboard.models.schemas import FilterCriteria, TimeRange
from helpdesk_dashboard.services.cache import TTLCache
from helpdesk_dashboard.services.dashboard import DashboardService, rate_limited_message
from helpdesk_dashboard.services.errors import RateLimitedError
from helpdesk_dashboard.services.freshservice import FreshserviceClient, Page
from helpdesk_dashboard.services.rate_limiter import TICKETS, RateLimitTracker

from conftest import NOW, http_response, ticket_records


def iso(delta):
    return (NOW - delta).isoformat()


@pytest.fixture
def service(mock_client, settings):
    mock_client.get_tickets.return_value = Page(records=[
        {"id": 1, "subject": "VPN down", "status": 2, "priority": 4, "responder_id": 7,
         "requester_id": 100, "workspace_id": 2,
         "created_at": iso(timedelta(hours=3)), "updated_at": iso(timedelta(hours=1)),
         "due_by": iso(timedelta(minutes=30))},
        {"id": 2, "subject": "Laptop battery", "status": 4, "priority": 2, "responder_id": 8,
         "requester_id": 101, "workspace_id": 2,
         "created_at": iso(timedelta(hours=6)), "updated_at": iso(timedelta(hours=2))},
        {"id": 3, "subject": "New hire laptop", "status": 2, "priority": 2, "workspace_id": 2,
         "created_at": iso(timedelta(hours=4)), "updated_at": iso(timedelta(hours=4))},
        {"id": 4, "subject": "Printer", "status": 1, "priority": 1, "workspace_id": 2,
         "created_at": iso(timedelta(hours=5)), "updated_at": iso(timedelta(hours=5))},
        {"id": 5, "subject": "Other workspace", "status": 2, "priority": 1, "workspace_id": 1,
         "created_at": iso(timedelta(hours=5)), "updated_at": iso(timedelta(hours=5))},
    ])
    mock_client.get_agents.return_value = Page(records=[
        {"id": 7, "first_name": "Dana", "last_name": "Reyes", "department_ids": [5]},
        {"id": 8, "first_name": "Lee", "last_name": "Park", "department_ids": [5]},
        {"id": 9, "first_name": "Sam", "last_name": "Cho", "department_ids": [6]},
    ])
    mock_client.get_departments.return_value = Page(records=[
        {"id": 5, "name": "IT"},
        {"id": 6, "name": "Facilities"},
        {"id": 10, "name": "Finance"},
    ])
    mock_client.get_requesters.return_value = Page(records=[
        {"id": 100, "first_name": "Ana", "department_ids": [10]},
    ])
    mock_client.get_ticket_conversations.return_value = [
        {"id": 50, "user_id": 7, "private": False, "created_at": iso(timedelta(hours=2, minutes=30))},
    ]

    dashboard = DashboardService(client=mock_client, cache=TTLCache(), settings=settings)
    with patch.object(dashboard, "now", return_value=NOW):
        yield dashboard


class TestFetchDashboardData:

    @pytest.mark.asyncio
    async def test_success_envelope(self, service):
        result = await service.fetch_dashboard_data(FilterCriteria(time_range=TimeRange.WEEK))

        assert result.success is True
        assert result.error is None
        data = result.data
        # Workspace 2 preferred, keyword exclusion drops ticket 3
        assert data.ticket_funnel[0].value == 3
        assert data.stats.open_tickets == 2
        assert data.stats.unassigned_tickets == 1
        assert data.stats.sla_breaches == 1
        assert data.stats.total_agents == 2
        # Equal ticket counts: Lee (resolved within the FCR window) outscores Dana
        assert [card.name for card in data.agent_performance] == ["Lee Park", "Dana Reyes"]
        assert {p.name: p.value for p in data.tickets_by_category} == {"Finance": 1, "Unknown Department": 2}

    @pytest.mark.asyncio
    async def test_sampled_conversations_feed_response_time(self, service, mock_client):
        result = await service.fetch_dashboard_data()

        dana = next(card for card in result.data.agent_performance if card.id == 7)
        assert dana.avg_response_time == "30 min"
        assert mock_client.get_ticket_conversations.await_count == 2

    @pytest.mark.asyncio
    async def test_agent_filter(self, service):
        result = await service.fetch_dashboard_data(FilterCriteria(agent_id=8))

        assert result.data.ticket_funnel[0].value == 1
        assert result.data.stats.resolved_today == 1

    @pytest.mark.asyncio
    async def test_rate_limited_envelope(self, service, mock_client):
        mock_client.get_tickets.side_effect = RateLimitedError(retry_after=30)

        with patch("asyncio.sleep", new_callable=AsyncMock):
            result = await service.fetch_dashboard_data()

        assert result.success is False
        assert result.error_type == "rate_limited"
        assert result.retry_after_seconds == 30
        assert "30 seconds" in result.error

    @pytest.mark.asyncio
    async def test_unavailable_envelope(self, service, mock_client):
        mock_client.get_tickets.side_effect = httpx.ConnectError("unreachable")

        result = await service.fetch_dashboard_data()

        assert result.success is False
        assert result.error_type == "unavailable"
        assert result.data is None

    @pytest.mark.asyncio
    async def test_missing_reference_data_still_succeeds(self, service, mock_client):
        mock_client.get_agents.side_effect = httpx.ConnectError("unreachable")
        mock_client.get_requesters.side_effect = httpx.ConnectError("unreachable")

        result = await service.fetch_dashboard_data()

        assert result.success is True
        assert result.data.agent_performance == []
        assert result.data.stats.total_agents == 0

    @pytest.mark.asyncio
    async def test_second_pass_served_from_cache(self, service, mock_client):
        await service.fetch_dashboard_data()
        await service.fetch_dashboard_data(FilterCriteria(time_range=TimeRange.MONTH))

        assert mock_client.get_tickets.await_count == 1
        assert mock_client.get_agents.await_count == 1

    @pytest.mark.asyncio
    async def test_force_refresh(self, service, mock_client):
        await service.fetch_dashboard_data()
        await service.fetch_dashboard_data(FilterCriteria(force_refresh=True))

        assert mock_client.get_tickets.await_count == 2


class TestAgentList:

    @pytest.mark.asyncio
    async def test_scored_agents_sorted_by_name(self, service):
        result = await service.fetch_agent_list()

        assert result.success is True
        assert [a.name for a in result.agents] == ["Dana Reyes", "Lee Park"]
        assert result.agents[0].department == "IT"

    @pytest.mark.asyncio
    async def test_failure_reported(self, service, mock_client):
        mock_client.get_agents.side_effect = httpx.ConnectError("unreachable")

        result = await service.fetch_agent_list()

        assert result.success is False
        assert result.agents == []
        assert "unreachable" in result.error


class TestConnectionAndCache:

    @pytest.mark.asyncio
    async def test_connection_result(self, service, mock_client):
        assert (await service.test_api_connection()).success is True

        mock_client.test_connection.return_value = False
        result = await service.test_api_connection()
        assert result.success is False
        assert result.error

    @pytest.mark.asyncio
    async def test_connection_counts_against_rate_window(self, service):
        await service.test_api_connection()

        assert service.rate_tracker.stats()["total_requests"] == 1
        assert service.rate_tracker.stats()["ticket_requests"] == 1

    @pytest.mark.asyncio
    async def test_connection_refused_by_full_window(self, mock_client, settings):
        tracker = RateLimitTracker(tickets_limit=1)
        tracker.record_call(TICKETS)
        dashboard = DashboardService(client=mock_client, rate_tracker=tracker, settings=settings)

        result = await dashboard.test_api_connection()

        assert result.success is False
        assert "rate limit" in result.error
        mock_client.test_connection.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clear_cache(self, service, mock_client):
        await service.fetch_dashboard_data()
        service.clear_cache()
        await service.fetch_dashboard_data()

        assert mock_client.get_tickets.await_count == 2

    def test_api_stats(self, service):
        stats = service.api_stats()

        assert set(stats) == {"cache", "rate_limit"}


def test_rate_limited_message_without_hint():
    assert "wait a moment" in rate_limited_message(RateLimitedError())


class TestNonJsonUpstream:

    @pytest.fixture
    def live_service(self, settings):
        dashboard = DashboardService(client=FreshserviceClient(settings), cache=TTLCache(), settings=settings)
        with patch.object(dashboard, "now", return_value=NOW):
            yield dashboard

    @pytest.mark.asyncio
    async def test_non_json_reference_data_still_succeeds(self, live_service):
        async def request(method, url, **kwargs):
            if url.endswith("/tickets"):
                return http_response({"tickets": ticket_records(1, 3, created_at=NOW - timedelta(hours=2))})
            return http_response(body="<html>Down for maintenance</html>")

        with patch("httpx.AsyncClient") as mock_async_client:
            mock_async_client.return_value.__aenter__.return_value.request = AsyncMock(side_effect=request)

            result = await live_service.fetch_dashboard_data()

        assert result.success is True
        assert result.data.ticket_funnel[0].value == 3
        assert result.data.agent_performance == []

    @pytest.mark.asyncio
    async def test_non_json_tickets_return_unavailable_envelope(self, live_service):
        with patch("httpx.AsyncClient") as mock_async_client:
            mock_async_client.return_value.__aenter__.return_value.request = AsyncMock(
                return_value=http_response(body="<html>Bad gateway</html>")
            )

            result = await live_service.fetch_dashboard_data()

        assert result.success is False
        assert result.error_type == "unavailable"
        assert "Invalid JSON" in result.error
