"""
Pytest configuration and fixtures
"""
import json
import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

from helpdesk_dashboard.config import Settings
from helpdesk_dashboard.models.schemas import Ticket
from helpdesk_dashboard.services.freshservice import Page

# Wednesday, inside business hours
NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Small pages and no delays so pagination scenarios stay quick"""
    return Settings(
        _env_file=None,
        freshservice_domain="acme.freshservice.com",
        freshservice_api_key="test-key",
        tickets_per_page=10,
        reference_per_page=10,
        ticket_page_budget=3,
        ticket_page_ceiling=5,
        large_dataset_threshold=40,
        early_stop_min_records=2000,
        early_stop_recent_days=90,
        early_stop_recent_min=1000,
        inter_page_delay_ms=0,
        retry_base_delay_ms=0,
        scored_department_name="IT",
        preferred_workspace_ids="2,1",
        excluded_keywords="new hire,offboarding",
        conversation_sample_size=5,
        report_timezone="UTC",
    )


@pytest.fixture
def make_ticket():
    """Factory for Ticket records with sensible defaults"""

    def _make(ticket_id: int = 1, **overrides: Any) -> Ticket:
        values: Dict[str, Any] = {
            "id": ticket_id,
            "subject": f"Printer issue {ticket_id}",
            "status": 2,
            "priority": 2,
            "created_at": NOW - timedelta(hours=2),
            "updated_at": NOW - timedelta(hours=1),
        }
        values.update(overrides)
        return Ticket(**values)

    return _make


def ticket_records(
    start_id: int,
    count: int,
    created_at: Optional[datetime] = None,
    **fields: Any
) -> List[Dict[str, Any]]:
    """Raw API ticket payloads"""
    created = (created_at or NOW - timedelta(days=1)).isoformat()
    return [
        {"id": start_id + i, "subject": f"Ticket {start_id + i}", "status": 2, "priority": 2,
         "created_at": created, "updated_at": created, **fields}
        for i in range(count)
    ]


@pytest.fixture
def mock_client() -> MagicMock:
    """FreshserviceClient stand-in with empty reference collections"""
    client = MagicMock()
    client.get_tickets = AsyncMock(return_value=Page(records=[]))
    client.get_agents = AsyncMock(return_value=Page(records=[]))
    client.get_departments = AsyncMock(return_value=Page(records=[]))
    client.get_groups = AsyncMock(return_value=Page(records=[]))
    client.get_requesters = AsyncMock(return_value=Page(records=[]))
    client.get_ticket_conversations = AsyncMock(return_value=[])
    client.test_connection = AsyncMock(return_value=True)
    return client


def http_response(payload: Any = None, status_code: int = 200, body: Optional[str] = None) -> MagicMock:
    """httpx.Response stand-in; `body` makes .json() fail like an HTML page"""
    response = MagicMock()
    response.status_code = status_code
    response.headers = {}
    if body is not None:
        response.json.side_effect = json.JSONDecodeError("Expecting value", body, 0)
    else:
        response.json.return_value = payload
    return response
