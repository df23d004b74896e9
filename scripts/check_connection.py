#!/usr/bin/env python3
"""
Freshservice connection check

Runs the client connection test and one full dashboard pass with the
settings from .env, then prints a short summary.
"""
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

# Project root on the import path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load .env before settings are read
load_dotenv(project_root / ".env")

from helpdesk_dashboard.config import get_settings  # noqa: E402
from helpdesk_dashboard.models.schemas import FilterCriteria, TimeRange  # noqa: E402
from helpdesk_dashboard.services.dashboard import DashboardService  # noqa: E402


async def main(time_range: TimeRange) -> int:
    settings = get_settings()
    print("=" * 60)
    print("Helpdesk Dashboard - Connection Check")
    print("=" * 60)
    print(f"Endpoint: {settings.FRESHSERVICE_BASE_URL}")

    if not settings.freshservice_api_key:
        print("[FAIL] FRESHSERVICE_API_KEY not found in .env")
        return 1

    service = DashboardService(settings=settings)

    print("\n1. Testing API connection...")
    connection = await service.test_api_connection()
    if not connection.success:
        print(f"[FAIL] {connection.error}")
        return 1
    print("[OK] Connected")

    print(f"\n2. Running dashboard pass ({time_range.value})...")
    result = await service.fetch_dashboard_data(FilterCriteria(time_range=time_range))
    if not result.success:
        print(f"[FAIL] {result.error_type}: {result.error}")
        return 1

    data = result.data
    stats = data.stats
    print(f"[OK] {data.ticket_funnel[0].value} tickets in range")
    print(f"   Open: {stats.open_tickets}  Resolved today: {stats.resolved_today}")
    print(f"   SLA breaches: {stats.sla_breaches}  Overdue: {stats.overdue_tickets}")
    print(f"   Unassigned: {stats.unassigned_tickets}  Avg response: {stats.avg_response_time}")
    print(f"   Scored agents: {stats.total_agents}")
    for card in data.agent_performance[:5]:
        print(f"   - {card.name}: {card.tickets} tickets, overall {card.overall_score} ({card.workload.value})")

    print(f"\nFetch stopped: {service.fetcher.last_stop_reason} after {service.fetcher.last_pages_fetched} pages")
    print(f"API usage: {service.api_stats()}")
    return 0


if __name__ == "__main__":
    selected = TimeRange(sys.argv[1]) if len(sys.argv) > 1 else TimeRange.WEEK
    sys.exit(asyncio.run(main(selected)))
