"""
Ticket aggregation functions

Pure functions turning a filtered ticket collection into chart-ready series
and top-line counters. Records missing a field a metric needs are left out of
that metric only.
"""
import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from helpdesk_dashboard.models.dashboard import ChartPoint, DashboardStats, FunnelStage
from helpdesk_dashboard.models.schemas import (
    PRIORITY_NAMES,
    UNTOUCHED_STATUSES,
    Contact,
    Conversation,
    Department,
    Priority,
    Ticket,
    TimeRange,
)
from helpdesk_dashboard.utils.dates import hours_between, minutes_between

UNKNOWN_DEPARTMENT = "Unknown Department"

PRIORITY_ORDER = [
    PRIORITY_NAMES[Priority.URGENT],
    PRIORITY_NAMES[Priority.HIGH],
    PRIORITY_NAMES[Priority.MEDIUM],
    PRIORITY_NAMES[Priority.LOW],
    "Unknown",
]

RESOLUTION_BUCKETS = ["< 1 hour", "1-4 hours", "4-24 hours", "1-3 days", "> 3 days"]

# Plausibility bounds for averaged durations
MIN_RESPONSE_MINUTES = 1
MAX_RESPONSE_MINUTES = 7 * 24 * 60
MAX_RESOLUTION_HOURS = 30 * 24


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percentage(part: int, whole: int) -> int:
    """Rounded share in percent; 0 when `whole` is 0"""
    if whole <= 0:
        return 0
    return round_half_up(part / whole * 100)


def format_duration(minutes: Optional[float]) -> str:
    """Human-readable duration scaled by magnitude"""
    if minutes is None:
        return "N/A"
    if minutes < 60:
        return f"{round_half_up(minutes)} min"
    if minutes < 24 * 60:
        return f"{minutes / 60:.1f} hrs"
    return f"{minutes / (24 * 60):.1f} days"


def is_plausible_response(minutes: Optional[float]) -> bool:
    return minutes is not None and MIN_RESPONSE_MINUTES <= minutes <= MAX_RESPONSE_MINUTES


def is_plausible_resolution(hours: Optional[float]) -> bool:
    return hours is not None and 0 <= hours <= MAX_RESOLUTION_HOURS


# ============================================================================
# Tallies
# ============================================================================

def _counter_to_points(counts: Counter) -> List[ChartPoint]:
    return [ChartPoint(name=name, value=value) for name, value in counts.most_common()]


def tickets_by_status(tickets: Iterable[Ticket]) -> List[ChartPoint]:
    """Count per status name, most frequent first"""
    return _counter_to_points(Counter(t.status_name for t in tickets))


def tickets_by_priority(tickets: Iterable[Ticket]) -> List[ChartPoint]:
    """Count per priority name, ordered Urgent > High > Medium > Low"""
    counts = Counter(t.priority_name for t in tickets)
    return [ChartPoint(name=name, value=counts[name]) for name in PRIORITY_ORDER if counts[name]]


def requester_department_names(
    departments: Iterable[Department],
    contacts: Iterable[Contact]
) -> Dict[int, str]:
    """
    Map requester id -> department name

    Uses the first department of a contact; contacts whose department cannot
    be resolved are omitted.
    """
    names = {d.id: d.name for d in departments if d.name}
    lookup = {}
    for contact in contacts:
        if contact.department_ids and contact.department_ids[0] in names:
            lookup[contact.id] = names[contact.department_ids[0]]
    return lookup


def tickets_by_category(
    tickets: Iterable[Ticket],
    departments: Iterable[Department],
    contacts: Iterable[Contact],
    limit: Optional[int] = None
) -> List[ChartPoint]:
    """Count per requester department, most frequent first"""
    lookup = requester_department_names(departments, contacts)
    counts = Counter(lookup.get(t.requester_id, UNKNOWN_DEPARTMENT) for t in tickets)
    points = _counter_to_points(counts)
    return points[:limit] if limit else points


# ============================================================================
# Funnel
# ============================================================================

def ticket_funnel(tickets: Sequence[Ticket]) -> List[FunnelStage]:
    """Submitted -> Active -> Resolved, each as a share of Submitted"""
    submitted = len(tickets)
    active = sum(1 for t in tickets if t.is_active)
    resolved = sum(1 for t in tickets if t.is_resolved)

    return [
        FunnelStage(
            name="Submitted",
            value=submitted,
            description="All tickets in the selected period",
            percentage=100,
        ),
        FunnelStage(
            name="Active",
            value=active,
            description="Tickets still being worked on",
            percentage=percentage(active, submitted),
        ),
        FunnelStage(
            name="Resolved",
            value=resolved,
            description="Tickets resolved or closed",
            percentage=percentage(resolved, submitted),
        ),
    ]


# ============================================================================
# Trend
# ============================================================================

def _local(value: datetime, now: datetime) -> datetime:
    return value.astimezone(now.tzinfo) if now.tzinfo else value


def _month_start(year: int, month: int, like: datetime) -> datetime:
    return like.replace(year=year, month=month, day=1, hour=0, minute=0, second=0, microsecond=0)


def tickets_trend(
    tickets: Iterable[Ticket],
    time_range: TimeRange,
    now: datetime
) -> List[ChartPoint]:
    """
    Ticket creation counts bucketed by the active time range

    - today: six 4-hour buckets over the last 24 hours
    - week: seven 24-hour buckets over the last 7 days
    - month: four week buckets from the first of the month (the last one runs to month end)
    - quarter: the three months of the current quarter

    Buckets are ordered oldest to newest.
    """
    created = [_local(t.created_at, now) for t in tickets if t.created_at is not None]

    if time_range == TimeRange.TODAY:
        start = now - timedelta(hours=24)
        bounds = [(start + timedelta(hours=4 * i), start + timedelta(hours=4 * (i + 1))) for i in range(6)]
        names = [lower.strftime("%H:%M") for lower, _ in bounds]
    elif time_range == TimeRange.WEEK:
        start = now - timedelta(days=7)
        bounds = [(start + timedelta(days=i), start + timedelta(days=i + 1)) for i in range(7)]
        # Each 24-hour window is named for the day it ends on
        names = [upper.strftime("%a") for _, upper in bounds]
    elif time_range == TimeRange.MONTH:
        first = _month_start(now.year, now.month, now)
        next_year, next_month = (now.year + 1, 1) if now.month == 12 else (now.year, now.month + 1)
        month_end = _month_start(next_year, next_month, now)
        bounds = []
        for week in range(4):
            lower = first + timedelta(days=7 * week)
            upper = month_end if week == 3 else lower + timedelta(days=7)
            bounds.append((lower, upper))
        names = [f"Week {week + 1}" for week in range(4)]
    else:
        quarter_month = ((now.month - 1) // 3) * 3 + 1
        bounds = []
        for i in range(3):
            month = quarter_month + i
            lower = _month_start(now.year, month, now)
            upper = (
                _month_start(now.year + 1, 1, now) if month == 12
                else _month_start(now.year, month + 1, now)
            )
            bounds.append((lower, upper))
        names = [lower.strftime("%b") for lower, _ in bounds]

    points = []
    last = len(bounds) - 1
    for index, ((lower, upper), name) in enumerate(zip(bounds, names)):
        # The newest bucket also takes tickets stamped exactly at its upper bound
        count = sum(
            1 for c in created
            if lower <= c < upper or (index == last and c == upper)
        )
        points.append(ChartPoint(name=name, value=count))
    return points


# ============================================================================
# Resolution times
# ============================================================================

def resolution_time_histogram(tickets: Iterable[Ticket]) -> List[ChartPoint]:
    """Bucket resolved tickets by updated_at - created_at"""
    counts = dict.fromkeys(RESOLUTION_BUCKETS, 0)

    for ticket in tickets:
        if not ticket.is_resolved:
            continue
        hours = hours_between(ticket.created_at, ticket.updated_at)
        if hours is None or hours < 0:
            continue

        if hours < 1:
            counts["< 1 hour"] += 1
        elif hours < 4:
            counts["1-4 hours"] += 1
        elif hours < 24:
            counts["4-24 hours"] += 1
        elif hours < 72:
            counts["1-3 days"] += 1
        else:
            counts["> 3 days"] += 1

    return [ChartPoint(name=name, value=value) for name, value in counts.items()]


# ============================================================================
# Response times
# ============================================================================

def first_response_minutes(ticket: Ticket, conversations: Iterable[Conversation]) -> Optional[float]:
    """
    Minutes from ticket creation to the first public reply by someone other
    than the requester
    """
    replies = [
        c for c in conversations
        if not c.private
        and c.created_at is not None
        and c.user_id is not None
        and c.user_id != ticket.requester_id
    ]
    if not replies or ticket.created_at is None:
        return None

    first = min(replies, key=lambda c: c.created_at)
    minutes = minutes_between(ticket.created_at, first.created_at)
    return minutes if minutes is not None and minutes >= 0 else None


def estimate_response_minutes(
    ticket: Ticket,
    sampled: Optional[Mapping[int, float]] = None
) -> Optional[float]:
    """
    Best available first-response estimate

    Order: sampled conversation value, ticket stats, then created -> updated
    for tickets that have been touched.
    """
    if sampled and ticket.id in sampled:
        return sampled[ticket.id]
    if ticket.stats is not None and ticket.stats.response_time is not None:
        return ticket.stats.response_time
    if ticket.status in UNTOUCHED_STATUSES:
        return None
    minutes = minutes_between(ticket.created_at, ticket.updated_at)
    return minutes if minutes is not None and minutes >= 0 else None


def average_response_time(
    tickets: Iterable[Ticket],
    sampled: Optional[Mapping[int, float]] = None
) -> str:
    values = [
        m for m in (estimate_response_minutes(t, sampled) for t in tickets)
        if is_plausible_response(m)
    ]
    if not values:
        return "N/A"
    return format_duration(sum(values) / len(values))


# ============================================================================
# Top-line counters
# ============================================================================

def count_open(tickets: Iterable[Ticket]) -> int:
    return sum(1 for t in tickets if t.is_active)


def count_resolved_today(tickets: Iterable[Ticket], now: datetime) -> int:
    """Resolved/closed tickets last updated on the current calendar date"""
    today = now.date()
    return sum(
        1 for t in tickets
        if t.is_resolved and t.updated_at is not None and _local(t.updated_at, now).date() == today
    )


def count_sla_breaches(tickets: Iterable[Ticket], now: datetime) -> int:
    """Active tickets past their resolution due-by"""
    return sum(1 for t in tickets if t.is_active and t.due_by is not None and now > t.due_by)


def count_overdue(tickets: Iterable[Ticket], now: datetime) -> int:
    """Active tickets past their first-response due-by"""
    return sum(1 for t in tickets if t.is_active and t.fr_due_by is not None and now > t.fr_due_by)


def count_unassigned(tickets: Iterable[Ticket]) -> int:
    return sum(1 for t in tickets if t.is_active and t.responsible_agent_id is None)


def build_stats(
    tickets: Sequence[Ticket],
    total_agents: int,
    now: datetime,
    sampled: Optional[Mapping[int, float]] = None
) -> DashboardStats:
    return DashboardStats(
        open_tickets=count_open(tickets),
        resolved_today=count_resolved_today(tickets, now),
        avg_response_time=average_response_time(tickets, sampled),
        sla_breaches=count_sla_breaches(tickets, now),
        overdue_tickets=count_overdue(tickets, now),
        unassigned_tickets=count_unassigned(tickets),
        total_agents=total_agents,
    )
