"""
Ticket filtering pipeline

Pure narrowing passes applied in a fixed order:
workspace -> keyword exclusion -> agent -> time range -> priority -> status.
The input collection is never mutated.
"""
from collections import Counter
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from helpdesk_dashboard.config import get_settings
from helpdesk_dashboard.models.schemas import FilterCriteria, Ticket, TimeRange
from helpdesk_dashboard.utils.logger import get_logger

logger = get_logger(__name__)


def resolve_workspace(
    tickets: Sequence[Ticket],
    preferred: Sequence[int] = (2, 1)
) -> Tuple[List[Ticket], Optional[int]]:
    """
    Narrow tickets to a single workspace

    Skipped when fewer than two distinct workspace ids are present. Otherwise
    the first preferred workspace that has tickets wins, else the busiest one.

    Returns:
        (tickets in the target workspace, target workspace id or None)
    """
    counts = Counter(t.workspace_id for t in tickets if t.workspace_id is not None)
    if len(counts) <= 1:
        return list(tickets), None

    target = next((ws for ws in preferred if ws in counts), None)
    if target is None:
        target = counts.most_common(1)[0][0]

    return [t for t in tickets if t.workspace_id == target], target


def _searchable_text(ticket: Ticket) -> str:
    parts = [
        ticket.subject,
        ticket.category or "",
        ticket.sub_category or "",
        ticket.item_category or "",
        ticket.description,
        " ".join(ticket.tags),
    ]
    return " ".join(parts).lower()


def exclude_keywords(tickets: Sequence[Ticket], vocabulary: Iterable[str]) -> List[Ticket]:
    """Drop tickets whose text or tags mention any excluded term (case-insensitive)"""
    terms = [term.lower() for term in vocabulary if term]
    if not terms:
        return list(tickets)
    return [
        t for t in tickets
        if not any(term in _searchable_text(t) for term in terms)
    ]


def filter_by_agent(tickets: Sequence[Ticket], agent_id: Union[int, str, None]) -> List[Ticket]:
    if agent_id is None or agent_id == "all":
        return list(tickets)
    return [t for t in tickets if t.responder_id == agent_id]


def time_range_start(time_range: TimeRange, now: datetime) -> datetime:
    """
    Start of the reporting window (the window always ends at `now`)

    - today: last 24 hours
    - week: last 7 days
    - month: first day of the current month
    - quarter: first day of the current quarter
    """
    if time_range == TimeRange.TODAY:
        return now - timedelta(hours=24)
    if time_range == TimeRange.WEEK:
        return now - timedelta(days=7)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if time_range == TimeRange.MONTH:
        return midnight.replace(day=1)
    quarter_month = ((now.month - 1) // 3) * 3 + 1
    return midnight.replace(month=quarter_month, day=1)


def filter_by_time_range(
    tickets: Sequence[Ticket],
    time_range: TimeRange,
    now: datetime
) -> List[Ticket]:
    start = time_range_start(time_range, now)
    return [t for t in tickets if t.created_at is not None and t.created_at >= start]


def filter_by_priority(tickets: Sequence[Ticket], priorities: Optional[Sequence[int]]) -> List[Ticket]:
    if not priorities:
        return list(tickets)
    allowed = set(priorities)
    return [t for t in tickets if t.priority in allowed]


def filter_by_status(tickets: Sequence[Ticket], statuses: Optional[Sequence[int]]) -> List[Ticket]:
    if not statuses:
        return list(tickets)
    allowed = set(statuses)
    return [t for t in tickets if t.status in allowed]


def filter_tickets(
    tickets: Sequence[Ticket],
    criteria: FilterCriteria,
    now: Optional[datetime] = None,
    preferred_workspaces: Optional[Sequence[int]] = None,
    excluded_keywords: Optional[Iterable[str]] = None
) -> List[Ticket]:
    """
    Apply every filtering pass in order

    Args:
        tickets: Full ticket collection
        criteria: Filter selection
        now: Reference time (defaults to current UTC time)
        preferred_workspaces: Workspace precedence (defaults to settings)
        excluded_keywords: Exclusion vocabulary (defaults to settings)

    Returns:
        New list with the matching tickets, in input order
    """
    settings = get_settings()
    now = now or datetime.now(dt_timezone.utc)
    if preferred_workspaces is None:
        preferred_workspaces = settings.preferred_workspaces
    if excluded_keywords is None:
        excluded_keywords = settings.exclusion_vocabulary

    filtered, workspace = resolve_workspace(tickets, preferred_workspaces)
    if workspace is not None:
        logger.debug(f"Workspace {workspace}: {len(filtered)} of {len(tickets)} tickets")

    before = len(filtered)
    filtered = exclude_keywords(filtered, excluded_keywords)
    logger.debug(f"Keyword exclusion removed {before - len(filtered)} tickets")

    filtered = filter_by_agent(filtered, criteria.agent_id)
    filtered = filter_by_time_range(filtered, criteria.time_range, now)
    filtered = filter_by_priority(filtered, criteria.priority)
    filtered = filter_by_status(filtered, criteria.status)

    logger.info(f"Filtered to {len(filtered)} of {len(tickets)} tickets ({criteria.time_range.value})")
    return filtered
