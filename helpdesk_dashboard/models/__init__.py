"""
Pydantic models for the helpdesk dashboard
"""

from helpdesk_dashboard.models.schemas import (
    # Enums
    TicketStatus,
    Priority,
    TimeRange,
    WorkloadClass,

    # Status sets and names
    ACTIVE_STATUSES,
    RESOLVED_STATUSES,
    TICKET_STATUS_NAMES,
    PRIORITY_NAMES,

    # Records
    Ticket,
    TicketStats,
    Agent,
    Department,
    Contact,
    Group,
    Conversation,
    FilterCriteria,
)
from helpdesk_dashboard.models.dashboard import (
    ChartPoint,
    FunnelStage,
    AgentScorecard,
    DashboardStats,
    DashboardData,
    DashboardResult,
    AgentOption,
    AgentListResult,
    ConnectionResult,
)

__all__ = [
    # Enums
    "TicketStatus",
    "Priority",
    "TimeRange",
    "WorkloadClass",

    # Status sets and names
    "ACTIVE_STATUSES",
    "RESOLVED_STATUSES",
    "TICKET_STATUS_NAMES",
    "PRIORITY_NAMES",

    # Records
    "Ticket",
    "TicketStats",
    "Agent",
    "Department",
    "Contact",
    "Group",
    "Conversation",
    "FilterCriteria",

    # Envelope
    "ChartPoint",
    "FunnelStage",
    "AgentScorecard",
    "DashboardStats",
    "DashboardData",
    "DashboardResult",
    "AgentOption",
    "AgentListResult",
    "ConnectionResult",
]
