"""
Pydantic models for Freshservice records

Typed counterparts of the loosely-shaped API payloads. Every model exposes a
`from_api` constructor that tolerates missing or malformed fields: an
unparseable timestamp becomes None so the record only drops out of the
metrics that need that field.
"""
from datetime import datetime
from enum import Enum
from operator import attrgetter
from typing import Optional, Dict, Any, List, Union, Literal, Tuple, Callable

from pydantic import BaseModel, Field, field_validator, model_validator

from helpdesk_dashboard.utils.dates import parse_datetime


# ============================================================================
# Enums
# ============================================================================

class TicketStatus(int, Enum):
    """Freshservice ticket status codes"""
    OPEN = 1
    PENDING = 2
    RESOLVED = 3
    CLOSED = 4
    NEW = 5
    ON_HOLD = 6
    IN_PROGRESS = 7
    CANCELLED = 8


class Priority(int, Enum):
    """Freshservice ticket priority codes"""
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    URGENT = 4


class TimeRange(str, Enum):
    """Reporting windows"""
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"


class WorkloadClass(str, Enum):
    """Agent workload relative to team average"""
    LIGHT = "Light"
    MODERATE = "Moderate"
    HEAVY = "Heavy"
    OVERLOADED = "Overloaded"


TICKET_STATUS_NAMES: Dict[int, str] = {
    TicketStatus.OPEN: "Open",
    TicketStatus.PENDING: "Pending",
    TicketStatus.RESOLVED: "Resolved",
    TicketStatus.CLOSED: "Closed",
    TicketStatus.NEW: "New",
    TicketStatus.ON_HOLD: "On-Hold",
    TicketStatus.IN_PROGRESS: "In Progress",
    TicketStatus.CANCELLED: "Cancelled",
}

PRIORITY_NAMES: Dict[int, str] = {
    Priority.LOW: "Low",
    Priority.MEDIUM: "Medium",
    Priority.HIGH: "High",
    Priority.URGENT: "Urgent",
}

# Unresolved work still requiring attention
ACTIVE_STATUSES = frozenset({
    TicketStatus.OPEN,
    TicketStatus.PENDING,
    TicketStatus.NEW,
    TicketStatus.IN_PROGRESS,
})

RESOLVED_STATUSES = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})

# Statuses where nobody has touched the ticket yet
UNTOUCHED_STATUSES = frozenset({TicketStatus.OPEN, TicketStatus.NEW})


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_int_list(value: Any) -> List[int]:
    if not isinstance(value, list):
        return []
    return [item for item in (_as_int(v) for v in value) if item is not None]


# ============================================================================
# Ticket
# ============================================================================

class TicketStats(BaseModel):
    """Per-ticket statistics block"""
    response_time: Optional[float] = Field(None, description="First response time in minutes")
    resolution_time: Optional[float] = Field(None, description="Resolution time in minutes")
    reopened_at: Optional[datetime] = None

    @field_validator("reopened_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, v: Any) -> Optional[datetime]:
        return parse_datetime(v)

    @field_validator("response_time", "resolution_time", mode="before")
    @classmethod
    def _parse_number(cls, v: Any) -> Optional[float]:
        if v is None or isinstance(v, bool):
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None


class Ticket(BaseModel):
    """
    Service desk ticket

    Immutable once fetched; a fresh fetch replaces the in-memory copy.
    """
    model_config = {"frozen": True}

    id: int
    subject: str = ""
    description: str = ""
    status: int = TicketStatus.OPEN
    priority: int = Priority.LOW
    requester_id: Optional[int] = None
    responder_id: Optional[int] = None
    agent_id: Optional[int] = None
    assigned_agent_id: Optional[int] = None
    owner_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    due_by: Optional[datetime] = None
    fr_due_by: Optional[datetime] = None
    workspace_id: Optional[int] = None
    group_id: Optional[int] = None
    department_id: Optional[int] = None
    category: Optional[str] = None
    sub_category: Optional[str] = None
    item_category: Optional[str] = None
    tags: Tuple[str, ...] = ()
    is_escalated: bool = False
    fr_escalated: bool = False
    stats: Optional[TicketStats] = None

    @field_validator("created_at", "updated_at", "due_by", "fr_due_by", mode="before")
    @classmethod
    def _parse_timestamp(cls, v: Any) -> Optional[datetime]:
        return parse_datetime(v)

    @property
    def responsible_agent_id(self) -> Optional[int]:
        """First populated assignment field, in precedence order"""
        for accessor in RESPONDER_ACCESSORS:
            agent_id = accessor(self)
            if agent_id:
                return agent_id
        return None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_resolved(self) -> bool:
        return self.status in RESOLVED_STATUSES

    @property
    def status_name(self) -> str:
        return TICKET_STATUS_NAMES.get(self.status, "Unknown")

    @property
    def priority_name(self) -> str:
        return PRIORITY_NAMES.get(self.priority, "Unknown")

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Ticket":
        """Build a Ticket from a raw Freshservice payload"""
        stats = data.get("stats") if isinstance(data.get("stats"), dict) else None
        tags = data.get("tags") if isinstance(data.get("tags"), list) else []
        return cls(
            id=_as_int(data.get("id")) or _as_int(data.get("display_id")),
            subject=data.get("subject") or "",
            description=(
                data.get("description_text")
                or data.get("description")
                or data.get("description_html")
                or ""
            ),
            status=_as_int(data.get("status")) or TicketStatus.OPEN,
            priority=_as_int(data.get("priority")) or Priority.LOW,
            requester_id=_as_int(data.get("requester_id")),
            responder_id=_as_int(data.get("responder_id")),
            agent_id=_as_int(data.get("agent_id")),
            assigned_agent_id=_as_int(data.get("assigned_agent_id")),
            owner_id=_as_int(data.get("owner_id")),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            due_by=data.get("due_by"),
            fr_due_by=data.get("fr_due_by"),
            workspace_id=_as_int(data.get("workspace_id")),
            group_id=_as_int(data.get("group_id")),
            department_id=_as_int(data.get("department_id")),
            category=data.get("category") or None,
            sub_category=data.get("sub_category") or None,
            item_category=data.get("item_category") or None,
            tags=tuple(str(tag) for tag in tags),
            is_escalated=bool(data.get("is_escalated")),
            fr_escalated=bool(data.get("fr_escalated")),
            stats=TicketStats(**stats) if stats else None,
        )


# Assignment fields tried in order; the first non-empty one wins
RESPONDER_ACCESSORS: Tuple[Callable[[Ticket], Optional[int]], ...] = (
    attrgetter("responder_id"),
    attrgetter("agent_id"),
    attrgetter("assigned_agent_id"),
    attrgetter("owner_id"),
)


# ============================================================================
# Reference data
# ============================================================================

class Agent(BaseModel):
    """Service desk agent"""
    model_config = {"frozen": True}

    id: int
    name: str = ""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: str = ""
    active: bool = True
    department: Optional[str] = None
    department_ids: Tuple[int, ...] = ()
    group_ids: Tuple[int, ...] = ()
    role: Optional[str] = None
    job_title: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _compose_name(cls, values: Any) -> Any:
        if isinstance(values, dict) and not values.get("name"):
            first = values.get("first_name") or ""
            last = values.get("last_name") or ""
            values = {**values, "name": f"{first} {last}".strip()}
        return values

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Agent":
        return cls(
            id=_as_int(data.get("id")),
            name=data.get("name") or "",
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            email=data.get("email") or data.get("primary_email") or "",
            active=data.get("active") is not False,
            department=data.get("department") or None,
            department_ids=tuple(_as_int_list(data.get("department_ids"))),
            group_ids=tuple(_as_int_list(data.get("group_ids"))),
            role=data.get("role") or None,
            job_title=data.get("job_title") or None,
        )


class Department(BaseModel):
    """Department reference record"""
    model_config = {"frozen": True}

    id: int
    name: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Department":
        return cls(id=_as_int(data.get("id")), name=data.get("name") or "")


class Contact(BaseModel):
    """Requester (contact) reference record"""
    model_config = {"frozen": True}

    id: int
    name: str = ""
    department_ids: Tuple[int, ...] = ()

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Contact":
        name = data.get("name") or f"{data.get('first_name') or ''} {data.get('last_name') or ''}".strip()
        return cls(
            id=_as_int(data.get("id")),
            name=name,
            department_ids=tuple(_as_int_list(data.get("department_ids"))),
        )


class Group(BaseModel):
    """Agent group reference record"""
    model_config = {"frozen": True}

    id: int
    name: str = ""
    agent_ids: Tuple[int, ...] = ()

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Group":
        members = data.get("members") if isinstance(data.get("members"), list) else data.get("agent_ids")
        return cls(
            id=_as_int(data.get("id")),
            name=data.get("name") or "",
            agent_ids=tuple(_as_int_list(members)),
        )


class Conversation(BaseModel):
    """Ticket conversation entry (reply or note)"""
    model_config = {"frozen": True}

    id: int
    user_id: Optional[int] = None
    private: bool = False
    incoming: bool = False
    created_at: Optional[datetime] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, v: Any) -> Optional[datetime]:
        return parse_datetime(v)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Conversation":
        return cls(
            id=_as_int(data.get("id")),
            user_id=_as_int(data.get("user_id")),
            private=bool(data.get("private")),
            incoming=bool(data.get("incoming")),
            created_at=data.get("created_at"),
        )


# ============================================================================
# Filter criteria
# ============================================================================

class FilterCriteria(BaseModel):
    """Dashboard filter selection"""
    model_config = {"frozen": True}

    time_range: TimeRange = TimeRange.WEEK
    agent_id: Union[int, Literal["all"]] = "all"
    priority: Optional[List[int]] = Field(None, description="Allowed priority codes")
    status: Optional[List[int]] = Field(None, description="Allowed status codes")
    force_refresh: bool = False
