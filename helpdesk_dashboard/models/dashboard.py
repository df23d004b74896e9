"""
Dashboard result envelope models
"""
from typing import List, Optional, Literal

from pydantic import BaseModel, Field

from helpdesk_dashboard.models.schemas import WorkloadClass


class ChartPoint(BaseModel):
    """Single named value in a chart series"""
    name: str
    value: int


class FunnelStage(BaseModel):
    """Ticket lifecycle funnel stage"""
    name: str
    value: int
    description: str
    percentage: int = Field(..., description="Share of submitted tickets, rounded")


class AgentScorecard(BaseModel):
    """Per-agent performance summary"""
    id: int
    name: str
    tickets: int
    resolved: int
    resolution: int = Field(..., description="Resolution rate (%)")
    avg_response_time: str
    avg_resolution_time: str
    sla_compliance: int
    first_contact_resolution: int
    escalation_rate: int
    reopened_rate: int
    urgent_resolution: int
    high_priority_resolution: int
    peak_time_resolution: int
    quality_score: int
    efficiency_score: int
    overall_score: int
    workload: WorkloadClass


class DashboardStats(BaseModel):
    """Top-line counters"""
    open_tickets: int
    resolved_today: int
    avg_response_time: str
    sla_breaches: int
    overdue_tickets: int
    unassigned_tickets: int
    total_agents: int


class DashboardData(BaseModel):
    """Aggregated views over one filtered ticket set"""
    tickets_by_status: List[ChartPoint]
    tickets_by_priority: List[ChartPoint]
    tickets_by_category: List[ChartPoint]
    tickets_trend: List[ChartPoint]
    ticket_funnel: List[FunnelStage]
    resolution_times: List[ChartPoint]
    agent_performance: List[AgentScorecard]
    agent_workload: List[ChartPoint]
    stats: DashboardStats


class DashboardResult(BaseModel):
    """Success/failure envelope returned by the dashboard entry point"""
    success: bool
    data: Optional[DashboardData] = None
    error: Optional[str] = None
    error_type: Optional[Literal["rate_limited", "unavailable"]] = None
    retry_after_seconds: Optional[float] = None


class AgentOption(BaseModel):
    """Agent entry for filter selection"""
    id: int
    name: str
    department: Optional[str] = None
    active: bool = True


class AgentListResult(BaseModel):
    """Success/failure envelope for the agent list"""
    success: bool
    agents: List[AgentOption] = []
    error: Optional[str] = None


class ConnectionResult(BaseModel):
    """Result of an upstream connectivity test"""
    success: bool
    error: Optional[str] = None
