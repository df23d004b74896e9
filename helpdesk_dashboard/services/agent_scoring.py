"""
Agent scorecards

Selects the scored agent subset (department and optional group membership),
accumulates per-agent ticket statistics and derives rates, workload class and
composite scores:

    quality    = 0.4 * first_contact_resolution + 0.3 * (100 - escalation) + 0.3 * (100 - reopened)
    efficiency = 0.5 * sla_compliance + 0.3 * resolution_rate + 0.2 * urgent_resolution
    overall    = 0.4 * quality + 0.4 * efficiency + 0.2 * high_priority_resolution

Scorecards are ordered by ticket count, then overall score.
"""
from dataclasses import dataclass
from datetime import datetime, tzinfo
from fractions import Fraction
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from helpdesk_dashboard.models.dashboard import AgentScorecard, ChartPoint
from helpdesk_dashboard.models.schemas import (
    Agent,
    Department,
    Group,
    Priority,
    Ticket,
    WorkloadClass,
)
from helpdesk_dashboard.services.metrics import (
    estimate_response_minutes,
    format_duration,
    is_plausible_resolution,
    is_plausible_response,
    percentage,
    round_half_up,
)
from helpdesk_dashboard.utils.dates import hours_between
from helpdesk_dashboard.utils.logger import get_logger

logger = get_logger(__name__)

PEAK_HOURS = ((9, 12), (13, 17))


def select_scored_agents(
    agents: Sequence[Agent],
    department_id: Optional[int] = None,
    department_name: Optional[str] = None,
    departments: Iterable[Department] = (),
    groups: Iterable[Group] = (),
    group_ids: Sequence[int] = ()
) -> List[Agent]:
    """
    Agents belonging to the configured department (or configured groups)

    An agent qualifies when one of its department ids is the configured id or
    names the configured department, when its department text equals the
    configured name, or when it is a member of one of `group_ids`.
    """
    wanted_name = (department_name or "").strip().lower()
    target_ids = {department_id} if department_id is not None else set()
    if wanted_name:
        target_ids.update(d.id for d in departments if d.name.strip().lower() == wanted_name)

    wanted_groups = set(group_ids)
    group_members = {
        agent_id
        for group in groups if group.id in wanted_groups
        for agent_id in group.agent_ids
    }

    selected = []
    for agent in agents:
        in_department = bool(target_ids.intersection(agent.department_ids)) or (
            bool(wanted_name) and (agent.department or "").strip().lower() == wanted_name
        )
        in_group = agent.id in group_members or bool(wanted_groups.intersection(agent.group_ids))
        if in_department or in_group:
            selected.append(agent)

    logger.debug(f"Selected {len(selected)} scored agents from {len(agents)} agents")
    return selected


def classify_workload(
    tickets_handled: int,
    average: Union[Fraction, float]
) -> WorkloadClass:
    """
    Workload class from the ratio to the team average

    Bands are inclusive on their lower bound: 0.5 is Moderate, 1.0 Heavy,
    1.5 Overloaded.
    """
    if not average or tickets_handled <= 0:
        return WorkloadClass.LIGHT

    ratio = Fraction(tickets_handled) / Fraction(average)
    if ratio < Fraction(1, 2):
        return WorkloadClass.LIGHT
    if ratio < 1:
        return WorkloadClass.MODERATE
    if ratio < Fraction(3, 2):
        return WorkloadClass.HEAVY
    return WorkloadClass.OVERLOADED


def is_peak_time(moment: datetime, tz: Optional[tzinfo] = None) -> bool:
    """Weekday 09:00-12:00 or 13:00-17:00 in the reporting time zone"""
    local = moment.astimezone(tz) if tz else moment
    if local.weekday() >= 5:
        return False
    return any(start <= local.hour < end for start, end in PEAK_HOURS)


@dataclass
class _AgentTally:
    tickets: int = 0
    resolved: int = 0
    response_sum: float = 0.0
    response_count: int = 0
    resolution_sum: float = 0.0
    resolution_count: int = 0
    sla_tracked: int = 0
    sla_met: int = 0
    urgent: int = 0
    urgent_resolved: int = 0
    high: int = 0
    high_resolved: int = 0
    peak: int = 0
    peak_resolved: int = 0
    first_contact: int = 0
    escalated: int = 0
    reopened: int = 0

    def add(
        self,
        ticket: Ticket,
        response_minutes: Optional[float],
        tz: Optional[tzinfo],
        fcr_threshold_hours: float
    ) -> None:
        self.tickets += 1
        resolved = ticket.is_resolved

        if is_plausible_response(response_minutes):
            self.response_sum += response_minutes
            self.response_count += 1

        if resolved:
            self.resolved += 1
            hours = hours_between(ticket.created_at, ticket.updated_at)
            if is_plausible_resolution(hours):
                self.resolution_sum += hours
                self.resolution_count += 1
                if hours <= fcr_threshold_hours:
                    self.first_contact += 1

        if ticket.due_by is not None and ticket.updated_at is not None:
            self.sla_tracked += 1
            if ticket.updated_at <= ticket.due_by:
                self.sla_met += 1

        if ticket.priority == Priority.URGENT:
            self.urgent += 1
            self.urgent_resolved += resolved
        if ticket.priority >= Priority.HIGH:
            self.high += 1
            self.high_resolved += resolved

        if ticket.created_at is not None and is_peak_time(ticket.created_at, tz):
            self.peak += 1
            self.peak_resolved += resolved

        if ticket.is_escalated or ticket.fr_escalated:
            self.escalated += 1
        if ticket.stats is not None and ticket.stats.reopened_at is not None:
            self.reopened += 1


def build_agent_scorecards(
    tickets: Sequence[Ticket],
    scored_agents: Sequence[Agent],
    sampled_responses: Optional[Mapping[int, float]] = None,
    tz: Optional[tzinfo] = None,
    fcr_threshold_hours: float = 4.0
) -> List[AgentScorecard]:
    """
    Build a scorecard for every scored agent

    Args:
        tickets: Filtered ticket collection
        scored_agents: Agents to score
        sampled_responses: Ticket id -> first-response minutes from conversations
        tz: Reporting time zone for peak-time classification
        fcr_threshold_hours: Resolution time counted as first-contact resolution

    Returns:
        Scorecards ordered by ticket count, then overall score (both descending)
    """
    tallies: Dict[int, _AgentTally] = {agent.id: _AgentTally() for agent in scored_agents}

    for ticket in tickets:
        tally = tallies.get(ticket.responsible_agent_id)
        if tally is None:
            continue
        tally.add(
            ticket,
            estimate_response_minutes(ticket, sampled_responses),
            tz,
            fcr_threshold_hours
        )

    average = Fraction(len(tickets), len(scored_agents)) if scored_agents else Fraction(0)

    scorecards = []
    for agent in scored_agents:
        tally = tallies[agent.id]

        resolution_rate = percentage(tally.resolved, tally.tickets)
        sla_compliance = percentage(tally.sla_met, tally.sla_tracked)
        urgent_rate = percentage(tally.urgent_resolved, tally.urgent)
        high_rate = percentage(tally.high_resolved, tally.high)
        fcr_rate = percentage(tally.first_contact, tally.resolved)
        escalation_rate = percentage(tally.escalated, tally.tickets)
        reopened_rate = percentage(tally.reopened, tally.tickets)

        quality = round_half_up(0.4 * fcr_rate + 0.3 * (100 - escalation_rate) + 0.3 * (100 - reopened_rate))
        efficiency = round_half_up(0.5 * sla_compliance + 0.3 * resolution_rate + 0.2 * urgent_rate)
        overall = round_half_up(0.4 * quality + 0.4 * efficiency + 0.2 * high_rate)

        avg_response = tally.response_sum / tally.response_count if tally.response_count else None
        avg_resolution = tally.resolution_sum * 60 / tally.resolution_count if tally.resolution_count else None

        scorecards.append(AgentScorecard(
            id=agent.id,
            name=agent.name,
            tickets=tally.tickets,
            resolved=tally.resolved,
            resolution=resolution_rate,
            avg_response_time=format_duration(avg_response),
            avg_resolution_time=format_duration(avg_resolution),
            sla_compliance=sla_compliance,
            first_contact_resolution=fcr_rate,
            escalation_rate=escalation_rate,
            reopened_rate=reopened_rate,
            urgent_resolution=urgent_rate,
            high_priority_resolution=high_rate,
            peak_time_resolution=percentage(tally.peak_resolved, tally.peak),
            quality_score=quality,
            efficiency_score=efficiency,
            overall_score=overall,
            workload=classify_workload(tally.tickets, average),
        ))

    scorecards.sort(key=lambda card: (-card.tickets, -card.overall_score))
    return scorecards


def workload_distribution(scorecards: Iterable[AgentScorecard]) -> List[ChartPoint]:
    """Number of agents per workload class"""
    counts = {workload: 0 for workload in WorkloadClass}
    for card in scorecards:
        counts[card.workload] += 1
    return [ChartPoint(name=workload.value, value=count) for workload, count in counts.items()]
