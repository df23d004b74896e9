"""
Tests for agent selection, workload classification and scorecards
"""
import pytest
from datetime import datetime, timedelta, timezone
from fractions import Fraction

from helpdesk_dashboard.models.schemas import Agent, Department, Group, TicketStats, WorkloadClass
from helpdesk_dashboard.services.agent_scoring import (
    build_agent_scorecards,
    classify_workload,
    is_peak_time,
    select_scored_agents,
    workload_distribution,
)

from conftest import NOW


class TestSelectScoredAgents:

    @pytest.fixture
    def agents(self):
        return [
            Agent(id=1, name="Dana", department_ids=(5,)),
            Agent(id=2, name="Lee", department="IT"),
            Agent(id=3, name="Sam", department_ids=(6,)),
            Agent(id=4, name="Kim", group_ids=(40,)),
            Agent(id=5, name="Alex"),
        ]

    def test_by_department_name(self, agents):
        departments = [Department(id=5, name="IT"), Department(id=6, name="HR")]

        selected = select_scored_agents(agents, department_name="it", departments=departments)

        assert [a.id for a in selected] == [1, 2]

    def test_by_department_id(self, agents):
        selected = select_scored_agents(agents, department_id=6)

        assert [a.id for a in selected] == [3]

    def test_group_members_included(self, agents):
        groups = [Group(id=40, agent_ids=(5,))]

        selected = select_scored_agents(agents, department_id=6, groups=groups, group_ids=[40])

        assert [a.id for a in selected] == [3, 4, 5]

    def test_nothing_configured_selects_nobody(self, agents):
        assert select_scored_agents(agents, department_name="") == []


class TestClassifyWorkload:

    @pytest.mark.parametrize("handled,expected", [
        (0, WorkloadClass.LIGHT),
        (4, WorkloadClass.LIGHT),
        (5, WorkloadClass.MODERATE),
        (9, WorkloadClass.MODERATE),
        (10, WorkloadClass.HEAVY),
        (14, WorkloadClass.HEAVY),
        (15, WorkloadClass.OVERLOADED),
        (40, WorkloadClass.OVERLOADED),
    ])
    def test_bands_inclusive_on_lower_bound(self, handled, expected):
        assert classify_workload(handled, Fraction(10)) == expected

    def test_exactly_average_is_heavy(self):
        # 500 tickets over 100 agents
        assert classify_workload(5, Fraction(500, 100)) == WorkloadClass.HEAVY

    def test_no_average(self):
        assert classify_workload(3, 0) == WorkloadClass.LIGHT

    def test_non_terminating_average(self):
        average = Fraction(10, 3)
        assert classify_workload(5, average) == WorkloadClass.OVERLOADED
        assert classify_workload(4, average) == WorkloadClass.HEAVY


class TestPeakTime:

    @pytest.mark.parametrize("moment,expected", [
        (datetime(2024, 5, 15, 9, 0, tzinfo=timezone.utc), True),
        (datetime(2024, 5, 15, 11, 59, tzinfo=timezone.utc), True),
        (datetime(2024, 5, 15, 12, 30, tzinfo=timezone.utc), False),
        (datetime(2024, 5, 15, 16, 59, tzinfo=timezone.utc), True),
        (datetime(2024, 5, 15, 17, 0, tzinfo=timezone.utc), False),
        (datetime(2024, 5, 18, 10, 0, tzinfo=timezone.utc), False),
    ])
    def test_business_hours(self, moment, expected):
        assert is_peak_time(moment, timezone.utc) is expected

    def test_uses_reporting_timezone(self):
        moment = datetime(2024, 5, 15, 7, 0, tzinfo=timezone.utc)

        assert is_peak_time(moment, timezone(timedelta(hours=3))) is True


class TestScorecards:

    @pytest.fixture
    def agents(self):
        return [Agent(id=1, name="Dana"), Agent(id=2, name="Lee")]

    @pytest.fixture
    def tickets(self, make_ticket):
        return [
            # Urgent, resolved in 2h inside SLA, created 09:00 on a weekday
            make_ticket(
                1, responder_id=1, status=4, priority=4,
                created_at=NOW - timedelta(hours=3),
                updated_at=NOW - timedelta(hours=1),
                due_by=NOW,
            ),
            # High, still pending, past its due date, escalated
            make_ticket(
                2, responder_id=1, status=2, priority=3,
                created_at=NOW - timedelta(hours=5),
                updated_at=NOW - timedelta(hours=4),
                due_by=NOW - timedelta(hours=4, minutes=30),
                is_escalated=True,
            ),
            # Handled by someone outside the scored set
            make_ticket(3, responder_id=99),
        ]

    def test_rates_and_scores(self, tickets, agents):
        cards = build_agent_scorecards(tickets, agents, tz=timezone.utc, fcr_threshold_hours=4)
        dana = cards[0]

        assert dana.id == 1
        assert dana.tickets == 2
        assert dana.resolved == 1
        assert dana.resolution == 50
        assert dana.sla_compliance == 50
        assert dana.urgent_resolution == 100
        assert dana.high_priority_resolution == 50
        assert dana.first_contact_resolution == 100
        assert dana.escalation_rate == 50
        assert dana.reopened_rate == 0
        assert dana.peak_time_resolution == 100
        assert dana.quality_score == 85
        assert dana.efficiency_score == 60
        assert dana.overall_score == 68
        assert dana.avg_resolution_time == "2.0 hrs"
        assert dana.avg_response_time == "1.5 hrs"

    def test_idle_agent(self, tickets, agents):
        cards = build_agent_scorecards(tickets, agents, tz=timezone.utc)
        lee = cards[1]

        assert lee.tickets == 0
        assert lee.resolution == 0
        assert lee.quality_score == 60
        assert lee.efficiency_score == 0
        assert lee.overall_score == 24
        assert lee.avg_response_time == "N/A"
        assert lee.workload == WorkloadClass.LIGHT

    def test_workload_against_team_average(self, tickets, agents):
        # Three tickets over two agents: 2 / 1.5 is Heavy
        cards = build_agent_scorecards(tickets, agents)

        assert cards[0].workload == WorkloadClass.HEAVY

    def test_sampled_response_preferred(self, tickets, agents):
        cards = build_agent_scorecards(tickets, agents, sampled_responses={1: 30.0, 2: 30.0})

        assert cards[0].avg_response_time == "30 min"

    def test_reopened_tickets(self, make_ticket, agents):
        tickets = [
            make_ticket(1, responder_id=2, status=2, stats=TicketStats(reopened_at=NOW.isoformat())),
            make_ticket(2, responder_id=2, status=2),
        ]

        cards = build_agent_scorecards(tickets, agents)

        assert cards[0].id == 2
        assert cards[0].reopened_rate == 50

    def test_implausible_resolution_excluded_from_average(self, make_ticket, agents):
        tickets = [
            make_ticket(
                1, responder_id=1, status=3,
                created_at=NOW - timedelta(days=60), updated_at=NOW,
            ),
        ]

        cards = build_agent_scorecards(tickets, agents)

        assert cards[0].resolved == 1
        assert cards[0].avg_resolution_time == "N/A"

    def test_ordering_by_tickets_then_overall(self, make_ticket):
        agents = [Agent(id=1, name="Low"), Agent(id=2, name="High"), Agent(id=3, name="Busy")]
        tickets = [
            make_ticket(1, responder_id=1, status=2, is_escalated=True),
            make_ticket(2, responder_id=2, status=2),
            make_ticket(3, responder_id=3, status=2),
            make_ticket(4, responder_id=3, status=2),
        ]

        cards = build_agent_scorecards(tickets, agents)

        assert [c.name for c in cards] == ["Busy", "High", "Low"]

    def test_agent_attribution_falls_back_through_assignment_fields(self, make_ticket, agents):
        tickets = [make_ticket(1, agent_id=2), make_ticket(2, owner_id=2)]

        cards = build_agent_scorecards(tickets, agents)

        assert cards[0].id == 2
        assert cards[0].tickets == 2

    def test_no_scored_agents(self, tickets):
        assert build_agent_scorecards(tickets, []) == []


class TestWorkloadDistribution:

    def test_counts_every_class(self, make_ticket):
        agents = [Agent(id=i, name=f"A{i}") for i in range(1, 4)]
        tickets = [make_ticket(i, responder_id=1) for i in range(1, 5)] + [make_ticket(9, responder_id=2)]

        points = workload_distribution(build_agent_scorecards(tickets, agents))

        assert {p.name: p.value for p in points} == {
            "Light": 1,
            "Moderate": 1,
            "Heavy": 0,
            "Overloaded": 1,
        }
