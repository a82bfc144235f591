"""Tests for the IT support desk."""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from openai import OpenAIError

from clinic_ops import it_support, llm
from clinic_ops.clinic_records.database import (
    RecordNotFoundError,
    RemoteSession,
    SupportRepository,
    Ticket,
)

CREATED = datetime(2026, 5, 4, 9, 0)


@pytest.fixture
def repo():
    return SupportRepository()


@pytest.fixture
def organization_id(repo):
    return repo.create_organization("Eastside Recovery Center", "professional", active_users=12)


@pytest.fixture
def ticket(repo, organization_id):
    return it_support.create_ticket(Ticket(
        id="",
        subject="Dosing pump not syncing",
        description="The pump at window 2 stopped reporting doses this morning.",
        organization_id=organization_id,
        contact_name="Dana Lee",
        created_at=CREATED.isoformat(),
    ), repo=repo)


class TestFilterTickets:
    """Tests for narrowing the ticket list."""

    def _tickets(self):
        return [
            Ticket(id="1", subject="Printer offline", ticket_number="TKT-2026-000001",
                   organization_name="Eastside", status="open"),
            Ticket(id="2", subject="Billing export fails", ticket_number="TKT-2026-000002",
                   organization_name="Westside", status="resolved"),
        ]

    def test_all(self):
        assert len(it_support.filter_tickets(self._tickets(), "all")) == 2

    def test_status(self):
        assert [t.id for t in it_support.filter_tickets(self._tickets(), "resolved")] == ["2"]

    @pytest.mark.parametrize("search,expected", [
        ("printer", ["1"]),
        ("WESTSIDE", ["2"]),
        ("000002", ["2"]),
        ("scanner", []),
    ])
    def test_search(self, search, expected):
        assert [t.id for t in it_support.filter_tickets(self._tickets(), "all", search)] == expected


class TestStats:
    """Tests for support desk statistics."""

    def test_counts(self):
        tickets = [
            Ticket(id="1", subject="a", status="open", priority="critical"),
            Ticket(id="2", subject="b", status="in_progress", response_time=10),
            Ticket(id="3", subject="c", status="resolved", priority="critical", response_time=25),
        ]
        assert it_support.calculate_stats(tickets) == {
            "open_tickets": 1,
            "in_progress_tickets": 1,
            "critical_tickets": 1,
            "avg_response_time": 18,
        }

    def test_no_response_times(self):
        assert it_support.calculate_stats([])["avg_response_time"] == 0

    def test_organization_summary(self):
        summary = it_support.organization_summary([{"status": "online"}, {"status": "issues"}, {"status": None}])
        assert summary == {"total": 3, "by_status": {"online": 1, "offline": 1, "issues": 1}}


class TestTickets:
    """Tests for creating and updating tickets."""

    def test_created_open_with_organization_name(self, ticket):
        assert ticket.status == "open"
        assert ticket.organization_name == "Eastside Recovery Center"
        assert ticket.ticket_number == f"TKT-{datetime.now().year}-000001"

    def test_ticket_numbers_increase(self, repo):
        first = it_support.create_ticket(Ticket(id="", subject="One"), repo=repo)
        second = it_support.create_ticket(Ticket(id="", subject="Two"), repo=repo)

        assert first.ticket_number.endswith("-000001")
        assert second.ticket_number.endswith("-000002")

    def test_sequence_is_per_year(self, repo):
        it_support.create_ticket(Ticket(id="", subject="Old", ticket_number="TKT-2020-000041"), repo=repo)
        assert repo.next_ticket_number(2020) == "TKT-2020-000042"
        assert repo.next_ticket_number(2021) == "TKT-2021-000001"

    def test_first_response_time(self, repo, ticket):
        updated = it_support.update_ticket(
            ticket.id, {"status": "in_progress", "assigned_to": "Sam"}, now=CREATED + timedelta(minutes=45), repo=repo,
        )

        assert updated.status == "in_progress"
        assert updated.assigned_to == "Sam"
        assert updated.response_time == 45

    def test_response_time_kept_once_set(self, repo, ticket):
        it_support.update_ticket(ticket.id, {"status": "in_progress"}, now=CREATED + timedelta(minutes=5), repo=repo)
        updated = it_support.update_ticket(ticket.id, {"status": "escalated"}, now=CREATED + timedelta(hours=2), repo=repo)
        assert updated.response_time == 5

    def test_resolution(self, repo, ticket):
        resolved_at = CREATED + timedelta(hours=3, minutes=30)
        updated = it_support.update_ticket(ticket.id, {"status": "resolved"}, now=resolved_at, repo=repo)

        assert updated.resolved_at == resolved_at.isoformat()
        assert updated.resolution_time == 210
        assert updated.response_time == 210

    def test_invalid_status(self, repo, ticket):
        with pytest.raises(ValueError, match="Invalid ticket status"):
            it_support.update_ticket(ticket.id, {"status": "lost"}, repo=repo)

    def test_missing_ticket(self, repo):
        with pytest.raises(RecordNotFoundError):
            it_support.update_ticket("missing", {"status": "closed"}, repo=repo)

    def test_support_data(self, repo, ticket):
        data = it_support.get_support_data("open", "pump", repo=repo)

        assert [t["id"] for t in data["tickets"]] == [ticket.id]
        assert data["organization_summary"]["total"] == 1
        assert data["stats"]["open_tickets"] == 1


class TestTriage:
    """Tests for model-assisted ticket triage."""

    def test_applies_suggestion(self, repo, ticket):
        suggestion = llm.TicketTriage(category="integration", priority="critical", reason="Dosing is down")
        with patch("clinic_ops.it_support.llm.triage_ticket", return_value=suggestion):
            result = it_support.triage_ticket(ticket.id, repo=repo)

        assert result["applied"] == ["category", "priority"]
        assert result["ticket"]["priority"] == "critical"
        assert repo.get_ticket(ticket.id).category == "integration"

    def test_invalid_values_are_dropped(self):
        triage = llm.TicketTriage(category="Feature Request", priority="urgent")
        assert triage.category == "feature_request"
        assert triage.priority is None

    def test_matching_suggestion_changes_nothing(self, repo, ticket):
        suggestion = llm.TicketTriage(category="technical", priority="medium")
        with patch("clinic_ops.it_support.llm.triage_ticket", return_value=suggestion):
            result = it_support.triage_ticket(ticket.id, repo=repo)
        assert result["applied"] == []

    def test_model_error_keeps_ticket(self, repo, ticket):
        with patch("clinic_ops.it_support.llm.triage_ticket", side_effect=OpenAIError("rate limited")):
            result = it_support.triage_ticket(ticket.id, repo=repo)

        assert result["applied"] == []
        assert result["triage"] == {"category": None, "priority": None, "reason": None}
        assert result["ticket"]["priority"] == "medium"

    def test_no_api_key(self, repo, ticket):
        assert it_support.triage_ticket(ticket.id, repo=repo)["applied"] == []

    def test_missing_ticket(self, repo):
        with pytest.raises(RecordNotFoundError):
            it_support.triage_ticket("missing", repo=repo)


class TestRemoteSessions:
    """Tests for remote support sessions and chat."""

    def test_start_links_ticket(self, repo, ticket, organization_id):
        session = it_support.start_session(RemoteSession(
            id="", ticket_id=ticket.id, support_agent_name="Sam", session_type="full_control",
        ), repo=repo)

        assert session.status == "active"
        assert session.organization_id == organization_id
        assert repo.get_ticket(ticket.id).remote_session_id == session.id
        assert [s.id for s in repo.list_active_sessions()] == [session.id]

    def test_invalid_session_type(self, repo):
        with pytest.raises(ValueError, match="Invalid session type"):
            it_support.start_session(RemoteSession(id="", ticket_id=None, session_type="takeover"), repo=repo)

    def test_unknown_ticket(self, repo):
        with pytest.raises(RecordNotFoundError):
            it_support.start_session(RemoteSession(id="", ticket_id="missing"), repo=repo)

    def test_end_records_duration(self, repo):
        session = it_support.start_session(RemoteSession(
            id="", ticket_id=None, started_at=CREATED.isoformat(),
        ), repo=repo)

        ended = it_support.end_session(session.id, now=CREATED + timedelta(minutes=12), repo=repo)

        assert ended.status == "ended"
        assert ended.duration == 720
        assert repo.list_active_sessions() == []

    def test_end_twice_keeps_first_end(self, repo):
        session = it_support.start_session(RemoteSession(id="", ticket_id=None, started_at=CREATED.isoformat()), repo=repo)
        it_support.end_session(session.id, now=CREATED + timedelta(minutes=1), repo=repo)

        ended = it_support.end_session(session.id, now=CREATED + timedelta(hours=1), repo=repo)
        assert ended.duration == 60

    def test_messages(self, repo):
        session = it_support.start_session(RemoteSession(id="", ticket_id=None), repo=repo)

        message = it_support.send_message(session.id, "  Can you see my screen?  ", repo=repo)

        assert message["message"] == "Can you see my screen?"
        assert message["sender_role"] == "support"
        assert len(repo.list_messages(session.id)) == 1

    def test_empty_message(self, repo):
        session = it_support.start_session(RemoteSession(id="", ticket_id=None), repo=repo)
        with pytest.raises(ValueError, match="Message cannot be empty"):
            it_support.send_message(session.id, "   ", repo=repo)

    def test_message_to_missing_session(self, repo):
        with pytest.raises(RecordNotFoundError):
            it_support.send_message("missing", "hello", repo=repo)
