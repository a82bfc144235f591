"""
IT support desk for client clinics.

Tickets, remote support sessions with chat, and model-assisted triage of a
ticket's category and priority.
"""

from dataclasses import asdict
from datetime import datetime

from openai import OpenAIError

from clinic_ops import llm
from clinic_ops.clinic_records.database import (
    RecordNotFoundError,
    RemoteSession,
    SupportRepository,
    Ticket,
)
from clinic_ops.health_equity import round_half_up

TICKET_STATUSES = ["open", "in_progress", "pending_customer", "escalated", "resolved", "closed"]
CLOSED_STATUSES = ("resolved", "closed")
SESSION_TYPES = ["view_only", "full_control", "assist"]
ORGANIZATION_STATUSES = ["online", "offline", "issues"]


def _minutes_between(start: str | None, end: datetime) -> int | None:
    if not start:
        return None
    return int((end - datetime.fromisoformat(start)).total_seconds() // 60)


def filter_tickets(tickets: list[Ticket], status: str | None = "all", search: str | None = None) -> list[Ticket]:
    """Narrow tickets by status ("all" keeps every status) and a search term."""
    term = (search or "").lower()
    matches = []
    for ticket in tickets:
        if status and status != "all" and ticket.status != status:
            continue
        if term and not (
            term in ticket.subject.lower()
            or term in (ticket.organization_name or "").lower()
            or term in ticket.ticket_number.lower()
        ):
            continue
        matches.append(ticket)
    return matches


def calculate_stats(tickets: list[Ticket]) -> dict:
    response_times = [t.response_time for t in tickets if t.response_time]
    return {
        "open_tickets": sum(1 for t in tickets if t.status == "open"),
        "in_progress_tickets": sum(1 for t in tickets if t.status == "in_progress"),
        "critical_tickets": sum(
            1 for t in tickets if t.priority == "critical" and t.status not in CLOSED_STATUSES
        ),
        "avg_response_time": (
            int(round_half_up(sum(response_times) / len(response_times), 0)) if response_times else 0
        ),
    }


def organization_summary(organizations: list[dict]) -> dict:
    counts = {status: 0 for status in ORGANIZATION_STATUSES}
    for organization in organizations:
        status = organization.get("status") or "offline"
        counts[status] = counts.get(status, 0) + 1
    return {"total": len(organizations), "by_status": counts}


def get_support_data(
    status: str | None = "all",
    search: str | None = None,
    repo: SupportRepository | None = None,
) -> dict:
    repo = repo or SupportRepository()
    tickets = repo.list_tickets()
    organizations = repo.list_organizations()

    return {
        "tickets": [asdict(t) for t in filter_tickets(tickets, status, search)],
        "organizations": organizations,
        "organization_summary": organization_summary(organizations),
        "active_sessions": [asdict(s) for s in repo.list_active_sessions()],
        "stats": calculate_stats(tickets),
    }


# =============================================================================
# Tickets
# =============================================================================

def create_ticket(ticket: Ticket, repo: SupportRepository | None = None) -> Ticket:
    repo = repo or SupportRepository()
    if ticket.organization_id and not ticket.organization_name:
        organization = repo.get_organization(ticket.organization_id)
        if organization:
            ticket.organization_name = organization["name"]
    ticket.status = "open"
    return repo.create_ticket(ticket)


def update_ticket(
    ticket_id: str,
    updates: dict,
    now: datetime | None = None,
    repo: SupportRepository | None = None,
) -> Ticket:
    """
    Change a ticket's status or assignment.

    Leaving "open" for the first time records the response time, and
    resolving records resolved_at and the resolution time, both in minutes.
    """
    repo = repo or SupportRepository()
    now = now or datetime.now()
    ticket = repo.get_ticket(ticket_id)
    if not ticket:
        raise RecordNotFoundError(f"Ticket {ticket_id} not found")

    status = updates.get("status")
    if status is not None and status not in TICKET_STATUSES:
        raise ValueError(f"Invalid ticket status: {status}")

    changes = {k: v for k, v in updates.items() if v is not None}
    if status and status != "open" and ticket.response_time is None:
        changes["response_time"] = _minutes_between(ticket.created_at, now)
    if status == "resolved" and ticket.status != "resolved":
        changes["resolved_at"] = now.isoformat()
        changes["resolution_time"] = _minutes_between(ticket.created_at, now)

    return repo.update_ticket(ticket_id, changes)


def triage_ticket(ticket_id: str, repo: SupportRepository | None = None) -> dict:
    """
    Ask the model for a category and priority and apply whichever it
    returned validly. The ticket keeps its submitted values otherwise.
    """
    repo = repo or SupportRepository()
    ticket = repo.get_ticket(ticket_id)
    if not ticket:
        raise RecordNotFoundError(f"Ticket {ticket_id} not found")

    try:
        triage = llm.triage_ticket(ticket.subject, ticket.description or "")
    except OpenAIError:
        triage = llm.TicketTriage()

    changes = {}
    if triage.category and triage.category != ticket.category:
        changes["category"] = triage.category
    if triage.priority and triage.priority != ticket.priority:
        changes["priority"] = triage.priority

    if changes:
        ticket = repo.update_ticket(ticket_id, changes)

    return {
        "ticket": asdict(ticket),
        "triage": triage.model_dump(),
        "applied": sorted(changes),
    }


# =============================================================================
# Remote sessions
# =============================================================================

def start_session(session: RemoteSession, repo: SupportRepository | None = None) -> RemoteSession:
    repo = repo or SupportRepository()
    if session.session_type not in SESSION_TYPES:
        raise ValueError(f"Invalid session type: {session.session_type}")
    if session.ticket_id:
        ticket = repo.get_ticket(session.ticket_id)
        if not ticket:
            raise RecordNotFoundError(f"Ticket {session.ticket_id} not found")
        session.organization_id = session.organization_id or ticket.organization_id
    session.status = "active"
    return repo.create_session(session)


def end_session(session_id: str, now: datetime | None = None, repo: SupportRepository | None = None) -> RemoteSession:
    repo = repo or SupportRepository()
    now = now or datetime.now()
    session = repo.get_session(session_id)
    if not session:
        raise RecordNotFoundError(f"Session {session_id} not found")
    if session.status == "ended":
        return session

    duration = int((now - datetime.fromisoformat(session.started_at)).total_seconds()) if session.started_at else 0
    repo.end_session(session_id, now.isoformat(), max(duration, 0))
    return repo.get_session(session_id)


def send_message(
    session_id: str,
    message: str,
    sender_name: str = "You",
    sender_role: str = "support",
    repo: SupportRepository | None = None,
) -> dict:
    repo = repo or SupportRepository()
    session = repo.get_session(session_id)
    if not session:
        raise RecordNotFoundError(f"Session {session_id} not found")
    if not message.strip():
        raise ValueError("Message cannot be empty")
    return repo.add_message(session_id, message.strip(), sender_name, sender_role)
