"""IT support: client organizations, tickets, remote sessions and chat."""

import uuid
from dataclasses import dataclass
from datetime import datetime

from .connection import get_connection


@dataclass
class Ticket:
    id: str
    subject: str
    ticket_number: str = ""
    organization_id: str | None = None
    organization_name: str | None = None
    contact_name: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    description: str | None = None
    category: str = "technical"
    priority: str = "medium"
    status: str = "open"
    assigned_to: str | None = None
    remote_session_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    resolved_at: str | None = None
    response_time: int | None = None
    resolution_time: int | None = None


@dataclass
class RemoteSession:
    id: str
    ticket_id: str | None
    organization_id: str | None = None
    client_user_name: str | None = None
    support_agent_name: str | None = None
    session_type: str = "view_only"
    status: str = "requesting"
    started_at: str | None = None
    ended_at: str | None = None
    duration: int = 0
    recording: bool = False


class SupportRepository:
    """Repository for support tickets and remote sessions."""

    TICKET_UPDATE_FIELDS = [
        "status", "assigned_to", "priority", "category", "remote_session_id",
        "resolved_at", "response_time", "resolution_time",
    ]

    # Organizations

    def create_organization(self, name: str, subscription_tier: str | None = None, active_users: int = 0, status: str = "online") -> str:
        conn = get_connection()
        cursor = conn.cursor()
        organization_id = str(uuid.uuid4())
        cursor.execute("""
            INSERT INTO organizations (id, name, subscription_tier, active_users, last_activity, status)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (organization_id, name, subscription_tier, active_users, datetime.now().isoformat(), status))
        conn.commit()
        conn.close()
        return organization_id

    def list_organizations(self) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM organizations ORDER BY name")
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def get_organization(self, organization_id: str) -> dict | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM organizations WHERE id = ?", (organization_id,))
        row = cursor.fetchone()
        conn.close()
        return dict(row) if row else None

    # Tickets

    def next_ticket_number(self, year: int) -> str:
        """Next number in the year's sequence, formatted TKT-YYYY-NNNNNN."""
        conn = get_connection()
        cursor = conn.cursor()
        prefix = f"TKT-{year}-"
        cursor.execute(
            "SELECT MAX(ticket_number) FROM support_tickets WHERE ticket_number LIKE ?",
            (prefix + "%",)
        )
        latest = cursor.fetchone()[0]
        conn.close()
        sequence = int(latest[len(prefix):]) + 1 if latest else 1
        return f"{prefix}{sequence:06d}"

    def create_ticket(self, ticket: Ticket) -> Ticket:
        now = datetime.now()
        ticket.id = ticket.id or str(uuid.uuid4())
        ticket.ticket_number = ticket.ticket_number or self.next_ticket_number(now.year)
        ticket.created_at = ticket.created_at or now.isoformat()
        ticket.updated_at = ticket.created_at

        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO support_tickets (
                id, ticket_number, organization_id, organization_name, contact_name,
                contact_email, contact_phone, subject, description, category, priority,
                status, assigned_to, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            ticket.id, ticket.ticket_number, ticket.organization_id, ticket.organization_name,
            ticket.contact_name, ticket.contact_email, ticket.contact_phone, ticket.subject,
            ticket.description, ticket.category, ticket.priority, ticket.status,
            ticket.assigned_to, ticket.created_at, ticket.updated_at
        ))
        conn.commit()
        conn.close()
        return ticket

    def get_ticket(self, ticket_id: str) -> Ticket | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM support_tickets WHERE id = ?", (ticket_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_ticket(row) if row else None

    def list_tickets(self) -> list[Ticket]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM support_tickets ORDER BY created_at DESC")
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_ticket(row) for row in rows]

    def update_ticket(self, ticket_id: str, updates: dict) -> Ticket | None:
        fields = {k: v for k, v in updates.items() if k in self.TICKET_UPDATE_FIELDS}
        fields["updated_at"] = datetime.now().isoformat()

        conn = get_connection()
        cursor = conn.cursor()
        assignments = ", ".join(f"{key} = ?" for key in fields)
        cursor.execute(
            f"UPDATE support_tickets SET {assignments} WHERE id = ?",
            [*fields.values(), ticket_id]
        )
        conn.commit()
        conn.close()
        return self.get_ticket(ticket_id)

    # Remote sessions

    def create_session(self, session: RemoteSession) -> RemoteSession:
        conn = get_connection()
        cursor = conn.cursor()
        session.id = session.id or str(uuid.uuid4())
        session.started_at = session.started_at or datetime.now().isoformat()
        try:
            cursor.execute("""
                INSERT INTO remote_sessions (
                    id, ticket_id, organization_id, client_user_name, support_agent_name,
                    session_type, status, started_at, duration, recording
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
            """, (
                session.id, session.ticket_id, session.organization_id,
                session.client_user_name, session.support_agent_name, session.session_type,
                session.status, session.started_at, int(session.recording)
            ))
            if session.ticket_id:
                cursor.execute(
                    "UPDATE support_tickets SET remote_session_id = ?, updated_at = ? WHERE id = ?",
                    (session.id, datetime.now().isoformat(), session.ticket_id)
                )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return session

    def get_session(self, session_id: str) -> RemoteSession | None:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM remote_sessions WHERE id = ?", (session_id,))
        row = cursor.fetchone()
        conn.close()
        return self._row_to_session(row) if row else None

    def list_active_sessions(self) -> list[RemoteSession]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM remote_sessions WHERE status != 'ended' ORDER BY started_at DESC")
        rows = cursor.fetchall()
        conn.close()
        return [self._row_to_session(row) for row in rows]

    def end_session(self, session_id: str, ended_at: str, duration: int) -> bool:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE remote_sessions SET status = 'ended', ended_at = ?, duration = ?
            WHERE id = ?
        """, (ended_at, duration, session_id))
        updated = cursor.rowcount > 0
        conn.commit()
        conn.close()
        return updated

    def add_message(
        self,
        session_id: str,
        message: str,
        sender_name: str,
        sender_role: str = "support",
        message_type: str = "text",
    ) -> dict:
        conn = get_connection()
        cursor = conn.cursor()
        record = {
            "id": str(uuid.uuid4()),
            "session_id": session_id,
            "sender_name": sender_name,
            "sender_role": sender_role,
            "message": message,
            "message_type": message_type,
            "timestamp": datetime.now().isoformat(),
        }
        cursor.execute("""
            INSERT INTO session_messages (id, session_id, sender_name, sender_role, message, message_type, timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, tuple(record.values()))
        conn.commit()
        conn.close()
        return record

    def list_messages(self, session_id: str) -> list[dict]:
        conn = get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM session_messages WHERE session_id = ? ORDER BY timestamp",
            (session_id,)
        )
        rows = cursor.fetchall()
        conn.close()
        return [dict(row) for row in rows]

    # Private helpers

    def _row_to_ticket(self, row) -> Ticket:
        return Ticket(
            id=row["id"],
            subject=row["subject"],
            ticket_number=row["ticket_number"],
            organization_id=row["organization_id"],
            organization_name=row["organization_name"],
            contact_name=row["contact_name"],
            contact_email=row["contact_email"],
            contact_phone=row["contact_phone"],
            description=row["description"],
            category=row["category"],
            priority=row["priority"],
            status=row["status"],
            assigned_to=row["assigned_to"],
            remote_session_id=row["remote_session_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            resolved_at=row["resolved_at"],
            response_time=row["response_time"],
            resolution_time=row["resolution_time"],
        )

    def _row_to_session(self, row) -> RemoteSession:
        return RemoteSession(
            id=row["id"],
            ticket_id=row["ticket_id"],
            organization_id=row["organization_id"],
            client_user_name=row["client_user_name"],
            support_agent_name=row["support_agent_name"],
            session_type=row["session_type"],
            status=row["status"],
            started_at=row["started_at"],
            ended_at=row["ended_at"],
            duration=row["duration"] or 0,
            recording=bool(row["recording"]),
        )
