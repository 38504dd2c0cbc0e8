from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from sitejo.tickets.models import Ticket, TicketCategory, TicketPriority
from sitejo.tickets.state import TicketStatus
from sitejo.users.models import Role, User

BASE_TIME = datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc)
TEST_PASSWORD = "password123"


@dataclass
class FrozenClock:
    """Deterministic clock that only moves when told to."""

    now: datetime = BASE_TIME
    step: timedelta = field(default_factory=lambda: timedelta(seconds=1))

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def set(self, moment: datetime) -> None:
        self.now = moment


def make_user(role: Role = Role.STUDENT, **overrides) -> User:
    user_id = overrides.pop("id", str(uuid4()))
    values = {
        "id": user_id,
        "name": f"{role.value}-{user_id[:6]}",
        "email": f"{user_id[:8]}@example.ac.id",
        "nim_nip": user_id[:10],
        "role": role,
        "phone": None,
        "created_at": BASE_TIME,
        "updated_at": BASE_TIME,
    }
    values.update(overrides)
    return User(**values)


def make_ticket(
    *,
    student: User | None = None,
    lecturer: User | None = None,
    status: TicketStatus = TicketStatus.PENDING,
    **overrides,
) -> Ticket:
    values = {
        "id": str(uuid4()),
        "ticket_number": "TKT-20261019-0001",
        "student_id": student.id if student else str(uuid4()),
        "lecturer_id": lecturer.id if lecturer else str(uuid4()),
        "title": "Surat keterangan aktif kuliah",
        "description": "Untuk pengajuan beasiswa",
        "category": TicketCategory.SURAT_KETERANGAN,
        "status": status,
        "priority": TicketPriority.MEDIUM,
        "admin_notes": None,
        "lecturer_notes": None,
        "rejection_reason": None,
        "nomor_surat": None,
        "submitted_at": BASE_TIME,
        "reviewed_at": None,
        "approved_at": None,
        "completed_at": None,
        "created_at": BASE_TIME,
        "updated_at": BASE_TIME,
    }
    values.update(overrides)
    return Ticket(**values)
