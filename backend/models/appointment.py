"""Appointment model definitions."""

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, String, text
from backend.database import Base


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    PAYMENT_PENDING = "payment_pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DECLINED = "declined"


ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.PAYMENT_PENDING, AppointmentStatus.DECLINED}),
    AppointmentStatus.PAYMENT_PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.DECLINED: frozenset(),
}

if set(ALLOWED_TRANSITIONS) != set(AppointmentStatus):
    raise RuntimeError("Every appointment status needs an entry in ALLOWED_TRANSITIONS.")

# Statuses that hold a slot on the professional's calendar.
ACTIVE_STATUSES = (
    AppointmentStatus.PENDING,
    AppointmentStatus.PAYMENT_PENDING,
    AppointmentStatus.CONFIRMED,
)


def is_terminal(status: AppointmentStatus) -> bool:
    return not ALLOWED_TRANSITIONS[status]


class Appointment(Base):
    """Represents a booked consultation."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    scheduled_at = Column(DateTime, nullable=False)  # naive UTC
    duration_minutes = Column(Integer, nullable=False)
    status = Column(
        Enum(AppointmentStatus, native_enum=False, values_callable=lambda statuses: [s.value for s in statuses]),
        nullable=False,
        default=AppointmentStatus.PENDING,
    )
    payment_expires_at = Column(DateTime)
    completed_at = Column(DateTime)
    meeting_link = Column(String)
    consultation_notes = Column(String)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index(
            "uq_appointments_active_start",
            "professional_id",
            "scheduled_at",
            unique=True,
            sqlite_where=text("status IN ('pending', 'payment_pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'payment_pending', 'confirmed')"),
        ),
    )
