"""Availability model definitions."""

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Integer, String, Time
from backend.database import Base


class AvailabilityRule(Base):
    """Recurring weekly window a professional takes bookings in."""
    __tablename__ = "availability_rules"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration_minutes = Column(Integer, nullable=False)
    buffer_minutes = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_rule_day_of_week"),
        CheckConstraint("start_time < end_time", name="ck_rule_time_order"),
        CheckConstraint("slot_duration_minutes > 0", name="ck_rule_duration"),
        CheckConstraint("buffer_minutes >= 0", name="ck_rule_buffer"),
    )


class TimeOffException(Base):
    """One-off block on a date; no time range means the whole day."""
    __tablename__ = "time_off_exceptions"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    blocked_date = Column(Date, nullable=False)
    start_time = Column(Time)
    end_time = Column(Time)
    reason = Column(String)

    __table_args__ = (
        CheckConstraint(
            "(start_time IS NULL AND end_time IS NULL) OR "
            "(start_time IS NOT NULL AND end_time IS NOT NULL AND start_time < end_time)",
            name="ck_time_off_range",
        ),
    )

    @property
    def is_full_day(self) -> bool:
        return self.start_time is None
