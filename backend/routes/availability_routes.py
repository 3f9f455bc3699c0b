from datetime import date, datetime, time, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_role
from backend.core import config, errors
from backend.database import get_db, utcnow
from backend.models.availability import AvailabilityRule, TimeOffException
from backend.models.user import User, UserRole
from backend.routes.common import database_unavailable, ensure_database_ready
from backend.services import booking

router = APIRouter(tags=['availability'])

DEFAULT_SLOT_DURATION_MINUTES = 30
DEFAULT_BUFFER_MINUTES = 5
MAX_TIME_OFF_REASON_LENGTH = 200


def _span_minutes(start: time, end: time) -> int:
    return (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)


class CreateAvailabilityRuleRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    slot_duration_minutes: int = Field(default=DEFAULT_SLOT_DURATION_MINUTES, gt=0)
    buffer_minutes: int = Field(default=DEFAULT_BUFFER_MINUTES, ge=0)

    @field_validator('start_time', 'end_time')
    @classmethod
    def truncate_to_minute(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0, tzinfo=None)

    @model_validator(mode='after')
    def validate_window(self):
        if self.start_time >= self.end_time:
            raise ValueError('end_time must be after start_time.')
        if _span_minutes(self.start_time, self.end_time) < self.slot_duration_minutes:
            raise ValueError('The window is shorter than one slot.')
        return self


class AvailabilityRuleResponse(BaseModel):
    id: int
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration_minutes: int
    buffer_minutes: int

    class Config:
        from_attributes = True


class CreateTimeOffRequest(BaseModel):
    blocked_date: date
    start_time: time | None = None
    end_time: time | None = None
    reason: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def truncate_to_minute(cls, value: time | None) -> time | None:
        if value is None:
            return None
        return value.replace(second=0, microsecond=0, tzinfo=None)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            return None
        if len(normalized) > MAX_TIME_OFF_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_TIME_OFF_REASON_LENGTH} characters or fewer.')
        return normalized

    @model_validator(mode='after')
    def validate_range(self):
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError('Give both start_time and end_time, or neither for a full day.')
        if self.start_time is not None and self.start_time >= self.end_time:
            raise ValueError('end_time must be after start_time.')
        return self


class TimeOffResponse(BaseModel):
    id: int
    blocked_date: date
    start_time: time | None = None
    end_time: time | None = None
    reason: str | None = None
    is_full_day: bool

    class Config:
        from_attributes = True


class SlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    starts_at_utc: datetime
    duration_minutes: int


@router.post('/rules', response_model=AvailabilityRuleResponse, status_code=status.HTTP_201_CREATED)
def create_rule(
    data: CreateAvailabilityRuleRequest,
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        rule = AvailabilityRule(professional_id=current_user.id, **data.model_dump())
        db.add(rule)
        db.commit()
        db.refresh(rule)
        return rule
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/rules', response_model=list[AvailabilityRuleResponse])
def list_rules(
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    try:
        return db.query(AvailabilityRule).filter(
            AvailabilityRule.professional_id == current_user.id,
        ).order_by(AvailabilityRule.day_of_week.asc(), AvailabilityRule.start_time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.delete('/rules/{rule_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(
    rule_id: int,
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    try:
        rule = db.query(AvailabilityRule).filter(
            AvailabilityRule.id == rule_id,
            AvailabilityRule.professional_id == current_user.id,
        ).first()
        if not rule:
            raise errors.NotFoundError('Availability rule not found.')

        db.delete(rule)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/time-off', response_model=TimeOffResponse, status_code=status.HTTP_201_CREATED)
def create_time_off(
    data: CreateTimeOffRequest,
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        time_off = TimeOffException(professional_id=current_user.id, **data.model_dump())
        db.add(time_off)
        db.commit()
        db.refresh(time_off)
        return time_off
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/time-off', response_model=list[TimeOffResponse])
def list_time_off(
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    try:
        today = booking.local_today(booking.get_professional_zone(db, current_user.id))
        return db.query(TimeOffException).filter(
            TimeOffException.professional_id == current_user.id,
            TimeOffException.blocked_date >= today,
        ).order_by(TimeOffException.blocked_date.asc(), TimeOffException.start_time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.delete('/time-off/{time_off_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_time_off(
    time_off_id: int,
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    try:
        time_off = db.query(TimeOffException).filter(
            TimeOffException.id == time_off_id,
            TimeOffException.professional_id == current_user.id,
        ).first()
        if not time_off:
            raise errors.NotFoundError('Time off not found.')

        db.delete(time_off)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/{professional_id}/slots', response_model=list[SlotResponse])
def list_slots(
    professional_id: int,
    slot_date: date = Query(alias='date'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    now = utcnow()

    try:
        booking.get_professional(db, professional_id)
        zone = booking.get_professional_zone(db, professional_id)
        if slot_date > booking.local_today(zone, now) + timedelta(days=config.BOOKING_HORIZON_DAYS):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f'Appointments can only be booked within the next {config.BOOKING_HORIZON_DAYS} days.',
            )

        slots = booking.list_available_slots(db, professional_id, slot_date, now)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    return [
        SlotResponse(
            start_time=slot.local_start,
            end_time=slot.ends_at.replace(tzinfo=timezone.utc).astimezone(slot.local_start.tzinfo),
            starts_at_utc=slot.starts_at,
            duration_minutes=slot.duration_minutes,
        )
        for slot in slots
    ]


@router.get('/{professional_id}/dates', response_model=list[date])
def list_bookable_dates(
    professional_id: int,
    days: int = Query(default=14, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    days = min(days, config.BOOKING_HORIZON_DAYS)

    try:
        booking.get_professional(db, professional_id)
        return booking.list_bookable_dates(db, professional_id, days)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc
