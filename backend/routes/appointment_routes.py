from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_role
from backend.core import config
from backend.database import get_db
from backend.models.appointment import AppointmentStatus
from backend.models.user import User, UserRole
from backend.routes.common import database_unavailable, ensure_database_ready
from backend.services import appointment_lifecycle, booking
from backend.services.webhook_security import constant_time_compare

router = APIRouter(tags=['appointments'])

MAX_CONSULTATION_NOTES_LENGTH = 5000
MAX_MEETING_LINK_LENGTH = 500


class CreateAppointmentRequest(BaseModel):
    professional_id: int
    start_time: datetime


class UpdateAppointmentRequest(BaseModel):
    consultation_notes: str | None = None
    meeting_link: str | None = None

    @field_validator('consultation_notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_CONSULTATION_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_CONSULTATION_NOTES_LENGTH} characters or fewer.')

        return normalized

    @field_validator('meeting_link')
    @classmethod
    def validate_meeting_link(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if not normalized.lower().startswith(('https://', 'http://')):
            raise ValueError('Meeting link must be an http(s) URL.')
        if len(normalized) > MAX_MEETING_LINK_LENGTH:
            raise ValueError(f'Meeting link must be {MAX_MEETING_LINK_LENGTH} characters or fewer.')

        return normalized


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    professional_id: int
    scheduled_at: datetime
    duration_minutes: int
    status: AppointmentStatus
    payment_expires_at: datetime | None = None
    completed_at: datetime | None = None
    meeting_link: str | None = None
    consultation_notes: str | None = None

    class Config:
        from_attributes = True


class CalendarExportResponse(BaseModel):
    uid: str
    scheduled_at: datetime
    duration_minutes: int
    meeting_link: str | None = None
    cancelled: bool


class SweepResponse(BaseModel):
    cancelled: int


@router.post('/', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(require_role(UserRole.PATIENT)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return booking.book_appointment(db, current_user, data.professional_id, data.start_time)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return appointment_lifecycle.list_appointments_for(db, current_user)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('/expire-unpaid', response_model=SweepResponse)
def expire_unpaid(
    x_sweep_secret: str | None = Header(default=None),
    db: Session = Depends(get_db),
):
    if not config.SWEEP_SECRET:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Sweep secret not configured.',
        )
    if not constant_time_compare(config.SWEEP_SECRET, x_sweep_secret or ''):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid sweep secret.')

    try:
        return SweepResponse(cancelled=appointment_lifecycle.expire_unpaid_appointments(db))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/{appointment_id}/accept', response_model=AppointmentResponse)
def accept_appointment(
    appointment_id: int,
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    try:
        return appointment_lifecycle.accept_appointment(db, current_user, appointment_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/{appointment_id}/decline', response_model=AppointmentResponse)
def decline_appointment(
    appointment_id: int,
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    try:
        return appointment_lifecycle.decline_appointment(db, current_user, appointment_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    try:
        return appointment_lifecycle.complete_appointment(db, current_user, appointment_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    try:
        return appointment_lifecycle.update_appointment_details(
            db,
            current_user,
            appointment_id,
            **data.model_dump(exclude_unset=True),
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/{appointment_id}/calendar', response_model=CalendarExportResponse)
def get_calendar_fields(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return appointment_lifecycle.calendar_fields(db, current_user, appointment_id)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc
