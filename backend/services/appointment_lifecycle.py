"""Appointment state machine.

Every transition is a conditional UPDATE that only matches the row while it
is still in the expected status. A zero row count means another actor got
there first (a second accept, the expiry sweep, a payment webhook) and the
caller gets a ConflictError instead of overwriting that transition.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config, errors
from backend.database import utcnow
from backend.models.appointment import (
    ALLOWED_TRANSITIONS,
    Appointment,
    AppointmentStatus,
)
from backend.models.user import User, UserRole

logger = logging.getLogger(__name__)

_UNSET = object()


def _transition(
    db: Session,
    appointment_id: int,
    expected: AppointmentStatus,
    target: AppointmentStatus,
    *conditions,
    **values,
) -> bool:
    if target not in ALLOWED_TRANSITIONS[expected]:
        raise errors.IntegrityError(f'Illegal appointment transition {expected.value} -> {target.value}.')

    result = db.execute(
        update(Appointment)
        .where(Appointment.id == appointment_id, Appointment.status == expected, *conditions)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise errors.NotFoundError('Appointment not found.')
    return appointment


def _require_owning_professional(actor: User, appointment: Appointment) -> None:
    if actor.role != UserRole.PROFESSIONAL or appointment.professional_id != actor.id:
        raise errors.AuthorizationError('Only the professional on this appointment can do that.')


def _require_party(actor: User, appointment: Appointment) -> None:
    if actor.role == UserRole.ADMIN:
        return
    if actor.id not in (appointment.patient_id, appointment.professional_id):
        raise errors.NotFoundError('Appointment not found.')


def _apply(
    db: Session,
    actor: User,
    appointment_id: int,
    expected: AppointmentStatus,
    target: AppointmentStatus,
    **values,
) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    _require_owning_professional(actor, appointment)

    if not _transition(db, appointment_id, expected, target, **values):
        db.rollback()
        db.refresh(appointment)
        raise errors.ConflictError(
            f'Appointment is {appointment.status.value}, expected {expected.value}.'
        )

    db.commit()
    db.refresh(appointment)
    logger.info('Appointment %s moved %s -> %s by user %s', appointment_id, expected.value, target.value, actor.id)
    return appointment


def accept_appointment(db: Session, actor: User, appointment_id: int, now: datetime | None = None) -> Appointment:
    now = now or utcnow()
    return _apply(
        db,
        actor,
        appointment_id,
        AppointmentStatus.PENDING,
        AppointmentStatus.PAYMENT_PENDING,
        payment_expires_at=now + timedelta(minutes=config.PAYMENT_WINDOW_MINUTES),
    )


def decline_appointment(db: Session, actor: User, appointment_id: int) -> Appointment:
    return _apply(db, actor, appointment_id, AppointmentStatus.PENDING, AppointmentStatus.DECLINED)


def complete_appointment(db: Session, actor: User, appointment_id: int, now: datetime | None = None) -> Appointment:
    now = now or utcnow()
    return _apply(
        db,
        actor,
        appointment_id,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.COMPLETED,
        completed_at=now,
    )


def confirm_paid_appointment(db: Session, appointment_id: int) -> None:
    """Move a paid appointment to confirmed inside the caller's transaction."""
    if not _transition(db, appointment_id, AppointmentStatus.PAYMENT_PENDING, AppointmentStatus.CONFIRMED):
        raise errors.ConflictError(f'Appointment {appointment_id} is no longer awaiting payment.')


def expire_unpaid_appointments(db: Session, now: datetime | None = None) -> int:
    """Cancel every appointment whose payment window has closed.

    Safe to run repeatedly; returns how many appointments this run cancelled.
    """
    now = now or utcnow()
    expired_ids = [
        appointment_id
        for (appointment_id,) in db.query(Appointment.id).filter(
            Appointment.status == AppointmentStatus.PAYMENT_PENDING,
            Appointment.payment_expires_at < now,
        ).all()
    ]

    cancelled = 0
    for appointment_id in expired_ids:
        try:
            if _transition(
                db,
                appointment_id,
                AppointmentStatus.PAYMENT_PENDING,
                AppointmentStatus.CANCELLED,
                Appointment.payment_expires_at < now,
            ):
                cancelled += 1
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception('Could not expire unpaid appointment %s', appointment_id)

    if cancelled:
        logger.info('Expired %s unpaid appointment(s)', cancelled)
    return cancelled


def update_appointment_details(
    db: Session,
    actor: User,
    appointment_id: int,
    consultation_notes=_UNSET,
    meeting_link=_UNSET,
) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    _require_owning_professional(actor, appointment)

    if consultation_notes is not _UNSET:
        appointment.consultation_notes = consultation_notes
    if meeting_link is not _UNSET:
        appointment.meeting_link = meeting_link

    db.commit()
    db.refresh(appointment)
    return appointment


def list_appointments_for(db: Session, actor: User) -> list[Appointment]:
    query = db.query(Appointment)
    if actor.role == UserRole.PATIENT:
        query = query.filter(Appointment.patient_id == actor.id)
    elif actor.role == UserRole.PROFESSIONAL:
        query = query.filter(Appointment.professional_id == actor.id)
    else:
        raise errors.AuthorizationError('Only patients and professionals have appointments.')
    return query.order_by(Appointment.scheduled_at.desc()).all()


def calendar_fields(db: Session, actor: User, appointment_id: int) -> dict:
    """What a calendar invite (or its cancellation) is built from."""
    appointment = get_appointment(db, appointment_id)
    _require_party(actor, appointment)

    return {
        'uid': f'appointment-{appointment.id}',
        'scheduled_at': appointment.scheduled_at,
        'duration_minutes': appointment.duration_minutes,
        'meeting_link': appointment.meeting_link,
        'cancelled': appointment.status in (AppointmentStatus.CANCELLED, AppointmentStatus.DECLINED),
    }
