"""Booking coordinator: reads a professional's calendar and reserves slots."""

import logging
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlalchemy.orm import Session

from backend.core import config, errors
from backend.database import to_utc_naive, utcnow
from backend.models.appointment import ACTIVE_STATUSES, Appointment, AppointmentStatus
from backend.models.availability import AvailabilityRule, TimeOffException
from backend.models.user import ProfessionalProfile, User, UserRole
from backend.services.slot_generator import Reservation, Slot, generate_slots

logger = logging.getLogger(__name__)


def get_professional(db: Session, professional_id: int) -> User:
    professional = db.get(User, professional_id)
    if professional is None or professional.role != UserRole.PROFESSIONAL:
        raise errors.NotFoundError('Professional not found.')
    return professional


def get_professional_zone(db: Session, professional_id: int) -> ZoneInfo:
    profile = db.query(ProfessionalProfile).filter(ProfessionalProfile.user_id == professional_id).first()
    zone_name = profile.timezone if profile else config.DEFAULT_TIMEZONE
    try:
        return ZoneInfo(zone_name)
    except ZoneInfoNotFoundError:
        logger.warning('Unknown time zone %r for professional %s; using %s', zone_name, professional_id, config.DEFAULT_TIMEZONE)
        return ZoneInfo(config.DEFAULT_TIMEZONE)


def local_today(zone: ZoneInfo, now: datetime | None = None) -> date:
    """Calendar date of ``now`` (naive UTC) on the professional's wall clock."""
    now = now or utcnow()
    return now.replace(tzinfo=timezone.utc).astimezone(zone).date()


def load_reservations(
    db: Session,
    professional_id: int,
    range_start: datetime,
    range_end: datetime,
) -> list[Reservation]:
    # The widest rule a day can hold is 24h, so anything starting a day before
    # the window may still reach into it.
    appointments = db.query(Appointment.scheduled_at, Appointment.duration_minutes).filter(
        Appointment.professional_id == professional_id,
        Appointment.status.in_(ACTIVE_STATUSES),
        Appointment.scheduled_at < range_end,
        Appointment.scheduled_at >= range_start - timedelta(days=1),
    ).all()
    return [Reservation(starts_at=starts_at, duration_minutes=duration) for starts_at, duration in appointments]


def _day_bounds_utc(target_date: date, zone: ZoneInfo) -> tuple[datetime, datetime]:
    local_start = datetime.combine(target_date, datetime.min.time(), tzinfo=zone)
    local_end = local_start + timedelta(days=1)
    return to_utc_naive(local_start), to_utc_naive(local_end)


def _load_day(db: Session, professional_id: int, target_date: date, zone: ZoneInfo):
    rules = db.query(AvailabilityRule).filter(
        AvailabilityRule.professional_id == professional_id,
    ).order_by(AvailabilityRule.start_time.asc(), AvailabilityRule.id.asc()).all()
    exceptions = db.query(TimeOffException).filter(
        TimeOffException.professional_id == professional_id,
        TimeOffException.blocked_date == target_date,
    ).all()
    range_start, range_end = _day_bounds_utc(target_date, zone)
    reservations = load_reservations(db, professional_id, range_start, range_end)
    return rules, exceptions, reservations


def list_available_slots(
    db: Session,
    professional_id: int,
    target_date: date,
    now: datetime | None = None,
) -> list[Slot]:
    get_professional(db, professional_id)
    now = now or utcnow()
    zone = get_professional_zone(db, professional_id)
    rules, exceptions, reservations = _load_day(db, professional_id, target_date, zone)
    return generate_slots(rules, exceptions, reservations, target_date, now, zone)


def list_bookable_dates(
    db: Session,
    professional_id: int,
    days: int,
    now: datetime | None = None,
) -> list[date]:
    now = now or utcnow()
    zone = get_professional_zone(db, professional_id)
    today = local_today(zone, now)

    bookable: list[date] = []
    for offset in range(days):
        current_day = today + timedelta(days=offset)
        if list_available_slots(db, professional_id, current_day, now):
            bookable.append(current_day)
    return bookable


def book_appointment(
    db: Session,
    patient: User,
    professional_id: int,
    start_time: datetime,
    now: datetime | None = None,
) -> Appointment:
    """Reserve ``start_time`` for ``patient`` in the ``pending`` state.

    A naive ``start_time`` is read as wall-clock time in the professional's
    zone; an aware one is taken as the absolute instant.
    """
    if patient.role != UserRole.PATIENT:
        raise errors.AuthorizationError('Only patients can book appointments.')

    professional = get_professional(db, professional_id)
    if professional.id == patient.id:
        raise errors.ValidationError('You cannot book an appointment with yourself.', field='professional_id')

    now = now or utcnow()
    zone = get_professional_zone(db, professional_id)
    if start_time.tzinfo is None:
        start_time = start_time.replace(tzinfo=zone)
    local_start = start_time.astimezone(zone).replace(second=0, microsecond=0)
    starts_at = to_utc_naive(local_start)

    if starts_at <= now:
        raise errors.ValidationError('Appointments must be scheduled in the future.', field='start_time')

    target_date = local_start.date()
    rules, exceptions, reservations = _load_day(db, professional_id, target_date, zone)
    slots = generate_slots(rules, exceptions, reservations, target_date, now, zone)
    slot = next((candidate for candidate in slots if candidate.starts_at == starts_at), None)
    if slot is None:
        unreserved = generate_slots(rules, exceptions, [], target_date, now, zone)
        if any(candidate.starts_at == starts_at for candidate in unreserved):
            raise errors.ConflictError('This time is already booked.')
        raise errors.ValidationError('This time is not an available slot.', field='start_time')

    appointment = Appointment(
        patient_id=patient.id,
        professional_id=professional_id,
        scheduled_at=slot.starts_at,
        duration_minutes=slot.duration_minutes,
        status=AppointmentStatus.PENDING,
        created_at=now,
    )
    db.add(appointment)
    try:
        db.commit()
    except SQLIntegrityError as exc:
        db.rollback()
        raise errors.ConflictError('This time is already booked.') from exc
    db.refresh(appointment)

    logger.info(
        'Appointment %s requested by patient %s with professional %s at %s',
        appointment.id, patient.id, professional_id, appointment.scheduled_at.isoformat(),
    )
    return appointment
