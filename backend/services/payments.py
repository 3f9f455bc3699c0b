"""Payment attempts and their settlement from gateway webhooks."""

import logging
import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import update
from sqlalchemy.orm import Session

from backend.core import config, errors
from backend.database import utcnow
from backend.models.appointment import AppointmentStatus
from backend.models.ledger import Transaction, TransactionStatus
from backend.models.user import ProfessionalProfile, User, UserRole
from backend.services.appointment_lifecycle import confirm_paid_appointment, get_appointment
from backend.services.ledger import credit_wallet

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')

SUCCESS_EVENT = 'charge.success'
FAILURE_EVENT = 'charge.failed'


def split_amount(amount: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(platform_fee, net_amount)`` for a gross ``amount``."""
    amount = Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
    fee = (amount * config.PLATFORM_FEE_PERCENT / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)
    return fee, amount - fee


def initiate_payment(
    db: Session,
    patient: User,
    appointment_id: int,
    now: datetime | None = None,
) -> Transaction:
    now = now or utcnow()
    appointment = get_appointment(db, appointment_id)
    if patient.role != UserRole.PATIENT or appointment.patient_id != patient.id:
        raise errors.AuthorizationError('Only the patient who booked this appointment can pay for it.')

    if appointment.status != AppointmentStatus.PAYMENT_PENDING:
        raise errors.ConflictError(f'Appointment is {appointment.status.value}, not awaiting payment.')
    if appointment.payment_expires_at is None or appointment.payment_expires_at < now:
        raise errors.ConflictError('The payment window for this appointment has closed.')

    profile = db.query(ProfessionalProfile).filter(
        ProfessionalProfile.user_id == appointment.professional_id,
    ).first()
    if profile is None or profile.consultation_fee is None or profile.consultation_fee <= 0:
        raise errors.ValidationError('This professional has no consultation fee set.')

    amount = Decimal(profile.consultation_fee).quantize(CENT, rounding=ROUND_HALF_UP)
    fee, net = split_amount(amount)
    transaction = Transaction(
        appointment_id=appointment.id,
        patient_id=patient.id,
        professional_id=appointment.professional_id,
        amount=amount,
        platform_fee=fee,
        net_amount=net,
        reference=f'apt{appointment.id}_{uuid.uuid4().hex}',
        status=TransactionStatus.PENDING,
        created_at=now,
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)

    logger.info('Payment %s initiated for appointment %s', transaction.reference, appointment.id)
    return transaction


def _get_transaction(db: Session, reference: str) -> Transaction:
    transaction = db.query(Transaction).filter(Transaction.reference == reference).first()
    if transaction is None:
        raise errors.NotFoundError('Transaction not found.')
    return transaction


def settle_successful_payment(db: Session, reference: str) -> bool:
    """Record a successful charge. Returns False for a repeated delivery.

    Marking the transaction successful, confirming the appointment and
    crediting the wallet commit together or not at all.
    """
    transaction = _get_transaction(db, reference)
    if transaction.status == TransactionStatus.SUCCESS:
        logger.warning('Duplicate success webhook for %s ignored', reference)
        return False

    try:
        flipped = db.execute(
            update(Transaction)
            .where(Transaction.id == transaction.id, Transaction.status != TransactionStatus.SUCCESS)
            .values(status=TransactionStatus.SUCCESS)
            .execution_options(synchronize_session=False)
        ).rowcount == 1
        if not flipped:
            db.rollback()
            logger.warning('Concurrent success webhook for %s ignored', reference)
            return False

        confirm_paid_appointment(db, transaction.appointment_id)
        credit_wallet(db, transaction.professional_id, transaction.net_amount)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception('Settlement of payment %s rolled back', reference)
        raise

    logger.info('Payment %s settled; appointment %s confirmed', reference, transaction.appointment_id)
    return True


def mark_payment_failed(db: Session, reference: str) -> bool:
    transaction = _get_transaction(db, reference)
    failed = db.execute(
        update(Transaction)
        .where(Transaction.id == transaction.id, Transaction.status == TransactionStatus.PENDING)
        .values(status=TransactionStatus.FAILED)
        .execution_options(synchronize_session=False)
    ).rowcount == 1
    db.commit()
    return failed


def handle_webhook_event(db: Session, payload: dict) -> str:
    """Apply a verified gateway event; returns what happened."""
    event = payload.get('event')
    reference = (payload.get('data') or {}).get('reference')

    if event not in (SUCCESS_EVENT, FAILURE_EVENT):
        return 'ignored'
    if not reference:
        raise errors.ValidationError('Webhook payload has no reference.', field='data.reference')

    if event == SUCCESS_EVENT:
        return 'settled' if settle_successful_payment(db, reference) else 'duplicate'
    return 'failed' if mark_payment_failed(db, reference) else 'duplicate'
