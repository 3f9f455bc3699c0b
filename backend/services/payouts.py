"""Payout workflow.

A request reserves its amount at once (moved into the wallet's hold), so
concurrent requests can never add up to more than the balance. Approval pays
the hold out; rejection gives it back. Each step commits as one unit.
"""

import logging
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from backend.core import config, errors
from backend.database import utcnow
from backend.models.ledger import PayoutRequest, PayoutStatus, Transaction, TransactionStatus
from backend.models.user import User, UserRole
from backend.services.ledger import ZERO, get_wallet_snapshot, hold_funds, release_hold, settle_hold

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


def _require_admin(actor: User) -> None:
    if actor.role != UserRole.ADMIN:
        raise errors.AuthorizationError('Only administrators can process payouts.')


def _require_professional(actor: User) -> None:
    if actor.role != UserRole.PROFESSIONAL:
        raise errors.AuthorizationError('Only professionals have a wallet.')


def cooldown_ends_at(db: Session, professional_id: int) -> datetime | None:
    """When the cooldown after the latest paid payout runs out, if ever.

    Counted from when that payout was paid, not from when it was requested,
    so time spent waiting for an admin does not use up the cooldown.
    """
    last_paid_at = db.query(func.max(PayoutRequest.paid_at)).filter(
        PayoutRequest.professional_id == professional_id,
        PayoutRequest.status == PayoutStatus.PAID,
    ).scalar()
    if last_paid_at is None:
        return None
    return last_paid_at + timedelta(days=config.PAYOUT_COOLDOWN_DAYS)


def wallet_summary(db: Session, actor: User, now: datetime | None = None) -> dict:
    _require_professional(actor)
    now = now or utcnow()
    wallet = get_wallet_snapshot(db, actor.id)
    cooldown_until = cooldown_ends_at(db, actor.id)
    if cooldown_until is not None and cooldown_until <= now:
        cooldown_until = None

    return {
        'balance': wallet.balance,
        'held_balance': wallet.held_balance,
        'cooldown_until': cooldown_until,
    }


def request_payout(
    db: Session,
    actor: User,
    amount: Decimal | None = None,
    now: datetime | None = None,
) -> PayoutRequest:
    _require_professional(actor)
    now = now or utcnow()

    cooldown_until = cooldown_ends_at(db, actor.id)
    if cooldown_until is not None and cooldown_until > now:
        raise errors.ConflictError(f'Payouts are on cooldown until {cooldown_until.isoformat()}.')

    balance = get_wallet_snapshot(db, actor.id).balance
    if amount is None:
        amount = balance
    amount = Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)

    if amount <= ZERO:
        raise errors.ValidationError('There is nothing to withdraw.', field='amount')
    if amount > balance:
        raise errors.ValidationError('Amount exceeds the available balance.', field='amount')

    payout = PayoutRequest(
        professional_id=actor.id,
        amount=amount,
        status=PayoutStatus.PENDING,
        requested_at=now,
    )
    try:
        hold_funds(db, actor.id, amount)
        db.add(payout)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(payout)

    logger.info('Payout %s of %s requested by professional %s', payout.id, amount, actor.id)
    return payout


def _get_payout(db: Session, payout_id: int) -> PayoutRequest:
    payout = db.get(PayoutRequest, payout_id)
    if payout is None:
        raise errors.NotFoundError('Payout request not found.')
    return payout


def _resolve(db: Session, payout: PayoutRequest, target: PayoutStatus, **values) -> None:
    resolved = db.execute(
        update(PayoutRequest)
        .where(PayoutRequest.id == payout.id, PayoutRequest.status == PayoutStatus.PENDING)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    ).rowcount == 1
    if not resolved:
        db.rollback()
        db.refresh(payout)
        raise errors.ConflictError(f'Payout request was already {payout.status.value}.')


def approve_payout(db: Session, actor: User, payout_id: int, now: datetime | None = None) -> PayoutRequest:
    _require_admin(actor)
    now = now or utcnow()
    payout = _get_payout(db, payout_id)

    try:
        _resolve(db, payout, PayoutStatus.PAID, paid_at=now, processed_by=actor.id, processed_at=now)
        settle_hold(db, payout.professional_id, payout.amount)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(payout)

    logger.info('Payout %s approved by admin %s', payout.id, actor.id)
    return payout


def reject_payout(
    db: Session,
    actor: User,
    payout_id: int,
    reason: str,
    now: datetime | None = None,
) -> PayoutRequest:
    _require_admin(actor)
    reason = (reason or '').strip()
    if not reason:
        raise errors.ValidationError('A rejection reason is required.', field='reason')

    now = now or utcnow()
    payout = _get_payout(db, payout_id)

    try:
        _resolve(db, payout, PayoutStatus.REJECTED, rejection_reason=reason, processed_by=actor.id, processed_at=now)
        release_hold(db, payout.professional_id, payout.amount)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(payout)

    logger.info('Payout %s rejected by admin %s', payout.id, actor.id)
    return payout


def list_my_payouts(db: Session, actor: User) -> list[PayoutRequest]:
    _require_professional(actor)
    return db.query(PayoutRequest).filter(
        PayoutRequest.professional_id == actor.id,
    ).order_by(PayoutRequest.requested_at.desc()).all()


def list_pending_payouts(db: Session, actor: User) -> list[PayoutRequest]:
    _require_admin(actor)
    return db.query(PayoutRequest).filter(
        PayoutRequest.status == PayoutStatus.PENDING,
    ).order_by(PayoutRequest.requested_at.asc()).all()


def finance_totals(db: Session, actor: User) -> dict:
    _require_admin(actor)
    gross, fees, net = db.query(
        func.coalesce(func.sum(Transaction.amount), 0),
        func.coalesce(func.sum(Transaction.platform_fee), 0),
        func.coalesce(func.sum(Transaction.net_amount), 0),
    ).filter(Transaction.status == TransactionStatus.SUCCESS).one()
    paid_out = db.query(func.coalesce(func.sum(PayoutRequest.amount), 0)).filter(
        PayoutRequest.status == PayoutStatus.PAID,
    ).scalar()

    return {
        'gross_revenue': Decimal(gross).quantize(CENT),
        'platform_fees': Decimal(fees).quantize(CENT),
        'professional_earnings': Decimal(net).quantize(CENT),
        'paid_out': Decimal(paid_out).quantize(CENT),
    }
