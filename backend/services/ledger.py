"""Wallet ledger.

Balances only ever change through single-statement arithmetic UPDATEs scoped
to one wallet row, so a webhook credit and a payout approval for the same
professional cannot lose each other's update. None of these functions
commit; they run inside the caller's unit of work.
"""

import logging
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlalchemy.orm import Session

from backend.core import errors
from backend.models.ledger import Wallet

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


def get_or_create_wallet(db: Session, professional_id: int) -> Wallet:
    wallet = db.query(Wallet).filter(Wallet.professional_id == professional_id).first()
    if wallet is not None:
        return wallet

    try:
        with db.begin_nested():
            wallet = Wallet(professional_id=professional_id, balance=ZERO, held_balance=ZERO)
            db.add(wallet)
    except SQLIntegrityError:
        # Created concurrently; use theirs.
        wallet = db.query(Wallet).filter(Wallet.professional_id == professional_id).one()
    return wallet


def _wallet_update(db: Session, professional_id: int, *conditions, **values) -> bool:
    result = db.execute(
        update(Wallet)
        .where(Wallet.professional_id == professional_id, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def credit_wallet(db: Session, professional_id: int, amount: Decimal) -> None:
    if amount < ZERO:
        raise errors.IntegrityError('Wallet credits must not be negative.')
    get_or_create_wallet(db, professional_id)
    _wallet_update(db, professional_id, balance=Wallet.balance + amount)
    logger.info('Credited wallet of professional %s with %s', professional_id, amount)


def hold_funds(db: Session, professional_id: int, amount: Decimal) -> None:
    """Move ``amount`` from the available balance into the payout hold."""
    get_or_create_wallet(db, professional_id)
    held = _wallet_update(
        db,
        professional_id,
        Wallet.balance >= amount,
        balance=Wallet.balance - amount,
        held_balance=Wallet.held_balance + amount,
    )
    if not held:
        raise errors.ConflictError('Wallet balance changed; it no longer covers this amount.')


def settle_hold(db: Session, professional_id: int, amount: Decimal) -> None:
    """Pay out a held amount; the money leaves the wallet for good."""
    settled = _wallet_update(
        db,
        professional_id,
        Wallet.held_balance >= amount,
        held_balance=Wallet.held_balance - amount,
    )
    if not settled:
        logger.error('Held funds of professional %s do not cover payout of %s', professional_id, amount)
        raise errors.IntegrityError('Held funds do not cover this payout.')


def release_hold(db: Session, professional_id: int, amount: Decimal) -> None:
    """Return a held amount to the available balance."""
    released = _wallet_update(
        db,
        professional_id,
        Wallet.held_balance >= amount,
        held_balance=Wallet.held_balance - amount,
        balance=Wallet.balance + amount,
    )
    if not released:
        logger.error('Held funds of professional %s do not cover release of %s', professional_id, amount)
        raise errors.IntegrityError('Held funds do not cover this payout.')


def get_wallet_snapshot(db: Session, professional_id: int) -> Wallet:
    wallet = db.query(Wallet).populate_existing().filter(Wallet.professional_id == professional_id).first()
    if wallet is None:
        return Wallet(professional_id=professional_id, balance=ZERO, held_balance=ZERO)
    return wallet
