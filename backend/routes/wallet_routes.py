from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_role
from backend.database import get_db
from backend.models.ledger import PayoutStatus
from backend.models.user import User, UserRole
from backend.routes.common import database_unavailable, ensure_database_ready
from backend.services import payouts

router = APIRouter(tags=['wallet'])

MAX_REJECTION_REASON_LENGTH = 500


class WalletResponse(BaseModel):
    balance: Decimal
    held_balance: Decimal
    cooldown_until: datetime | None = None


class CreatePayoutRequest(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)


class RejectPayoutRequest(BaseModel):
    reason: str

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('A rejection reason is required.')
        if len(normalized) > MAX_REJECTION_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_REJECTION_REASON_LENGTH} characters or fewer.')
        return normalized


class PayoutResponse(BaseModel):
    id: int
    professional_id: int
    amount: Decimal
    status: PayoutStatus
    requested_at: datetime
    paid_at: datetime | None = None
    rejection_reason: str | None = None
    processed_by: int | None = None

    class Config:
        from_attributes = True


class FinanceResponse(BaseModel):
    gross_revenue: Decimal
    platform_fees: Decimal
    professional_earnings: Decimal
    paid_out: Decimal


@router.get('/', response_model=WalletResponse)
def get_wallet(
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    try:
        return payouts.wallet_summary(db, current_user)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/payouts', response_model=list[PayoutResponse])
def list_my_payouts(
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    try:
        return payouts.list_my_payouts(db, current_user)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('/payouts', response_model=PayoutResponse, status_code=status.HTTP_201_CREATED)
def request_payout(
    data: CreatePayoutRequest,
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return payouts.request_payout(db, current_user, data.amount)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/admin/payouts', response_model=list[PayoutResponse])
def list_pending_payouts(
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        return payouts.list_pending_payouts(db, current_user)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.post('/admin/payouts/{payout_id}/approve', response_model=PayoutResponse)
def approve_payout(
    payout_id: int,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        return payouts.approve_payout(db, current_user, payout_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/admin/payouts/{payout_id}/reject', response_model=PayoutResponse)
def reject_payout(
    payout_id: int,
    data: RejectPayoutRequest,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        return payouts.reject_payout(db, current_user, payout_id, data.reason)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('/admin/finance', response_model=FinanceResponse)
def get_finance_totals(
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        return payouts.finance_totals(db, current_user)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc
