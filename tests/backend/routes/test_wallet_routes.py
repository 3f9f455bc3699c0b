from decimal import Decimal

import pytest
from pydantic import ValidationError

from backend.models.ledger import PayoutStatus
from backend.routes import wallet_routes
from backend.routes.wallet_routes import (
    CreatePayoutRequest,
    RejectPayoutRequest,
    approve_payout,
    get_finance_totals,
    get_wallet,
    list_my_payouts,
    list_pending_payouts,
    reject_payout,
    request_payout,
)


@pytest.fixture(autouse=True)
def skip_schema_check(monkeypatch):
    monkeypatch.setattr(wallet_routes, 'ensure_database_ready', lambda: None)


def test_payout_request_amount_must_be_positive() -> None:
    assert CreatePayoutRequest().amount is None

    with pytest.raises(ValidationError):
        CreatePayoutRequest(amount=Decimal('0'))


def test_reject_request_needs_a_reason() -> None:
    assert RejectPayoutRequest(reason='  No bank details  ').reason == 'No bank details'

    with pytest.raises(ValidationError):
        RejectPayoutRequest(reason='   ')


def test_request_and_approve_payout_through_routes(db, professional, admin, fund_wallet) -> None:
    fund_wallet(professional, Decimal('2500'))

    payout = request_payout(CreatePayoutRequest(amount=Decimal('1000')), current_user=professional, db=db)

    assert [item.id for item in list_pending_payouts(current_user=admin, db=db)] == [payout.id]
    wallet = get_wallet(current_user=professional, db=db)
    assert wallet['balance'] == Decimal('1500')
    assert wallet['held_balance'] == Decimal('1000')

    approved = approve_payout(payout.id, current_user=admin, db=db)

    assert approved.status == PayoutStatus.PAID
    assert list_pending_payouts(current_user=admin, db=db) == []
    assert get_wallet(current_user=professional, db=db)['cooldown_until'] is not None
    assert get_finance_totals(current_user=admin, db=db)['paid_out'] == Decimal('1000.00')


def test_reject_payout_through_routes(db, professional, admin, fund_wallet) -> None:
    fund_wallet(professional, Decimal('2500'))
    payout = request_payout(CreatePayoutRequest(), current_user=professional, db=db)

    rejected = reject_payout(
        payout.id,
        RejectPayoutRequest(reason='Account name mismatch'),
        current_user=admin,
        db=db,
    )

    assert rejected.status == PayoutStatus.REJECTED
    assert [item.status for item in list_my_payouts(current_user=professional, db=db)] == [PayoutStatus.REJECTED]
    assert get_wallet(current_user=professional, db=db)['balance'] == Decimal('2500')
