import json
import logging
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_role
from backend.core import config
from backend.database import get_db
from backend.models.ledger import TransactionStatus
from backend.models.user import User, UserRole
from backend.routes.common import database_unavailable
from backend.services import payments
from backend.services.webhook_security import SIGNATURE_HEADER, verify_paystack_signature

router = APIRouter(tags=['payments'])

logger = logging.getLogger(__name__)


class TransactionResponse(BaseModel):
    id: int
    appointment_id: int
    amount: Decimal
    platform_fee: Decimal
    net_amount: Decimal
    reference: str
    status: TransactionStatus
    created_at: datetime

    class Config:
        from_attributes = True


class WebhookResponse(BaseModel):
    result: str


@router.post(
    '/appointments/{appointment_id}/initiate',
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
def initiate_payment(
    appointment_id: int,
    current_user: User = Depends(require_role(UserRole.PATIENT)),
    db: Session = Depends(get_db),
):
    try:
        return payments.initiate_payment(db, current_user, appointment_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/webhook', response_model=WebhookResponse)
async def payment_webhook(request: Request, db: Session = Depends(get_db)):
    if not config.PAYSTACK_SECRET_KEY:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Payment secret not configured.',
        )

    body = await request.body()
    verify_paystack_signature(body, request.headers.get(SIGNATURE_HEADER), config.PAYSTACK_SECRET_KEY)

    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Malformed webhook body.') from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Malformed webhook body.')

    try:
        result = payments.handle_webhook_event(db, payload)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc

    logger.info('Payment webhook %s: %s', payload.get('event'), result)
    return WebhookResponse(result=result)
