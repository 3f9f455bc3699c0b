from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_role
from backend.core import config
from backend.database import get_db
from backend.models.user import ProfessionalProfile, User, UserRole
from backend.routes.common import database_unavailable

router = APIRouter(tags=['professionals'])


class ProfessionalProfileRequest(BaseModel):
    timezone: str = config.DEFAULT_TIMEZONE
    consultation_fee: Decimal = Field(default=Decimal('0'), ge=0, max_digits=12, decimal_places=2)

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        normalized = value.strip()
        try:
            ZoneInfo(normalized)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError('Unknown time zone.') from exc
        return normalized


class ProfessionalProfileResponse(BaseModel):
    user_id: int
    timezone: str
    consultation_fee: Decimal

    class Config:
        from_attributes = True


def _get_or_default(db: Session, user: User) -> ProfessionalProfile:
    profile = db.query(ProfessionalProfile).filter(ProfessionalProfile.user_id == user.id).first()
    if profile is None:
        profile = ProfessionalProfile(user_id=user.id, timezone=config.DEFAULT_TIMEZONE, consultation_fee=Decimal('0'))
    return profile


@router.get('/me/profile', response_model=ProfessionalProfileResponse)
def get_my_profile(
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    try:
        return _get_or_default(db, current_user)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.put('/me/profile', response_model=ProfessionalProfileResponse)
def update_my_profile(
    data: ProfessionalProfileRequest,
    current_user: User = Depends(require_role(UserRole.PROFESSIONAL)),
    db: Session = Depends(get_db),
):
    try:
        profile = _get_or_default(db, current_user)
        profile.timezone = data.timezone
        profile.consultation_fee = data.consultation_fee
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc
