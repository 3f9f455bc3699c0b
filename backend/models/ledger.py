"""Payment, wallet and payout model definitions."""

import enum

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String
from backend.database import Base


def _enum_values(members):
    return [member.value for member in members]


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    REJECTED = "rejected"


class Transaction(Base):
    """One payment attempt for an appointment."""
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    platform_fee = Column(Numeric(12, 2), nullable=False)
    net_amount = Column(Numeric(12, 2), nullable=False)
    reference = Column(String, unique=True, nullable=False)
    status = Column(
        Enum(TransactionStatus, native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=TransactionStatus.PENDING,
    )
    created_at = Column(DateTime, nullable=False)


class Wallet(Base):
    """Earnings of one professional available for payout."""
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    held_balance = Column(Numeric(12, 2), nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallet_balance_non_negative"),
        CheckConstraint("held_balance >= 0", name="ck_wallet_held_non_negative"),
    )


class PayoutRequest(Base):
    """A professional's withdrawal request awaiting an admin decision."""
    __tablename__ = "payout_requests"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(
        Enum(PayoutStatus, native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=PayoutStatus.PENDING,
    )
    requested_at = Column(DateTime, nullable=False)
    paid_at = Column(DateTime)
    rejection_reason = Column(String)
    processed_by = Column(Integer, ForeignKey("users.id"))
    processed_at = Column(DateTime)
