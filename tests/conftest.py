import os
from datetime import datetime, time
from decimal import Decimal

import pytest

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from backend.database import Base  # noqa: E402
from backend.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from backend.models.availability import AvailabilityRule  # noqa: E402
from backend.models.ledger import Wallet  # noqa: E402
from backend.models.user import ProfessionalProfile, User, UserRole  # noqa: E402


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def make_user(db):
    def _make_user(email: str, role: UserRole) -> User:
        user = User(email=email, role=role, full_name=email.split('@')[0].title())
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def patient(make_user) -> User:
    return make_user('patient@example.com', UserRole.PATIENT)


@pytest.fixture
def admin(make_user) -> User:
    return make_user('admin@example.com', UserRole.ADMIN)


@pytest.fixture
def professional(db, make_user) -> User:
    user = make_user('doctor@example.com', UserRole.PROFESSIONAL)
    db.add(ProfessionalProfile(user_id=user.id, timezone='UTC', consultation_fee=Decimal('10000')))
    db.commit()
    return user


@pytest.fixture
def add_rule(db):
    def _add_rule(
        professional: User,
        day_of_week: int,
        start: time,
        end: time,
        duration: int = 30,
        buffer: int = 0,
    ) -> AvailabilityRule:
        rule = AvailabilityRule(
            professional_id=professional.id,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            slot_duration_minutes=duration,
            buffer_minutes=buffer,
        )
        db.add(rule)
        db.commit()
        db.refresh(rule)
        return rule

    return _add_rule


@pytest.fixture
def make_appointment(db, patient, professional):
    def _make_appointment(
        status: AppointmentStatus = AppointmentStatus.PENDING,
        scheduled_at: datetime = datetime(2030, 1, 7, 9, 0),
        duration_minutes: int = 30,
        **values,
    ) -> Appointment:
        appointment = Appointment(
            patient_id=patient.id,
            professional_id=professional.id,
            scheduled_at=scheduled_at,
            duration_minutes=duration_minutes,
            status=status,
            created_at=datetime(2030, 1, 1, 0, 0),
            **values,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make_appointment


@pytest.fixture
def wallet_of(db):
    def _wallet_of(user: User) -> Wallet | None:
        return db.query(Wallet).populate_existing().filter(Wallet.professional_id == user.id).first()

    return _wallet_of


@pytest.fixture
def fund_wallet(db):
    def _fund_wallet(user: User, amount: Decimal) -> Wallet:
        wallet = Wallet(professional_id=user.id, balance=amount, held_balance=Decimal('0'))
        db.add(wallet)
        db.commit()
        db.refresh(wallet)
        return wallet

    return _fund_wallet
