from datetime import datetime, timezone
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


engine = create_engine(config.DATABASE_URL, echo=config.SQL_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_ledger_schema_checked = False


def utcnow() -> datetime:
    """Current instant as naive UTC, the form every timestamp column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_ledger_schema() -> None:
    global _ledger_schema_checked

    if _ledger_schema_checked:
        return

    with _schema_lock:
        if _ledger_schema_checked:
            return

        inspector = inspect(engine)

        if 'wallets' not in inspector.get_table_names():
            _ledger_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('wallets')}
        migration_steps = [
            ('held_balance', 'ALTER TABLE wallets ADD COLUMN held_balance NUMERIC(12, 2) NOT NULL DEFAULT 0'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_status_expiry ON appointments(status, payment_expires_at)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_payout_requests_owner_status ON payout_requests(professional_id, status)')
            )

        _ledger_schema_checked = True
