from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from backend.database import ensure_ledger_schema


def database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail='Database unavailable. Verify DATABASE_URL and Postgres credentials.',
    )


def ensure_database_ready() -> None:
    try:
        ensure_ledger_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc
