"""Cancel appointments whose payment window has closed.

Meant for a scheduler that runs every few minutes:
    python -m backend.run_expiry_sweep
"""
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.database import SessionLocal
from backend.services.appointment_lifecycle import expire_unpaid_appointments


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL.upper())
    db = SessionLocal()
    try:
        cancelled = expire_unpaid_appointments(db)
    except SQLAlchemyError as exc:
        print("Expiry sweep failed:", exc, file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()
    print(f"cancelled={cancelled}")


if __name__ == "__main__":
    main()
