from typing import Iterator

from sqlalchemy.orm import Session

from bsg_helpdesk.core.database import SessionLocal


def get_db() -> Iterator[Session]:
    """Request-scoped session; uncommitted work is rolled back if the handler raises."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
