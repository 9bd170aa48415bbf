from collections.abc import Generator

from .session import SessionLocalAudit


def get_audit_db() -> Generator:
    db = SessionLocalAudit()
    try:
        yield db
    finally:
        db.close()
