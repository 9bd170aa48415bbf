import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from db.base import Base


AUDIT_DB_URL = (os.environ.get("AUDIT_DB_URL") or "sqlite+pysqlite:///./tool_checkout_audit.db").strip()

engine_audit = create_engine(
    AUDIT_DB_URL,
    pool_pre_ping=True,
    future=True,
)

SessionLocalAudit = sessionmaker(
    bind=engine_audit,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


def init_audit_db() -> None:
    import models.audit_models  # noqa: F401

    Base.metadata.create_all(bind=engine_audit)
