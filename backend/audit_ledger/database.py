"""
Database Engine & Session Management
SQLAlchemy setup with dependency injection for FastAPI.

Sessions are handed to the ledger writer as the caller's unit of work: the
writer flushes inside them but never commits.
"""
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from audit_ledger.config import get_settings

settings = get_settings()

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

# Ensure data directory exists for file-backed SQLite
if _is_sqlite and ":memory:" not in settings.DATABASE_URL:
    os.makedirs(os.path.dirname(settings.DATABASE_URL.replace("sqlite:///", "")), exist_ok=True)

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if _is_sqlite else {},  # Required for SQLite
    echo=settings.DEBUG,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yields a database session, auto-closes on finish."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create all tables. Called once at application startup."""
    from audit_ledger.models import audit as _audit_model   # noqa: F401
    from audit_ledger.models import user as _user_model     # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
