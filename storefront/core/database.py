"""
SQLAlchemy engine, session factory and declarative base.

SQLite by default; any SQLAlchemy URL (PostgreSQL in production) works through
DATABASE_URL. Payment, product and points state changes rely on conditional
UPDATEs, so every session must talk to the same database.
"""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from storefront.core.config import get_settings

settings = get_settings()

is_sqlite = settings.DATABASE_URL.startswith("sqlite")

engine = create_engine(
    settings.DATABASE_URL,
    # sessions are shared with the threadpool FastAPI runs sync dependencies in
    connect_args={"check_same_thread": False, "timeout": 15} if is_sqlite else {},
    pool_pre_ping=not is_sqlite,
    echo=settings.DEBUG,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session, closed when the response is sent."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create missing tables for every storefront model."""
    import storefront.models  # noqa: F401  registers the tables on Base.metadata

    Base.metadata.create_all(bind=engine)
