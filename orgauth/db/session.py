"""Database engine, session factory, and dependency injection."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator

from orgauth.core.config import settings


def _connect_args(url: str) -> dict:
    """Driver timeouts so a stalled store aborts the request."""
    if url.startswith("mysql+pymysql"):
        return {
            "read_timeout": settings.DB_READ_TIMEOUT_SECONDS,
            "write_timeout": settings.DB_READ_TIMEOUT_SECONDS,
        }
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=settings.DB_POOL_TIMEOUT,
    pool_recycle=1800,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.DATABASE_URL),
    echo=False,
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency that provides a DB session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
