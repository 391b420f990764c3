"""Database session dependencies."""

from collections.abc import Generator

from sqlalchemy.orm import Session, sessionmaker

from app.db.session import SessionLocal, get_db


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a managed SQLAlchemy session."""
    yield from get_db()


def get_session_factory() -> sessionmaker:
    """Factory for work that outlives the request (SSE streams)."""
    return SessionLocal
