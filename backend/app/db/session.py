"""Engine and session factory configuration."""

from collections.abc import Generator
import logging
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from app.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _engine_options(database_url: str) -> dict[str, Any]:
    """Pool/connect options per backend; psycopg keepalives only apply to PostgreSQL."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    return {
        "poolclass": QueuePool,
        "pool_pre_ping": True,  # Test connections before using
        "pool_recycle": 1800,  # Recycle connections after 30 minutes
        "pool_size": 5,
        "max_overflow": 10,
        "connect_args": {
            "connect_timeout": 10,
            "keepalives": 1,
            "keepalives_idle": 30,
            "keepalives_interval": 10,
            "keepalives_count": 5,
        },
    }


def build_engine(database_url: str) -> Engine:
    """Create an engine for the job record store and destination collections."""
    return create_engine(database_url, echo=False, future=True, **_engine_options(database_url))


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db(bind: Engine | None = None) -> None:
    """Create the job tables if they do not exist yet."""
    from app.db.base import Base
    import app.db.models  # noqa: F401  registers the mappers

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Job tables ensured")


def get_db() -> Generator[Session, None, None]:
    """Yield a transactional session for request lifecycles."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
