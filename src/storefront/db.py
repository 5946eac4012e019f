import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.core.config import DatabaseConfig

logger = logging.getLogger(__name__)

Base = declarative_base()

SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

engine: Optional[Engine] = None


def init_engine(database: DatabaseConfig) -> Engine:
    """
    Build the process-wide engine and bind the session factory to it.

    An in-memory SQLite url gets a StaticPool so every session shares the same
    connection (and therefore the same database); that is what the test suite
    and `flask init-db` against sqlite rely on.
    """
    global engine

    if database.url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database.url or database.url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database.url, echo=database.echo, **kwargs)
    else:
        engine = create_engine(
            database.url,
            echo=database.echo,
            pool_size=database.pool_size,
            max_overflow=database.max_overflow,
            pool_timeout=database.pool_timeout,
            pool_recycle=database.pool_recycle,
            pool_pre_ping=True,
        )

    SessionLocal.configure(bind=engine)
    return engine


@contextmanager
def get_session() -> Iterator[Session]:
    """
    Yield a session inside a transaction.

    Commits when the block exits cleanly and rolls back on any exception, so a
    request either writes all of its rows or none of them.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all() -> None:
    """Create every mapped table. Local development and tests only."""
    import storefront.models  # noqa: F401  registers the mappers

    Base.metadata.create_all(bind=engine)


def drop_all() -> None:
    import storefront.models  # noqa: F401

    Base.metadata.drop_all(bind=engine)


def check_connection() -> bool:
    if engine is None:
        return False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as exc:
        logger.error(f"database health check failed: {exc}")
        return False
