"""
Module: rollstock_kernel.db.engine
Responsibility: SQLAlchemy engine construction and the transactional
    session scope for the SQL persistence backend.
Architecture position: Kernel > DB.  May import from db/base.py and models/.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - No module-level engine.  Every SQL backend owns the engine it is
      handed and disposes it on close.
    - In-memory SQLite uses a StaticPool so every session sees the same
      database; any other URL uses a QueuePool with pre-ping.

Failure modes:
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from rollstock_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create an Engine for ``database_url`` for one backend.

    SQLite URLs get ``check_same_thread=False``; the in-memory variant also
    gets a StaticPool so the schema survives across sessions and threads.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        in_memory = url.database in (None, "", ":memory:")
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if in_memory else None,
        )
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
        )
    logger.info(
        "engine_built",
        extra={"dialect": engine.dialect.name, "echo": echo},
    )
    return engine


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()
