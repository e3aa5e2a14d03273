"""Engine and session setup for the SQLAlchemy stores.

One process-wide engine is built lazily from Settings. SQLite engines get
foreign keys switched on per connection, so ledger rows can never point
at a missing opportunity.
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

Base = declarative_base()

_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def _sqlite_foreign_keys(dbapi_conn, connection_record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def enable_foreign_keys(engine: Engine) -> Engine:
    """Turn on foreign key enforcement for every connection of a SQLite engine.

    Other backends enforce foreign keys already and are returned untouched.
    """
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _sqlite_foreign_keys)
    return engine


def init_engine(config: Optional[Settings] = None) -> Engine:
    """Build the process-wide engine on first use.

    Args:
        config: Settings to use (default: module-level settings)

    Returns:
        The shared engine
    """
    global _engine

    if _engine is not None:
        return _engine

    config = config or default_settings
    db_dir = config.get_database_path().parent
    if not db_dir.exists():
        db_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created database directory: {db_dir}")

    _engine = enable_foreign_keys(
        create_engine(
            config.database_url,
            connect_args={"check_same_thread": False},
            echo=config.debug,
        )
    )
    logger.info(f"Database engine initialized: {config.database_url}")
    return _engine


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Session on the shared engine, closed when the block exits.

    Example:
        >>> with session_scope() as db:
        ...     store = SqlAlchemyOpportunityStore(db)
    """
    global _SessionLocal

    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=init_engine())
    db = _SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables() -> None:
    """Create all tables registered on Base."""
    from . import records  # noqa: F401

    Base.metadata.create_all(bind=init_engine())
    logger.info("Database tables created")


def reset_engine() -> None:
    """Dispose of the shared engine so the next call re-reads settings."""
    global _engine, _SessionLocal

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
