"""
PM Engine — Core database layer.

Provides the SQLAlchemy engine and session factory. ORM models register themselves on the shared Base from
core.base; init_db() creates any missing tables.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from core.config import settings
from core.base import Base  # Single Base instance shared across all models


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def make_engine(database_url: str, echo: bool = False, **kwargs):
    """Create an engine; SQLite gets WAL and a busy timeout on every connection."""
    connect_args = {"check_same_thread": False} if _is_sqlite(database_url) else {}
    eng = create_engine(database_url, echo=echo, connect_args=connect_args, **kwargs)

    if _is_sqlite(database_url):
        @event.listens_for(eng, "connect")
        def _sqlite_pragmas(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA journal_mode=WAL")
            cur.execute("PRAGMA busy_timeout=5000")
            cur.close()

    return eng


engine = make_engine(settings.database_url, echo=settings.debug)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    """Create all tables for every imported model module."""
    # Model modules must be imported so their tables are on Base.metadata.
    import modules.assets.models  # noqa: F401
    import modules.production.models  # noqa: F401
    import modules.sensors.models  # noqa: F401
    import modules.work_orders.models  # noqa: F401
    import modules.pm.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
