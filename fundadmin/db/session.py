"""Database engine and session factory."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from fundadmin.core.config import get_settings
from fundadmin.db.base import Base

settings = get_settings()


def build_engine(database_url: str) -> Engine:
    """Create an engine, enabling cross-thread use for SQLite."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def init_db(bind: Engine = engine) -> None:
    """Create all tables that do not exist yet."""
    # Register models on Base.metadata
    import fundadmin.db.models  # noqa: F401

    Base.metadata.create_all(bind=bind)
