"""Database engine and session wiring.

The session factory is built once at process start from explicit
configuration and handed to the store; nothing here connects at import time.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from catalog.errors import ConfigurationMissing

Base = declarative_base()

SessionFactory = Callable[[], Session]


def create_db_engine(database_url: str | None, *, echo: bool = False) -> Engine:
    """Create an engine for ``database_url`` or fail fast when it is absent."""
    if not database_url or not database_url.strip():
        raise ConfigurationMissing("DATABASE_URL")

    url = database_url.strip()
    if url in ("sqlite://", "sqlite:///:memory:"):
        # Single shared connection so every session sees the same in-memory db.
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, echo=echo, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    """Create catalog tables if they do not exist."""
    # Model modules register themselves on Base.metadata when imported.
    import catalog.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def create_session_factory(database_url: str | None, *, echo: bool = False, create_tables: bool = False) -> sessionmaker:
    engine = create_db_engine(database_url, echo=echo)
    if create_tables:
        init_db(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
