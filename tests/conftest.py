"""Shared fixtures: in-memory SQLite catalog store."""

import pytest

from catalog.config.database import create_session_factory
from catalog.services.store import SQLAlchemyCatalogStore


@pytest.fixture
def session_factory():
    return create_session_factory("sqlite://", create_tables=True)


@pytest.fixture
def store(session_factory) -> SQLAlchemyCatalogStore:
    return SQLAlchemyCatalogStore(session_factory)
