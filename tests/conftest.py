"""Shared fixtures: in-memory SQLite store, fake object storage, config."""

import os

# Must be set before fast_stager.database creates its engine
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from fast_stager.config import StagerConfig
from fast_stager.database import Base
from fast_stager.models import Property
from tests.utils import MemoryStorage


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    with Session(engine, autoflush=False) as session:
        yield session


@pytest.fixture
def make_property(db):
    """Insert a property with the given column values."""

    def _make(**fields) -> Property:
        prop = Property(**fields)
        db.add(prop)
        db.commit()
        return prop

    return _make


@pytest.fixture
def config() -> StagerConfig:
    return StagerConfig()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()
