"""Pytest configuration and fixtures for hot node tests.

Test isolation strategy:
- Every test gets a fresh in-memory SQLite registry built from the ORM metadata
- Time is controlled through FakeClock; pins age by advancing the clock
- External collaborators (storage daemon, supernode, validation source,
  webhook) are in-memory fakes; HTTP adapter tests use respx instead
"""

import os
import sys
from collections.abc import Generator
from pathlib import Path

# Settings are loaded at import time by hotnode.celery
os.environ.setdefault("HOTNODE_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SUPERNODE_API", "http://supernode.test:5001")
os.environ.setdefault("AUTHZ_DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_JSON", "false")

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from hotnode.config import Settings, clear_settings_cache
from hotnode.db import Base, create_db_engine, create_session_factory
from hotnode.services.components import Components
from hotnode.services.events import EventLog
from hotnode.services.notifications import FakeNotifier
from hotnode.services.pin_registry import PinRegistry
from hotnode.services.stats import StatsRecorder
from hotnode.services.validation_sources import FakeValidationSource
from hotnode.storage.node import FakeStorageNode
from hotnode.storage.target import FakeReplicationTarget
from tests.helpers import FakeClock, RecordingSleep, make_settings


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory registry database with all tables created."""
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(session_factory, clock) -> PinRegistry:
    return PinRegistry(session_factory, clock=clock)


@pytest.fixture
def events(session_factory, clock) -> EventLog:
    return EventLog(session_factory, clock=clock)


@pytest.fixture
def stats(session_factory, clock) -> StatsRecorder:
    return StatsRecorder(session_factory, clock=clock)


@pytest.fixture
def storage_node() -> FakeStorageNode:
    return FakeStorageNode()


@pytest.fixture
def target() -> FakeReplicationTarget:
    return FakeReplicationTarget()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def validation_source() -> FakeValidationSource:
    return FakeValidationSource()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def components(
    settings, registry, events, stats, notifier, storage_node, target, validation_source
) -> Components:
    """Components wired to fakes, as open_components() wires production adapters."""
    return Components(
        settings=settings,
        registry=registry,
        events=events,
        stats=stats,
        notifier=notifier,
        storage_node=storage_node,
        target=target,
        validation_source=validation_source,
    )


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
