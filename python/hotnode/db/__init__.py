"""Database module for the hot node.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from hotnode.db.engine import create_db_engine, get_engine
from hotnode.db.models import (
    Base,
    CleanupStats,
    Event,
    EventSeverity,
    MigrationStats,
    Pin,
    PinStatus,
    as_utc,
    utcnow,
)
from hotnode.db.session import create_session_factory, get_session_factory, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "create_session_factory",
    "get_session_factory",
    "transaction",
    # Base
    "Base",
    # Enums
    "PinStatus",
    "EventSeverity",
    # Models
    "Pin",
    "MigrationStats",
    "CleanupStats",
    "Event",
    # Time helpers
    "as_utc",
    "utcnow",
]
