#!/usr/bin/env python
"""Seed a development registry with pins in every lifecycle state.

Constraints:
- Refuses to run in staging or prod (HOTNODE_ENV check)
- Idempotent: identifiers already tracked are left untouched
- Never runs automatically (manual invocation only)

Usage:
    cd python && DATABASE_URL=... SUPERNODE_API=... python ../scripts/seed_dev.py
"""

import os
import sys
from datetime import timedelta


def main():
    # 1. Environment check (hard fail in staging/prod)
    hotnode_env = os.getenv("HOTNODE_ENV", "local")
    if hotnode_env not in ("local", "test"):
        print(f"ERROR: seed_dev.py refuses to run in HOTNODE_ENV={hotnode_env}")
        sys.exit(1)

    # 2. Check DATABASE_URL
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL environment variable must be set")
        sys.exit(1)

    # 3. Import fixture data (single source of truth)
    from hotnode.db import PinStatus, create_db_engine, create_session_factory, utcnow
    from hotnode.services.pin_registry import PinRegistry
    from tests.fixtures import FIXTURE_PINS

    session_factory = create_session_factory(create_db_engine(database_url))
    now = utcnow()

    # 4. Idempotent seeding, backdated through the registry clock
    created = []
    for fixture in FIXTURE_PINS:
        discovered_at = now - timedelta(days=fixture.age_days)
        registry = PinRegistry(session_factory, clock=lambda at=discovered_at: at)
        if not registry.insert_if_absent(
            fixture.identifier, size_bytes=fixture.size_bytes, note="Seeded for development"
        ):
            continue
        if fixture.status != "pending":
            registry.resolve_pending(fixture.identifier, PinStatus(fixture.status))
        if fixture.migrated:
            registry.update_fields(fixture.identifier, migrated=True)
        created.append(fixture.identifier)

    # 5. Report
    db_display = database_url.split("@")[1] if "@" in database_url else database_url
    print(f"Database: {db_display}")
    print(f"HOTNODE_ENV: {hotnode_env}")
    print()
    for fixture in FIXTURE_PINS:
        state = "Created" if fixture.identifier in created else "Exists"
        print(f"{state}: {fixture.identifier} ({fixture.status}, {fixture.age_days}d)")


if __name__ == "__main__":
    main()
