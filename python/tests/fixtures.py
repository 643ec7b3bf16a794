"""Stable fixture pins for development seeding and tests.

One pin per interesting lifecycle position under the default 4/7/2 day
windows. Used by scripts/seed_dev.py.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class FixturePin:
    identifier: str
    age_days: float
    status: str
    migrated: bool = False
    size_bytes: int = 5 * 1024 * 1024


FIXTURE_PINS = [
    FixturePin("QmFixturePendingFresh00000000000000000000000001", 0.1, "pending"),
    FixturePin("QmFixtureAcceptedYoung0000000000000000000000002", 2, "accepted"),
    FixturePin("QmFixtureAcceptedDue000000000000000000000000003", 5, "accepted"),
    FixturePin("QmFixtureMigratedDue000000000000000000000000004", 8, "accepted", migrated=True),
    FixturePin("QmFixtureRejectedOld000000000000000000000000005", 3, "rejected"),
    FixturePin("QmFixtureOverdue0000000000000000000000000000006", 9, "accepted"),
]
