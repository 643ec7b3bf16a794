"""Validation sources decide whether discovered content is authorized.

Both sources satisfy the same batch contract: given identifiers, return a
parallel list of booleans. A connection is acquired once per validation run
through session() and released when the run ends, whatever its outcome.

- SqlAuthorizationSource: infrastructure nodes read the authorization
  database directly. An identifier is valid when it appears in the
  identifier column, or as an ipfs://<identifier>[/...] URL in the legacy
  table.
- RemoteValidationSource: community nodes delegate to the validation server
  over HTTP (POST /api/validate/batch).
"""

import re
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import httpx
from sqlalchemy import Connection, Engine, column, create_engine, literal, or_, select, table
from sqlalchemy.exc import SQLAlchemyError

from hotnode.errors import ValidationSourceError
from hotnode.logging import get_logger

logger = get_logger(__name__)

LEGACY_URL_PATTERN = re.compile(r"^ipfs://([^/]+)")


class ValidationSession(ABC):
    """One acquired connection to a validation source."""

    @abstractmethod
    async def validate(self, identifiers: Sequence[str]) -> list[bool]:
        """Return one verdict per identifier, in the same order.

        Raises:
            ValidationSourceError: If the source cannot produce a complete
                set of verdicts. Nothing from the batch may be applied.
        """
        ...


class ValidationSource(ABC):
    method: str = "unknown"

    @abstractmethod
    def session(self) -> AbstractAsyncContextManager[ValidationSession]:
        """Async context manager acquiring the source for one run."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the source answers. Never raises."""
        ...

    async def aclose(self) -> None:
        """Release long-lived resources. Default: nothing to release."""
        return None


# =============================================================================
# Direct authorization database
# =============================================================================


class _SqlSession(ValidationSession):
    def __init__(self, conn: Connection, source: "SqlAuthorizationSource"):
        self._conn = conn
        self._source = source

    async def validate(self, identifiers: Sequence[str]) -> list[bool]:
        if not identifiers:
            return []
        try:
            found = self._source.lookup(self._conn, identifiers)
        except SQLAlchemyError as e:
            raise ValidationSourceError(f"Authorization query failed: {e}") from e
        return [identifier in found for identifier in identifiers]


class SqlAuthorizationSource(ValidationSource):
    """Batch lookups against the authorization database."""

    method = "database"

    def __init__(
        self,
        engine: Engine,
        *,
        table_name: str,
        identifier_column: str,
        legacy_table_name: str | None = None,
        legacy_url_column: str | None = None,
    ):
        self._engine = engine
        self._identifier_column = column(identifier_column)
        self._table = table(table_name, self._identifier_column)
        self._legacy_url_column = None
        self._legacy_table = None
        if legacy_table_name and legacy_url_column:
            self._legacy_url_column = column(legacy_url_column)
            self._legacy_table = table(legacy_table_name, self._legacy_url_column)

    @classmethod
    def from_url(cls, database_url: str, **kwargs) -> "SqlAuthorizationSource":
        return cls(create_engine(database_url, pool_pre_ping=True), **kwargs)

    def lookup(self, conn: Connection, identifiers: Sequence[str]) -> set[str]:
        """Return the subset of identifiers the authorization database knows."""
        wanted = set(identifiers)
        found: set[str] = set(
            conn.execute(
                select(self._identifier_column)
                .select_from(self._table)
                .where(self._identifier_column.in_(list(wanted)))
            ).scalars()
        )

        remaining = wanted - found
        if remaining and self._legacy_table is not None:
            url_col = self._legacy_url_column
            rows = conn.execute(
                select(url_col)
                .select_from(self._legacy_table)
                .where(or_(*[url_col.like(f"ipfs://{identifier}%") for identifier in remaining]))
            ).scalars()
            for url in rows:
                match = LEGACY_URL_PATTERN.match(url or "")
                if match and match.group(1) in remaining:
                    found.add(match.group(1))

        return found

    @asynccontextmanager
    async def session(self) -> AsyncIterator[ValidationSession]:
        try:
            conn = self._engine.connect()
        except SQLAlchemyError as e:
            raise ValidationSourceError(f"Authorization database unavailable: {e}") from e

        logger.debug("validation_source_connected", method=self.method)
        try:
            yield _SqlSession(conn, self)
        finally:
            conn.close()
            logger.debug("validation_source_released", method=self.method)

    async def health_check(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(select(literal(1)))
        except SQLAlchemyError as e:
            logger.warning("validation_source_unhealthy", method=self.method, error=str(e))
            return False
        return True

    async def aclose(self) -> None:
        self._engine.dispose()


# =============================================================================
# Remote validation server
# =============================================================================


class _RemoteSession(ValidationSession):
    def __init__(self, source: "RemoteValidationSource"):
        self._source = source

    async def validate(self, identifiers: Sequence[str]) -> list[bool]:
        if not identifiers:
            return []
        verdicts = await self._source.validate_batch(identifiers)
        missing = [identifier for identifier in identifiers if identifier not in verdicts]
        if missing:
            raise ValidationSourceError(
                f"Validation server omitted {len(missing)} of {len(identifiers)} identifiers"
            )
        return [verdicts[identifier] for identifier in identifiers]


class RemoteValidationSource(ValidationSource):
    """Delegated validation over HTTP."""

    method = "api"

    def __init__(self, client: httpx.AsyncClient, server_url: str, *, timeout_s: float = 30.0):
        self._client = client
        self._server_url = server_url.rstrip("/")
        self._timeout_s = timeout_s

    async def validate_batch(self, identifiers: Sequence[str]) -> dict[str, bool]:
        try:
            response = await self._client.post(
                f"{self._server_url}/api/validate/batch",
                json={"cids": list(identifiers)},
                timeout=self._timeout_s,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ValidationSourceError(
                f"Validation server error: {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ValidationSourceError(f"Validation request failed: {type(e).__name__}: {e}") from e

        verdicts: dict[str, bool] = {}
        for result in data.get("results") or []:
            identifier = result.get("cid") or result.get("identifier")
            if identifier:
                verdicts[identifier] = bool(result.get("valid"))
        return verdicts

    async def health_check(self) -> bool:
        try:
            response = await self._client.get(f"{self._server_url}/health", timeout=5.0)
        except httpx.HTTPError:
            return False
        return response.status_code == 200

    @asynccontextmanager
    async def session(self) -> AsyncIterator[ValidationSession]:
        yield _RemoteSession(self)


# =============================================================================
# Test double
# =============================================================================


class FakeValidationSource(ValidationSource):
    """In-memory allow-list. Tracks session acquire/release for tests."""

    method = "fake"

    def __init__(self, allowed: set[str] | None = None):
        self.allowed = set(allowed or ())
        self.fail_with: str | None = None
        self.opened = 0
        self.closed = 0
        self.batches: list[list[str]] = []

    async def health_check(self) -> bool:
        return self.fail_with is None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[ValidationSession]:
        self.opened += 1
        try:
            yield _FakeSession(self)
        finally:
            self.closed += 1


class _FakeSession(ValidationSession):
    def __init__(self, source: FakeValidationSource):
        self._source = source

    async def validate(self, identifiers: Sequence[str]) -> list[bool]:
        self._source.batches.append(list(identifiers))
        if self._source.fail_with:
            raise ValidationSourceError(self._source.fail_with)
        return [identifier in self._source.allowed for identifier in identifiers]
