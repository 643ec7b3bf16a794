"""Storage node adapter for a Kubo (IPFS) daemon.

Every call is POST {api_url}/api/v0/<command> with query parameters, as the
Kubo RPC API requires. The adapter does not retry; transient failures surface
as StorageNodeError and the owning worker retries on its next scheduled run.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from hotnode.errors import ErrorCode, StorageNodeError
from hotnode.logging import get_logger

logger = get_logger(__name__)

LIVENESS_TIMEOUT_S = 5.0


@dataclass(frozen=True)
class RepoStat:
    """Repository usage as reported by repo/stat."""

    repo_size: int
    storage_max: int
    num_objects: int

    @property
    def usage_percent(self) -> float:
        if not self.storage_max:
            return 0.0
        return round(self.repo_size / self.storage_max * 100, 2)

    def to_dict(self) -> dict:
        return {
            "repo_size": self.repo_size,
            "storage_max": self.storage_max,
            "num_objects": self.num_objects,
            "usage_percent": self.usage_percent,
        }


def _is_absent_pin_message(message: str) -> bool:
    return "not pinned" in message.lower()


class StorageNodeBase(ABC):
    """Interface to the local storage daemon."""

    @abstractmethod
    async def is_running(self) -> bool:
        """Liveness probe. Never raises."""
        ...

    @abstractmethod
    async def node_id(self) -> dict:
        ...

    @abstractmethod
    async def pin_add(self, identifier: str) -> None:
        ...

    @abstractmethod
    async def pin_remove(self, identifier: str) -> None:
        """Remove a recursive pin.

        Raises:
            StorageNodeError: code E_NODE_PIN_ABSENT if the identifier was not
                pinned, E_NODE_ERROR for any other failure.
        """
        ...

    @abstractmethod
    async def list_pins(self) -> list[str]:
        """List recursively pinned identifiers."""
        ...

    @abstractmethod
    async def stat_object_size(self, identifier: str) -> int:
        """Best-effort cumulative size in bytes; 0 when unknown."""
        ...

    @abstractmethod
    async def repo_stat(self) -> RepoStat:
        ...

    @abstractmethod
    async def repo_gc(self) -> int:
        """Run garbage collection. Returns the number of removed blocks."""
        ...


class StorageNodeClient(StorageNodeBase):
    """Kubo RPC client over a shared httpx.AsyncClient."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str,
        *,
        timeout_s: float = 30.0,
        gc_timeout_s: float = 3600.0,
    ):
        self._client = client
        self._api_url = api_url.rstrip("/")
        self._timeout_s = timeout_s
        self._gc_timeout_s = gc_timeout_s

    def _url(self, command: str) -> str:
        return f"{self._api_url}/api/v0/{command}"

    async def _post(
        self,
        command: str,
        params: dict | None = None,
        *,
        timeout_s: float | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.post(
                self._url(command),
                params=params,
                timeout=timeout_s or self._timeout_s,
            )
        except httpx.HTTPError as e:
            raise StorageNodeError(
                f"IPFS {command} failed: {type(e).__name__}: {e}",
                code=ErrorCode.E_NODE_UNAVAILABLE,
            ) from e

        if response.status_code >= 400:
            message = _error_message(response)
            code = ErrorCode.E_NODE_ERROR
            if command == "pin/rm" and _is_absent_pin_message(message):
                code = ErrorCode.E_NODE_PIN_ABSENT
            raise StorageNodeError(
                f"IPFS {command} failed: {response.status_code} {message}", code=code
            )
        return response

    async def is_running(self) -> bool:
        try:
            await self._post("id", timeout_s=LIVENESS_TIMEOUT_S)
        except StorageNodeError:
            return False
        return True

    async def node_id(self) -> dict:
        response = await self._post("id")
        return response.json()

    async def pin_add(self, identifier: str) -> None:
        # Pinning fetches content, allow twice the normal timeout
        await self._post(
            "pin/add",
            {"arg": identifier, "recursive": "true"},
            timeout_s=self._timeout_s * 2,
        )

    async def pin_remove(self, identifier: str) -> None:
        await self._post("pin/rm", {"arg": identifier, "recursive": "true"})

    async def list_pins(self) -> list[str]:
        response = await self._post("pin/ls", {"type": "recursive"})
        keys = response.json().get("Keys") or {}
        return list(keys)

    async def stat_object_size(self, identifier: str) -> int:
        try:
            response = await self._post("files/stat", {"arg": f"/ipfs/{identifier}"})
            data = response.json()
            return int(data.get("CumulativeSize") or data.get("Size") or 0)
        except (StorageNodeError, ValueError, TypeError, AttributeError) as e:
            logger.warning("ipfs_size_lookup_failed", identifier=identifier, error=str(e))
            return 0

    async def repo_stat(self) -> RepoStat:
        response = await self._post("repo/stat")
        data = response.json()
        return RepoStat(
            repo_size=int(data.get("RepoSize") or 0),
            storage_max=int(data.get("StorageMax") or 0),
            num_objects=int(data.get("NumObjects") or 0),
        )

    async def repo_gc(self) -> int:
        response = await self._post("repo/gc", timeout_s=self._gc_timeout_s)

        # repo/gc streams one JSON object per line: {"Key": {...}} or {"Error": "..."}
        removed = 0
        errors: list[str] = []
        for line in response.text.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if entry.get("Error"):
                errors.append(entry["Error"])
            elif entry.get("Key"):
                removed += 1

        if errors:
            raise StorageNodeError(f"IPFS repo/gc reported errors: {'; '.join(errors[:3])}")
        return removed


def _error_message(response: httpx.Response) -> str:
    """Extract Kubo's {"Message": ...} error text, falling back to the raw body."""
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and data.get("Message"):
        return str(data["Message"])
    return response.text


class FakeStorageNode(StorageNodeBase):
    """In-memory storage node for tests and local development."""

    def __init__(self, *, running: bool = True, storage_max: int = 10 * 1024**3):
        self.running = running
        self.storage_max = storage_max
        self._pins: dict[str, int] = {}  # identifier -> size
        self._unpinned_bytes = 0
        self._failing: dict[str, str] = {}  # operation -> message
        self.removed: list[str] = []
        self.gc_runs = 0

    def _check(self, operation: str) -> None:
        if not self.running:
            raise StorageNodeError("IPFS daemon is not running", code=ErrorCode.E_NODE_UNAVAILABLE)
        if operation in self._failing:
            raise StorageNodeError(self._failing[operation])

    async def is_running(self) -> bool:
        return self.running

    async def node_id(self) -> dict:
        self._check("id")
        return {"ID": "12D3KooWFakeNode", "AgentVersion": "kubo/fake"}

    async def pin_add(self, identifier: str) -> None:
        self._check("pin_add")
        self._pins.setdefault(identifier, 0)

    async def pin_remove(self, identifier: str) -> None:
        self._check("pin_remove")
        if identifier not in self._pins:
            raise StorageNodeError(
                f"IPFS pin/rm failed: {identifier} not pinned",
                code=ErrorCode.E_NODE_PIN_ABSENT,
            )
        self._unpinned_bytes += self._pins.pop(identifier)
        self.removed.append(identifier)

    async def list_pins(self) -> list[str]:
        self._check("list_pins")
        return list(self._pins)

    async def stat_object_size(self, identifier: str) -> int:
        if not self.running or "stat" in self._failing:
            return 0
        return self._pins.get(identifier, 0)

    async def repo_stat(self) -> RepoStat:
        self._check("repo_stat")
        return RepoStat(
            repo_size=sum(self._pins.values()) + self._unpinned_bytes,
            storage_max=self.storage_max,
            num_objects=len(self._pins),
        )

    async def repo_gc(self) -> int:
        self._check("repo_gc")
        self.gc_runs += 1
        freed, self._unpinned_bytes = self._unpinned_bytes, 0
        return 1 if freed else 0

    # Test helper methods

    def add_pin(self, identifier: str, size_bytes: int = 0) -> None:
        """Pin an identifier directly (test helper)."""
        self._pins[identifier] = size_bytes

    def has_pin(self, identifier: str) -> bool:
        return identifier in self._pins

    def fail(self, operation: str, message: str = "simulated failure") -> None:
        """Make an operation raise StorageNodeError (test helper)."""
        self._failing[operation] = message

    def recover(self, operation: str | None = None) -> None:
        if operation is None:
            self._failing.clear()
        else:
            self._failing.pop(operation, None)
