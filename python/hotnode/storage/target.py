"""Replication target adapter (the supernode's Kubo-compatible RPC API).

Two operations matter to migration:

- pin(identifier, size_hint_bytes): POST /api/v0/pin/add with a timeout that
  grows with the content size, so large transfers are not cut short and small
  ones do not wait needlessly.
- verify(identifier): POST /api/v0/pin/ls. The reply shape is ambiguous, so
  it is resolved by classify_pin_ls_response() under a conservative policy:
  anything that does not positively confirm presence means "not migrated".
  A false negative costs an idempotent re-pin; a false positive would let
  cleanup drop the only local copy of unreplicated content.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from hotnode.errors import ErrorCode, ReplicationTargetError
from hotnode.logging import get_logger

logger = get_logger(__name__)

BYTES_PER_MB = 1024 * 1024
MB_PER_STEP = 100
NEGATIVE_MARKER = "not pinned"


def compute_pin_timeout(
    size_bytes: int | None,
    *,
    base: float = 30.0,
    step: float = 30.0,
    maximum: float = 600.0,
) -> float:
    """Timeout in seconds for pinning content of the given size on the target.

    timeout = min(maximum, max(base, base + ceil(size_mb / 100) * step))

    Unknown or zero size yields the base timeout.
    """
    if not size_bytes or size_bytes <= 0:
        return min(maximum, base)
    size_mb = size_bytes / BYTES_PER_MB
    timeout = base + math.ceil(size_mb / MB_PER_STEP) * step
    return min(maximum, max(base, timeout))


class VerificationCase(str, Enum):
    """How a pin/ls reply was interpreted."""

    KEY_PRESENT = "key_present"
    HTTP_ERROR = "http_error"
    ERROR_MESSAGE = "error_message"
    TEXT_RESPONSE = "text_response"
    KEYS_WITHOUT_IDENTIFIER = "keys_without_identifier"
    UNRECOGNIZED = "unrecognized"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class VerificationResult:
    exists: bool
    case: VerificationCase
    reason: str = ""

    def to_dict(self) -> dict:
        return {"exists": self.exists, "case": self.case.value, "reason": self.reason}


_MESSAGE_KEYS = ("Message", "message", "Error", "error", "status")


def classify_pin_ls_response(
    status_code: int, body: Any, identifier: str
) -> VerificationResult:
    """Resolve a pin/ls reply to exists / does-not-exist.

    Decision table, evaluated in order:
        non-2xx status                      -> HTTP_ERROR, false (whatever the body says)
        JSON with identifier under "Keys"   -> KEY_PRESENT, true
        JSON with an error/status message   -> ERROR_MESSAGE, false
        plain text                          -> TEXT_RESPONSE, true unless it says "not pinned"
        JSON "Keys" lacking the identifier  -> KEYS_WITHOUT_IDENTIFIER, false
        anything else                       -> UNRECOGNIZED, false
    """
    if not 200 <= status_code < 300:
        return VerificationResult(False, VerificationCase.HTTP_ERROR, f"HTTP {status_code}")

    if isinstance(body, dict):
        keys = body.get("Keys")
        if isinstance(keys, dict) and identifier in keys:
            return VerificationResult(True, VerificationCase.KEY_PRESENT)

        for key in _MESSAGE_KEYS:
            if body.get(key):
                return VerificationResult(
                    False, VerificationCase.ERROR_MESSAGE, str(body[key])[:200]
                )

        if isinstance(keys, dict):
            return VerificationResult(
                False,
                VerificationCase.KEYS_WITHOUT_IDENTIFIER,
                f"{len(keys)} keys returned, identifier absent",
            )

    if isinstance(body, str):
        if NEGATIVE_MARKER in body.lower():
            return VerificationResult(False, VerificationCase.TEXT_RESPONSE, body[:200])
        return VerificationResult(True, VerificationCase.TEXT_RESPONSE, body[:200])

    return VerificationResult(
        False, VerificationCase.UNRECOGNIZED, f"unrecognized reply: {type(body).__name__}"
    )


class ReplicationTargetBase(ABC):
    """Interface to the durable replication target."""

    @abstractmethod
    async def pin(self, identifier: str, size_hint_bytes: int | None = None) -> None:
        """Ask the target to fetch and pin the identifier.

        Raises:
            ReplicationTargetError: On non-2xx reply, timeout or network error.
        """
        ...

    @abstractmethod
    async def check(self, identifier: str) -> VerificationResult:
        """Query the target and classify the reply. Never raises."""
        ...

    async def verify(self, identifier: str) -> bool:
        return (await self.check(identifier)).exists


class ReplicationTargetClient(ReplicationTargetBase):
    """Supernode RPC client over a shared httpx.AsyncClient."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str,
        *,
        verify_timeout_s: float = 30.0,
        base_timeout_s: float = 30.0,
        timeout_step_s: float = 30.0,
        max_timeout_s: float = 600.0,
    ):
        self._client = client
        self._api_url = api_url.rstrip("/")
        self._verify_timeout_s = verify_timeout_s
        self._base_timeout_s = base_timeout_s
        self._timeout_step_s = timeout_step_s
        self._max_timeout_s = max_timeout_s

    def pin_timeout(self, size_bytes: int | None) -> float:
        return compute_pin_timeout(
            size_bytes,
            base=self._base_timeout_s,
            step=self._timeout_step_s,
            maximum=self._max_timeout_s,
        )

    async def pin(self, identifier: str, size_hint_bytes: int | None = None) -> None:
        timeout_s = self.pin_timeout(size_hint_bytes)
        if not size_hint_bytes:
            # Unmeasured content gets the minimum timeout; large objects may time out
            logger.warning(
                "target_pin_size_unknown", identifier=identifier, timeout_s=timeout_s
            )

        try:
            response = await self._client.post(
                f"{self._api_url}/api/v0/pin/add",
                params={"arg": identifier, "recursive": "true"},
                timeout=timeout_s,
            )
        except httpx.TimeoutException as e:
            raise ReplicationTargetError(
                f"Target pin timed out after {timeout_s:.0f}s", code=ErrorCode.E_TARGET_TIMEOUT
            ) from e
        except httpx.HTTPError as e:
            raise ReplicationTargetError(f"Target pin failed: {type(e).__name__}: {e}") from e

        if not response.is_success:
            raise ReplicationTargetError(
                f"Target pin failed: {response.status_code} {response.text[:200]}"
            )

        logger.info("target_pin_ok", identifier=identifier, timeout_s=timeout_s)

    async def check(self, identifier: str) -> VerificationResult:
        try:
            response = await self._client.post(
                f"{self._api_url}/api/v0/pin/ls",
                params={"arg": identifier, "type": "recursive"},
                timeout=self._verify_timeout_s,
            )
        except httpx.HTTPError as e:
            return VerificationResult(
                False, VerificationCase.TRANSPORT_ERROR, f"{type(e).__name__}: {e}"
            )

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text

        result = classify_pin_ls_response(response.status_code, body, identifier)
        logger.debug(
            "target_verify",
            identifier=identifier,
            exists=result.exists,
            case=result.case.value,
            reason=result.reason,
        )
        return result


class FakeReplicationTarget(ReplicationTargetBase):
    """In-memory replication target for tests.

    By default a pin becomes visible to verify() immediately. Use
    never_converge() to simulate a target that accepts the pin call but does
    not report the pin afterwards, and fail() to make pin() raise.
    """

    def __init__(self):
        self._pinned: set[str] = set()
        self._failing: dict[str, ReplicationTargetError] = {}
        self._not_converging: set[str] = set()
        self.pin_calls: list[tuple[str, int | None]] = []
        self.check_calls: list[str] = []

    async def pin(self, identifier: str, size_hint_bytes: int | None = None) -> None:
        self.pin_calls.append((identifier, size_hint_bytes))
        if identifier in self._failing:
            raise self._failing[identifier]
        if identifier not in self._not_converging:
            self._pinned.add(identifier)

    async def check(self, identifier: str) -> VerificationResult:
        self.check_calls.append(identifier)
        if identifier in self._pinned:
            return VerificationResult(True, VerificationCase.KEY_PRESENT)
        return VerificationResult(
            False, VerificationCase.ERROR_MESSAGE, f"{identifier} is not pinned"
        )

    # Test helper methods

    def add_pin(self, identifier: str) -> None:
        """Mark an identifier as already present on the target (test helper)."""
        self._pinned.add(identifier)

    def has_pin(self, identifier: str) -> bool:
        return identifier in self._pinned

    def fail(self, identifier: str, message: str = "simulated target failure") -> None:
        self._failing[identifier] = ReplicationTargetError(message)

    def never_converge(self, identifier: str) -> None:
        self._not_converging.add(identifier)
