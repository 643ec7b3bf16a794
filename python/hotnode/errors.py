"""Error taxonomy for the hot node.

Transient external failures (storage daemon, replication target, validation
source) are retried at the next scheduled run. Registry guard violations are
programming or operator errors and are never retried automatically.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes.

    Format: E_CATEGORY_NAME
    """

    # Registry (400/404/409)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_NOT_FOUND = "E_NOT_FOUND"
    E_PIN_NOT_FOUND = "E_PIN_NOT_FOUND"
    E_INVALID_TRANSITION = "E_INVALID_TRANSITION"

    # Storage daemon
    E_NODE_UNAVAILABLE = "E_NODE_UNAVAILABLE"  # 503
    E_NODE_ERROR = "E_NODE_ERROR"  # 502
    E_NODE_PIN_ABSENT = "E_NODE_PIN_ABSENT"  # 404

    # Replication target
    E_TARGET_ERROR = "E_TARGET_ERROR"  # 502
    E_TARGET_TIMEOUT = "E_TARGET_TIMEOUT"  # 504
    E_TARGET_NOT_CONVERGED = "E_TARGET_NOT_CONVERGED"  # 502

    # Validation source
    E_VALIDATION_SOURCE_ERROR = "E_VALIDATION_SOURCE_ERROR"  # 502

    E_INTERNAL = "E_INTERNAL"  # 500


ERROR_CODE_TO_STATUS: dict[ErrorCode, int] = {
    ErrorCode.E_INVALID_REQUEST: 400,
    ErrorCode.E_NOT_FOUND: 404,
    ErrorCode.E_PIN_NOT_FOUND: 404,
    ErrorCode.E_INVALID_TRANSITION: 409,
    ErrorCode.E_NODE_UNAVAILABLE: 503,
    ErrorCode.E_NODE_ERROR: 502,
    ErrorCode.E_NODE_PIN_ABSENT: 404,
    ErrorCode.E_TARGET_ERROR: 502,
    ErrorCode.E_TARGET_TIMEOUT: 504,
    ErrorCode.E_TARGET_NOT_CONVERGED: 502,
    ErrorCode.E_VALIDATION_SOURCE_ERROR: 502,
    ErrorCode.E_INTERNAL: 500,
}


class HotNodeError(Exception):
    """Base exception for hot node errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    default_code = ErrorCode.E_INTERNAL

    def __init__(self, message: str, code: ErrorCode | None = None):
        self.code = code or self.default_code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(self.code, 500)
        super().__init__(message)


class StorageNodeError(HotNodeError):
    """Local storage daemon call failed (non-2xx, timeout, transport)."""

    default_code = ErrorCode.E_NODE_ERROR


class ReplicationTargetError(HotNodeError):
    """Replication target call failed."""

    default_code = ErrorCode.E_TARGET_ERROR


class ValidationSourceError(HotNodeError):
    """Authorization database or remote validation call failed."""

    default_code = ErrorCode.E_VALIDATION_SOURCE_ERROR


class DependencyUnavailableError(HotNodeError):
    """A dependency required at worker start is down; the run is abandoned."""

    default_code = ErrorCode.E_NODE_UNAVAILABLE


class PinNotFoundError(HotNodeError):
    """Identifier is not tracked in the pin registry."""

    default_code = ErrorCode.E_PIN_NOT_FOUND

    def __init__(self, identifier: str):
        super().__init__(f"Pin not tracked: {identifier}")
        self.identifier = identifier


class InvalidTransitionError(HotNodeError):
    """Requested update would move a pin backwards through its lifecycle."""

    default_code = ErrorCode.E_INVALID_TRANSITION
