"""Adapters for the local storage daemon and the replication target."""

from hotnode.storage.node import (
    FakeStorageNode,
    RepoStat,
    StorageNodeBase,
    StorageNodeClient,
)
from hotnode.storage.target import (
    FakeReplicationTarget,
    ReplicationTargetBase,
    ReplicationTargetClient,
    VerificationCase,
    VerificationResult,
    classify_pin_ls_response,
    compute_pin_timeout,
)

__all__ = [
    "FakeReplicationTarget",
    "FakeStorageNode",
    "ReplicationTargetBase",
    "ReplicationTargetClient",
    "RepoStat",
    "StorageNodeBase",
    "StorageNodeClient",
    "VerificationCase",
    "VerificationResult",
    "classify_pin_ls_response",
    "compute_pin_timeout",
]
