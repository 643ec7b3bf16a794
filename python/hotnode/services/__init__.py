"""Hot node services.

Workers orchestrate the pin lifecycle; the registry, event log, stats and
notifier are the collaborators they share.
"""

from hotnode.services.components import Components, open_components
from hotnode.services.manual import NodeOperations
from hotnode.services.pin_registry import PinRegistry
from hotnode.services.worker import RunResult, Worker

__all__ = [
    "Components",
    "NodeOperations",
    "PinRegistry",
    "RunResult",
    "Worker",
    "open_components",
]
