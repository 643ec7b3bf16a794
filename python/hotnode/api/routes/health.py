"""Health endpoints used by upload routing and operators.

GET /health         readiness; 503 with E_NODE_UNAVAILABLE when the storage
                    daemon is down
GET /health/status  detailed node, repo, pin and recent event view
"""

from fastapi import APIRouter, Depends

from hotnode.api.deps import get_components
from hotnode.responses import success_response
from hotnode.services.components import Components
from hotnode.services.node_status import health_snapshot, status_snapshot

router = APIRouter()


@router.get("/health")
async def health_check(components: Components = Depends(get_components)) -> dict:
    snapshot = await health_snapshot(
        components.settings, components.storage_node, components.registry
    )
    return success_response(snapshot)


@router.get("/health/status")
async def node_status(components: Components = Depends(get_components)) -> dict:
    snapshot = await status_snapshot(
        components.settings,
        components.storage_node,
        components.registry,
        components.events,
        components.validation_source,
    )
    return success_response(snapshot)
