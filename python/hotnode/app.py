"""FastAPI application creation and configuration.

The health surface shares the workers' components: at startup the lifespan
opens production components (one shared httpx.AsyncClient, registry, event
log, adapters) and stores them on app.state; they are closed at shutdown.
Tests pass prebuilt components instead.
"""

from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from hotnode.api.routes import create_api_router
from hotnode.config import get_settings
from hotnode.errors import HotNodeError
from hotnode.logging import configure_logging, get_logger
from hotnode.middleware.request_id import RequestIDMiddleware
from hotnode.responses import (
    hotnode_error_handler,
    http_exception_handler,
    unhandled_exception_handler,
)
from hotnode.services.components import Components, open_components

logger = get_logger(__name__)


def create_app(components: Components | None = None, log_requests: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        components: Prebuilt components (for testing). When None, production
            components are opened for the lifetime of the app.
        log_requests: Whether to log access entries for each request.

    Returns:
        Configured FastAPI application instance.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with AsyncExitStack() as stack:
            if components is not None:
                app.state.components = components
            else:
                settings = get_settings()
                configure_logging(json_format=settings.log_json, level=settings.log_level)
                app.state.components = await stack.enter_async_context(
                    open_components(settings)
                )
                logger.info("components_opened", node=settings.hotnode_name)
            yield
        logger.info("components_closed")

    app = FastAPI(
        title="Hot Node",
        description="Health and status surface for an IPFS hot node",
        version="0.1.0",
        lifespan=lifespan,
    )
    if components is not None:
        app.state.components = components

    app.add_exception_handler(HotNodeError, hotnode_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(create_api_router())
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)

    return app
