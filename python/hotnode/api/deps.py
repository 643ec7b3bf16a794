"""FastAPI dependencies for route handlers."""

from fastapi import Request

from hotnode.services.components import Components


def get_components(request: Request) -> Components:
    """Components built at startup and stored on app.state."""
    return request.app.state.components
