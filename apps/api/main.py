"""Thin API launcher.

This is the uvicorn entrypoint. All application logic lives in the hotnode package.
Run with: uvicorn main:app --port 3100

Note: The app instance is created here (not in hotnode.app) to avoid import-time
side effects. This allows tests to import create_app without requiring all
environment variables to be configured.
"""

from hotnode.app import create_app

app = create_app()

__all__ = ["app"]
