"""HTTP middleware for the health surface."""

from hotnode.middleware.request_id import RequestIDMiddleware

__all__ = ["RequestIDMiddleware"]
