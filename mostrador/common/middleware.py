"""
Middleware for cashier identity context
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import UUID
import logging

logger = logging.getLogger(__name__)


def _context_error(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"code": "MISSING_CASHIER_CONTEXT", "message": message, "details": {}},
    )


class CashierContextMiddleware(BaseHTTPMiddleware):
    """
    Extracts cashier_id (X-Cashier-ID) and location_id (X-Location-ID) set by
    the authentication gateway and stores them on request.state.
    Both values are trusted; only their format is validated here.
    """

    # Paths that don't require cashier context
    EXEMPT_PREFIXES = (
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
    )

    def _is_exempt(self, path: str) -> bool:
        return path == "/" or path.startswith(self.EXEMPT_PREFIXES)

    async def dispatch(self, request: Request, call_next):
        # CORS preflight never carries identity headers
        if request.method == "OPTIONS" or self._is_exempt(request.url.path):
            return await call_next(request)

        cashier_header = request.headers.get("X-Cashier-ID")
        if not cashier_header:
            return _context_error("Missing X-Cashier-ID header")

        try:
            request.state.cashier_id = UUID(cashier_header)
            location_header = request.headers.get("X-Location-ID")
            request.state.location_id = UUID(location_header) if location_header else None
        except ValueError:
            return _context_error("X-Cashier-ID and X-Location-ID must be valid UUIDs")

        logger.debug(f"{request.method} {request.url.path} by cashier {request.state.cashier_id}")
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds baseline security headers to every response
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        return response
