"""API middleware for the festival API.

Provides:
- Request ID correlation
- API key authentication of the calling gateway
- Caller identity extraction
- Error handling
"""

import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from festival.application.participants import get_participant_directory
from festival.domain.value_objects import Actor, ActorRole, ParticipantType
from festival.infrastructure.config import settings

logger = structlog.get_logger()


# ============================================================================
# Request ID Middleware
# ============================================================================


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Middleware to add request ID for correlation.

    Generates or extracts a request ID and adds it to:
    - Request state for access in handlers
    - Response headers for client correlation
    - Log context for tracing
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Tag the request with a correlation ID and log its outcome.

        Args:
            request: Incoming request.
            call_next: Next middleware/handler.

        Returns:
            Response carrying the X-Request-ID header.
        """
        # Reuse the gateway's ID when it sent one
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid4())
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000

            # One line per request, errors included
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=getattr(response, "status_code", 500),
                duration_ms=round(duration_ms, 2),
            )
            structlog.contextvars.unbind_contextvars("request_id")

        # Echo the ID so callers can quote it in bug reports
        response.headers[self.HEADER_NAME] = request_id
        return response


# ============================================================================
# API Key Authentication Middleware
# ============================================================================


# Paths that don't require authentication
PUBLIC_PATHS = {
    "/health",
    "/ready",
    "/docs",
    "/redoc",
    "/openapi.json",
}


def _unauthorized(error_code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error_code": error_code, "message": message, "details": {}},
        headers={"WWW-Authenticate": "Bearer"},
    )


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Middleware for API key authentication.

    The festival API sits behind the platform gateway, which
    authenticates users and calls us with a shared API key in the
    ``Authorization: Bearer <api_key>`` header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Check the gateway's API key on every non-public path.

        Args:
            request: Incoming request.
            call_next: Next middleware/handler.

        Returns:
            Response, or 401 when the key is missing or wrong.
        """
        # Health checks and docs stay open
        path = request.url.path.rstrip("/")
        if path in PUBLIC_PATHS or path.startswith("/docs") or path.startswith("/redoc"):
            return await call_next(request)

        # Expect "Bearer <api_key>"
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            logger.warning("Missing authorization header", path=path, method=request.method)
            return _unauthorized("UNAUTHORIZED", "Missing Authorization header")

        parts = auth_header.split(" ", 1)
        if len(parts) != 2 or parts[0].lower() != "bearer":
            logger.warning("Invalid authorization format", path=path, method=request.method)
            return _unauthorized(
                "UNAUTHORIZED",
                "Invalid Authorization header format. Use 'Bearer <api_key>'",
            )

        # Compare against the configured shared key
        if parts[1] != settings.api_key:
            logger.warning("Invalid API key", path=path, method=request.method)
            return _unauthorized("INVALID_API_KEY", "Invalid API key")

        # Routes may check this instead of re-reading the header
        request.state.authenticated = True
        return await call_next(request)


# ============================================================================
# Identity Middleware
# ============================================================================


class IdentityMiddleware(BaseHTTPMiddleware):
    """Middleware building the calling user from gateway headers.

    The gateway forwards the verified user as ``X-User-ID``,
    ``X-User-Role``, ``X-User-Name`` and ``X-Participant-Type``. Requests
    without ``X-User-ID`` get no actor; endpoints that need one answer
    401 through the ``require_actor`` dependency.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Attach the calling user, if any, to the request state.

        Args:
            request: Incoming request.
            call_next: Next middleware/handler.

        Returns:
            Response, or 400 when a role or participant type is unknown.
        """
        # Anonymous calls pass through; routes decide whether they need a user
        request.state.actor = None
        user_id = (request.headers.get("X-User-ID") or "").strip()
        if not user_id:
            return await call_next(request)

        try:
            actor = Actor(
                id=user_id,
                role=ActorRole(request.headers.get("X-User-Role", ActorRole.PARTICIPANT.value).lower()),
                name=request.headers.get("X-User-Name", "").strip(),
                participant_type=ParticipantType(
                    request.headers.get("X-Participant-Type", ParticipantType.NON_IIIT.value).lower()
                ),
            )
        except ValueError as e:
            logger.warning("Invalid identity headers", user_id=user_id, error=str(e))
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={
                    "error_code": "INVALID_IDENTITY",
                    "message": f"Invalid identity headers: {e}",
                    "details": {},
                    "request_id": getattr(request.state, "request_id", None),
                },
            )

        request.state.actor = actor

        # Remember the display name for tickets and notifications
        get_participant_directory().remember(actor)

        # Add the user to every log line of this request
        structlog.contextvars.bind_contextvars(user_id=actor.id)
        try:
            return await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("user_id")


# ============================================================================
# Error Handling Middleware
# ============================================================================


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Middleware for consistent error handling.

    Catches unhandled exceptions and returns standardized error responses.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Turn unhandled exceptions into the standard error body.

        Args:
            request: Incoming request.
            call_next: Next middleware/handler.

        Returns:
            Response or a 500 error response.
        """
        try:
            return await call_next(request)
        except Exception as e:
            request_id = getattr(request.state, "request_id", None)
            logger.exception(
                "Unhandled exception",
                path=request.url.path,
                method=request.method,
                error=str(e),
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error_code": "INTERNAL_ERROR",
                    "message": "An internal error occurred",
                    "details": {},
                    "request_id": request_id,
                },
            )


# ============================================================================
# Middleware Setup
# ============================================================================


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware for the application.

    Middleware is added in reverse order (last added = first executed).

    Args:
        app: FastAPI application instance.
    """
    # Caller identity (innermost, runs after authentication)
    app.add_middleware(IdentityMiddleware)

    # API key authentication of the gateway
    app.add_middleware(ApiKeyMiddleware)

    # Error handling (wraps auth and identity)
    app.add_middleware(ErrorHandlerMiddleware)

    # Request ID correlation (outermost, so every log line carries the ID)
    app.add_middleware(RequestIdMiddleware)
