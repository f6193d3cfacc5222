"""Shared API dependencies and helpers."""

from fastapi import BackgroundTasks, HTTPException, Request, status

from festival.application.notifications import get_notification_dispatcher
from festival.application.results import ServiceResult
from festival.domain.value_objects import Actor


def get_request_id(request: Request) -> str | None:
    """Request ID set by the request ID middleware."""
    return getattr(request.state, "request_id", None)


def require_actor(request: Request) -> Actor:
    """Calling user, or 401 if the gateway sent none."""
    actor = getattr(request.state, "actor", None)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "IDENTITY_REQUIRED",
                "message": "Missing X-User-ID header",
            },
        )
    return actor


def schedule_notifications(request: Request, background_tasks: BackgroundTasks) -> None:
    """Send queued notifications after the response went out."""
    dispatcher = get_notification_dispatcher(request_id=get_request_id(request))
    background_tasks.add_task(dispatcher.dispatch_pending)


def raise_for_result(result: ServiceResult) -> None:
    """Raise the HTTP error matching a failed service result."""
    if result.success:
        return
    raise HTTPException(
        status_code=result.status_code,
        detail={
            "error_code": result.error_code or "ERROR",
            "message": result.error or "Request failed",
            "details": result.details,
        },
    )
