"""Notification gateways.

Delivery of participant and organizer notifications (email, push) is
owned by a separate notification service. The core only hands it a
recipient, a template name and template data.
"""

from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from festival.infrastructure.config import settings

logger = structlog.get_logger()


class NotificationError(Exception):
    """Error from the notification service."""

    def __init__(
        self,
        recipient: str,
        template: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.recipient = recipient
        self.template = template
        self.message = message
        self.status_code = status_code
        super().__init__(f"[{template} -> {recipient}] {message}")


class NotificationGateway(ABC):
    """Interface for outbound notification delivery."""

    @abstractmethod
    async def notify(self, to: str, template: str, data: dict[str, Any]) -> None:
        """Send one notification.

        Args:
            to: Recipient user ID.
            template: Template name (e.g. ``payment_approved``).
            data: Values rendered into the template.

        Raises:
            NotificationError: If the notification could not be handed off.
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""
        return None


class LoggingNotificationGateway(NotificationGateway):
    """Gateway that only logs notifications.

    Used when no notification service is configured.
    """

    async def notify(self, to: str, template: str, data: dict[str, Any]) -> None:
        logger.info("Notification sent", to=to, template=template)


class HttpNotificationGateway(NotificationGateway):
    """Gateway posting notifications to the notification service over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        request_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            base_url: Notification service URL.
            timeout: Request timeout in seconds.
            request_id: Optional request ID for correlation.
            transport: Optional httpx transport (used in tests).
        """
        self.base_url = base_url
        self.timeout = timeout
        self.request_id = request_id
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {}
            if self.request_id:
                headers["X-Request-ID"] = self.request_id
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def notify(self, to: str, template: str, data: dict[str, Any]) -> None:
        try:
            client = await self._get_client()
            response = await client.post(
                "/notifications",
                json={"to": to, "template": template, "data": data},
            )
            if response.status_code not in (200, 201, 202):
                raise NotificationError(
                    to,
                    template,
                    f"Notification rejected: {response.text}",
                    response.status_code,
                )
        except httpx.RequestError as e:
            logger.error(
                "Notification request failed",
                to=to,
                template=template,
                error=str(e),
            )
            raise NotificationError(to, template, f"Notification request failed: {str(e)}") from e


# Global gateway instance
_gateway: NotificationGateway | None = None


def get_notification_gateway() -> NotificationGateway:
    """Get notification gateway singleton."""
    global _gateway
    if _gateway is None:
        if settings.notification_url:
            _gateway = HttpNotificationGateway(
                base_url=settings.notification_url,
                timeout=settings.notification_timeout,
            )
        else:
            _gateway = LoggingNotificationGateway()
    return _gateway


def set_notification_gateway(gateway: NotificationGateway | None) -> None:
    """Replace the gateway singleton (for testing)."""
    global _gateway
    _gateway = gateway
