"""Job lifecycle notifications.

A finished job with a callback URL gets exactly one delivery attempt of its
JobEvent. There is no retry and no signing; a failed delivery raises
NotificationError, which the coordinator logs and ignores.
"""

import logging
from abc import ABC, abstractmethod

import httpx

from repolens.errors import NotificationError
from repolens.models.job import JobEvent

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Delivers job events to a callback."""

    @abstractmethod
    async def notify(self, callback_url: str, event: JobEvent) -> None:
        """Deliver one event.

        Raises:
            NotificationError: If delivery fails
        """


class WebhookNotifier(Notifier):
    """Delivers events as JSON ``POST`` requests."""

    def __init__(
        self,
        timeout: float = 10.0,
        user_agent: str = "RepoLens-Webhook/1.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the notifier.

        Args:
            timeout: Delivery timeout in seconds
            user_agent: User-Agent header value
            transport: Custom httpx transport
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self._transport = transport

    async def notify(self, callback_url: str, event: JobEvent) -> None:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
            "X-RepoLens-Event": event.event_type.value,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(callback_url, json=event.to_dict(), headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(
                f"Delivery of {event.event_type.value} for job {event.job_id} "
                f"to {callback_url} failed: {e}"
            ) from e

        logger.debug(
            "Delivered %s for job %s (HTTP %d)",
            event.event_type.value,
            event.job_id,
            response.status_code,
        )
