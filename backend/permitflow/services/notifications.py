"""
Stage transition notifications.

Posted to the configured webhook after the transaction that made the change
has committed. A failed delivery is logged and dropped; it never undoes the
transition.
"""

import logging

import httpx

from permitflow.config import settings
from permitflow.database import utcnow
from permitflow.models import Application

logger = logging.getLogger(__name__)


def transition_event(application: Application, old_status: str, stage: str, actor: str) -> dict:
    return {
        "event": "application.status_changed",
        "application_id": application.application_id,
        "kind": application.kind,
        "entity_name": application.entity_name,
        "applicant_id": application.applicant_id,
        "stage": stage,
        "old_status": old_status,
        "new_status": application.status,
        "actor": actor,
        "occurred_at": utcnow().isoformat(),
    }


class NotificationClient:
    def __init__(
        self,
        webhook_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self.timeout = timeout or settings.http_timeout_seconds
        self._transport = transport

    async def send(self, event: dict) -> bool:
        """Deliver one event. Returns False (never raises) when delivery fails."""
        if not self.webhook_url:
            logger.debug("No notification webhook configured, dropping %s", event.get("event"))
            return False
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.webhook_url, json=event)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                "Notification for %s (%s) not delivered: %s",
                event.get("application_id"), event.get("new_status"), e,
            )
            return False
        return True

    async def notify_transition(self, application: Application, old_status: str, stage: str, actor: str) -> bool:
        return await self.send(transition_event(application, old_status, stage, actor))
