"""
Webhook delivery for workflow events.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..models.workflow import WebhookSubscription

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """
    Fire-and-observe HTTP delivery to registered webhooks.

    Delivery problems are logged and reported in the returned
    results; they are never raised to the caller.
    """

    def __init__(
        self,
        repository: Any,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            repository: Anything with ``list_webhooks(workflow_id)``
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.repository = repository
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def deliver(self, subscription: WebhookSubscription, data: Any) -> Dict[str, Any]:
        """POST one event to one subscription."""
        payload = {
            "trigger_id": subscription.id,
            "event": subscription.event,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        try:
            client = await self._get_client()
            response = await client.post(subscription.url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Webhook {subscription.id} delivery to {subscription.url} failed: {e}")
            return {"success": False, "webhook_id": subscription.id, "error": str(e)}

        if response.status_code >= 400:
            logger.warning(
                f"Webhook {subscription.id} delivery to {subscription.url} "
                f"returned {response.status_code}"
            )
            return {
                "success": False,
                "webhook_id": subscription.id,
                "status": response.status_code,
                "error": response.text[:500],
            }

        logger.info(f"Webhook {subscription.id} delivered ({response.status_code})")
        return {"success": True, "webhook_id": subscription.id, "status": response.status_code}

    async def dispatch(self, workflow_id: str, event: str, data: Any) -> List[Dict[str, Any]]:
        """Deliver ``event`` to every subscription of ``workflow_id`` listening for it."""
        try:
            subscriptions = await self.repository.list_webhooks(workflow_id)
        except Exception as e:
            logger.warning(f"Could not load webhooks for workflow {workflow_id}: {e}")
            return []

        targets = [s for s in subscriptions if s.event == event]
        if not targets:
            return []

        return await asyncio.gather(*(self.deliver(s, data) for s in targets))
