"""Slack webhook alert sink."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)


class SlackWebhookAlerter:
    """Post ``{"text": message}`` to a Slack incoming webhook. Never raises."""

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._http_client = http_client

    async def send_alert(self, message: str) -> None:
        if not self.webhook_url:
            logger.error("alert_webhook_not_configured", extra={"alert": message})
            return

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.webhook_url, json={"text": message}, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.webhook_url, json={"text": message})
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("alert_send_failed", extra={"error": str(exc)})
            return

        logger.info("alert_sent")
