"""Notification webhook client with exponential backoff retry logic"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from autopay_gateway.config import settings
from autopay_gateway.domain.interfaces import Notifier
from autopay_gateway.infrastructure.observability.metrics import notifier_failure_counter

logger = logging.getLogger(__name__)


class WebhookNotifier(Notifier):
    """Posts notification events to the external notification service"""

    def __init__(self, webhook_url: str, transport: httpx.AsyncBaseTransport | None = None):
        self.webhook_url = webhook_url
        self.max_retries = settings.notifier_max_retries
        self.backoff_base = settings.notifier_backoff_base
        self.timeout = settings.http_timeout_seconds
        self.transport = transport

    async def notify(self, obligation_id: str, reason: str, **details: Any) -> None:
        """
        Send a notification event, retrying with backoff.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base ... (base^attempt)
        - Retries on 5xx errors and network failures
        - Final failure is logged and counted, never raised
        """
        payload = {
            "event": "AUTOPAY_NOTIFICATION",
            "obligation_id": obligation_id,
            "reason": reason,
            "details": details,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while attempt < self.max_retries:
                try:
                    response = await client.post(self.webhook_url, json=payload)
                    response.raise_for_status()
                    return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    notifier_failure_counter.inc()

                    if attempt >= self.max_retries:
                        logger.error(
                            f"Notification dropped after {attempt} attempts: {e}",
                            extra={"obligation_id": obligation_id, "reason": reason},
                        )
                        return

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)


class LoggingNotifier(Notifier):
    """Writes notifications to the log when no webhook is configured"""

    async def notify(self, obligation_id: str, reason: str, **details: Any) -> None:
        logger.info(
            f"Notification: {reason}",
            extra={"obligation_id": obligation_id, "reason": reason, "details": details},
        )


def build_notifier(webhook_url: str | None = None) -> Notifier:
    url = webhook_url or settings.notifier_webhook_url
    return WebhookNotifier(url) if url else LoggingNotifier()
