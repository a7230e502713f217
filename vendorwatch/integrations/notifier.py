import logging
from typing import Literal

import httpx

from vendorwatch.utils.settings import settings

logger = logging.getLogger(__name__)

NotificationKind = Literal[
    "SERVER_DOWN",
    "LOGIN_FAILED",
    "SEARCH_FAILED",
    "NEEDS_REVIEW",
    "PATCH_FAILED",
    "PR_CREATED",
]


class Notifier:
    async def notify(self, kind: NotificationKind, system_code: str, message: str):
        raise NotImplementedError


class SlackNotifier(Notifier):
    def __init__(
        self,
        webhook_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url or settings.SLACK_WEBHOOK_URL
        self.transport = transport

    async def notify(self, kind: NotificationKind, system_code: str, message: str):
        if not self.webhook_url:
            logger.warning(f"SLACK_WEBHOOK_URL not set, dropping {kind} for {system_code}")
            return

        try:
            async with httpx.AsyncClient(
                timeout=30.0, transport=self.transport
            ) as client:
                response = await client.post(
                    self.webhook_url,
                    json={"text": f"[{kind}] {system_code}: {message}"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Failed to notify Slack: {e.response.status_code} - {e.response.text}"
            )
        except Exception as e:
            logger.error(f"Failed to notify Slack: {e}")
