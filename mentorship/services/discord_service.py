"""
Discord webhook client for admin summaries.
Callers go through run_best_effort; post_message itself raises on failure.
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DISCORD_MESSAGE_LIMIT = 2000


def cap_message_content(content: str) -> str:
    """Discord rejects message content longer than 2000 characters"""
    if len(content) <= DISCORD_MESSAGE_LIMIT:
        return content
    return f"{content[:DISCORD_MESSAGE_LIMIT - 3]}..."


class DiscordWebhookNotifier:
    """Post plain messages to a Discord channel webhook"""

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def post_message(self, content: str) -> None:
        response = await self.client.post(
            self.webhook_url,
            json={"content": cap_message_content(content)},
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()
        logger.info("Posted Discord admin summary")

    async def close(self):
        await self.client.aclose()
