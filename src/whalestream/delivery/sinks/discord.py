"""
Discord sink.

Posts an embed to a channel webhook.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiohttp

from whalestream.delivery.formatter import WhaleTransferFormatter
from whalestream.delivery.sinks.base import DeliveryResult, SinkType
from whalestream.delivery.sinks.http import DEFAULT_RETRY_AFTER_S, HttpAlertSink

if TYPE_CHECKING:
    from whalestream.contracts import WhaleTransfer
    from whalestream.delivery.config import DiscordSinkConfig


class DiscordSink(HttpAlertSink):
    """Discord channel webhook sink (embed per alert)."""

    def __init__(
        self,
        config: DiscordSinkConfig,
        formatter: WhaleTransferFormatter | None = None,
    ) -> None:
        super().__init__(timeout_s=config.timeout_s, max_retries=config.max_retries)
        self._config = config
        self._formatter = formatter or WhaleTransferFormatter()

    @property
    def name(self) -> str:
        # Don't expose webhook URL in name
        return "discord:webhook"

    @property
    def sink_type(self) -> SinkType:
        return "discord"

    async def _retry_after(self, resp: aiohttp.ClientResponse) -> float:
        # Discord reports retry_after in seconds in the JSON body
        try:
            data = await resp.json()
        except (aiohttp.ContentTypeError, ValueError):
            return await super()._retry_after(resp)
        return float(data.get("retry_after", DEFAULT_RETRY_AFTER_S))

    async def notify(self, event: WhaleTransfer) -> DeliveryResult:
        """Send alert embed to Discord."""
        if not self._config.enabled:
            return DeliveryResult(
                success=False,
                sink_name=self.name,
                error="Discord sink not enabled",
            )

        payload = {
            "username": self._config.username,
            "embeds": [self._formatter.format_embed(event)],
        }
        return await self._post(self._config.webhook_url, payload)
