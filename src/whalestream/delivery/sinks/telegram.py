"""
Telegram sink.

Delivers alerts via the Telegram Bot API sendMessage endpoint.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from whalestream.delivery.formatter import WhaleTransferFormatter
from whalestream.delivery.sinks.base import DeliveryResult, SinkType
from whalestream.delivery.sinks.http import DEFAULT_RETRY_AFTER_S, HttpAlertSink

if TYPE_CHECKING:
    import aiohttp

    from whalestream.contracts import WhaleTransfer
    from whalestream.delivery.config import TelegramSinkConfig

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramSink(HttpAlertSink):
    """
    Telegram delivery sink using Bot API.

    Uses HTML parse mode by default; Markdown modes fall back to plain text since the
    formatter's markdown targets Discord.
    """

    def __init__(
        self,
        config: TelegramSinkConfig,
        formatter: WhaleTransferFormatter | None = None,
    ) -> None:
        super().__init__(timeout_s=config.timeout_s, max_retries=config.max_retries)
        self._config = config
        self._formatter = formatter or WhaleTransferFormatter()

    @property
    def name(self) -> str:
        return f"telegram:{self._config.chat_id}"

    @property
    def sink_type(self) -> SinkType:
        return "telegram"

    async def _retry_after(self, resp: aiohttp.ClientResponse) -> float:
        data = await resp.json()
        return float(data.get("parameters", {}).get("retry_after", DEFAULT_RETRY_AFTER_S))

    async def notify(self, event: WhaleTransfer) -> DeliveryResult:
        """Send alert to Telegram."""
        if not self._config.enabled:
            return DeliveryResult(
                success=False,
                sink_name=self.name,
                error="Telegram sink not enabled",
            )

        message = self._formatter.format(event)
        text = message.html if self._config.parse_mode == "HTML" else message.text

        url = f"{TELEGRAM_API_BASE}/bot{self._config.bot_token}/sendMessage"
        payload = {
            "chat_id": self._config.chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if self._config.parse_mode == "HTML":
            payload["parse_mode"] = "HTML"
        return await self._post(url, payload)
