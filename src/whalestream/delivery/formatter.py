"""
WhaleTransfer formatter.

Deterministic template-based rendering: the same event always yields the same text.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from whalestream.contracts import WhaleTransfer

WHALE_ICON = "\U0001f40b"
EMBED_COLOR = 0xFF9900


@dataclass
class FormattedMessage:
    """Formatted message ready for delivery."""

    text: str  # Plain text version
    html: str  # HTML version (for Telegram)
    markdown: str  # Markdown version (for Discord)


def format_amount(amount: Decimal) -> str:
    """Thousands separators, trailing zeros dropped: 1250000.50 -> "1,250,000.5"."""
    normalized = amount.normalize()
    if normalized == normalized.to_integral_value():
        return f"{int(normalized):,}"
    return f"{normalized:,f}"


def shorten_account(account: str, keep: int = 6) -> str:
    """r9cZA1mLK5R5Am25ArfXFmqgNwjZgnfk59 -> r9cZA1...gnfk59"""
    if len(account) <= keep * 2 + 3:
        return account
    return f"{account[:keep]}...{account[-keep:]}"


class WhaleTransferFormatter:
    """Renders WhaleTransfer events for chat sinks."""

    def __init__(self, *, shorten_accounts: bool = False) -> None:
        self._shorten = shorten_accounts

    def _account(self, account: str) -> str:
        return shorten_account(account) if self._shorten else account

    def format(self, event: WhaleTransfer) -> FormattedMessage:
        amount = f"{format_amount(event.amount)} {event.currency_unit}"
        source = self._account(event.source_account)
        destination = self._account(event.destination_account)
        ts_str = event.observed_at.strftime("%Y-%m-%d %H:%M:%S UTC")
        url = event.explorer_url

        text = "\n".join(
            [
                f"{WHALE_ICON} Whale Alert: {amount}",
                f"From: {source}",
                f"To: {destination}",
                f"Time: {ts_str}",
                f"Details: {url}",
            ]
        )
        html_text = "\n".join(
            [
                f"{WHALE_ICON} <b>Whale Alert</b>: {html.escape(amount)}",
                f"From: <code>{html.escape(source)}</code>",
                f"To: <code>{html.escape(destination)}</code>",
                f"Time: {ts_str}",
                f'<a href="{html.escape(url)}">View on XRPSCAN</a>',
            ]
        )
        markdown = "\n".join(
            [
                f"{WHALE_ICON} **Whale Alert**: {amount}",
                f"From: `{source}`",
                f"To: `{destination}`",
                f"Time: {ts_str}",
                f"[View on XRPSCAN]({url})",
            ]
        )
        return FormattedMessage(text=text, html=html_text, markdown=markdown)

    def format_embed(self, event: WhaleTransfer) -> dict[str, Any]:
        """Discord embed object."""
        return {
            "title": f"{WHALE_ICON} Whale Alert",
            "color": EMBED_COLOR,
            "fields": [
                {
                    "name": "Amount",
                    "value": f"{format_amount(event.amount)} {event.currency_unit}",
                    "inline": True,
                },
                {"name": "From", "value": self._account(event.source_account), "inline": True},
                {"name": "To", "value": self._account(event.destination_account), "inline": True},
                {
                    "name": "Transaction Details",
                    "value": f"[View on XRPSCAN]({event.explorer_url})",
                },
            ],
            "timestamp": event.observed_at.isoformat(),
        }
