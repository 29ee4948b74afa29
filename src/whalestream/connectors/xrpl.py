"""
XRP Ledger public WebSocket feed.

Public servers and the subscribe command for the validated transaction stream.
Frames on this stream look like:

    {"type": "transaction", "engine_result": "tesSUCCESS", "ledger_index": 88000000,
     "validated": true, "transaction": {"TransactionType": "Payment", "Account": "r...",
     "Destination": "r...", "Amount": "250000000000", "hash": "ABC..."}}
"""

from __future__ import annotations

from typing import Any

DEFAULT_XRPL_SERVERS: tuple[str, ...] = (
    "wss://xrplcluster.com",
    "wss://s1.ripple.com",
    "wss://s2.ripple.com",
    "wss://xrpl.ws",
)

# XRP amounts arrive as strings of drops
DROPS_PER_XRP = 1_000_000
NATIVE_CURRENCY = "XRP"

EXPLORER_TX_URL = "https://xrpscan.com/tx/{hash}"


def transactions_subscribe_message() -> dict[str, Any]:
    """Subscribe command for the validated transaction stream."""
    return {"id": "whalestream-subscribe", "command": "subscribe", "streams": ["transactions"]}
