"""Data contracts for whalestream."""

from whalestream.contracts.events import WhaleTransfer

__all__ = ["WhaleTransfer"]
