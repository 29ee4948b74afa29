"""
Domain contracts for the whalestream pipeline.

WhaleTransfer is the only event that leaves the classifier; it is handed to the
alert sink once and then discarded.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import orjson
from pydantic import BaseModel, ConfigDict, Field, model_validator

from whalestream.connectors.xrpl import EXPLORER_TX_URL


class WhaleTransfer(BaseModel):
    """
    A high-value ledger transfer.

    Attributes:
        source_account: Sending account.
        destination_account: Receiving account (never equal to the source).
        amount: Transferred amount in the canonical unit (XRP, not drops).
        currency_unit: "XRP" or the issued-currency code.
        reference_id: Transaction hash, unique within the dedup window.
        observed_at: Local receive time (UTC).
        purpose: Stream that observed the transfer.
        ledger_index: Ledger the transaction was validated in, if reported.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    source_account: str = Field(..., min_length=1, description="Sending account")
    destination_account: str = Field(..., min_length=1, description="Receiving account")
    amount: Decimal = Field(..., ge=0, description="Amount in canonical unit")
    currency_unit: str = Field(..., min_length=1, description="Currency of the amount")
    reference_id: str = Field(..., min_length=1, description="Transaction hash")
    observed_at: datetime = Field(..., description="Local receive time (UTC)")
    purpose: str = Field(default="whale-monitor", min_length=1, description="Stream name")
    ledger_index: int | None = Field(default=None, ge=0, description="Validated ledger index")

    @model_validator(mode="after")
    def check_not_self_transfer(self) -> WhaleTransfer:
        """A transfer to the sending account is not a transfer."""
        if self.source_account == self.destination_account:
            raise ValueError("source_account and destination_account must differ")
        return self

    @property
    def explorer_url(self) -> str:
        return EXPLORER_TX_URL.format(hash=self.reference_id)

    def to_json(self) -> bytes:
        """Serialize to JSON bytes using orjson."""
        return orjson.dumps(self.model_dump(mode="json"))

    @classmethod
    def from_json(cls, data: bytes | str) -> WhaleTransfer:
        """Deserialize from JSON."""
        if isinstance(data, str):
            data = data.encode()
        return cls.model_validate(orjson.loads(data))
