"""
Tests for the WhaleTransfer contract.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import pytest
from pydantic import ValidationError

from whalestream.contracts import WhaleTransfer


def transfer_fields(**overrides: Any) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "source_account": "rSource",
        "destination_account": "rDestination",
        "amount": Decimal("750000.25"),
        "currency_unit": "XRP",
        "reference_id": "C0FFEE",
        "observed_at": datetime(2024, 1, 28, 12, 30, tzinfo=UTC),
        "ledger_index": 88000000,
    }
    fields.update(overrides)
    return fields


class TestWhaleTransfer:
    """Validation and serialization."""

    def test_valid_transfer(self) -> None:
        event = WhaleTransfer(**transfer_fields())

        assert event.purpose == "whale-monitor"
        assert event.explorer_url == "https://xrpscan.com/tx/C0FFEE"

    def test_self_transfer_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must differ"):
            WhaleTransfer(**transfer_fields(destination_account="rSource"))

    @pytest.mark.parametrize("field", ["source_account", "destination_account", "currency_unit", "reference_id"])
    def test_empty_strings_rejected(self, field: str) -> None:
        with pytest.raises(ValidationError):
            WhaleTransfer(**transfer_fields(**{field: ""}))

    def test_negative_amount_rejected(self) -> None:
        with pytest.raises(ValidationError):
            WhaleTransfer(**transfer_fields(amount=Decimal("-1")))

    def test_extra_fields_forbidden(self) -> None:
        with pytest.raises(ValidationError):
            WhaleTransfer(**transfer_fields(memo="hi"))

    def test_frozen(self) -> None:
        event = WhaleTransfer(**transfer_fields())

        with pytest.raises(ValidationError):
            event.amount = Decimal("1")  # type: ignore[misc]

    def test_json_roundtrip_keeps_decimal_exact(self) -> None:
        event = WhaleTransfer(**transfer_fields())

        restored = WhaleTransfer.from_json(event.to_json())

        assert restored == event
        assert restored.amount == Decimal("750000.25")

    def test_from_json_str(self) -> None:
        event = WhaleTransfer(**transfer_fields(ledger_index=None))

        restored = WhaleTransfer.from_json(event.to_json().decode())

        assert restored.ledger_index is None
        assert restored.reference_id == "C0FFEE"
