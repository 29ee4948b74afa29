"""
Tests for TransferClassifier.

Frames are built the way the XRPL transaction stream delivers them.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import orjson
import pytest

from whalestream.classifier import (
    ClassifierConfig,
    RecentIdSet,
    RejectReason,
    SuspiciousAmountPolicy,
    TransferClassifier,
    normalize_amount,
)
from whalestream.connectors.types import RawFrame, StreamConfig

RECV_TS = 1706400000000
XRP = 1_000_000


def make_message(
    amount: Any = str(250_000 * XRP),
    *,
    tx_hash: str = "A1B2C3",
    source: str | None = "rSource",
    destination: str | None = "rDestination",
    tx_type: Any = "Payment",
    engine_result: str | None = "tesSUCCESS",
    ledger_index: Any = 88000000,
) -> dict[str, Any]:
    """Transaction stream message with the given fields."""
    tx: dict[str, Any] = {"TransactionType": tx_type, "Amount": amount, "hash": tx_hash}
    if source is not None:
        tx["Account"] = source
    if destination is not None:
        tx["Destination"] = destination
    message: dict[str, Any] = {"type": "transaction", "transaction": tx, "ledger_index": ledger_index}
    if engine_result is not None:
        message["engine_result"] = engine_result
    return message


def frame(message: Any) -> RawFrame:
    return RawFrame(data=orjson.dumps(message).decode(), recv_ts=RECV_TS, purpose="whale-monitor")


def drops(xrp: int | str) -> str:
    return str(int(Decimal(str(xrp)) * XRP))


class TestAmountBounds:
    """Inclusive [min_threshold, max_threshold] range."""

    @pytest.mark.parametrize(
        ("xrp", "accepted"),
        [
            (99999, False),
            (100000, True),
            (50000000, True),
            (50000001, False),
        ],
    )
    def test_threshold_boundaries(self, xrp: int, accepted: bool) -> None:
        classifier = TransferClassifier()

        event = classifier.classify(frame(make_message(drops(xrp))))

        assert (event is not None) is accepted
        if event is not None:
            assert event.amount == Decimal(xrp)

    def test_rejection_reasons_are_counted(self) -> None:
        classifier = TransferClassifier()

        classifier.classify(frame(make_message(drops(99999), tx_hash="LOW")))
        classifier.classify(frame(make_message(drops(50000001), tx_hash="HIGH")))

        assert classifier.metrics.rejected[RejectReason.BELOW_MIN.value] == 1
        assert classifier.metrics.rejected[RejectReason.ABOVE_MAX.value] == 1
        assert classifier.metrics.accepted == 0

    def test_from_stream_config_applies_thresholds(self) -> None:
        classifier = TransferClassifier.from_stream_config(
            StreamConfig(endpoints=["ws://node-a"], min_threshold=10, max_threshold=20)
        )

        assert classifier.classify(frame(make_message(drops(15), tx_hash="IN"))) is not None
        assert classifier.classify(frame(make_message(drops(25), tx_hash="OUT"))) is None

    def test_inverted_thresholds_rejected(self) -> None:
        with pytest.raises(ValueError, match="max_threshold"):
            ClassifierConfig(min_threshold=Decimal("10"), max_threshold=Decimal("5"))


class TestEventFields:
    """Accepted frames produce a complete WhaleTransfer."""

    def test_accepted_event_fields(self) -> None:
        classifier = TransferClassifier()

        event = classifier.classify(frame(make_message(str(250_000_500_000), tx_hash="HASH1")))

        assert event is not None
        assert event.source_account == "rSource"
        assert event.destination_account == "rDestination"
        assert event.amount == Decimal("250000.5")
        assert event.currency_unit == "XRP"
        assert event.reference_id == "HASH1"
        assert event.ledger_index == 88000000
        assert event.purpose == "whale-monitor"
        assert int(event.observed_at.timestamp() * 1000) == RECV_TS
        assert classifier.metrics.accepted == 1

    def test_issued_currency_amount(self) -> None:
        classifier = TransferClassifier()
        amount = {"currency": "USD", "issuer": "rIssuer", "value": "1250000"}

        event = classifier.classify(frame(make_message(amount)))

        assert event is not None
        assert event.amount == Decimal("1250000")
        assert event.currency_unit == "USD"

    def test_missing_ledger_index_is_allowed(self) -> None:
        classifier = TransferClassifier()

        event = classifier.classify(frame(make_message(ledger_index=None)))

        assert event is not None
        assert event.ledger_index is None


class TestRejections:
    """Frames that never become events."""

    def test_self_transfer(self) -> None:
        classifier = TransferClassifier()

        event = classifier.classify(frame(make_message(source="rSame", destination="rSame")))

        assert event is None
        assert classifier.metrics.rejected[RejectReason.SELF_TRANSFER.value] == 1

    def test_duplicate_reference_id(self) -> None:
        classifier = TransferClassifier()
        message = make_message(tx_hash="DUP")

        first = classifier.classify(frame(message))
        second = classifier.classify(frame(message))

        assert first is not None
        assert second is None
        assert classifier.metrics.rejected[RejectReason.DUPLICATE.value] == 1

    def test_duplicate_window_is_bounded(self) -> None:
        classifier = TransferClassifier(recent_ids=RecentIdSet(capacity=2))

        assert classifier.classify(frame(make_message(tx_hash="H1"))) is not None
        assert classifier.classify(frame(make_message(tx_hash="H2"))) is not None
        assert classifier.classify(frame(make_message(tx_hash="H3"))) is not None
        # H1 was evicted, so it is accepted again
        assert classifier.classify(frame(make_message(tx_hash="H1"))) is not None

    def test_eight_nines_rejected_within_bounds(self) -> None:
        classifier = TransferClassifier()

        event = classifier.classify(frame(make_message(drops("29999999.9"))))

        assert event is None
        assert classifier.metrics.rejected[RejectReason.SUSPICIOUS_AMOUNT.value] == 1

    def test_seven_identical_digits_rejected(self) -> None:
        classifier = TransferClassifier()

        assert classifier.classify(frame(make_message(drops("1777777.7")))) is None

    def test_suspicious_policy_is_configurable(self) -> None:
        classifier = TransferClassifier(
            ClassifierConfig(suspicious=SuspiciousAmountPolicy(identical_run=9, nines_zeros_run=9))
        )

        assert classifier.classify(frame(make_message(drops("29999999.9")))) is not None

    def test_rejected_frame_does_not_consume_reference_id(self) -> None:
        classifier = TransferClassifier()

        assert classifier.classify(frame(make_message(drops(5), tx_hash="SAME"))) is None
        assert classifier.classify(frame(make_message(tx_hash="SAME"))) is not None

    def test_non_payment(self) -> None:
        classifier = TransferClassifier()

        event = classifier.classify(frame(make_message(tx_type="OfferCreate")))

        assert event is None
        assert classifier.metrics.rejected[RejectReason.NOT_TRANSFER.value] == 1

    def test_failed_engine_result(self) -> None:
        classifier = TransferClassifier()

        event = classifier.classify(frame(make_message(engine_result="tecUNFUNDED_PAYMENT")))

        assert event is None
        assert classifier.metrics.rejected[RejectReason.FAILED_RESULT.value] == 1

    def test_failed_result_accepted_when_not_required(self) -> None:
        classifier = TransferClassifier(ClassifierConfig(require_success=False))

        assert classifier.classify(frame(make_message(engine_result="tecUNFUNDED_PAYMENT"))) is not None

    @pytest.mark.parametrize("missing", ["source", "destination"])
    def test_missing_account(self, missing: str) -> None:
        classifier = TransferClassifier()

        event = classifier.classify(frame(make_message(**{missing: None})))

        assert event is None
        assert classifier.metrics.rejected[RejectReason.MISSING_FIELDS.value] == 1

    def test_missing_transaction_body(self) -> None:
        classifier = TransferClassifier()

        assert classifier.classify(frame({"type": "transaction"})) is None
        assert classifier.metrics.rejected[RejectReason.MISSING_FIELDS.value] == 1

    @pytest.mark.parametrize("amount", ["12.5", "-100", {"currency": "USD"}, {"currency": "USD", "value": "abc"}, 42])
    def test_bad_amount(self, amount: Any) -> None:
        classifier = TransferClassifier()

        assert classifier.classify(frame(make_message(amount))) is None
        assert classifier.metrics.rejected[RejectReason.BAD_AMOUNT.value] == 1

    @pytest.mark.parametrize("amount", ["²", "١٢٣٤٥٦٧٨٩٠١٢", "１２３"])
    def test_non_ascii_digits_are_bad_amount(self, amount: str) -> None:
        classifier = TransferClassifier()

        assert classifier.classify(frame(make_message(amount))) is None
        assert classifier.metrics.rejected[RejectReason.BAD_AMOUNT.value] == 1

    @pytest.mark.parametrize("tx_type", [["Payment"], {"Payment": 1}, 7, None])
    def test_non_string_transaction_type(self, tx_type: Any) -> None:
        classifier = TransferClassifier()

        assert classifier.classify(frame(make_message(tx_type=tx_type))) is None
        assert classifier.metrics.rejected[RejectReason.NOT_TRANSFER.value] == 1

    @pytest.mark.parametrize(
        ("field", "value", "reason"),
        [
            ("Account", ["rSource"], RejectReason.MISSING_FIELDS),
            ("hash", {"id": 1}, RejectReason.MISSING_FIELDS),
            ("Amount", ["250000000000"], RejectReason.BAD_AMOUNT),
        ],
    )
    def test_wrong_field_types_rejected(self, field: str, value: Any, reason: RejectReason) -> None:
        classifier = TransferClassifier()
        message = make_message()
        message["transaction"][field] = value

        assert classifier.classify(frame(message)) is None
        assert classifier.metrics.rejected[reason.value] == 1
        assert classifier.metrics.parse_errors == 0

    def test_non_string_engine_result_is_failed(self) -> None:
        classifier = TransferClassifier()
        message = make_message()
        message["engine_result"] = ["tesSUCCESS"]

        assert classifier.classify(frame(message)) is None
        assert classifier.metrics.rejected[RejectReason.FAILED_RESULT.value] == 1


class TestParseFailures:
    """Malformed frames are counted and never raised."""

    def test_invalid_json(self) -> None:
        classifier = TransferClassifier()

        event = classifier.classify(RawFrame(data="{not json", recv_ts=RECV_TS, purpose="whale-monitor"))

        assert event is None
        assert classifier.metrics.parse_errors == 1

    def test_non_object_json(self) -> None:
        classifier = TransferClassifier()

        assert classifier.classify(frame([1, 2, 3])) is None
        assert classifier.metrics.parse_errors == 1

    def test_bytes_frame(self) -> None:
        classifier = TransferClassifier()

        event = classifier.classify(
            RawFrame(data=orjson.dumps(make_message()), recv_ts=RECV_TS, purpose="whale-monitor")
        )

        assert event is not None

    def test_non_transaction_messages_ignored(self) -> None:
        classifier = TransferClassifier()

        classifier.classify(frame({"id": "whalestream-subscribe", "status": "success", "type": "response"}))
        classifier.classify(frame({"type": "ledgerClosed", "ledger_index": 1}))

        assert classifier.metrics.ignored == 2
        assert classifier.metrics.parse_errors == 0
        assert classifier.metrics.frames == 2


class TestNormalizeAmount:
    """Drops and issued-currency normalization."""

    def test_drops_to_xrp(self) -> None:
        assert normalize_amount("1000000") == (Decimal(1), "XRP")

    def test_issued_currency(self) -> None:
        assert normalize_amount({"currency": "EUR", "value": "1e3"}) == (Decimal(1000), "EUR")

    def test_invalid(self) -> None:
        assert normalize_amount("1.5") is None
        assert normalize_amount("²") is None
        assert normalize_amount(None) is None
        assert normalize_amount({"currency": "EUR", "value": "NaN"}) is None
