"""
Transfer classifier: raw feed frames -> WhaleTransfer events.

Steps, in order:
1. Parse the frame (parse failures are counted, never raised)
2. Extract transaction type, accounts, amount, hash
3. Reject non-payments, failed transactions, self-transfers, missing fields
4. Normalize the amount to the canonical unit (drops -> XRP)
5. Reject amounts outside [min_threshold, max_threshold]
6. Reject suspicious synthetic amounts
7. Reject reference ids seen recently
8. Build the event

No I/O and no awaits: classify() is safe to call inline from a receive loop.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import TYPE_CHECKING, Any

import orjson
from pydantic import ValidationError

from whalestream.classifier.patterns import SuspiciousAmountPolicy
from whalestream.classifier.recent_ids import RecentIdSet
from whalestream.connectors.xrpl import DROPS_PER_XRP, NATIVE_CURRENCY
from whalestream.contracts.events import WhaleTransfer

if TYPE_CHECKING:
    from whalestream.connectors.types import RawFrame, StreamConfig

logger = logging.getLogger(__name__)

TRANSFER_TRANSACTION_TYPES = frozenset({"Payment"})
SUCCESS_RESULT = "tesSUCCESS"


class RejectReason(str, Enum):
    """Why a transaction frame did not become an event."""

    NOT_TRANSFER = "not_transfer"
    FAILED_RESULT = "failed_result"
    MISSING_FIELDS = "missing_fields"
    SELF_TRANSFER = "self_transfer"
    BAD_AMOUNT = "bad_amount"
    BELOW_MIN = "below_min"
    ABOVE_MAX = "above_max"
    SUSPICIOUS_AMOUNT = "suspicious_amount"
    DUPLICATE = "duplicate"


@dataclass
class ClassifierConfig:
    """Thresholds and filters for one classifier."""

    min_threshold: Decimal = Decimal("100000")
    max_threshold: Decimal = Decimal("50000000")
    require_success: bool = True
    suspicious: SuspiciousAmountPolicy = field(default_factory=SuspiciousAmountPolicy)
    dedup_capacity: int = 10000
    purpose: str = "whale-monitor"

    def __post_init__(self) -> None:
        self.min_threshold = Decimal(str(self.min_threshold))
        self.max_threshold = Decimal(str(self.max_threshold))
        if self.max_threshold < self.min_threshold:
            raise ValueError(
                f"max_threshold ({self.max_threshold}) must be >= "
                f"min_threshold ({self.min_threshold})"
            )


@dataclass
class ClassifierMetrics:
    """Classification counters."""

    frames: int = 0
    parse_errors: int = 0
    ignored: int = 0  # well-formed frames that are not transactions
    accepted: int = 0
    rejected: Counter[str] = field(default_factory=Counter)


def normalize_amount(raw: Any) -> tuple[Decimal, str] | None:
    """
    Convert a ledger amount to (amount, unit).

    Native XRP amounts are integer strings of drops; issued currencies are
    objects with "value" and "currency".
    """
    if isinstance(raw, str):
        if not (raw.isascii() and raw.isdigit()):
            return None
        return Decimal(raw) / DROPS_PER_XRP, NATIVE_CURRENCY

    if isinstance(raw, dict):
        value = raw.get("value")
        currency = raw.get("currency")
        if not isinstance(value, str) or not isinstance(currency, str) or not currency:
            return None
        try:
            amount = Decimal(value)
        except InvalidOperation:
            return None
        if not amount.is_finite() or amount < 0:
            return None
        return amount, currency

    return None


class TransferClassifier:
    """
    Stateless-apart-from-dedup classifier for ledger transaction frames.

    The only state is the bounded RecentIdSet and the counters, both owned by a
    single stream.
    """

    def __init__(
        self,
        config: ClassifierConfig | None = None,
        *,
        recent_ids: RecentIdSet | None = None,
    ) -> None:
        self._config = config or ClassifierConfig()
        self._recent_ids = recent_ids or RecentIdSet(self._config.dedup_capacity)
        self._metrics = ClassifierMetrics()

    @classmethod
    def from_stream_config(cls, config: StreamConfig) -> TransferClassifier:
        return cls(
            ClassifierConfig(
                min_threshold=Decimal(str(config.min_threshold)),
                max_threshold=Decimal(str(config.max_threshold)),
                require_success=config.require_success,
                suspicious=SuspiciousAmountPolicy(
                    identical_run=config.suspicious_identical_run,
                    nines_zeros_run=config.suspicious_nines_zeros_run,
                ),
                dedup_capacity=config.dedup_capacity,
                purpose=config.purpose,
            )
        )

    @property
    def config(self) -> ClassifierConfig:
        return self._config

    @property
    def metrics(self) -> ClassifierMetrics:
        return self._metrics

    @property
    def recent_ids(self) -> RecentIdSet:
        return self._recent_ids

    def classify(self, frame: RawFrame) -> WhaleTransfer | None:
        """
        Turn a raw frame into a WhaleTransfer, or None if it is rejected.

        Parse failures increment ``metrics.parse_errors`` and are logged; they
        never propagate.
        """
        self._metrics.frames += 1

        try:
            message = orjson.loads(frame.data)
        except orjson.JSONDecodeError:
            self._metrics.parse_errors += 1
            logger.warning("Dropping malformed frame", extra={"purpose": frame.purpose})
            return None

        if not isinstance(message, dict):
            self._metrics.parse_errors += 1
            logger.warning("Dropping non-object frame", extra={"purpose": frame.purpose})
            return None

        # Subscribe acks, ledgerClosed and other stream traffic
        if message.get("type") != "transaction":
            self._metrics.ignored += 1
            return None

        tx = message.get("transaction")
        if not isinstance(tx, dict):
            return self._reject(RejectReason.MISSING_FIELDS)

        tx_type = tx.get("TransactionType")
        if not isinstance(tx_type, str) or tx_type not in TRANSFER_TRANSACTION_TYPES:
            return self._reject(RejectReason.NOT_TRANSFER)

        engine_result = message.get("engine_result")
        if self._config.require_success and engine_result is not None and engine_result != SUCCESS_RESULT:
            return self._reject(RejectReason.FAILED_RESULT)

        source = tx.get("Account")
        destination = tx.get("Destination")
        reference_id = tx.get("hash")
        raw_amount = tx.get("Amount")
        if not source or not destination or not reference_id or raw_amount is None:
            return self._reject(RejectReason.MISSING_FIELDS)
        if not isinstance(source, str) or not isinstance(destination, str) or not isinstance(reference_id, str):
            return self._reject(RejectReason.MISSING_FIELDS)

        if source == destination:
            return self._reject(RejectReason.SELF_TRANSFER)

        normalized = normalize_amount(raw_amount)
        if normalized is None:
            return self._reject(RejectReason.BAD_AMOUNT)
        amount, unit = normalized

        if amount < self._config.min_threshold:
            return self._reject(RejectReason.BELOW_MIN)
        if amount > self._config.max_threshold:
            return self._reject(RejectReason.ABOVE_MAX)

        if self._config.suspicious.is_suspicious(amount):
            logger.debug(
                "Suspicious amount filtered",
                extra={"purpose": frame.purpose, "amount": str(amount)},
            )
            return self._reject(RejectReason.SUSPICIOUS_AMOUNT)

        if not self._recent_ids.add(reference_id):
            return self._reject(RejectReason.DUPLICATE)

        ledger_index = message.get("ledger_index")
        try:
            event = WhaleTransfer(
                source_account=source,
                destination_account=destination,
                amount=amount,
                currency_unit=unit,
                reference_id=reference_id,
                observed_at=datetime.fromtimestamp(frame.recv_ts / 1000, tz=UTC),
                purpose=frame.purpose,
                ledger_index=ledger_index if isinstance(ledger_index, int) and ledger_index >= 0 else None,
            )
        except ValidationError as e:
            self._metrics.parse_errors += 1
            logger.warning(
                "Dropping transaction with invalid fields",
                extra={"purpose": frame.purpose, "error": str(e)},
            )
            return None
        self._metrics.accepted += 1
        return event

    def _reject(self, reason: RejectReason) -> None:
        self._metrics.rejected[reason.value] += 1
        return None
