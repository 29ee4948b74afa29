"""Classification of raw ledger frames into whale transfer events."""

from whalestream.classifier.classifier import (
    ClassifierConfig,
    ClassifierMetrics,
    RejectReason,
    TransferClassifier,
    normalize_amount,
)
from whalestream.classifier.patterns import SuspiciousAmountPolicy, canonical_digits
from whalestream.classifier.recent_ids import RecentIdSet

__all__ = [
    "ClassifierConfig",
    "ClassifierMetrics",
    "RecentIdSet",
    "RejectReason",
    "SuspiciousAmountPolicy",
    "TransferClassifier",
    "canonical_digits",
    "normalize_amount",
]
