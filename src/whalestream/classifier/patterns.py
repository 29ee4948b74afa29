"""
Suspicious-amount heuristic.

Public ledger feeds carry test and noise traffic with synthetic amounts such as
9999999.99 or 77777777. Such amounts are filtered by digit-run length in the
canonical decimal representation (decimal point removed, so runs may cross it).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal


def canonical_digits(amount: Decimal) -> str:
    """Digits of the normalized plain representation, e.g. 1999999.990 -> "199999999"."""
    text = format(amount.normalize(), "f")
    return text.replace("-", "").replace(".", "")


@dataclass(frozen=True)
class SuspiciousAmountPolicy:
    """
    Digit-run filter for synthetic amounts.

    Attributes:
        identical_run: A run of this many identical non-zero digits is suspicious.
        nines_zeros_run: A run of this many 9s or 0s is suspicious.

    Zeros are left out of the identical-digit rule so round thresholds such as
    50000000 are not flagged.
    """

    identical_run: int = 7
    nines_zeros_run: int = 8
    _identical: re.Pattern[str] = field(init=False, repr=False, compare=False)
    _nines_zeros: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.identical_run < 2 or self.nines_zeros_run < 2:
            raise ValueError("digit runs must be >= 2")
        object.__setattr__(
            self, "_identical", re.compile(rf"([1-9])\1{{{self.identical_run - 1},}}")
        )
        object.__setattr__(
            self,
            "_nines_zeros",
            re.compile(rf"9{{{self.nines_zeros_run},}}|0{{{self.nines_zeros_run},}}"),
        )

    def is_suspicious(self, amount: Decimal) -> bool:
        digits = canonical_digits(amount)
        return bool(self._identical.search(digits) or self._nines_zeros.search(digits))
