"""
models.py
----------
Core domain models. These are the typed contracts between pipeline stages.

- Expense / NormalizedExpense: input records, before and after preparation.
- ExpenseGroup: one candidate recurring series (merchant key + amount tier).
- Frequency: tagged cadence variant carrying its own interval.
- ClassifiedGroup: an ExpenseGroup with its gap statistics and cadence.
- DetectedPattern: detector output, one per recurring series.
- DetectionRun: the patterns of one invocation plus the skipped record count.
- MerchantInsight: per-merchant spending summary.

Every model is frozen. Stages build new objects rather than mutating inputs.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional

import numpy as np


@dataclass(frozen=True)
class Expense:
    """A raw expense row as handed over by the expense store."""

    merchant: str
    amount: float
    transaction_date: Any            # date, datetime or ISO string
    category: Optional[str] = None
    currency: Optional[str] = None
    id: Optional[Any] = None
    user_id: Optional[Any] = None


@dataclass(frozen=True)
class NormalizedExpense:
    """An Expense with a parsed date, a float amount and its merchant key."""

    merchant: str
    merchant_key: str
    amount: float
    transaction_date: date
    category: str
    currency: Optional[str] = None
    id: Optional[Any] = None
    user_id: Optional[Any] = None


@dataclass(frozen=True)
class ExpenseGroup:
    """
    A candidate recurring series: occurrences at one merchant key whose
    amounts were compatible with the running mean when they joined.
    Members are ordered by transaction_date.
    """

    merchant_key: str
    members: tuple[NormalizedExpense, ...]

    @classmethod
    def open(cls, expense: NormalizedExpense) -> "ExpenseGroup":
        return cls(merchant_key=expense.merchant_key, members=(expense,))

    def with_member(self, expense: NormalizedExpense) -> "ExpenseGroup":
        """Returns a new group with the expense appended."""
        return ExpenseGroup(merchant_key=self.merchant_key, members=self.members + (expense,))

    @property
    def amounts(self) -> np.ndarray:
        return np.array([m.amount for m in self.members], dtype=float)

    @property
    def dates(self) -> tuple[date, ...]:
        return tuple(m.transaction_date for m in self.members)

    @property
    def mean_amount(self) -> float:
        if not self.members:
            return 0.0
        return float(np.mean(self.amounts))

    @property
    def occurrence_count(self) -> int:
        return len(self.members)

    @property
    def is_low_evidence(self) -> bool:
        """Two points give a single gap: enough to keep, not enough to trust."""
        return len(self.members) == 2


class Cadence(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Frequency:
    """
    Cadence label plus the interval used to forecast it.

    Build with the named constructors; only custom frequencies take an
    explicit interval.
    """

    cadence: Cadence
    interval_days: int

    @classmethod
    def weekly(cls, interval_days: int = 7) -> "Frequency":
        return cls(Cadence.WEEKLY, interval_days)

    @classmethod
    def biweekly(cls, interval_days: int = 14) -> "Frequency":
        return cls(Cadence.BIWEEKLY, interval_days)

    @classmethod
    def monthly(cls, interval_days: int = 30) -> "Frequency":
        return cls(Cadence.MONTHLY, interval_days)

    @classmethod
    def quarterly(cls, interval_days: int = 90) -> "Frequency":
        return cls(Cadence.QUARTERLY, interval_days)

    @classmethod
    def custom(cls, interval_days: int) -> "Frequency":
        if interval_days < 1:
            raise ValueError(f"Custom interval must be at least 1 day, got {interval_days}")
        return cls(Cadence.CUSTOM, interval_days)

    @property
    def label(self) -> str:
        return self.cadence.value

    def __str__(self) -> str:
        if self.cadence is Cadence.CUSTOM:
            return f"custom({self.interval_days}d)"
        return self.label


@dataclass(frozen=True)
class ClassifiedGroup:
    """An ExpenseGroup that passed interval classification."""

    group: ExpenseGroup
    frequency: Frequency
    gaps: tuple[int, ...]            # All consecutive gaps, in days
    inlier_gaps: tuple[int, ...]     # Gaps left after skipped-cycle exclusion
    skipped_cycles: int
    median_gap: float                # Median of inlier gaps
    gap_dispersion: float            # stdev(inlier gaps) / median_gap


@dataclass(frozen=True)
class DetectedPattern:
    """
    One detected recurring series.

    `merchant` is the normalized merchant key; `display_name` is the most
    frequent raw spelling, for presentation.
    """

    # Identity
    merchant: str
    display_name: str
    category: str
    currency: Optional[str]

    # Cadence
    frequency: Frequency
    confidence: float                # 0.0 – 1.0

    # Amount
    average_amount: float

    # Timing
    next_expected: date
    first_date: date
    last_date: date
    occurrence_count: int

    # Status
    total_spent_this_year: float = 0.0
    missed_payment: bool = False
    low_evidence: bool = False

    # Evidence
    transaction_ids: tuple = field(default_factory=tuple)

    @property
    def interval_days(self) -> int:
        return self.frequency.interval_days

    @property
    def frequency_label(self) -> str:
        return self.frequency.label


@dataclass(frozen=True)
class DetectionRun:
    """Result of one detector invocation."""

    patterns: tuple[DetectedPattern, ...] = ()
    skipped_records: int = 0
    as_of: Optional[date] = None

    def __len__(self) -> int:
        return len(self.patterns)

    def __iter__(self):
        return iter(self.patterns)


@dataclass(frozen=True)
class MerchantInsight:
    """Spending summary for one merchant over the whole history."""

    merchant: str
    category: str
    total_spent: float
    transaction_count: int
    average_amount: float
    first_transaction: date
    last_transaction: date
    monthly_average: float
    percent_of_total: float
