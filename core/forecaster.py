"""
forecaster.py
--------------
Turns a classified, scored series into a DetectedPattern: representative
amount, next expected date and status flags.

Date stepping:
    - weekly / biweekly / quarterly / custom: last date + interval_days.
    - monthly: same day number next calendar month, clamped to month end
      (2024-01-31 -> 2024-02-29), via pandas DateOffset.

advance() applies the same rule to a stored due date, for callers that roll
a confirmed recurring expense forward after a payment or a skip.
"""

from collections import Counter
from datetime import date, timedelta
from typing import Iterable

import numpy as np
import pandas as pd

from core.models import Cadence, ClassifiedGroup, DetectedPattern, Frequency
from config.config_loader import get_recurring_detection_config


class Forecaster:
    """
    Usage:
        forecaster = Forecaster()
        pattern = forecaster.forecast(classified_group, confidence, as_of)
    """

    def __init__(self, config: dict | None = None):
        self.config = config if config is not None else get_recurring_detection_config()
        self.grace_days = self.config["missed_payment_grace_days"]

    # -------------------------------------------------------------------------
    # DATE STEPPING
    # -------------------------------------------------------------------------

    def next_expected(self, last_date: date, frequency: Frequency) -> date:
        return self.advance(last_date, frequency, cycles=1)

    def advance(self, due_date: date, frequency: Frequency, cycles: int = 1) -> date:
        """Steps a due date forward by whole cycles."""
        if cycles < 1:
            raise ValueError(f"cycles must be positive, got {cycles}")

        if frequency.cadence is Cadence.MONTHLY:
            stepped = pd.Timestamp(due_date) + pd.DateOffset(months=cycles)
            return stepped.date()
        return due_date + timedelta(days=frequency.interval_days * cycles)

    # -------------------------------------------------------------------------
    # PATTERN CONSTRUCTION
    # -------------------------------------------------------------------------

    def forecast(self, classified: ClassifiedGroup, confidence: float, as_of: date) -> DetectedPattern:
        group = classified.group
        members = group.members
        first_date, last_date = members[0].transaction_date, members[-1].transaction_date
        next_expected = self.next_expected(last_date, classified.frequency)

        ytd = sum(m.amount for m in members if m.transaction_date.year == as_of.year)

        return DetectedPattern(
            merchant=group.merchant_key,
            display_name=_most_common(m.merchant for m in members),
            category=_most_common(m.category for m in members),
            currency=next((m.currency for m in members if m.currency), None),
            frequency=classified.frequency,
            confidence=confidence,
            average_amount=round(float(np.mean(group.amounts)), 2),
            next_expected=next_expected,
            first_date=first_date,
            last_date=last_date,
            occurrence_count=group.occurrence_count,
            total_spent_this_year=round(float(ytd), 2),
            missed_payment=(as_of - next_expected).days > self.grace_days,
            low_evidence=group.is_low_evidence,
            transaction_ids=tuple(m.id for m in members if m.id is not None),
        )


def upcoming(patterns: Iterable[DetectedPattern], as_of: date, days: int = 7) -> tuple[DetectedPattern, ...]:
    """Patterns expected within [as_of, as_of + days], soonest first."""
    horizon = as_of + timedelta(days=days)
    due = [p for p in patterns if as_of <= p.next_expected <= horizon]
    return tuple(sorted(due, key=lambda p: (p.next_expected, p.merchant)))


def _most_common(values: Iterable[str]) -> str:
    # Counter keeps first-seen order on ties.
    return Counter(values).most_common(1)[0][0]
