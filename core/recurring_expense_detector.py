"""
recurring_expense_detector.py
------------------------------
Recurring expense detection for a single user's expense history.

It answers one question:

    "Which of these untagged expenses are periodic payments, how often do
     they recur, and when is the next one due?"

Stages (each returns new immutable objects):
    1. prepare_expenses      raw records      -> NormalizedExpense, skipped count
    2. GroupBuilder          NormalizedExpense -> ExpenseGroups per merchant key
    3. IntervalClassifier    ExpenseGroup     -> ClassifiedGroup (or rejected)
    4. ConfidenceScorer      ClassifiedGroup  -> confidence
    5. Forecaster            ClassifiedGroup  -> DetectedPattern

Design decisions:
    - The detector holds configuration only. detect() is a pure function of
      its input, so concurrent calls for different users need no locking.
    - The as-of date (missed payments, year-to-date spend) defaults to the
      latest valid transaction date, not the wall clock, so repeated calls
      with the same input return equal results.
    - All thresholds and tolerances are read from config.yaml.
"""

import logging
from datetime import date

from core.confidence_scorer import ConfidenceScorer
from core.forecaster import Forecaster
from core.group_builder import GroupBuilder
from core.interval_classifier import IntervalClassifier
from core.models import DetectedPattern, DetectionRun
from core.normalizer import prepare_expenses
from config.config_loader import get_recurring_detection_config

logger = logging.getLogger(__name__)


class RecurringExpenseDetector:
    """
    Detects recurring expense patterns in one user's expense history.

    Usage:
        detector = RecurringExpenseDetector()
        run = detector.detect(expenses)
        for pattern in run.patterns:
            ...
    """

    def __init__(self, config: dict | None = None):
        self.config = config if config is not None else get_recurring_detection_config()
        self.min_confidence = self.config["min_confidence"]
        self.group_builder = GroupBuilder(self.config)
        self.classifier = IntervalClassifier(self.config)
        self.scorer = ConfidenceScorer(self.config)
        self.forecaster = Forecaster(self.config)

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def detect(self, expenses, as_of: date | None = None) -> DetectionRun:
        """
        Run recurring expense detection.

        Args:
            expenses: DataFrame or iterable of Expense / mappings with at least
                merchant, amount and transaction_date. category, currency, id
                and user_id are passed through when present.
            as_of: Reference date for missed-payment and year-to-date figures.
                Defaults to the latest valid transaction date.

        Returns:
            DetectionRun with patterns sorted by descending confidence and the
            number of records skipped as malformed.
        """
        normalized, skipped = prepare_expenses(expenses)
        if not normalized:
            return DetectionRun(patterns=(), skipped_records=skipped, as_of=as_of)

        if as_of is None:
            as_of = max(e.transaction_date for e in normalized)

        groups = self.group_builder.build(normalized)
        classified = self.classifier.classify_all(groups)

        patterns = []
        for merchant_groups in classified.values():
            for c in merchant_groups:
                confidence = self.scorer.score(c)
                if confidence < self.min_confidence:
                    continue
                patterns.append(self.forecaster.forecast(c, confidence, as_of))

        logger.debug(
            f"Detection: {len(normalized):,} expenses, "
            f"{sum(len(g) for g in groups.values()):,} candidate groups, "
            f"{len(patterns):,} patterns."
        )

        return DetectionRun(
            patterns=tuple(sorted(patterns, key=_output_order)),
            skipped_records=skipped,
            as_of=as_of,
        )


def detect_recurring_expenses(expenses, as_of: date | None = None) -> DetectionRun:
    """Convenience wrapper using the configured detector."""
    return RecurringExpenseDetector().detect(expenses, as_of=as_of)


def _output_order(pattern: DetectedPattern) -> tuple:
    return (
        -pattern.confidence,
        -pattern.total_spent_this_year,
        pattern.merchant,
        pattern.average_amount,
    )
