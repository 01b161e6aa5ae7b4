"""
pipeline.py
------------
Main orchestration layer. Wires together:
    1. Per-user split of a multi-user expense table
    2. RecurringExpenseDetector  →  produces a DetectionRun per user
    3. Output serialization      →  flat DataFrame, one row per pattern

The detector itself works on one user's history; this is the entry point
for batch runs over an export holding many users.

Usage:
    from pipeline import RecurringExpensePipeline

    pipeline = RecurringExpensePipeline()
    results_df = pipeline.run(expenses_df)
"""

import logging
from datetime import date
from typing import Any, Dict

import pandas as pd

from core.models import DetectionRun
from core.recurring_expense_detector import RecurringExpenseDetector
from config.config_loader import load_config

logger = logging.getLogger(__name__)

OUTPUT_COLUMNS = [
    "user_id", "merchant", "display_name", "category", "currency",
    "frequency", "interval_days", "average_amount", "confidence",
    "occurrence_count", "first_date", "last_date", "next_expected",
    "total_spent_this_year", "missed_payment", "low_evidence",
    "transaction_ids",
]


class RecurringExpensePipeline:
    """
    End-to-end batch detection over many users.

    Each user's history is detected independently; nothing crosses users.
    """

    def __init__(self, as_of: date | None = None):
        """
        Args:
            as_of: Reference date for every user. If None, each user's latest
                transaction date is used.
        """
        self.config = load_config()
        self.as_of = as_of
        self.detector = RecurringExpenseDetector(self.config["recurring_detection"])

        logger.info(
            f"Pipeline initialized. "
            f"As-of: {as_of.isoformat() if as_of else 'latest transaction per user'}."
        )

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def run(self, expenses: pd.DataFrame) -> pd.DataFrame:
        """
        Run detection for every user in the table.

        Returns:
            DataFrame with OUTPUT_COLUMNS, sorted by user then confidence.
        """
        runs = self.run_per_user(expenses)
        output_df = self.to_frame(runs)
        logger.info(f"Pipeline complete. Output rows: {len(output_df):,}.")
        return output_df

    def run_per_user(self, expenses: pd.DataFrame) -> Dict[Any, DetectionRun]:
        """Stage 1 + 2: split by user_id and detect each history."""
        logger.info(f"Pipeline starting. Input: {len(expenses):,} expenses.")

        if expenses.empty:
            return {}

        if "user_id" not in expenses.columns:
            return {None: self.detector.detect(expenses, as_of=self.as_of)}

        runs: Dict[Any, DetectionRun] = {}
        for user_id, user_expenses in expenses.groupby("user_id", sort=True, dropna=False):
            runs[user_id] = self.detector.detect(user_expenses, as_of=self.as_of)

        skipped = sum(r.skipped_records for r in runs.values())
        patterns = sum(len(r) for r in runs.values())
        logger.info(
            f"Detection complete. Users: {len(runs):,}. "
            f"Patterns: {patterns:,}. Skipped records: {skipped:,}."
        )
        return runs

    def run_detection_only(self, expenses) -> DetectionRun:
        """
        Detect a single user's history without the per-user split. Useful for
        callers that already hold one user's expenses.
        """
        return self.detector.detect(expenses, as_of=self.as_of)

    # -------------------------------------------------------------------------
    # OUTPUT SERIALIZATION
    # -------------------------------------------------------------------------

    @staticmethod
    def to_frame(runs: Dict[Any, DetectionRun]) -> pd.DataFrame:
        """Flattens DetectionRuns to one row per pattern."""
        rows = []
        for user_id, run in runs.items():
            for p in run.patterns:
                rows.append({
                    "user_id": user_id,
                    "merchant": p.merchant,
                    "display_name": p.display_name,
                    "category": p.category,
                    "currency": p.currency,
                    "frequency": p.frequency_label,
                    "interval_days": p.interval_days,
                    "average_amount": p.average_amount,
                    "confidence": p.confidence,
                    "occurrence_count": p.occurrence_count,
                    "first_date": p.first_date.isoformat(),
                    "last_date": p.last_date.isoformat(),
                    "next_expected": p.next_expected.isoformat(),
                    "total_spent_this_year": p.total_spent_this_year,
                    "missed_payment": p.missed_payment,
                    "low_evidence": p.low_evidence,
                    "transaction_ids": "|".join(str(x) for x in p.transaction_ids),
                })

        if not rows:
            return pd.DataFrame(columns=OUTPUT_COLUMNS)

        df = pd.DataFrame(rows, columns=OUTPUT_COLUMNS)

        # Sort: user → confidence descending
        df = df.sort_values(
            ["user_id", "confidence"],
            ascending=[True, False],
            kind="stable",
        ).reset_index(drop=True)

        return df
