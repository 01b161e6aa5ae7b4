"""
main.py
--------
Entry point for the Recurring Expense Detector.

Reads an expenses CSV export, runs detection per user, and writes the
detected patterns to the outputs/ folder.

Usage (from the project root):
    python main.py --input path/to/expenses.csv

    # With optional arguments:
    python main.py --input expenses.csv --min-confidence 0.6
    python main.py --input expenses.csv --as-of 2024-06-30 --upcoming-days 14
"""

import sys
import os
import argparse
import logging
from dataclasses import asdict
from datetime import date, datetime

import pandas as pd

# Ensure project root is on path (for runs from any working directory)
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from pipeline import RecurringExpensePipeline
from core.forecaster import upcoming
from core.merchant_insights import merchant_insights
from config.config_loader import get_recurring_detection_config


# =============================================================================
# LOGGING SETUP
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("main")


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Recurring Expense Detector: find subscriptions and bills in expense history."
    )
    parser.add_argument(
        "--input", type=str, default=None,
        help="Path to input expenses CSV. Defaults to expenses.csv in project root."
    )
    parser.add_argument(
        "--min-confidence", type=float, default=None,
        help="Minimum confidence (0-1) to include in output. Defaults to config value."
    )
    parser.add_argument(
        "--as-of", type=date.fromisoformat, default=None,
        help="Reference date (YYYY-MM-DD). Defaults to each user's latest expense."
    )
    parser.add_argument(
        "--upcoming-days", type=int, default=None,
        help="Window for the upcoming-payments summary. Defaults to config value."
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Output directory. Defaults to outputs/ in project root."
    )
    parser.add_argument(
        "--insights", action="store_true", default=False,
        help="Also write a per-merchant spending insights CSV."
    )
    return parser.parse_args(argv)


# =============================================================================
# MAIN
# =============================================================================

def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config = get_recurring_detection_config()

    # --- Resolve paths ---
    input_path = args.input or os.path.join(PROJECT_ROOT, "expenses.csv")
    output_dir = args.output_dir or os.path.join(PROJECT_ROOT, "outputs")
    os.makedirs(output_dir, exist_ok=True)

    min_confidence = args.min_confidence if args.min_confidence is not None else config["min_confidence"]
    upcoming_days = args.upcoming_days if args.upcoming_days is not None else config["upcoming_days"]

    # --- Load expenses ---
    logger.info(f"Loading expenses from: {input_path}")
    if not os.path.exists(input_path):
        logger.error(f"Input file not found: {input_path}")
        return 1

    expenses = pd.read_csv(input_path)
    users = expenses["user_id"].nunique() if "user_id" in expenses.columns else 1
    logger.info(f"Loaded {len(expenses):,} expenses, {users:,} users.")

    # --- Run pipeline ---
    pipeline = RecurringExpensePipeline(as_of=args.as_of)
    runs = pipeline.run_per_user(expenses)
    detections = pipeline.to_frame(runs)

    # --- Apply confidence filter ---
    filtered = detections[detections["confidence"] >= min_confidence].copy()
    logger.info(
        f"After filtering (>= {min_confidence:.2f}): {len(filtered):,} patterns. "
        f"Filtered out: {len(detections) - len(filtered):,}."
    )

    # --- Output: Detected patterns ---
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    detections_path = os.path.join(output_dir, f"detections_{timestamp}.csv")
    filtered.to_csv(detections_path, index=False)
    logger.info(f"Detections saved to: {detections_path}")

    # --- Optional: Merchant insights ---
    if args.insights:
        rows = []
        for user_id, user_expenses in _split_users(expenses):
            for i in merchant_insights(user_expenses):
                rows.append({"user_id": user_id, **asdict(i)})
        insights_path = os.path.join(output_dir, f"merchant_insights_{timestamp}.csv")
        pd.DataFrame(rows).to_csv(insights_path, index=False)
        logger.info(f"Merchant insights saved to: {insights_path}")

    # --- Print summary ---
    _print_summary(filtered)
    _print_upcoming(runs, upcoming_days)
    return 0


def _split_users(expenses: pd.DataFrame):
    if "user_id" not in expenses.columns:
        yield None, expenses
        return
    yield from expenses.groupby("user_id", sort=True, dropna=False)


def _print_summary(df: pd.DataFrame):
    """Prints a clean summary table to the console."""
    if df.empty:
        print("\n  No recurring expenses detected.\n")
        return

    print("\n" + "=" * 80)
    print("  RECURRING EXPENSE SUMMARY")
    print("=" * 80)

    print("\n  Patterns by Frequency:")
    print("  " + "-" * 60)
    for frequency in ["weekly", "biweekly", "monthly", "quarterly", "custom"]:
        subset = df[df["frequency"] == frequency]
        if subset.empty:
            continue
        print(f"    {frequency:12s}  {len(subset):>5,} patterns  (avg confidence {subset['confidence'].mean():.2f})")

    missed = int(df["missed_payment"].sum())
    print(f"\n  Possibly missed payments: {missed:,}")
    print("=" * 80 + "\n")


def _print_upcoming(runs, days: int):
    due = []
    for user_id, run in runs.items():
        if run.as_of is None:
            continue
        due.extend((user_id, p) for p in upcoming(run.patterns, run.as_of, days))

    if not due:
        return

    print(f"  Due in the next {days} days:")
    print("  " + "-" * 60)
    for user_id, p in sorted(due, key=lambda item: item[1].next_expected):
        print(f"    {p.next_expected.isoformat()}  {p.display_name:30s}  {p.average_amount:>14,.2f}  (user {user_id})")
    print()


if __name__ == "__main__":
    sys.exit(main())
