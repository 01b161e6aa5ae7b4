"""
normalizer.py
--------------
Input preparation and the two equivalence rules the rest of the pipeline
relies on:

    - merchant equivalence: cosmetic spellings of one vendor share a key
      ("NETFLIX.COM", "Netflix.com " and "Netflix #0421" all map to one key).
    - amount equivalence: two charges belong to the same series when they
      differ by no more than a fixed floor or a share of the larger amount,
      which absorbs tax and fee drift on a fixed subscription price.

prepare_expenses() is the only place raw records are parsed. Records that
cannot be parsed are counted and dropped; they never abort a run.
"""

import logging
import numbers
import re
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from typing import Any, Mapping

import pandas as pd

from core.models import Expense, NormalizedExpense

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["merchant", "amount", "transaction_date"]
OPTIONAL_COLUMNS = ["id", "user_id", "category", "currency"]
DEFAULT_CATEGORY = "Other"

DEFAULT_ABSOLUTE_TOLERANCE = 2000.0
DEFAULT_RELATIVE_TOLERANCE = 0.05

_PUNCTUATION = re.compile(r"[^\w\s]|_")
_TRAILING_CODES = re.compile(r"(\s+\d+)+$")
_WHITESPACE = re.compile(r"\s+")


# -----------------------------------------------------------------------------
# EQUIVALENCE RULES
# -----------------------------------------------------------------------------

def normalize_merchant(name: str) -> str:
    """
    Canonical merchant key.

    Lowercases, replaces punctuation with spaces, drops trailing numeric
    store/branch codes and collapses whitespace runs. A name made only of
    digits keeps them, so it never collapses to an empty key.

    >>> normalize_merchant("  NETFLIX.COM  ")
    'netflix com'
    >>> normalize_merchant("Circle-K Store 0421")
    'circle k store'
    """
    lowered = _PUNCTUATION.sub(" ", str(name).lower())
    collapsed = _WHITESPACE.sub(" ", lowered).strip()
    stripped = _TRAILING_CODES.sub("", " " + collapsed).strip()
    return stripped or collapsed


def amounts_compatible(
    a: float,
    b: float,
    absolute_tolerance: float = DEFAULT_ABSOLUTE_TOLERANCE,
    relative_tolerance: float = DEFAULT_RELATIVE_TOLERANCE,
) -> bool:
    """True if a and b are the same price up to fee/tax drift."""
    return abs(a - b) <= max(absolute_tolerance, relative_tolerance * max(a, b))


def within_relative_tolerance(value: float, target: float, relative_tolerance: float) -> bool:
    """Relative-only variant, used for day counts where an absolute floor is meaningless."""
    return abs(value - target) <= relative_tolerance * abs(target)


# -----------------------------------------------------------------------------
# INPUT PREPARATION
# -----------------------------------------------------------------------------

def prepare_expenses(expenses) -> tuple[tuple[NormalizedExpense, ...], int]:
    """
    Validates and parses raw expense records.

    Args:
        expenses: a DataFrame with the Expense columns, or an iterable of
            Expense objects / mappings with the same keys.

    Returns:
        Tuple of (normalized expenses, number of skipped records).

    Raises:
        ValueError: if a non-empty input lacks a required column.
    """
    df = _to_frame(expenses)

    if df.empty:
        return (), 0

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    df = df.copy()
    for col in OPTIONAL_COLUMNS:
        if col not in df.columns:
            df[col] = None

    df["transaction_date"] = df["transaction_date"].map(parse_date)
    df["amount"] = pd.to_numeric(df["amount"], errors="coerce")
    df["merchant"] = df["merchant"].map(lambda m: None if _is_missing(m) else str(m).strip())

    valid = (
        df["transaction_date"].notna()
        & df["amount"].notna()
        & df["merchant"].map(lambda m: isinstance(m, str) and bool(m)).astype(bool)
    )
    skipped = int((~valid).sum())
    if skipped:
        logger.warning(f"Skipped {skipped:,} malformed expense records.")

    normalized = tuple(
        NormalizedExpense(
            merchant=row["merchant"],
            merchant_key=normalize_merchant(row["merchant"]),
            amount=float(row["amount"]),
            transaction_date=row["transaction_date"],
            category=_clean(row["category"]) or DEFAULT_CATEGORY,
            currency=_clean(row["currency"]),
            id=_clean(row["id"]),
            user_id=_clean(row["user_id"]),
        )
        for row in df[valid].to_dict("records")
    )
    return normalized, skipped


def parse_date(value: Any) -> date | None:
    """
    Parses a calendar date; returns None for anything unparseable.

    Bare numbers are rejected: pandas would read them as epoch nanoseconds
    and land every one on 1970-01-01.
    """
    if _is_missing(value) or isinstance(value, numbers.Number):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = pd.to_datetime(value, errors="coerce")
    except (TypeError, ValueError, OverflowError):
        return None
    if _is_missing(parsed):
        return None
    return parsed.date()


def _to_frame(expenses) -> pd.DataFrame:
    if expenses is None:
        return pd.DataFrame()
    if isinstance(expenses, pd.DataFrame):
        return expenses
    rows = [_as_mapping(e) for e in expenses]
    return pd.DataFrame(rows)


def _as_mapping(expense) -> Mapping[str, Any]:
    if is_dataclass(expense):
        return asdict(expense)
    if isinstance(expense, Mapping):
        return dict(expense)
    raise TypeError(
        f"Unsupported expense record type {type(expense).__name__}; "
        f"expected {Expense.__name__} or a mapping."
    )


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _clean(value: Any) -> Any:
    return None if _is_missing(value) else value
