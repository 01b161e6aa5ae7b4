"""
merchant_insights.py
---------------------
Per-merchant spending summary over a user's whole history: totals, counts,
first/last purchase and a monthly average over the months the merchant was
active. Merchants are keyed the same way the detector keys them.
"""

from dataclasses import asdict

import pandas as pd

from core.models import MerchantInsight
from core.normalizer import prepare_expenses
from config.config_loader import get_merchant_insights_config


def merchant_insights(expenses, top_n: int | None = None) -> tuple[MerchantInsight, ...]:
    """
    Top merchants by total spend.

    Args:
        expenses: same input shapes as RecurringExpenseDetector.detect().
        top_n: number of merchants to return. Defaults to config value.
    """
    if top_n is None:
        top_n = get_merchant_insights_config()["top_n"]

    normalized, _ = prepare_expenses(expenses)
    if not normalized:
        return ()

    df = pd.DataFrame([asdict(e) for e in normalized])
    df = df.sort_values(["merchant_key", "transaction_date"], kind="stable")
    grand_total = float(df["amount"].sum())

    insights = []
    for _, g in df.groupby("merchant_key", sort=True):
        first, last = g["transaction_date"].iloc[0], g["transaction_date"].iloc[-1]
        months_span = max(1, (last.year - first.year) * 12 + (last.month - first.month) + 1)
        total = float(g["amount"].sum())

        insights.append(MerchantInsight(
            merchant=g["merchant"].iloc[0],
            category=g["category"].iloc[0],
            total_spent=round(total, 2),
            transaction_count=len(g),
            average_amount=round(total / len(g), 2),
            first_transaction=first,
            last_transaction=last,
            monthly_average=round(total / months_span, 2),
            percent_of_total=round(total / grand_total * 100, 2) if grand_total else 0.0,
        ))

    insights.sort(key=lambda i: (-i.total_spent, i.merchant))
    return tuple(insights[:top_n])
