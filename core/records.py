"""
records.py
-----------
Maps detected patterns onto the stored "recurring expense" row shape used by
the persistence layer. The detector never writes these rows itself; callers
hand them to whatever store confirms a detection.
"""

from datetime import date
from typing import Any, Dict, Iterable, List

from core.models import DetectedPattern


def to_recurring_expense_row(pattern: DetectedPattern, user_id: Any, start_date: date) -> Dict[str, Any]:
    """
    Row for one confirmed detection. confidence_score is stored as an
    integer percentage (0-100).
    """
    return {
        "user_id": user_id,
        "name": pattern.merchant,
        "merchant": pattern.merchant,
        "category": pattern.category,
        "amount": pattern.average_amount,
        "currency": pattern.currency,
        "frequency": pattern.frequency_label,
        "interval_days": pattern.interval_days,
        "start_date": start_date.isoformat(),
        "next_due_date": pattern.next_expected.isoformat(),
        "is_detected": True,
        "confidence_score": int(round(pattern.confidence * 100)),
        "source": "detected",
        "is_active": True,
        "auto_create": False,
    }


def to_recurring_expense_rows(
    patterns: Iterable[DetectedPattern], user_id: Any, start_date: date
) -> List[Dict[str, Any]]:
    return [to_recurring_expense_row(p, user_id, start_date) for p in patterns]
