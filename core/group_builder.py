"""
group_builder.py
-----------------
Partitions one user's normalized expenses into candidate recurring series.

Grouping is two-level:
    1. merchant key (see normalizer.normalize_merchant)
    2. amount tier: within a merchant, an occurrence joins the first open
       group whose running mean amount is compatible with it, otherwise it
       opens a new group. Two subscriptions at one provider (e.g. a basic
       and a family plan) therefore stay separate series.

The per-merchant group tuple is rebuilt for every occurrence; nothing is
mutated in place.
"""

import logging
from itertools import groupby
from typing import Dict, Iterable

from core.models import ExpenseGroup, NormalizedExpense
from core.normalizer import amounts_compatible
from config.config_loader import get_recurring_detection_config

logger = logging.getLogger(__name__)


class GroupBuilder:
    """
    Builds ExpenseGroups from normalized expenses.

    Usage:
        builder = GroupBuilder()
        groups_by_merchant = builder.build(normalized_expenses)
    """

    def __init__(self, config: dict | None = None):
        self.config = config if config is not None else get_recurring_detection_config()
        tolerance = self.config["amount_tolerance"]
        self.absolute_tolerance = tolerance["absolute"]
        self.relative_tolerance = tolerance["relative"]
        self.min_occurrences = self.config["min_occurrences"]

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def build(self, expenses: Iterable[NormalizedExpense]) -> Dict[str, tuple[ExpenseGroup, ...]]:
        """
        Returns a mapping merchant_key -> tuple of ExpenseGroups with at
        least min_occurrences members. Merchants with no qualifying group
        are absent from the mapping.
        """
        ordered = sorted(expenses, key=_scan_order)
        result: Dict[str, tuple[ExpenseGroup, ...]] = {}

        for merchant_key, occurrences in groupby(ordered, key=lambda e: e.merchant_key):
            groups: tuple[ExpenseGroup, ...] = ()
            for expense in occurrences:
                groups = self._assign(groups, expense)

            kept = tuple(g for g in groups if g.occurrence_count >= self.min_occurrences)
            if len(kept) < len(groups):
                logger.debug(
                    f"'{merchant_key}': discarded {len(groups) - len(kept)} group(s) "
                    f"below {self.min_occurrences} occurrences."
                )
            if kept:
                result[merchant_key] = kept

        return result

    # -------------------------------------------------------------------------
    # INTERNAL
    # -------------------------------------------------------------------------

    def _assign(
        self, groups: tuple[ExpenseGroup, ...], expense: NormalizedExpense
    ) -> tuple[ExpenseGroup, ...]:
        """Places one occurrence into the first compatible group, or a new one."""
        for i, group in enumerate(groups):
            if amounts_compatible(
                group.mean_amount, expense.amount,
                self.absolute_tolerance, self.relative_tolerance,
            ):
                return groups[:i] + (group.with_member(expense),) + groups[i + 1:]
        return groups + (ExpenseGroup.open(expense),)


def _scan_order(expense: NormalizedExpense) -> tuple:
    # str(id) keeps mixed id types (int / uuid / None) comparable.
    return (expense.merchant_key, expense.transaction_date, str(expense.id))
