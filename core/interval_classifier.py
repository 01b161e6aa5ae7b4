"""
interval_classifier.py
-----------------------
Assigns a cadence to each candidate series from its inter-occurrence gaps.

Logic:
    1. Compute the gaps in days between consecutive occurrences.
    2. Gaps close to 2x or 3x the median are skipped cycles (a missed month,
       a paused subscription). They are dropped from the statistics but do
       not split the series, provided they are a minority of the gaps.
    3. The median of the remaining gaps is matched against the configured
       cadence windows. Monthly additionally accepts a stable day of month
       when the gaps are whole months, since calendar months are 28-31 days
       long.
    4. Anything else is "custom" if the gaps are tight enough, and rejected
       otherwise.

Series whose remaining gaps are too dispersed are rejected outright, whatever
window their median happens to land in.
"""

import calendar
import logging
from datetime import date
from typing import Dict, Sequence

import numpy as np

from core.models import ClassifiedGroup, ExpenseGroup, Frequency
from core.normalizer import within_relative_tolerance
from config.config_loader import get_recurring_detection_config

logger = logging.getLogger(__name__)


def compute_gaps(dates: Sequence[date]) -> tuple[int, ...]:
    """Days between consecutive dates (dates must be sorted)."""
    if len(dates) < 2:
        return ()
    days = np.array(dates, dtype="datetime64[D]")
    return tuple(int(g) for g in np.diff(days).astype(int))


class IntervalClassifier:
    """
    Classifies ExpenseGroups into cadences.

    Usage:
        classifier = IntervalClassifier()
        classified = classifier.classify(group)   # ClassifiedGroup or None
    """

    def __init__(self, config: dict | None = None):
        self.config = config if config is not None else get_recurring_detection_config()
        self.relative_tolerance = self.config["amount_tolerance"]["relative"]
        self.skipped_cycle_multiples = self.config["skipped_cycle_multiples"]
        self.skipped_cycle_max_share = self.config["skipped_cycle_max_share"]
        self.day_jitter = self.config["day_of_month_jitter_days"]
        self.windows = self.config["cadence_windows"]
        self.custom_max_dispersion = self.config["custom_max_gap_dispersion"]
        self.noise_max_dispersion = self.config["noise_max_gap_dispersion"]

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def classify_all(
        self, groups_by_merchant: Dict[str, tuple[ExpenseGroup, ...]]
    ) -> Dict[str, tuple[ClassifiedGroup, ...]]:
        """Classifies every group; merchants left with no recurring group are dropped."""
        result: Dict[str, tuple[ClassifiedGroup, ...]] = {}
        for merchant_key, groups in groups_by_merchant.items():
            classified = tuple(c for c in (self.classify(g) for g in groups) if c is not None)
            if classified:
                result[merchant_key] = classified
        return result

    def classify(self, group: ExpenseGroup) -> ClassifiedGroup | None:
        """
        Returns the classified group, or None if the series is not recurring.
        """
        gaps = compute_gaps(group.dates)
        if not gaps:
            return None

        inliers, skipped = self._exclude_skipped_cycles(gaps)
        median_gap = float(np.median(inliers))

        # Same-day duplicates carry no cadence.
        if median_gap < 1:
            logger.debug(f"'{group.merchant_key}': rejected, median gap {median_gap:.1f}d.")
            return None

        dispersion = float(np.std(inliers)) / median_gap
        if dispersion > self.noise_max_dispersion:
            logger.debug(
                f"'{group.merchant_key}': rejected as noise, gap dispersion {dispersion:.2f}."
            )
            return None

        frequency = self._label(median_gap, dispersion, gaps, group.dates)
        if frequency is None:
            logger.debug(
                f"'{group.merchant_key}': rejected, median gap {median_gap:.1f}d "
                f"with dispersion {dispersion:.2f} fits no cadence."
            )
            return None

        return ClassifiedGroup(
            group=group,
            frequency=frequency,
            gaps=gaps,
            inlier_gaps=inliers,
            skipped_cycles=skipped,
            median_gap=median_gap,
            gap_dispersion=round(dispersion, 4),
        )

    # -------------------------------------------------------------------------
    # INTERNAL: SKIPPED CYCLES
    # -------------------------------------------------------------------------

    def _exclude_skipped_cycles(self, gaps: tuple[int, ...]) -> tuple[tuple[int, ...], int]:
        """
        Splits gaps into (inliers, skipped cycle count) relative to the median
        of all gaps.
        """
        base = float(np.median(gaps))
        if base <= 0:
            return gaps, 0

        inliers = tuple(
            g for g in gaps
            if not any(
                within_relative_tolerance(g, k * base, self.relative_tolerance)
                for k in self.skipped_cycle_multiples
            )
        )
        skipped = len(gaps) - len(inliers)

        # Skipped cycles must stay a minority, otherwise an irregular series
        # could shed most of its spread before the noise gate.
        if not inliers or skipped > self.skipped_cycle_max_share * len(gaps):
            return gaps, 0
        return inliers, skipped

    # -------------------------------------------------------------------------
    # INTERNAL: LABELLING
    # -------------------------------------------------------------------------

    def _label(
        self,
        median_gap: float,
        dispersion: float,
        gaps: Sequence[int],
        dates: Sequence[date],
    ) -> Frequency | None:
        if self._in_window("weekly", median_gap):
            return Frequency.weekly(self.windows["weekly"]["interval_days"])

        if self._in_window("biweekly", median_gap):
            return Frequency.biweekly(self.windows["biweekly"]["interval_days"])

        monthly = self.windows["monthly"]
        if self._in_window("monthly", median_gap):
            return Frequency.monthly(monthly["interval_days"])

        # Day-of-month rule, only for month-like gaps so that quarterly and
        # yearly bills on a fixed day keep their own label.
        if self._month_like(median_gap, gaps) and self._day_of_month_stable(dates):
            return Frequency.monthly(monthly["interval_days"])

        if self._in_window("quarterly", median_gap):
            return Frequency.quarterly(self.windows["quarterly"]["interval_days"])

        if dispersion < self.custom_max_dispersion:
            return Frequency.custom(max(1, int(round(median_gap))))

        return None

    def _in_window(self, cadence: str, median_gap: float) -> bool:
        window = self.windows[cadence]
        return window["min_gap_days"] <= median_gap <= window["max_gap_days"]

    def _month_like(self, median_gap: float, gaps: Sequence[int]) -> bool:
        """
        True if the median gap is about one month, or if every gap is about
        a whole number of months and at least one is a single month. The
        second case covers short series with a skipped month (31, 60), whose
        median falls between the two.
        """
        monthly = self.windows["monthly"]
        low = monthly["min_gap_days"] - self.day_jitter
        high = monthly["max_gap_days"] + self.day_jitter

        if low <= median_gap <= high:
            return True

        multiples = (1, *self.skipped_cycle_multiples)
        return (
            any(low <= g <= high for g in gaps)
            and all(any(k * low <= g <= k * high for k in multiples) for g in gaps)
        )

    def _day_of_month_stable(self, dates: Sequence[date]) -> bool:
        """
        True if some anchor day has every date within day_jitter days of it.
        A date clamped to month end (Feb 29 for a 31st anchor) counts as on
        time, and distances wrap across the month boundary (30th vs 1st).
        """
        if len(dates) < 2:
            return False

        best = min(
            max(self._day_distance(d, anchor) for d in dates)
            for anchor in range(1, 32)
        )
        return best <= self.day_jitter

    @staticmethod
    def _day_distance(d: date, anchor: int) -> int:
        days_in_month = calendar.monthrange(d.year, d.month)[1]
        distance = abs(d.day - min(anchor, days_in_month))
        return min(distance, days_in_month - distance)
