"""
confidence_scorer.py
---------------------
Single 0.0–1.0 regularity score per classified series:

    confidence = clamp01(
        count_weight             * min(1, occurrences / count_saturation)
      + gap_regularity_weight    * clamp01(1 - cv(inlier gaps))
      + amount_regularity_weight * clamp01(1 - cv(amounts))
    )

Two-occurrence series are capped at low_evidence_confidence_cap: one gap
cannot establish regularity.
"""

from typing import Sequence

import numpy as np
from scipy import stats

from core.models import ClassifiedGroup
from config.config_loader import get_recurring_detection_config


def clamp01(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Population std / mean; 0.0 for fewer than two values or a zero mean."""
    arr = np.asarray(values, dtype=float)
    if arr.size < 2:
        return 0.0
    mean = float(np.mean(arr))
    if mean == 0:
        return 0.0
    return abs(float(stats.variation(arr)))


class ConfidenceScorer:
    """
    Usage:
        scorer = ConfidenceScorer()
        confidence = scorer.score(classified_group)
    """

    def __init__(self, config: dict | None = None):
        self.config = config if config is not None else get_recurring_detection_config()
        self.weights = self.config["confidence_scoring"]
        self.low_evidence_cap = self.config["low_evidence_confidence_cap"]

    def score(self, classified: ClassifiedGroup) -> float:
        group = classified.group
        w = self.weights

        count_factor = min(1.0, group.occurrence_count / w["count_saturation"])
        gap_regularity = clamp01(1.0 - coefficient_of_variation(classified.inlier_gaps))
        amount_regularity = clamp01(1.0 - coefficient_of_variation(group.amounts))

        confidence = clamp01(
            w["count_weight"] * count_factor
            + w["gap_regularity_weight"] * gap_regularity
            + w["amount_regularity_weight"] * amount_regularity
        )

        if group.is_low_evidence:
            confidence = min(confidence, self.low_evidence_cap)

        return round(confidence, 4)
