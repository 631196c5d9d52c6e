#!/usr/bin/env python3
"""
Feature-vector scoring used as the last reconciliation tier.

A row becomes [item_level1, item_level2, unit_code, qty_norm]; the score is a
weighted sum of item distance, description dissimilarity, unit mismatch and
quantity difference. Lower is better.
"""

import logging
from typing import Iterable, Optional, Tuple

import numpy as np
from fuzzywuzzy import fuzz

from models.base_models import MatchKind, SourceRow, TargetLine
from models.config_models import MatchingConfig
from src.processors.text_utils import normalize_text

UNIT_CODES = {
    'sum': 0.1,
    'no': 0.2,
    'nr': 0.2,
    'number': 0.2,
    'm2': 0.3,
    'm²': 0.3,
}
OTHER_UNIT_CODE = 0.4
LEVEL1_SCALE = 1000.0
LEVEL2_SCALE = 100000.0


def _segment(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


class VectorScorer:
    """Weighted distance between a target line and a draft row"""

    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()
        self.weights = self.config.weights
        self.thresholds = self.config.thresholds
        self.logger = logging.getLogger(self.__class__.__name__)

    def item_levels(self, item: str) -> Tuple[float, float]:
        """Split an item number into two normalized levels; a third level folds into the second"""
        norm = normalize_text(item)
        if not norm:
            return 0.0, 0.0

        parts = norm.split('.')
        level1 = _segment(parts[0])
        level2 = 0
        if len(parts) > 2:
            level2 = _segment(parts[1]) * 100 + _segment(parts[2])
        elif len(parts) == 2:
            level2 = _segment(parts[1])

        return (float(np.clip(level1 / LEVEL1_SCALE, 0.0, 1.0)),
                float(np.clip(level2 / LEVEL2_SCALE, 0.0, 1.0)))

    def unit_code(self, unit: Optional[str]) -> float:
        norm = normalize_text(unit)
        if not norm:
            return 0.0
        return UNIT_CODES.get(norm, OTHER_UNIT_CODE)

    def qty_norm(self, qty: Optional[float]) -> float:
        if qty is None or qty <= 0:
            return 0.0
        return float(np.clip(qty / self.config.qty_scale, 0.0, 1.0))

    def feature_vector(self, item: str, unit: Optional[str], qty: Optional[float]) -> np.ndarray:
        level1, level2 = self.item_levels(item)
        return np.array([level1, level2, self.unit_code(unit), self.qty_norm(qty)])

    def text_similarity(self, a: Optional[str], b: Optional[str]) -> float:
        """Levenshtein ratio (0-1) of normalized texts; 0 when either is empty"""
        na = normalize_text(a)
        nb = normalize_text(b)
        if not na or not nb:
            return 0.0
        return fuzz.ratio(na, nb) / 100.0

    def qty_penalty(self, target_qty: Optional[float], draft_qty: Optional[float]) -> float:
        t = target_qty if target_qty and target_qty > 0 else 0.0
        d = draft_qty if draft_qty and draft_qty > 0 else 0.0

        if t > 0 and d > 0:
            relative_diff = abs(t - d) / max(t, d)
            if relative_diff > self.thresholds.qty_relative_diff:
                return min(relative_diff * 2.0, 2.0)
            return min(relative_diff, 1.0)
        if t > 0:
            return 0.3
        if d > 0:
            return 0.1
        return 0.0

    def unit_penalty(self, target_unit: Optional[str], draft_unit: Optional[str]) -> float:
        tu = normalize_text(target_unit)
        du = normalize_text(draft_unit)
        return 1.0 if tu and du and tu != du else 0.0

    def score(self, target: TargetLine, source: SourceRow) -> Tuple[float, float]:
        """(score, description similarity) for one candidate"""
        target_vec = self.feature_vector(target.item, target.unit, target.qty)
        draft_vec = self.feature_vector(source.item, source.unit, source.qty)
        item_distance = float(np.linalg.norm(target_vec[:2] - draft_vec[:2]))

        similarity = self.text_similarity(target.description, source.description)
        total = (self.weights.item * item_distance
                 + self.weights.description * (1.0 - similarity)
                 + self.weights.unit * self.unit_penalty(target.unit, source.unit)
                 + self.weights.qty * self.qty_penalty(target.qty, source.qty))
        return total, similarity

    def classify(self, similarity: float, score: float) -> MatchKind:
        t = self.thresholds
        if similarity >= t.strong_similarity and score <= t.strong_score:
            return MatchKind.VECTOR_STRONG
        if similarity >= t.medium_similarity and score <= t.medium_score:
            return MatchKind.VECTOR_MEDIUM
        if similarity >= t.weak_similarity and score <= t.weak_score:
            return MatchKind.VECTOR_WEAK
        return MatchKind.NONE

    def best_match(self, target: TargetLine,
                   candidates: Iterable[SourceRow]) -> Optional[Tuple[SourceRow, float, float]]:
        """Candidate with the lowest score as (source, score, similarity)"""
        best = None
        for source in candidates:
            score, similarity = self.score(target, source)
            if best is None or score < best[1]:
                best = (source, score, similarity)
        return best
