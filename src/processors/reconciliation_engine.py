#!/usr/bin/env python3
"""
Tiered row reconciliation between target lines and draft rows.

Tiers in priority order, first applicable wins:
    exact        normalized "item|description" key
    item         numeric item key, preferring an equal description
    description  normalized description, preferring an equal item key
    vector-*     weighted feature-vector score (optional fallback, and the
                 only tier when the engine has rows but no draft index)
    none         recorded as a RowMatchMiss
"""

import logging
from typing import List, Optional

from models.base_models import DraftIndex, MatchKind, MatchOutcome, SourceRow, TargetLine
from models.config_models import MatchingConfig
from src.errors import RowMatchMiss
from src.processors.text_utils import item_key, normalize_text, row_key
from src.processors.vector_scoring import VectorScorer


class ReconciliationEngine:
    """Matches target lines against a read-only draft index"""

    def __init__(self, config: Optional[MatchingConfig] = None,
                 draft_index: Optional[DraftIndex] = None,
                 draft_rows: Optional[List[SourceRow]] = None):
        if draft_index is None and draft_rows is None:
            raise ValueError("Either a draft index or draft rows are required")

        self.config = config or MatchingConfig()
        self.draft_index = draft_index
        self.draft_rows = draft_rows if draft_rows is not None else draft_index.rows
        self.scorer = VectorScorer(self.config)
        self.misses: List[RowMatchMiss] = []
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def best_match_mode(self) -> bool:
        return self.draft_index is None

    def match(self, target: TargetLine) -> MatchOutcome:
        """Outcome for one target line"""
        if self.draft_index is not None:
            source = self.draft_index.by_key.get(row_key(target.item, target.description))
            if source is not None:
                return self._matched(target, source, MatchKind.EXACT)

            source = self._match_by_item(target)
            if source is not None:
                return self._matched(target, source, MatchKind.ITEM)

            source = self._match_by_description(target)
            if source is not None:
                return self._matched(target, source, MatchKind.DESCRIPTION)

            if not self.config.enable_vector_fallback:
                return self._miss(target)

        best = self.scorer.best_match(target, self.draft_rows)
        if best is None:
            return self._miss(target)

        source, score, similarity = best
        kind = self.scorer.classify(similarity, score)
        if kind == MatchKind.NONE:
            self.logger.debug(f"Row {target.row_number}: best vector score {score:.3f} "
                              f"(similarity {similarity:.2f}) below thresholds")
            return self._miss(target, score, similarity)

        return self._matched(target, source, kind, score, similarity)

    def match_all(self, targets: List[TargetLine]) -> List[MatchOutcome]:
        self.misses = []
        outcomes = [self.match(target) for target in targets]
        matched = sum(1 for outcome in outcomes if outcome.matched)
        self.logger.info(f"Matched {matched}/{len(outcomes)} target rows")
        return outcomes

    def _match_by_item(self, target: TargetLine) -> Optional[SourceRow]:
        key = item_key(target.item)
        if not key:
            return None
        candidates = self.draft_index.by_item.get(key)
        if not candidates:
            return None

        description = normalize_text(target.description)
        for candidate in candidates:
            if normalize_text(candidate.description) == description:
                return candidate
        return candidates[0]

    def _match_by_description(self, target: TargetLine) -> Optional[SourceRow]:
        description = normalize_text(target.description)
        if not description:
            return None
        candidates = self.draft_index.by_description.get(description)
        if not candidates:
            return None

        key = item_key(target.item)
        for candidate in candidates:
            if item_key(candidate.item) == key:
                return candidate
        return candidates[0]

    def _matched(self, target: TargetLine, source: SourceRow, kind: MatchKind,
                 score: Optional[float] = None, similarity: Optional[float] = None) -> MatchOutcome:
        self.logger.debug(f"Row {target.row_number}: {kind.value} match "
                          f"{target.item} | {target.description} -> {source.item} | {source.description}")
        return MatchOutcome(
            target=target,
            source=source,
            matched=True,
            match_kind=kind,
            rate=source.rate,
            amount=source.amount,
            qty=source.qty,
            score=score,
            similarity=similarity,
            draft_total=source.amount if target.is_total_row else None
        )

    def _miss(self, target: TargetLine, score: Optional[float] = None,
              similarity: Optional[float] = None) -> MatchOutcome:
        self.misses.append(RowMatchMiss(
            f"No match for row {target.row_number}: {target.item} | {target.description}",
            target.row_number
        ))
        return MatchOutcome(target=target, score=score, similarity=similarity)


def match_rows(targets: List[TargetLine], draft_index: DraftIndex,
               config: Optional[MatchingConfig] = None) -> List[MatchOutcome]:
    return ReconciliationEngine(config, draft_index=draft_index).match_all(targets)
