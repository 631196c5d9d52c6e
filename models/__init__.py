#!/usr/bin/env python3
"""
Models package for the rate filler.
"""

from .config_models import (
    ConfigSection,
    ColumnSynonyms,
    MatchThresholds,
    VectorWeights,
    MatchingConfig,
    BatchConfig,
    RateFillConfigs,
    ConfigUpdateRequest,
    ConfigInquiryResponse,
    ConfigUpdateResponse
)
from .base_models import (
    CellValue,
    TextValue,
    NumberValue,
    FormulaValue,
    EmptyValue,
    SheetRow,
    SheetRef,
    ColumnMap,
    SourceRow,
    DraftIndex,
    TargetLine,
    MatchKind,
    MatchOutcome,
    MatchServiceResult,
    BatchItem
)

__all__ = [
    "ConfigSection",
    "ColumnSynonyms",
    "MatchThresholds",
    "VectorWeights",
    "MatchingConfig",
    "BatchConfig",
    "RateFillConfigs",
    "ConfigUpdateRequest",
    "ConfigInquiryResponse",
    "ConfigUpdateResponse",
    "CellValue",
    "TextValue",
    "NumberValue",
    "FormulaValue",
    "EmptyValue",
    "SheetRow",
    "SheetRef",
    "ColumnMap",
    "SourceRow",
    "DraftIndex",
    "TargetLine",
    "MatchKind",
    "MatchOutcome",
    "MatchServiceResult",
    "BatchItem"
]
