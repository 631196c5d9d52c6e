#!/usr/bin/env python3
"""
Pydantic models for the rate filler configuration system.
These models define matching thresholds, column synonyms and batch settings.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from enum import Enum


class ConfigSection(str, Enum):
    """Enum for configuration sections"""
    MATCHING = "matching"
    BATCH = "batch"


class ColumnSynonyms(BaseModel):
    """Header texts recognised for each semantic column"""
    item: List[str] = Field(default_factory=lambda: ['item', 'item no', 'no.', '序号'],
                            description="Item column headers (substring match)")
    description: List[str] = Field(default_factory=lambda: ['description', 'desc', '工作描述', 'description of work'],
                                   description="Description column headers (substring match)")
    unit: List[str] = Field(default_factory=lambda: ['unit', 'u'],
                            description="Unit column headers (substring match)")
    qty: List[str] = Field(default_factory=lambda: ['qty', 'quantity'],
                           description="Quantity column headers (substring match)")
    rate: List[str] = Field(default_factory=lambda: ['rate', 'unit rate', '(b)', 'unit rate (hk$)'],
                            description="Rate column headers (similarity match)")
    amount: List[str] = Field(default_factory=lambda: ['amount', 'total', '(c)', 'amount (hk$)'],
                              description="Amount column headers (similarity match)")

    @field_validator('item', 'description', 'unit', 'qty', 'rate', 'amount')
    def validate_synonyms(cls, v):
        cleaned = [s.strip() for s in v if s and s.strip()]
        if not cleaned:
            raise ValueError("Synonym list cannot be empty")
        return cleaned


class MatchThresholds(BaseModel):
    """Similarity and score cut-offs for the vector tiers"""
    header_similarity: float = Field(0.70, ge=0, le=1, description="Min similarity for rate/amount headers")
    strong_similarity: float = Field(0.90, ge=0, le=1, description="vector-strong description similarity")
    strong_score: float = Field(0.30, ge=0, description="vector-strong max score")
    medium_similarity: float = Field(0.80, ge=0, le=1, description="vector-medium description similarity")
    medium_score: float = Field(0.45, ge=0, description="vector-medium max score")
    weak_similarity: float = Field(0.70, ge=0, le=1, description="vector-weak description similarity")
    weak_score: float = Field(0.60, ge=0, description="vector-weak max score")
    qty_relative_diff: float = Field(0.2, ge=0, description="Relative qty difference above which the penalty doubles")


class VectorWeights(BaseModel):
    """Weights of the vector score components"""
    item: float = Field(0.40, ge=0, description="Weight of item-number distance")
    description: float = Field(0.35, ge=0, description="Weight of description dissimilarity")
    unit: float = Field(0.10, ge=0, description="Weight of unit mismatch")
    qty: float = Field(0.15, ge=0, description="Weight of quantity difference")


class MatchingConfig(BaseModel):
    """Configuration for column identification and reconciliation"""
    header_scan_rows: int = Field(30, gt=0, le=500, description="Leading rows searched for the header")
    enable_vector_fallback: bool = Field(True, description="Use vector scoring after the key tiers fail")
    qty_scale: float = Field(1000.0, gt=0, description="Assumed max quantity for vector scaling")
    synonyms: ColumnSynonyms = Field(default_factory=ColumnSynonyms)
    thresholds: MatchThresholds = Field(default_factory=MatchThresholds)
    weights: VectorWeights = Field(default_factory=VectorWeights)


class BatchConfig(BaseModel):
    """Configuration for batch runs and progress reporting"""
    max_concurrency: int = Field(3, gt=0, le=64, description="Files processed at the same time")
    progress_interval_ms: int = Field(500, ge=0, description="Min milliseconds between progress reports")
    progress_every: int = Field(3, gt=0, description="Report progress at least every N items")
    output_suffix: str = Field("_filled", min_length=1, description="Suffix for output file names")

    @field_validator('output_suffix')
    def validate_output_suffix(cls, v):
        if not v.strip():
            raise ValueError("Output suffix cannot be empty")
        return v.strip()


class RateFillConfigs(BaseModel):
    """Complete configuration"""
    matching: MatchingConfig
    batch: BatchConfig

    @classmethod
    def get_default_config(cls) -> 'RateFillConfigs':
        """Get default configuration"""
        return cls(
            matching=MatchingConfig(),
            batch=BatchConfig()
        )


class ConfigUpdateRequest(BaseModel):
    """Request model for updating one configuration section"""
    section: ConfigSection = Field(..., description="Section to update")
    values: Dict[str, Any] = Field(..., description="Field values to set in the section")

    @field_validator('values')
    def validate_values(cls, v):
        if not v:
            raise ValueError("No values to update")
        return v


class ConfigInquiryResponse(BaseModel):
    """Response model for configuration inquiry"""
    success: bool
    configs: Optional[RateFillConfigs] = None
    error: Optional[str] = None


class ConfigUpdateResponse(BaseModel):
    """Response model for configuration update"""
    success: bool
    message: str
    updated_section: Optional[str] = None
    error: Optional[str] = None
