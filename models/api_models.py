#!/usr/bin/env python3
"""
Pydantic models for API requests and responses.
These models provide type safety for all API endpoints.
"""

from pydantic import BaseModel
from typing import List, Dict, Any, Optional


class FillRatesResponse(BaseModel):
    """Response model for /api/fill-rates endpoint"""
    success: bool
    message: str
    matched_count: int
    total_count: int
    filename: Optional[str] = None
    download_url: Optional[str] = None
    report_url: Optional[str] = None
    match_kinds: Dict[str, int] = {}
    logs: List[str] = []


class BatchFillRequest(BaseModel):
    """Request model for /api/fill-rates/batch endpoint (paths inside the upload folder)"""
    draft_path: str
    target_paths: List[str]
    max_concurrency: Optional[int] = None


class BatchFillResponse(BaseModel):
    """Response model for /api/fill-rates/batch endpoint"""
    success: bool
    processed: int
    failed: int
    results: List[Dict[str, Any]]
