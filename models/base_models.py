#!/usr/bin/env python3
"""
Base Pydantic models for the rate filler shared across codec, matching and writer.
These models provide type safety and structure for rows, columns and match outcomes.
"""

import math

from pydantic import BaseModel, Field
from typing import Optional, Dict, List, Any, Union, Annotated, Literal
from enum import Enum


class _Cell(BaseModel):
    """Behaviour shared by every cell value kind"""

    def as_text(self) -> str:
        return ""

    def as_float(self) -> Optional[float]:
        return parse_float(self.as_text())

    @property
    def is_blank(self) -> bool:
        return not self.as_text().strip()


class TextValue(_Cell):
    """Shared string, inline string or any non-numeric literal"""
    kind: Literal["text"] = "text"
    text: str

    def as_text(self) -> str:
        return self.text


class NumberValue(_Cell):
    """Plain <v> number, kept with its serialized form"""
    kind: Literal["number"] = "number"
    value: float
    raw: str

    def as_text(self) -> str:
        return self.raw

    def as_float(self) -> Optional[float]:
        return self.value


class FormulaValue(_Cell):
    """Cell carrying an <f> element; cached is the last computed <v>"""
    kind: Literal["formula"] = "formula"
    formula: str
    cached: Optional[str] = None

    def as_text(self) -> str:
        return self.cached or ""


class EmptyValue(_Cell):
    kind: Literal["empty"] = "empty"


CellValue = Annotated[
    Union[TextValue, NumberValue, FormulaValue, EmptyValue],
    Field(discriminator="kind")
]


def parse_float(text: str) -> Optional[float]:
    """Finite number from cell text; thousands commas allowed, "nan", "inf" and "1_000" are not"""
    cleaned = text.strip().replace(',', '')
    if not cleaned or '_' in cleaned:
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


class SheetRow(BaseModel):
    """One <row> of a worksheet with cells keyed by 0-based column index"""
    number: int  # 1-based row number from the r attribute
    cells: Dict[int, CellValue] = {}

    def get(self, column: int) -> CellValue:
        if column < 0:
            return EmptyValue()
        return self.cells.get(column, EmptyValue())

    def text(self, column: int) -> str:
        return self.get(column).as_text().strip()

    def number_at(self, column: int) -> Optional[float]:
        return self.get(column).as_float()


class SheetRef(BaseModel):
    """A worksheet resolved from workbook.xml to its part inside the archive"""
    name: str
    sheet_id: str
    part_path: str
    position: int = 0  # index of the <sheet> element in workbook.xml


class ColumnMap(BaseModel):
    """Semantic column positions (0-based); unit and qty use -1 when absent"""
    item: int = Field(..., ge=0)
    description: int = Field(..., ge=0)
    unit: int = Field(-1, ge=-1)
    qty: int = Field(-1, ge=-1)
    rate: int = Field(..., ge=0)
    amount: int = Field(..., ge=0)

    @property
    def has_unit(self) -> bool:
        return self.unit >= 0

    @property
    def has_qty(self) -> bool:
        return self.qty >= 0


class SourceRow(BaseModel):
    """Draft row supplying known values"""
    item: str
    description: str
    unit: Optional[str] = None
    qty: Optional[float] = None
    rate: Optional[float] = None
    amount: Optional[float] = None
    sheet_name: Optional[str] = None
    row_number: Optional[int] = None


class DraftIndex(BaseModel):
    """Lookup indices built once per run from the draft rows (read-only afterwards)"""
    by_key: Dict[str, SourceRow] = {}
    by_item: Dict[str, List[SourceRow]] = {}
    by_description: Dict[str, List[SourceRow]] = {}

    @property
    def rows(self) -> List[SourceRow]:
        return list(self.by_key.values())

    def __len__(self) -> int:
        return len(self.by_key)


class TargetLine(BaseModel):
    """Target row whose rate or amount cell is blank"""
    item: str
    description: str
    unit: str = ""
    qty: Optional[float] = None
    row_number: int
    rate_column: int
    amount_column: int
    is_total_row: bool = False
    item_inferred: bool = False
    item_cell_blank: bool = False
    description_cell_blank: bool = False
    amount_has_formula: bool = False


class MatchKind(str, Enum):
    """Tier of the reconciliation algorithm that produced a match"""
    EXACT = "exact"
    ITEM = "item"
    DESCRIPTION = "description"
    VECTOR_STRONG = "vector-strong"
    VECTOR_MEDIUM = "vector-medium"
    VECTOR_WEAK = "vector-weak"
    NONE = "none"


class MatchOutcome(BaseModel):
    """Reconciliation result per target row, enriched by the writer"""
    target: TargetLine
    source: Optional[SourceRow] = None
    matched: bool = False
    match_kind: MatchKind = MatchKind.NONE
    rate: Optional[float] = None
    amount: Optional[float] = None
    qty: Optional[float] = None
    score: Optional[float] = None
    similarity: Optional[float] = None
    written_rate: Optional[float] = None
    written_amount: Optional[float] = None
    written_qty: Optional[float] = None
    amount_formula: Optional[str] = None
    total_formula: Optional[str] = None
    calculated_total: Optional[float] = None
    draft_total: Optional[float] = None


class MatchServiceResult(BaseModel):
    """Summary consumed by the CLI, the API and the report layer"""
    success: bool
    message: str
    matched_count: int = 0
    total_count: int = 0
    logs: List[str] = []


class BatchItem(BaseModel):
    """An opaque unit of batch work plus its ordinal position"""
    index: int
    payload: Any = None
