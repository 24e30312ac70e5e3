from __future__ import annotations

from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

ImportStepName = Literal["upload", "mapping", "preview", "importing"]


class ImportUpload(BaseModel):
    filename: Optional[str] = None
    content: str


class ImportFieldOption(BaseModel):
    value: str
    label: str


class ColumnMappingEntry(BaseModel):
    source_column: str
    target_field: str


class MappingUpdate(BaseModel):
    mappings: List[ColumnMappingEntry] = Field(..., min_length=1)


class ImportProgressRead(BaseModel):
    processed: int
    total: int
    imported: int
    failed: int
    percent: float


class ImportResultRead(BaseModel):
    imported: int
    failed: int
    total: int
    message: str


class ImportNoticeRead(BaseModel):
    title: str
    description: str
    error: bool = False


class ImportSessionRead(BaseModel):
    id: UUID
    step: ImportStepName
    filename: Optional[str] = None
    headers: List[str] = Field(default_factory=list)
    mapping: List[ColumnMappingEntry] = Field(default_factory=list)
    row_count: int = 0
    progress: Optional[ImportProgressRead] = None
    last_result: Optional[ImportResultRead] = None
    last_notice: Optional[ImportNoticeRead] = None


class ImportedTradePreview(BaseModel):
    symbol: str
    direction: str
    entry_time: str
    exit_time: Optional[str] = None
    entry_price: float
    exit_price: Optional[float] = None
    total_lots: float
    sl_initial: Optional[float] = None
    tp_initial: Optional[float] = None
    net_pnl: Optional[float] = None
    r_multiple_actual: Optional[float] = None
    session: Optional[str] = None
    is_open: bool


class ImportPreviewRead(BaseModel):
    session: ImportSessionRead
    trades: List[ImportedTradePreview] = Field(default_factory=list)
    total_rows: int = 0


__all__ = [
    "ImportUpload",
    "ImportFieldOption",
    "ColumnMappingEntry",
    "MappingUpdate",
    "ImportProgressRead",
    "ImportResultRead",
    "ImportNoticeRead",
    "ImportSessionRead",
    "ImportedTradePreview",
    "ImportPreviewRead",
]
