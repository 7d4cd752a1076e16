# backend/app/schemas/transfer.py
from typing import Any, List, Literal

from pydantic import BaseModel, Field

TransferFormat = Literal["json", "csv"]


class ImportPolicy(BaseModel):
    """Duplicate resolution for records matching an existing (title, website)."""
    skip_duplicates: bool = True
    update_existing: bool = False


class ImportErrorItem(BaseModel):
    title: str
    error: str


class ImportResult(BaseModel):
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[ImportErrorItem] = Field(default_factory=list)


class ExportRequest(BaseModel):
    master_password: str = Field(..., min_length=1)
    format: TransferFormat = "json"


class ImportRequest(BaseModel):
    master_password: str = Field(..., min_length=1)
    format: TransferFormat = "json"
    # JSON document, JSON list, JSON text or CSV text
    data: Any
    options: ImportPolicy = Field(default_factory=ImportPolicy)
