from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schemas.investment_report import AssetType


class AnalyzeRequest(BaseModel):
    ticker: str = Field(min_length=1, max_length=32)
    asset_type: AssetType
    # strict: JSON true/false or "3" are not levels
    investment_level: int = Field(ge=1, le=5, strict=True)

    model_config = ConfigDict(frozen=True)

    @field_validator("ticker", mode="before")
    @classmethod
    def _normalize_ticker(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v


class AnalyzeResponse(BaseModel):
    search_id: str
    report_id: str


class ReportStatusResponse(BaseModel):
    id: str
    status: str
    report_data: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NewsItem(BaseModel):
    title: str
    link: str
    snippet: Optional[str] = None
    date: Optional[str] = None
    source: Optional[str] = None
