from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

REPORT_VERSION = "v1"

Signal = Literal["bullish", "bearish", "neutral"]
AssetType = Literal["stock", "crypto"]


class KeyLevels(BaseModel):
    support: List[float] = Field(default_factory=list)
    resistance: List[float] = Field(default_factory=list)


class IndicatorSignal(BaseModel):
    name: str
    value: Optional[Union[float, str]] = None
    signal: Signal = "neutral"
    note: Optional[str] = None


class Strategy(BaseModel):
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    rationale: str = ""


class Reference(BaseModel):
    title: str
    url: str


class InvestmentReport(BaseModel):
    """Fixed v1 report schema. Every field has a default."""

    version: str = REPORT_VERSION
    ticker: str = ""
    asset_type: AssetType = "stock"
    investment_period_level: int = Field(default=3, ge=1, le=5)
    summary_outlook: str = ""
    technical_analysis: Union[str, Dict[str, Any]] = ""
    key_levels: KeyLevels = Field(default_factory=KeyLevels)
    indicators_summary: List[IndicatorSignal] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    catalysts: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0, ge=0, le=100)
    strategy: Strategy = Field(default_factory=Strategy)
    references: List[Reference] = Field(default_factory=list)
    # model raw text / diagnostic message
    raw: Optional[str] = Field(default=None, alias="_raw")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
