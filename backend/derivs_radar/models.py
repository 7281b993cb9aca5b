from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


Coin = Literal["BTC", "ETH"]
COINS: tuple = ("BTC", "ETH")


class SourceTag(str, Enum):
    COINALYZE = "coinalyze"
    HYPERLIQUID = "hyperliquid"
    COINGECKO = "coingecko"


# Intermediate records produced by the source adapters

class MetricPoint(BaseModel):
    source: SourceTag
    symbol: str
    exchange: str
    value: Optional[float] = None
    ts_ms: Optional[int] = None


class SeriesPoint(BaseModel):
    t_ms: int
    value: Optional[float] = None


class LongShortSample(BaseModel):
    t_ms: int
    ratio: float
    long_pct: float
    short_pct: float


class InstrumentSeries(BaseModel):
    source: SourceTag
    symbol: str
    points: List[SeriesPoint] = Field(default_factory=list)


class InstrumentLongShort(BaseModel):
    source: SourceTag
    symbol: str
    points: List[LongShortSample] = Field(default_factory=list)


class InstrumentUniverse(BaseModel):
    model_config = ConfigDict(frozen=True)

    btc: List[str] = Field(default_factory=list)
    eth: List[str] = Field(default_factory=list)
    fallback: bool = False

    def for_coin(self, coin: str) -> List[str]:
        return self.btc if coin.upper() == "BTC" else self.eth


# Aggregated outputs

class ExchangeValue(BaseModel):
    exchange: str
    value: float


class OpenInterestSummary(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total: float = 0.0
    by_exchange: List[ExchangeValue] = Field(default_factory=list, serialization_alias="byExchange")


class FundingSummary(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    average: float = 0.0
    by_exchange: List[ExchangeValue] = Field(default_factory=list, serialization_alias="byExchange")


class HistoryPoint(BaseModel):
    t: int
    value: float


class LongShortPoint(BaseModel):
    t: int
    ratio: float
    long: float
    short: float


class ExchangeBreakdown(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    exchange: str
    open_interest: float = Field(0.0, serialization_alias="openInterest")
    funding_rate: Optional[float] = Field(None, serialization_alias="fundingRate")
    volume_24h: float = Field(0.0, serialization_alias="volume24h")


class VenueSummary(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total_open_interest: float = Field(0.0, serialization_alias="totalOpenInterest")
    average_funding_rate: Optional[float] = Field(None, serialization_alias="averageFundingRate")
    exchanges: List[ExchangeBreakdown] = Field(default_factory=list)
    timestamp: Optional[int] = None


class TrendSignals(BaseModel):
    bullish: int = 0
    bearish: int = 0


class TrendAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    trend: Literal["bullish", "bearish", "neutral"] = "neutral"
    confidence: Literal["low", "moderate", "high"] = "low"
    signals: TrendSignals = Field(default_factory=TrendSignals)
    reasons: List[str] = Field(default_factory=list)


class CoinSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    coin: Coin
    open_interest: OpenInterestSummary = Field(default_factory=OpenInterestSummary)
    funding: FundingSummary = Field(default_factory=FundingSummary)
    oi_history: List[HistoryPoint] = Field(default_factory=list)
    funding_history: List[HistoryPoint] = Field(default_factory=list)
    long_short_history: List[LongShortPoint] = Field(default_factory=list)
    venues: Optional[VenueSummary] = None
    trend: TrendAssessment = Field(default_factory=TrendAssessment)


class MarketSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    btc: CoinSnapshot
    eth: CoinSnapshot
    updated_at_ms: int
    sources_ok: Dict[str, bool] = Field(default_factory=dict)
    raw_samples: Dict[str, Any] = Field(default_factory=dict)

    def coin(self, coin: str) -> CoinSnapshot:
        return self.btc if coin.upper() == "BTC" else self.eth
