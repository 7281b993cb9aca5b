from __future__ import annotations

from typing import List, Optional, Sequence

from ..config import AnalyticsConfig
from ..models import (
    CoinSnapshot,
    FundingSummary,
    HistoryPoint,
    LongShortPoint,
    TrendAssessment,
    TrendSignals,
)


def oi_change_pct(history: Sequence[HistoryPoint], min_buckets: int = 6) -> Optional[float]:
    """Percent change between the mean of the first and last thirds of the series."""
    if len(history) < min_buckets:
        return None
    k = len(history) // 3
    first = [p.value for p in history[:k]]
    last = [p.value for p in history[-k:]]
    avg_first = sum(first) / len(first)
    avg_last = sum(last) / len(last)
    if avg_first == 0:
        return None
    return (avg_last - avg_first) / avg_first * 100.0


def classify_trend(
    funding: FundingSummary,
    oi_history: Sequence[HistoryPoint],
    long_short_history: Sequence[LongShortPoint],
    config: Optional[AnalyticsConfig] = None,
) -> TrendAssessment:
    cfg = config or AnalyticsConfig()
    bullish = 0
    bearish = 0
    reasons: List[str] = []

    # Funding average is percent per 8h; the threshold is a fraction
    avg_pct = funding.average
    threshold_pct = cfg.trend_funding_threshold * 100.0
    if avg_pct / 100.0 > cfg.trend_funding_threshold:
        bullish += 1
        reasons.append(f"Funding rate {avg_pct:+.4f}% above +{threshold_pct:.2f}% indicates bullish sentiment")
    elif avg_pct / 100.0 < -cfg.trend_funding_threshold:
        bearish += 1
        reasons.append(f"Funding rate {avg_pct:+.4f}% below -{threshold_pct:.2f}% indicates bearish sentiment")

    change = oi_change_pct(oi_history, cfg.trend_oi_min_buckets)
    if change is not None:
        if change > cfg.trend_oi_change_pct:
            bullish += 1
            reasons.append(f"Open Interest up {change:.1f}% over {cfg.window_label}")
        elif change < -cfg.trend_oi_change_pct:
            bearish += 1
            reasons.append(f"Open Interest down {abs(change):.1f}% over {cfg.window_label}")

    if long_short_history:
        ratio = long_short_history[-1].ratio
        if ratio > cfg.trend_ls_bullish:
            bullish += 1
            reasons.append(f"Long/Short ratio {ratio:.2f} - more longs than shorts")
        elif ratio < cfg.trend_ls_bearish:
            bearish += 1
            reasons.append(f"Long/Short ratio {ratio:.2f} - more shorts than longs")

    if bullish > bearish:
        trend = "bullish"
    elif bearish > bullish:
        trend = "bearish"
    else:
        trend = "neutral"

    if bullish >= 3 or bearish >= 3:
        confidence = "high"
    elif trend != "neutral" and max(bullish, bearish) >= 2:
        confidence = "moderate"
    else:
        confidence = "low"

    return TrendAssessment(
        trend=trend,
        confidence=confidence,
        signals=TrendSignals(bullish=bullish, bearish=bearish),
        reasons=reasons,
    )


def classify(coin: CoinSnapshot, config: Optional[AnalyticsConfig] = None) -> TrendAssessment:
    return classify_trend(coin.funding, coin.oi_history, coin.long_short_history, config)
