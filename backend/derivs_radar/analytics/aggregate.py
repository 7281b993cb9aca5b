from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from ..models import (
    ExchangeBreakdown,
    ExchangeValue,
    FundingSummary,
    HistoryPoint,
    InstrumentLongShort,
    InstrumentSeries,
    LongShortPoint,
    MetricPoint,
    OpenInterestSummary,
    VenueSummary,
)

# Anything below this is an epoch in seconds
_MS_CUTOFF = 1_000_000_000_000


def normalize_ts_ms(ts: float) -> int:
    t = int(ts)
    return t * 1000 if abs(t) < _MS_CUTOFF else t


def funding_within_bound(fraction: Optional[float], bound: float = 0.005) -> bool:
    if fraction is None:
        return False
    return abs(fraction) < bound


def funding_pct_within_bound(pct: Optional[float], bound: float = 0.005) -> bool:
    if pct is None:
        return False
    return funding_within_bound(pct / 100.0, bound)


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def aggregate_open_interest(points: Iterable[MetricPoint]) -> OpenInterestSummary:
    by_exchange: Dict[str, float] = {}
    for p in points:
        if p.value is None:
            continue
        by_exchange[p.exchange] = by_exchange.get(p.exchange, 0.0) + p.value
    rows = sorted(
        (ExchangeValue(exchange=ex, value=v) for ex, v in by_exchange.items()),
        key=lambda r: r.value,
        reverse=True,
    )
    return OpenInterestSummary(total=sum(r.value for r in rows), by_exchange=rows)


def aggregate_funding(points: Iterable[MetricPoint]) -> FundingSummary:
    """Mean per exchange, then the headline average is the mean of those means."""
    grouped: Dict[str, List[float]] = defaultdict(list)
    for p in points:
        if p.value is None:
            continue
        grouped[p.exchange].append(p.value)
    rows = [ExchangeValue(exchange=ex, value=_mean(vals)) for ex, vals in grouped.items()]
    rows.sort(key=lambda r: abs(r.value), reverse=True)
    return FundingSummary(average=_mean([r.value for r in rows]), by_exchange=rows)


def _bucket(series: Iterable[InstrumentSeries]) -> Dict[int, List[float]]:
    buckets: Dict[int, List[float]] = defaultdict(list)
    for s in series:
        for p in s.points:
            if p.value is None:
                continue
            buckets[normalize_ts_ms(p.t_ms)].append(p.value)
    return buckets


def sum_history(series: Iterable[InstrumentSeries]) -> List[HistoryPoint]:
    buckets = _bucket(series)
    return [HistoryPoint(t=t, value=sum(vals)) for t, vals in sorted(buckets.items())]


def average_history(series: Iterable[InstrumentSeries]) -> List[HistoryPoint]:
    buckets = _bucket(series)
    return [HistoryPoint(t=t, value=_mean(vals)) for t, vals in sorted(buckets.items())]


def long_short_history(series: Iterable[InstrumentLongShort]) -> List[LongShortPoint]:
    buckets: Dict[int, List[Tuple[float, float, float]]] = defaultdict(list)
    for s in series:
        for p in s.points:
            buckets[normalize_ts_ms(p.t_ms)].append((p.ratio, p.long_pct, p.short_pct))
    out: List[LongShortPoint] = []
    for t, samples in sorted(buckets.items()):
        out.append(
            LongShortPoint(
                t=t,
                ratio=_mean([r for r, _, _ in samples]),
                long=_mean([l for _, l, _ in samples]),
                short=_mean([s for _, _, s in samples]),
            )
        )
    return out


def aggregate_venues(
    open_interest: Iterable[MetricPoint],
    funding: Iterable[MetricPoint],
    volume: Iterable[MetricPoint],
    limit: int = 10,
    timestamp: Optional[int] = None,
) -> VenueSummary:
    """Per-exchange rows from a multi-exchange listing, top ``limit`` by OI."""
    oi_by: Dict[str, float] = defaultdict(float)
    vol_by: Dict[str, float] = defaultdict(float)
    fr_by: Dict[str, List[float]] = defaultdict(list)
    for p in open_interest:
        if p.value is not None:
            oi_by[p.exchange] += p.value
    for p in volume:
        if p.value is not None:
            vol_by[p.exchange] += p.value
    for p in funding:
        if p.value is not None:
            fr_by[p.exchange].append(p.value)

    rows: List[ExchangeBreakdown] = []
    for ex in set(oi_by) | set(fr_by) | set(vol_by):
        oi = oi_by.get(ex, 0.0)
        rates = fr_by.get(ex) or []
        if oi <= 0 and not rates:
            continue
        rows.append(
            ExchangeBreakdown(
                exchange=ex,
                open_interest=oi,
                funding_rate=_mean(rates) if rates else None,
                volume_24h=vol_by.get(ex, 0.0),
            )
        )
    rows.sort(key=lambda r: (-r.open_interest, r.exchange))
    rows = rows[:limit]

    rated = [r.funding_rate for r in rows if r.funding_rate is not None]
    return VenueSummary(
        total_open_interest=sum(r.open_interest for r in rows),
        average_funding_rate=_mean(rated) if rated else None,
        exchanges=rows,
        timestamp=timestamp,
    )
