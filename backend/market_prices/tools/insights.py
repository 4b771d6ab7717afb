# backend/market_prices/tools/insights.py
import datetime as dt
from statistics import mean
from typing import List, Optional, Sequence

from market_prices.schemas import MarketEntry, MarketInsights, PriceRange, PriceRecord

RISING_FACTOR = 1.05
FALLING_FACTOR = 0.95

RECOMMENDATIONS = {
    "rising": "{commodity} prices are trending upward. Good time for farmers to sell. "
              "Consumers should consider bulk purchases.",
    "falling": "{commodity} prices are declining. Farmers should consider holding stock if possible. "
               "Good buying opportunity for consumers.",
    "stable": "{commodity} prices are stable. Normal market conditions for both buying and selling.",
}


def _record_date(r: PriceRecord) -> Optional[dt.date]:
    try:
        return dt.date.fromisoformat(r.date[:10])
    except (TypeError, ValueError):
        return None


def _entry(r: PriceRecord) -> MarketEntry:
    return MarketEntry(market=r.market, price=r.modal_price, state=r.state)


def seasonal_trend(records: Sequence[PriceRecord], now: Optional[dt.datetime] = None) -> str:
    """
    Compare the mean modal price of the last 7 days against the 7 days before that.
    Windows are anchored on `now`, not on the newest record.
    """
    today = (now or dt.datetime.now()).date()
    week_ago = today - dt.timedelta(days=7)
    two_weeks_ago = today - dt.timedelta(days=14)

    recent: List[float] = []
    older: List[float] = []
    for r in records:
        d = _record_date(r)
        if d is None:
            continue
        if d >= week_ago:
            recent.append(r.modal_price)
        elif d >= two_weeks_ago:
            older.append(r.modal_price)

    if not recent or not older:
        return "stable"

    recent_avg = mean(recent)
    older_avg = mean(older)
    if recent_avg > older_avg * RISING_FACTOR:
        return "rising"
    if recent_avg < older_avg * FALLING_FACTOR:
        return "falling"
    return "stable"


def recommendation_for(trend: str, commodity: str) -> str:
    return RECOMMENDATIONS.get(trend, RECOMMENDATIONS["stable"]).format(commodity=commodity)


def compute_insights(
    records: Sequence[PriceRecord],
    commodity: str,
    now: Optional[dt.datetime] = None,
) -> MarketInsights:
    if not records:
        return MarketInsights()

    modal = [r.modal_price for r in records]

    # sorted() is stable, so equal prices keep their input order
    ranked = sorted(records, key=lambda r: r.modal_price, reverse=True)
    best = [_entry(r) for r in ranked[:3]]
    worst = [_entry(r) for r in reversed(ranked[-3:])]

    trend = seasonal_trend(records, now=now)

    return MarketInsights(
        avg_price=round(mean(modal)),
        price_range=PriceRange(min=round(min(modal)), max=round(max(modal))),
        best_markets=best,
        worst_markets=worst,
        seasonal_trend=trend,
        recommendation=recommendation_for(trend, commodity),
    )
