# backend/market_prices/tools/historical.py
"""
Synthetic six-month price history.

There is no historical feed behind this: the series is modelled from the
current average price with a seasonal sinusoid, a linear trend and uniform
noise. Treat the numbers as display data, not measurements.
"""
import datetime as dt
import math
from typing import List, Optional, Sequence

import numpy as np

from market_prices.schemas import HistoricalMonth, HistoricalSeries, PriceRecord

MONTHS_BACK = 6

SEASONAL_AMPLITUDE = 0.15
TREND_SLOPE = 0.02
NOISE_AMPLITUDE = 0.05
PRICE_FLOOR = 0.5

VOLUME_MIN, VOLUME_MAX = 800, 1200

# CV thresholds in percent
HIGH_CV = 15.0
MEDIUM_CV = 8.0

# INR/Quintal; used when a request yields no records to anchor on
BASE_PRICES = {
    "Rice": 2000, "Wheat": 2100, "Sugarcane": 350, "Cotton": 5500,
    "Onion": 1200, "Potato": 1000, "Tomato": 1500, "Maize": 1800,
    "Soybean": 4000, "Groundnut": 5000, "Mustard": 3500, "Sunflower": 4200,
    "Bajra": 1600, "Jowar": 1500,
}
DEFAULT_BASE_PRICE = 2000

HARVEST_SEASONS = {
    "Rice": "October-December (Kharif), April-June (Rabi)",
    "Wheat": "March-May",
    "Cotton": "October-February",
    "Sugarcane": "October-March",
    "Onion": "November-January, March-May",
    "Potato": "December-February",
    "Tomato": "Year-round with peak in winter",
    "Maize": "September-October (Kharif), February-April (Rabi)",
    "Soybean": "September-November",
    "Groundnut": "October-December (Kharif), February-April (Rabi)",
}


def harvest_season(commodity: str) -> str:
    return HARVEST_SEASONS.get(commodity, "Varies by region")


def price_volatility(prices: Sequence[float]) -> str:
    """Low/Medium/High from the coefficient of variation (population std / mean)."""
    if len(prices) < 2:
        return "Low"
    arr = np.asarray(prices, dtype=float)
    mu = float(arr.mean())
    if mu <= 0:
        return "Low"
    cv = float(arr.std()) / mu * 100
    if cv > HIGH_CV:
        return "High"
    if cv > MEDIUM_CV:
        return "Medium"
    return "Low"


def _shift_month(d: dt.date, back: int) -> dt.date:
    idx = d.year * 12 + (d.month - 1) - back
    return dt.date(idx // 12, idx % 12 + 1, 1)


def _current_average(commodity: str, records: Sequence[PriceRecord]) -> float:
    if records:
        return float(np.mean([r.modal_price for r in records]))
    return float(BASE_PRICES.get(commodity, DEFAULT_BASE_PRICE))


def synthesize_history(
    commodity: str,
    records: Sequence[PriceRecord],
    rng: Optional[np.random.Generator] = None,
    today: Optional[dt.date] = None,
) -> HistoricalSeries:
    rng = rng if rng is not None else np.random.default_rng()
    today = today or dt.date.today()
    avg = _current_average(commodity, records)

    months: List[HistoricalMonth] = []
    prev = avg
    for back in range(MONTHS_BACK - 1, -1, -1):
        month_start = _shift_month(today, back)
        volume = int(rng.integers(VOLUME_MIN, VOLUME_MAX + 1))

        if back == 0:
            price = avg
            trend = "current"
        else:
            seasonal = SEASONAL_AMPLITUDE * avg * math.sin(month_start.month * math.pi / 6)
            drift = -TREND_SLOPE * avg * back
            noise = float(rng.uniform(-NOISE_AMPLITUDE, NOISE_AMPLITUDE)) * avg
            price = max(avg + seasonal + drift + noise, PRICE_FLOOR * avg)
            trend = "up" if price >= prev else "down"

        months.append(HistoricalMonth(
            month=month_start.strftime("%b %Y"),
            price=round(price),
            volume=volume,
            trend=trend,
        ))
        prev = price

    prices = [m.price for m in months]
    best = max(months, key=lambda m: m.price)  # first max wins

    return HistoricalSeries(
        months=months,
        avg_price=round(float(np.mean(prices))),
        price_volatility=price_volatility(prices),
        harvest_season=harvest_season(commodity),
        best_selling_month=best.month,
    )
