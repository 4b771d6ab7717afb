# backend/market_prices/tools/normalize.py
import datetime as dt
import math
import time
from typing import Any, Dict, Iterable, List, Optional

from market_prices.schemas import PriceRecord

MARKET_FIELDS = ("market", "market_name")
DATE_FIELDS = ("arrival_date", "price_date", "date")
MODAL_FIELDS = ("modal_price", "price")

DEFAULT_UNIT = "Quintal"


def to_price(x: Any) -> Optional[float]:
    """Safely convert a value to a non-negative float."""
    if x is None or isinstance(x, bool):
        return None
    try:
        f = float(str(x).replace(",", "").strip())
    except (ValueError, TypeError):
        return None
    if not math.isfinite(f) or f < 0:
        return None
    return f


def _first(item: Dict[str, Any], fields: Iterable[str]) -> Optional[Any]:
    for name in fields:
        val = item.get(name)
        if val not in (None, ""):
            return val
    return None


def _text(val: Any, default: str) -> str:
    if val is None:
        return default
    s = str(val).strip()
    return s or default


def _parse_date(s: Any) -> Optional[str]:
    """Accept 'dd/mm/yyyy' (AGMARKNET) or ISO; return ISO date string."""
    if not s:
        return None
    s = str(s).strip()
    for fmt in ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y"):
        try:
            return dt.datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue
    try:
        return dt.datetime.fromisoformat(s.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return None


def calculate_trend(item: Dict[str, Any]) -> str:
    change = item.get("price_change")
    try:
        change = float(change)
    except (TypeError, ValueError):
        return "stable"
    if change > 0:
        return "up"
    if change < 0:
        return "down"
    return "stable"


def _prices(item: Dict[str, Any]) -> tuple[float, float, float]:
    lo = to_price(item.get("min_price"))
    hi = to_price(item.get("max_price"))
    modal = to_price(_first(item, MODAL_FIELDS))

    if modal is None:
        present = [p for p in (lo, hi) if p is not None]
        if not present:
            return 0.0, 0.0, 0.0
        modal = sum(present) / len(present)
    # synthetic bounds around the modal price
    if lo is None:
        lo = modal * 0.9
    if hi is None:
        hi = modal * 1.1
    return lo, hi, modal


def normalize_record(
    item: Dict[str, Any],
    commodity: str,
    index: int,
    source: str = "AGMARKNET",
    today: Optional[dt.date] = None,
    stamp: Optional[int] = None,
) -> PriceRecord:
    """Standardize one upstream record. Never raises on odd field values."""
    today = today or dt.date.today()
    stamp = stamp if stamp is not None else int(time.time() * 1000)
    lo, hi, modal = _prices(item)
    return PriceRecord(
        id=f"{source.lower()}-{stamp}-{index}",
        commodity=_text(item.get("commodity"), commodity),
        variety=_text(item.get("variety"), "Common"),
        market=_text(_first(item, MARKET_FIELDS), "Unknown Market"),
        state=_text(item.get("state"), "Unknown State"),
        district=_text(item.get("district"), "Unknown District"),
        min_price=lo,
        max_price=hi,
        modal_price=modal,
        unit=_text(item.get("unit"), DEFAULT_UNIT),
        date=_parse_date(_first(item, DATE_FIELDS)) or today.isoformat(),
        source=source,
        trend=calculate_trend(item),
    )


def normalize(
    raw_records: Iterable[Any],
    commodity: str,
    source: str = "AGMARKNET",
    today: Optional[dt.date] = None,
) -> List[PriceRecord]:
    stamp = int(time.time() * 1000)
    out: List[PriceRecord] = []
    for i, item in enumerate(raw_records or []):
        if not isinstance(item, dict):
            continue
        out.append(normalize_record(item, commodity, i, source=source, today=today, stamp=stamp))
    return out
