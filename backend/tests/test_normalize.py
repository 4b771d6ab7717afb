import datetime as dt
import itertools

import pytest

from market_prices.tools.normalize import normalize, normalize_record, to_price

TODAY = dt.date(2026, 10, 19)

FULL = {
    "commodity": "Rice",
    "variety": "Basmati",
    "market": "Khanna",
    "state": "Punjab",
    "district": "Ludhiana",
    "min_price": "1900",
    "max_price": "2100",
    "modal_price": "2000",
    "unit": "Quintal",
    "arrival_date": "18/10/2026",
    "price_change": "15",
}


def test_full_record_maps_to_canonical_fields():
    rec = normalize_record(FULL, "Rice", 0, today=TODAY, stamp=1)
    assert rec.id == "agmarknet-1-0"
    assert (rec.min_price, rec.modal_price, rec.max_price) == (1900.0, 2000.0, 2100.0)
    assert rec.market == "Khanna"
    assert rec.date == "2026-10-18"
    assert rec.trend == "up"
    assert rec.source == "AGMARKNET"


def test_modal_only_gets_synthetic_bounds():
    rec = normalize_record({"modal_price": "1000"}, "Wheat", 0, today=TODAY)
    assert rec.min_price == pytest.approx(900.0)
    assert rec.max_price == pytest.approx(1100.0)
    assert rec.min_price <= rec.modal_price <= rec.max_price


def test_empty_record_defaults_everything():
    rec = normalize_record({}, "Onion", 3, today=TODAY)
    assert (rec.min_price, rec.max_price, rec.modal_price) == (0.0, 0.0, 0.0)
    assert rec.commodity == "Onion"
    assert rec.market == "Unknown Market"
    assert rec.state == "Unknown State"
    assert rec.district == "Unknown District"
    assert rec.variety == "Common"
    assert rec.unit == "Quintal"
    assert rec.date == "2026-10-19"
    assert rec.trend == "stable"


def test_alternate_field_names():
    rec = normalize_record(
        {"market_name": "Vashi APMC", "price_date": "2026-10-10", "price": "1500"},
        "Tomato", 0, today=TODAY,
    )
    assert rec.market == "Vashi APMC"
    assert rec.date == "2026-10-10"
    assert rec.modal_price == 1500.0

    rec = normalize_record({"date": "05/10/2026", "modal_price": "10"}, "Tomato", 1, today=TODAY)
    assert rec.date == "2026-10-05"


def test_bad_numbers_are_treated_as_missing():
    rec = normalize_record({"min_price": "abc", "max_price": "-5", "modal_price": "800"}, "Rice", 0, today=TODAY)
    assert rec.min_price == pytest.approx(720.0)
    assert rec.max_price == pytest.approx(880.0)

    assert to_price("1,250") == 1250.0
    assert to_price(None) is None
    assert to_price(True) is None
    assert to_price("nan") is None
    assert to_price("Infinity") is None
    assert to_price("1e400") is None
    assert to_price("-inf") is None


def test_non_finite_modal_falls_back_to_bounds():
    rec = normalize_record({"min_price": "100", "max_price": "300", "modal_price": "Infinity"}, "Rice", 0, today=TODAY)
    assert rec.modal_price == 200.0

    [rec] = normalize([{"modal_price": "1e400"}], "Rice", today=TODAY)
    assert (rec.min_price, rec.max_price, rec.modal_price) == (0.0, 0.0, 0.0)


def test_min_max_without_modal_uses_midpoint():
    rec = normalize_record({"min_price": "100", "max_price": "300"}, "Rice", 0, today=TODAY)
    assert rec.modal_price == 200.0


def test_trend_from_price_change():
    assert normalize_record({"price_change": -3}, "Rice", 0, today=TODAY).trend == "down"
    assert normalize_record({"price_change": 0}, "Rice", 0, today=TODAY).trend == "stable"
    assert normalize_record({"price_change": "n/a"}, "Rice", 0, today=TODAY).trend == "stable"


def test_normalize_never_raises_for_any_missing_subset():
    fields = list(FULL)
    for size in range(len(fields) + 1):
        for dropped in itertools.combinations(fields, size):
            raw = {k: v for k, v in FULL.items() if k not in dropped}
            [rec] = normalize([raw], "Rice", today=TODAY)
            assert rec.min_price >= 0 and rec.max_price >= 0 and rec.modal_price >= 0
            if "min_price" in dropped and "max_price" in dropped:
                assert rec.min_price <= rec.modal_price <= rec.max_price


def test_normalize_skips_non_dicts_and_ids_are_unique():
    recs = normalize([FULL, None, "junk", FULL, 42], "Rice", source="ENAM", today=TODAY)
    assert len(recs) == 2
    assert len({r.id for r in recs}) == 2
    assert all(r.id.startswith("enam-") for r in recs)
    assert all(r.source == "ENAM" for r in recs)
