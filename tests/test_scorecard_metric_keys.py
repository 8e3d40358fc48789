"""Tests for metric key canonicalization and payload coercion."""

from __future__ import annotations

from decimal import Decimal

from scorecard.services.metric_keys import (
    achieved_value,
    canonical_key,
    canonicalize_keys,
    comparable_target,
    extract_standard_metrics,
    lookup_keys,
    read_with_fallback,
    to_cents,
    to_decimal,
    to_int,
)

# ---------------------------------------------------------------------------
# Key aliases
# ---------------------------------------------------------------------------


def test_canonical_key_maps_legacy_aliases():
    assert canonical_key("quoted_count") == "quoted_households"
    assert canonical_key("sold_items") == "items_sold"
    assert canonical_key("outbound_calls") == "outbound_calls"


def test_lookup_keys_puts_canonical_first():
    assert lookup_keys("quoted_count") == ("quoted_households", "quoted_count")
    assert lookup_keys("talk_minutes") == ("talk_minutes",)


def test_canonicalize_keys_dedupes_aliases_and_keeps_order():
    keys = ["sold_items", "outbound_calls", "items_sold", 7, "", "custom_abc"]
    assert canonicalize_keys(keys) == ["items_sold", "outbound_calls", "custom_abc"]


def test_read_with_fallback_prefers_canonical_key():
    payload = {"quoted_households": 4, "quoted_count": 9}
    assert read_with_fallback(payload, "quoted_households") == 4


def test_read_with_fallback_uses_legacy_key():
    assert read_with_fallback({"quoted_count": 9}, "quoted_households") == 9
    assert read_with_fallback({"quoted_households": "", "quoted_count": 3}, "quoted_households") == 3
    assert read_with_fallback(None, "quoted_households") is None


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def test_to_decimal_rejects_non_numbers():
    assert to_decimal("abc") is None
    assert to_decimal(True) is None
    assert to_decimal(float("nan")) is None
    assert to_decimal({"value": 3}) is None
    assert to_decimal("1,250.5") == Decimal("1250.5")


def test_to_int_rounds_half_up_and_defaults_to_zero():
    assert to_int("12") == 12
    assert to_int(2.5) == 3
    assert to_int("oops") == 0
    assert to_int(None) == 0


def test_to_cents_floors():
    assert to_cents("1234.567") == 123456
    assert to_cents(10) == 1000
    assert to_cents("n/a") == 0


def test_to_int_rejects_values_beyond_column_range():
    assert to_int("1e30") == 0
    assert to_int(2**31) == 0
    assert to_int(-(2**31)) == 0
    assert to_int(2**31 - 1) == 2**31 - 1
    assert to_int("1e30", default=7) == 7


def test_to_cents_rejects_values_beyond_column_range():
    assert to_cents(1e17) == 0
    assert to_cents("1e999999") == 0
    assert to_cents(50_000_000) == 5_000_000_000


def test_extract_standard_metrics_isolates_malformed_fields():
    payload = {
        "outbound_calls": "not a number",
        "talk_minutes": "95",
        "quoted_count": 3,
        "sold_items": "2",
        "sold_premium": "1500.259",
        "quoted_entity": "  Smith household ",
    }
    values = extract_standard_metrics(payload)

    assert values["outbound_calls"] == 0
    assert values["talk_minutes"] == 95
    assert values["quoted_households"] == 3
    assert values["items_sold"] == 2
    assert values["sold_premium_cents"] == 150025
    assert values["sold_policies"] == 0
    assert values["quoted_entity"] == "Smith household"


def test_extract_standard_metrics_empty_payload():
    values = extract_standard_metrics({})
    assert all(value == 0 for key, value in values.items() if key != "quoted_entity")
    assert values["quoted_entity"] is None


# ---------------------------------------------------------------------------
# Scoring helpers
# ---------------------------------------------------------------------------


def test_achieved_value_reads_standard_and_custom():
    standard = {"outbound_calls": 40, "sold_premium_cents": 50000}
    custom = {"custom_reviews": 2.5}
    assert achieved_value("outbound_calls", standard, custom) == 40.0
    assert achieved_value("custom_reviews", standard, custom) == 2.5
    assert achieved_value("custom_missing", standard, custom) == 0.0


def test_comparable_target_scales_currency_to_cents():
    assert comparable_target("sold_premium", 500) == 50000
    assert comparable_target("outbound_calls", 50) == 50
