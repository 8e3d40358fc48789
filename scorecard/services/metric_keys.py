"""Standard metric keys, their legacy aliases, and payload coercion.

Payloads written by older forms used different keys for the same metric
(``quoted_count`` before ``quoted_households``, ``sold_items`` before
``items_sold``). Everything reads through :func:`read_with_fallback` and
writes the canonical key.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

logger = logging.getLogger(__name__)

STANDARD_METRICS: tuple[str, ...] = (
    "outbound_calls",
    "talk_minutes",
    "quoted_households",
    "items_sold",
    "sold_policies",
    "sold_premium",
    "cross_sells_uncovered",
    "mini_reviews",
)

METRIC_ALIASES: dict[str, tuple[str, ...]] = {
    "quoted_households": ("quoted_count",),
    "items_sold": ("sold_items",),
}

_ALIAS_TO_CANONICAL: dict[str, str] = {
    alias: canonical for canonical, aliases in METRIC_ALIASES.items() for alias in aliases
}

# MetricsDaily column holding each standard metric.
METRIC_COLUMNS: dict[str, str] = {
    "outbound_calls": "outbound_calls",
    "talk_minutes": "talk_minutes",
    "quoted_households": "quoted_households",
    "items_sold": "items_sold",
    "sold_policies": "sold_policies",
    "sold_premium": "sold_premium_cents",
    "cross_sells_uncovered": "cross_sells_uncovered",
    "mini_reviews": "mini_reviews",
}

# Stored in cents; targets for these are expressed in whole currency units.
CENTS_METRICS = frozenset({"sold_premium"})

# Bounds of the Integer and BigInteger columns metrics are stored in.
INT_MAX = 2**31 - 1
BIGINT_MAX = 2**63 - 1


def canonical_key(key: str) -> str:
    cleaned = (key or "").strip()
    return _ALIAS_TO_CANONICAL.get(cleaned, cleaned)


def lookup_keys(key: str) -> tuple[str, ...]:
    """Canonical key first, then its legacy aliases."""
    canonical = canonical_key(key)
    return (canonical, *METRIC_ALIASES.get(canonical, ()))


def canonicalize_keys(keys: Iterable[Any] | None) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for key in keys or []:
        if not isinstance(key, str):
            continue
        canonical = canonical_key(key)
        if not canonical or canonical in seen:
            continue
        seen.add(canonical)
        out.append(canonical)
    return out


def is_standard_metric(key: str) -> bool:
    return canonical_key(key) in METRIC_COLUMNS


def read_with_fallback(payload: Mapping[str, Any] | None, key: str) -> Any:
    if not payload:
        return None
    for candidate in lookup_keys(key):
        value = payload.get(candidate)
        if value is not None and value != "":
            return value
    return None


def to_decimal(value: Any) -> Decimal | None:
    """Parse a payload value as a number, or ``None`` when it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value)) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    return None


def to_int(value: Any, default: int = 0, limit: int = INT_MAX) -> int:
    """Round half-up to an int; unparseable or out-of-range values give ``default``."""
    parsed = to_decimal(value)
    if parsed is not None:
        try:
            rounded = int(parsed.quantize(Decimal(1), rounding=ROUND_HALF_UP))
        except ArithmeticError:
            rounded = None
        if rounded is not None and abs(rounded) <= limit:
            return rounded
    if value not in (None, ""):
        logger.debug("Coercing malformed metric value %r to %s", value, default)
    return default


def to_cents(value: Any, limit: int = BIGINT_MAX) -> int:
    parsed = to_decimal(value)
    if parsed is not None:
        try:
            cents = math.floor(parsed * 100)
        except ArithmeticError:
            cents = None
        if cents is not None and abs(cents) <= limit:
            return cents
    if value not in (None, ""):
        logger.debug("Coercing malformed currency value %r to 0", value)
    return 0


def extract_standard_metrics(payload: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return MetricsDaily column values for the standard metrics in ``payload``.

    Malformed values become zero; one bad field never affects the others.
    """
    values: dict[str, Any] = {}
    for metric, column in METRIC_COLUMNS.items():
        raw = read_with_fallback(payload, metric)
        values[column] = to_cents(raw) if metric in CENTS_METRICS else to_int(raw)

    entity = (payload or {}).get("quoted_entity")
    values["quoted_entity"] = (str(entity).strip() or None) if entity is not None else None
    return values


def achieved_value(metric: str, standard_values: Mapping[str, Any], custom_kpis: Mapping[str, Any]) -> float:
    """Value achieved for a selected metric: standard column or custom KPI slug."""
    canonical = canonical_key(metric)
    column = METRIC_COLUMNS.get(canonical)
    if column is not None:
        return float(standard_values.get(column) or 0)
    parsed = to_decimal(custom_kpis.get(canonical))
    return float(parsed) if parsed is not None else 0.0


def comparable_target(metric: str, target: float) -> float:
    """Express a target in the unit the achieved value is stored in."""
    if canonical_key(metric) in CENTS_METRICS:
        return float(target) * 100
    return float(target)
