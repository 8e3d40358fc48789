from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from scorecard.models.agency import MemberRole
from scorecard.models.scorecard import DEFAULT_COUNTED_DAYS, WEEKDAYS, ScorecardRules
from scorecard.schemas.scorecard import ScorecardRulesUpsert
from scorecard.services.common import coerce_uuid, validate_enum
from scorecard.services.metric_keys import canonical_key, canonicalize_keys

logger = logging.getLogger(__name__)


def default_rules_values() -> dict[str, Any]:
    return {
        "selected_metrics": [],
        "ring_metrics": [],
        "weights": {},
        "n_required": None,
        "counted_days": dict(DEFAULT_COUNTED_DAYS),
        "count_weekend_if_submitted": True,
        "late_counts_for_pass": False,
        "backfill_days": 7,
    }


def _non_negative_int(value: Any) -> int:
    try:
        weight = int(value)
    except (TypeError, ValueError):
        return 0
    return max(weight, 0)


def normalize_rules(values: dict[str, Any]) -> dict[str, Any]:
    """Bring a rules payload into a consistent shape before it is stored.

    Metric keys are canonicalized, ``ring_metrics`` is kept a subset of
    ``selected_metrics``, weights are non-negative ints, ``n_required`` stays
    within the selected count, and every weekday has an explicit flag.
    """
    selected = canonicalize_keys(values.get("selected_metrics"))
    ring = [key for key in canonicalize_keys(values.get("ring_metrics")) if key in selected]

    weights: dict[str, int] = {}
    for key, weight in (values.get("weights") or {}).items():
        if not isinstance(key, str):
            continue
        canonical = canonical_key(key)
        if not canonical:
            continue
        # Canonical key wins over a legacy alias carrying a different weight.
        if canonical in weights and key != canonical:
            continue
        weights[canonical] = _non_negative_int(weight)

    n_required = values.get("n_required")
    if n_required is not None:
        n_required = _non_negative_int(n_required)
        if not selected or n_required <= 0:
            n_required = None
        else:
            n_required = min(n_required, len(selected))

    raw_days = values.get("counted_days") or {}
    counted_days = {
        day: bool(raw_days.get(day, DEFAULT_COUNTED_DAYS[day])) for day in WEEKDAYS
    }

    return {
        **values,
        "selected_metrics": selected,
        "ring_metrics": ring,
        "weights": weights,
        "n_required": n_required,
        "counted_days": counted_days,
    }


def required_hits(rules: ScorecardRules) -> int:
    """Hits needed to pass: ``n_required`` when configured, otherwise every selected metric."""
    selected = rules.selected_metrics or []
    if rules.n_required:
        return min(int(rules.n_required), len(selected))
    return len(selected)


class ScorecardRulesService:
    def get(self, db: Session, agency_id: str, role: MemberRole | str) -> ScorecardRules | None:
        role_value = validate_enum(role, MemberRole, "role")
        return (
            db.query(ScorecardRules)
            .filter(
                ScorecardRules.agency_id == coerce_uuid(agency_id),
                ScorecardRules.role == role_value,
            )
            .first()
        )

    def get_or_create(self, db: Session, agency_id: str, role: MemberRole | str) -> ScorecardRules:
        """Load rules for (agency, role), inserting safe defaults on first use.

        Creation happens in a savepoint; if a concurrent writer wins the
        unique constraint the winner's row is returned instead.
        """
        existing = self.get(db, agency_id, role)
        if existing:
            return existing

        role_value = validate_enum(role, MemberRole, "role")
        try:
            with db.begin_nested():
                rules = ScorecardRules(
                    agency_id=coerce_uuid(agency_id),
                    role=role_value,
                    **default_rules_values(),
                )
                db.add(rules)
                db.flush()
        except IntegrityError:
            rules = self.get(db, agency_id, role_value)
            if rules is None:
                raise
            logger.info("Scorecard rules for agency=%s role=%s created concurrently", agency_id, role_value.value)
            return rules

        logger.info("Created default scorecard rules for agency=%s role=%s", agency_id, role_value.value)
        return rules

    def upsert(
        self, db: Session, agency_id: str, role: MemberRole | str, payload: ScorecardRulesUpsert
    ) -> ScorecardRules:
        rules = self.get_or_create(db, agency_id, role)
        data = normalize_rules(payload.model_dump())
        for key, value in data.items():
            setattr(rules, key, value)
        db.commit()
        db.refresh(rules)
        return rules

    def remove_metric(self, db: Session, agency_id: str, metric_key: str) -> int:
        """Drop a metric from every role's rules for an agency. Returns rows touched."""
        key = canonical_key(metric_key)
        touched = 0
        rows = db.query(ScorecardRules).filter(ScorecardRules.agency_id == coerce_uuid(agency_id)).all()
        for rules in rows:
            if key not in (rules.selected_metrics or []) and key not in (rules.weights or {}):
                continue
            current = {
                "selected_metrics": [m for m in rules.selected_metrics or [] if m != key],
                "ring_metrics": [m for m in rules.ring_metrics or [] if m != key],
                "weights": {m: w for m, w in (rules.weights or {}).items() if m != key},
                "n_required": rules.n_required,
                "counted_days": rules.counted_days,
            }
            for field, value in normalize_rules(current).items():
                setattr(rules, field, value)
            touched += 1
        return touched


scorecard_rules = ScorecardRulesService()
