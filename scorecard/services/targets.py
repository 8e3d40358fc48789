from __future__ import annotations

import logging
from collections.abc import Iterable

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from scorecard.models.scorecard import Target
from scorecard.schemas.scorecard import TargetsUpsert
from scorecard.services.common import coerce_uuid
from scorecard.services.metric_keys import canonical_key, lookup_keys

logger = logging.getLogger(__name__)


def _pick(rows: list[Target], metric_key: str) -> float | None:
    # Representative rows sort ahead of the agency-wide (NULL member) row.
    matching = [row for row in rows if row.metric_key == metric_key]
    matching.sort(key=lambda row: row.team_member_id is None)
    if not matching:
        return None
    return float(matching[0].value_number)


class ScorecardTargetsService:
    def _candidate_rows(
        self, db: Session, agency_id: str, team_member_id: str | None, metric_keys: Iterable[str]
    ) -> list[Target]:
        keys = sorted({key for metric in metric_keys for key in lookup_keys(metric)})
        if not keys:
            return []
        member_filter = Target.team_member_id.is_(None)
        if team_member_id:
            member_filter = or_(member_filter, Target.team_member_id == coerce_uuid(team_member_id))
        return (
            db.query(Target)
            .filter(
                Target.agency_id == coerce_uuid(agency_id),
                Target.metric_key.in_(keys),
                member_filter,
            )
            .all()
        )

    def resolve(self, db: Session, agency_id: str, team_member_id: str | None, metric_key: str) -> float:
        """Effective target for one metric; a representative row beats the agency row, else 0."""
        rows = self._candidate_rows(db, agency_id, team_member_id, [metric_key])
        return self._resolve_from_rows(rows, metric_key)

    def resolve_many(
        self, db: Session, agency_id: str, team_member_id: str | None, metric_keys: Iterable[str]
    ) -> dict[str, float]:
        keys = [canonical_key(key) for key in metric_keys]
        rows = self._candidate_rows(db, agency_id, team_member_id, keys)
        return {key: self._resolve_from_rows(rows, key) for key in keys}

    def _resolve_from_rows(self, rows: list[Target], metric_key: str) -> float:
        for candidate in lookup_keys(metric_key):
            value = _pick(rows, candidate)
            if value is not None:
                return value
        return 0.0

    def list(self, db: Session, agency_id: str, team_member_id: str | None = None) -> list[Target]:
        query = db.query(Target).filter(Target.agency_id == coerce_uuid(agency_id))
        if team_member_id:
            query = query.filter(Target.team_member_id == coerce_uuid(team_member_id))
        return query.order_by(Target.metric_key.asc()).all()

    def upsert_agency_targets(self, db: Session, agency_id: str, payload: TargetsUpsert) -> list[Target]:
        agency_uuid = coerce_uuid(agency_id)
        seen: set[str] = set()
        results: list[Target] = []
        for item in payload.targets:
            key = canonical_key(item.metric_key)
            if not key:
                raise HTTPException(status_code=400, detail="metric_key is required")
            if key in seen:
                raise HTTPException(status_code=400, detail=f"Duplicate target for {key}")
            seen.add(key)
            target = (
                db.query(Target)
                .filter(
                    Target.agency_id == agency_uuid,
                    Target.team_member_id.is_(None),
                    Target.metric_key == key,
                )
                .first()
            )
            if target:
                target.value_number = item.value_number
            else:
                target = Target(agency_id=agency_uuid, team_member_id=None, metric_key=key, value_number=item.value_number)
                db.add(target)
            results.append(target)
        db.commit()
        for target in results:
            db.refresh(target)
        return results

    def set_member_target(
        self, db: Session, agency_id: str, team_member_id: str, metric_key: str, value_number: float
    ) -> Target:
        key = canonical_key(metric_key)
        if not key:
            raise HTTPException(status_code=400, detail="metric_key is required")
        target = (
            db.query(Target)
            .filter(
                Target.agency_id == coerce_uuid(agency_id),
                Target.team_member_id == coerce_uuid(team_member_id),
                Target.metric_key == key,
            )
            .first()
        )
        if target:
            target.value_number = value_number
        else:
            target = Target(
                agency_id=coerce_uuid(agency_id),
                team_member_id=coerce_uuid(team_member_id),
                metric_key=key,
                value_number=value_number,
            )
            db.add(target)
        db.commit()
        db.refresh(target)
        return target

    def clear_member_target(self, db: Session, agency_id: str, team_member_id: str, metric_key: str) -> None:
        target = (
            db.query(Target)
            .filter(
                Target.agency_id == coerce_uuid(agency_id),
                Target.team_member_id == coerce_uuid(team_member_id),
                Target.metric_key == canonical_key(metric_key),
            )
            .first()
        )
        if not target:
            raise HTTPException(status_code=404, detail="Target not found")
        db.delete(target)
        db.commit()


scorecard_targets = ScorecardTargetsService()
