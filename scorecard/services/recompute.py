"""Turn a finalized submission into its persisted ``MetricsDaily`` row.

One call resolves role, rules, targets and KPI binding, scores the day,
upserts the row keyed by ``(team_member_id, date)`` and re-derives the
member's streaks, all in the caller's session and committed once.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from scorecard.config import settings
from scorecard.models.agency import MemberRole
from scorecard.models.forms import FormStatus, Submission
from scorecard.models.kpi import KpiVersion
from scorecard.models.scorecard import DEFAULT_COUNTED_DAYS, WEEKDAYS, MetricsDaily, ScorecardRules
from scorecard.services.common import coerce_uuid
from scorecard.services.custom_kpis import extract_custom_kpis
from scorecard.services.errors import ScorecardError, SubmissionNotFoundError
from scorecard.services.kpi_catalog import kpi_catalog
from scorecard.services.metric_keys import (
    achieved_value,
    canonicalize_keys,
    comparable_target,
    extract_standard_metrics,
)
from scorecard.services.rules import required_hits, scorecard_rules
from scorecard.services.streaks import streak_recalculator
from scorecard.services.targets import scorecard_targets
from scorecard.telemetry import get_tracer

logger = logging.getLogger(__name__)

# Columns never rewritten when a row for the same member/date already exists.
_PRESERVED_ON_CONFLICT = frozenset({"id", "team_member_id", "date", "created_at", "streak_count"})


@dataclass
class RecomputeResult:
    submission_id: str
    status: str
    reason: str | None = None
    metrics_daily_id: uuid.UUID | None = None
    work_date: date | None = None
    role: MemberRole | None = None
    hits: int = 0
    daily_score: int = 0
    passed: bool = False
    is_counted_day: bool = False
    is_late: bool = False
    kpi_version_id: uuid.UUID | None = None
    label_at_submit: str | None = None
    streaks: dict[date, int] = field(default_factory=dict)

    @property
    def computed(self) -> bool:
        return self.status == "computed"


def scoring_role(member_role: MemberRole | None, form_role: MemberRole | None) -> MemberRole:
    """Role whose rules score the day. Hybrid members are scored as the form's role."""
    role = member_role or MemberRole.Sales
    if role == MemberRole.Hybrid and form_role is not None:
        return form_role
    return role


def is_counted_day(rules: ScorecardRules, work_date: date) -> bool:
    weekday = WEEKDAYS[work_date.weekday()]
    counted_days = rules.counted_days or {}
    counted = bool(counted_days.get(weekday, DEFAULT_COUNTED_DAYS[weekday]))
    # A submission exists for the day, so an opted-in weekend always counts.
    if not counted and rules.count_weekend_if_submitted:
        return True
    return counted


def score_day(
    selected_metrics: list[str],
    weights: Mapping[str, Any],
    targets: Mapping[str, float],
    standard_values: Mapping[str, Any],
    custom_kpis: Mapping[str, Any],
) -> tuple[int, int]:
    """Return ``(hits, daily_score)``; a metric is hit when value >= target."""
    hits = 0
    score = 0
    for metric in selected_metrics:
        value = achieved_value(metric, standard_values, custom_kpis)
        target = comparable_target(metric, targets.get(metric, 0.0))
        if value >= target:
            hits += 1
            try:
                score += max(int(weights.get(metric) or 0), 0)
            except (TypeError, ValueError):
                logger.debug("Ignoring malformed weight %r for %s", weights.get(metric), metric)
    return hits, score


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise ScorecardError(f"Metrics upsert is not supported on dialect {dialect}")
    return insert


def upsert_metrics_daily(db: Session, values: dict[str, Any]) -> uuid.UUID:
    """Insert or overwrite the row for ``(team_member_id, date)`` in one statement.

    ``values`` is keyed by column name. Returns the row id.
    """
    insert = _insert_for(db)
    table = MetricsDaily.__table__
    stmt = insert(table).values(values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.team_member_id, table.c.date],
        set_={name: stmt.excluded[name] for name in values if name not in _PRESERVED_ON_CONFLICT},
    ).returning(table.c.id)
    return db.execute(stmt).scalar_one()


class MetricsRecomputeService:
    def recompute_submission(
        self,
        db: Session,
        submission_id: str,
        *,
        kpi_version_id: str | None = None,
        label_at_submit: str | None = None,
        strict: bool | None = None,
        cascade: bool = True,
        commit: bool = True,
    ) -> RecomputeResult:
        """Score a submission and persist its daily row.

        Raises ``SubmissionNotFoundError`` for an unknown id. Submissions that
        are not final, or whose form is not published, are skipped without
        writes. With ``commit=False`` the caller owns the transaction.
        """
        tracer = get_tracer(__name__)
        with tracer.start_as_current_span(
            "scorecard.recompute_submission",
            attributes={"scorecard.submission_id": str(submission_id)},
        ) as span:
            result = self._recompute(
                db,
                submission_id,
                kpi_version_id=kpi_version_id,
                label_at_submit=label_at_submit,
                strict=strict,
                cascade=cascade,
                commit=commit,
            )
            span.set_attribute("scorecard.status", result.status)
            if result.computed:
                span.set_attribute("scorecard.hits", result.hits)
                span.set_attribute("scorecard.pass", result.passed)
            return result

    def _load_submission(self, db: Session, submission_id: str) -> Submission:
        try:
            submission_uuid = submission_id if isinstance(submission_id, uuid.UUID) else uuid.UUID(str(submission_id))
        except (TypeError, ValueError) as exc:
            raise SubmissionNotFoundError(str(submission_id)) from exc
        submission = db.get(Submission, submission_uuid)
        if submission is None:
            raise SubmissionNotFoundError(str(submission_id))
        return submission

    def _binding(
        self,
        db: Session,
        submission: Submission,
        kpi_version_id: str | None,
        label_at_submit: str | None,
        strict: bool | None,
    ) -> tuple[uuid.UUID | None, str]:
        if kpi_version_id is None and label_at_submit is None:
            binding = kpi_catalog.resolve_binding(db, submission.form_template, strict=strict)
            return binding.kpi_version_id, binding.label

        version_uuid = None
        if kpi_version_id is not None:
            version = db.get(KpiVersion, coerce_uuid(kpi_version_id))
            if version is None:
                raise ScorecardError(f"KPI version {kpi_version_id} not found")
            version_uuid = version.id
            if label_at_submit is None:
                label_at_submit = version.label
        return version_uuid, label_at_submit

    def _recompute(
        self,
        db: Session,
        submission_id: str,
        *,
        kpi_version_id: str | None,
        label_at_submit: str | None,
        strict: bool | None,
        cascade: bool,
        commit: bool,
    ) -> RecomputeResult:
        submission = self._load_submission(db, submission_id)
        sid = str(submission.id)
        if not submission.final:
            return RecomputeResult(submission_id=sid, status="skipped", reason="not_final")
        form = submission.form_template
        if form is None or form.status != FormStatus.published:
            return RecomputeResult(submission_id=sid, status="skipped", reason="form_not_published")

        member = submission.team_member
        role = scoring_role(member.role, form.role)
        agency_id = str(member.agency_id)
        work_date = submission.effective_date

        rules = scorecard_rules.get_or_create(db, agency_id, role)
        version_id, label = self._binding(db, submission, kpi_version_id, label_at_submit, strict)

        payload = submission.payload_json or {}
        standard = extract_standard_metrics(payload)
        custom = extract_custom_kpis(form.schema_json, payload)

        selected = canonicalize_keys(rules.selected_metrics)
        targets = scorecard_targets.resolve_many(db, agency_id, str(member.id), selected)
        hits, score = score_day(selected, rules.weights or {}, targets, standard, custom)

        counted = is_counted_day(rules, work_date)
        late = bool(submission.late)
        passed = hits >= required_hits(rules)
        if late and not rules.late_counts_for_pass:
            passed = False
            score = 0

        now = datetime.now(UTC)
        values = {
            "id": uuid.uuid4(),
            "agency_id": member.agency_id,
            "team_member_id": member.id,
            "date": work_date,
            "role": role,
            **standard,
            "custom_kpis": custom,
            "hits": hits,
            "daily_score": score,
            "pass": passed,
            "is_late": late,
            "is_counted_day": counted,
            "streak_count": 0,
            "kpi_version_id": version_id,
            "label_at_submit": label,
            "final_submission_id": submission.id,
            "submitted_at": submission.submitted_at,
            "created_at": now,
            "updated_at": now,
        }
        row_id = upsert_metrics_daily(db, values)

        streaks: dict[date, int] = {}
        if cascade:
            start = work_date - timedelta(days=settings.scorecard_streak_window_days)
            latest = (
                db.query(func.max(MetricsDaily.date))
                .filter(MetricsDaily.team_member_id == member.id)
                .scalar()
            )
            streaks = streak_recalculator.recompute(db, str(member.id), start, max(work_date, latest or work_date))
        if commit:
            db.commit()
        else:
            db.flush()

        logger.info(
            "Recomputed metrics for submission=%s member=%s date=%s hits=%d score=%d pass=%s",
            sid,
            member.id,
            work_date,
            hits,
            score,
            passed,
        )
        return RecomputeResult(
            submission_id=sid,
            status="computed",
            metrics_daily_id=row_id,
            work_date=work_date,
            role=role,
            hits=hits,
            daily_score=score,
            passed=passed,
            is_counted_day=counted,
            is_late=late,
            kpi_version_id=version_id,
            label_at_submit=label,
            streaks=streaks,
        )


metrics_recompute = MetricsRecomputeService()
