"""Re-run scoring over historical submissions.

Used after rules, targets or KPI catalog edits, and to heal days whose
``MetricsDaily`` row is missing or stale. Every submission is recomputed in
its own savepoint and committed on its own, so one bad submission never
rolls back the rest of the batch.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from scorecard.config import settings
from scorecard.models.agency import TeamMember
from scorecard.models.forms import FormStatus, FormTemplate, Submission
from scorecard.models.scorecard import MetricsDaily, ScorecardRules
from scorecard.services.common import coerce_uuid
from scorecard.services.recompute import metrics_recompute
from scorecard.telemetry import get_tracer

logger = logging.getLogger(__name__)

DEFAULT_BACKFILL_DAYS = 7


@dataclass(frozen=True)
class BackfillCriteria:
    agency_id: str | None = None
    team_member_id: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    only_inconsistent: bool = False
    limit: int | None = None
    strict: bool | None = None


@dataclass
class BackfillResult:
    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": self.errors,
            "duration_seconds": self.duration_seconds,
        }


def _effective_date_column():
    return func.coalesce(Submission.work_date, Submission.submission_date)


class MetricsBackfillService:
    def select_submissions(self, db: Session, criteria: BackfillCriteria) -> list[uuid.UUID]:
        """Final submissions of published forms matching ``criteria``, oldest day first."""
        effective_date = _effective_date_column()
        query = (
            db.query(Submission.id, Submission.team_member_id, effective_date)
            .join(FormTemplate, FormTemplate.id == Submission.form_template_id)
            .join(TeamMember, TeamMember.id == Submission.team_member_id)
            .filter(Submission.final.is_(True), FormTemplate.status == FormStatus.published)
        )
        if criteria.agency_id:
            query = query.filter(TeamMember.agency_id == coerce_uuid(criteria.agency_id))
        if criteria.team_member_id:
            query = query.filter(Submission.team_member_id == coerce_uuid(criteria.team_member_id))
        if criteria.start_date:
            query = query.filter(effective_date >= criteria.start_date)
        if criteria.end_date:
            query = query.filter(effective_date <= criteria.end_date)
        rows = query.order_by(effective_date.asc(), Submission.submitted_at.asc(), Submission.id.asc()).all()

        if criteria.only_inconsistent:
            rows = self._inconsistent(db, rows)

        limit = settings.scorecard_backfill_limit if criteria.limit is None else criteria.limit
        return [row[0] for row in rows[:limit]]

    def _inconsistent(self, db: Session, rows: list) -> list:
        # Only the last final submission of a member's day owns that day's row.
        latest: dict[tuple, tuple] = {}
        for row in rows:
            latest[(row[1], row[2])] = row
        if not latest:
            return []

        member_ids = {member_id for member_id, _ in latest}
        dates = [day for _, day in latest]
        existing = {
            (metrics.team_member_id, metrics.date): metrics.final_submission_id
            for metrics in db.query(MetricsDaily.team_member_id, MetricsDaily.date, MetricsDaily.final_submission_id)
            .filter(
                MetricsDaily.team_member_id.in_(member_ids),
                MetricsDaily.date >= min(dates),
                MetricsDaily.date <= max(dates),
            )
            .all()
        }
        return [row for key, row in latest.items() if existing.get(key) != row[0]]

    def run(self, db: Session, criteria: BackfillCriteria) -> BackfillResult:
        tracer = get_tracer(__name__)
        with tracer.start_as_current_span(
            "scorecard.backfill",
            attributes={
                "scorecard.agency_id": str(criteria.agency_id or ""),
                "scorecard.only_inconsistent": criteria.only_inconsistent,
            },
        ) as span:
            result = self._run(db, criteria)
            span.set_attribute("scorecard.processed", result.processed)
            span.set_attribute("scorecard.failed", result.failed)
            return result

    def _run(self, db: Session, criteria: BackfillCriteria) -> BackfillResult:
        start_time = datetime.now(UTC)
        result = BackfillResult()
        submission_ids = self.select_submissions(db, criteria)
        logger.info(
            "Backfilling %d submission(s) agency=%s start=%s end=%s only_inconsistent=%s",
            len(submission_ids),
            criteria.agency_id,
            criteria.start_date,
            criteria.end_date,
            criteria.only_inconsistent,
        )

        for submission_id in submission_ids:
            result.processed += 1
            savepoint = db.begin_nested()
            try:
                outcome = metrics_recompute.recompute_submission(
                    db, str(submission_id), strict=criteria.strict, commit=False
                )
                savepoint.commit()
                db.commit()
            except Exception as e:
                savepoint.rollback()
                logger.error("Failed to backfill submission %s: %s", submission_id, e)
                result.failed += 1
                result.errors.append({"submission_id": str(submission_id), "error": str(e)})
                continue
            if outcome.computed:
                result.succeeded += 1
            else:
                result.skipped += 1

        result.duration_seconds = (datetime.now(UTC) - start_time).total_seconds()
        logger.info(
            "Backfill finished: processed=%d succeeded=%d skipped=%d failed=%d in %.2fs",
            result.processed,
            result.succeeded,
            result.skipped,
            result.failed,
            result.duration_seconds,
        )
        return result

    def backfill_last_n_days(
        self, db: Session, agency_id: str, days: int | None = None, today: date | None = None
    ) -> BackfillResult:
        """Recompute the agency's most recent days.

        ``days`` defaults to the largest ``backfill_days`` among the agency's rules.
        """
        if days is None:
            configured = (
                db.query(func.max(ScorecardRules.backfill_days))
                .filter(ScorecardRules.agency_id == coerce_uuid(agency_id))
                .scalar()
            )
            days = int(configured) if configured is not None else DEFAULT_BACKFILL_DAYS
        end = today or datetime.now(UTC).date()
        criteria = BackfillCriteria(
            agency_id=agency_id,
            start_date=end - timedelta(days=max(days, 0)),
            end_date=end,
        )
        return self.run(db, criteria)


metrics_backfill = MetricsBackfillService()
