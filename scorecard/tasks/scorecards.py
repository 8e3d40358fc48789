from __future__ import annotations

import logging
from datetime import date

from scorecard.celery_app import celery_app
from scorecard.db import SessionLocal
from scorecard.services.backfill import BackfillCriteria, metrics_backfill
from scorecard.services.recompute import metrics_recompute

logger = logging.getLogger(__name__)


def _parse_iso_date(value: object | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value))
    except (TypeError, ValueError):
        return None


@celery_app.task(name="scorecard.tasks.scorecards.recompute_submission_metrics")
def recompute_submission_metrics(submission_id: str) -> dict:
    """Score a submission once it is finalized."""
    session = SessionLocal()
    try:
        result = metrics_recompute.recompute_submission(session, submission_id)
        return {
            "submission_id": result.submission_id,
            "status": result.status,
            "reason": result.reason,
            "hits": result.hits,
            "daily_score": result.daily_score,
            "pass": result.passed,
        }
    except Exception:
        session.rollback()
        logger.exception("Failed to recompute metrics for submission %s", submission_id)
        raise
    finally:
        session.close()


@celery_app.task(name="scorecard.tasks.scorecards.backfill_metrics")
def backfill_metrics(
    agency_id: str | None = None,
    start_date_iso: str | None = None,
    end_date_iso: str | None = None,
    only_inconsistent: bool = False,
) -> dict:
    session = SessionLocal()
    try:
        start_date = _parse_iso_date(start_date_iso)
        end_date = _parse_iso_date(end_date_iso)
        if start_date and end_date and start_date > end_date:
            raise ValueError("Invalid backfill range")
        criteria = BackfillCriteria(
            agency_id=agency_id,
            start_date=start_date,
            end_date=end_date,
            only_inconsistent=only_inconsistent,
        )
        return metrics_backfill.run(session, criteria).as_dict()
    except Exception:
        session.rollback()
        logger.exception("Failed to backfill metrics for agency %s", agency_id)
        raise
    finally:
        session.close()


@celery_app.task(name="scorecard.tasks.scorecards.backfill_recent_metrics")
def backfill_recent_metrics(agency_id: str) -> dict:
    session = SessionLocal()
    try:
        return metrics_backfill.backfill_last_n_days(session, agency_id).as_dict()
    except Exception:
        session.rollback()
        logger.exception("Failed to backfill recent metrics for agency %s", agency_id)
        raise
    finally:
        session.close()
