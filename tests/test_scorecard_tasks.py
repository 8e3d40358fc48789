"""Tests for scorecard Celery tasks."""

from datetime import UTC, datetime

import pytest

from scorecard.models import MetricsDaily
from scorecard.services.errors import SubmissionNotFoundError
from scorecard.tasks import scorecards as scorecard_tasks
from tests.factories import make_submission


@pytest.fixture
def task_session(db_session, monkeypatch):
    monkeypatch.setattr(scorecard_tasks, "SessionLocal", lambda: db_session)
    return db_session


def test_recompute_task_scores_submission(task_session, sales_member, sales_form, kpi_version, monday):
    submission = make_submission(task_session, sales_form, sales_member, monday, {"outbound_calls": 4})
    member_id = sales_member.id

    result = scorecard_tasks.recompute_submission_metrics(str(submission.id))

    assert result["status"] == "computed"
    assert result["pass"] is True
    assert task_session.query(MetricsDaily).filter(MetricsDaily.team_member_id == member_id).count() == 1


def test_recompute_task_reraises_unknown_submission(task_session):
    with pytest.raises(SubmissionNotFoundError):
        scorecard_tasks.recompute_submission_metrics("8d0b7cf4-0f5f-4b8e-9a3c-2f1f8f3e6a11")


def test_backfill_task_rejects_inverted_range(task_session, agency):
    with pytest.raises(ValueError):
        scorecard_tasks.backfill_metrics(str(agency.id), "2026-03-10", "2026-03-01")


def test_backfill_recent_task(task_session, agency, sales_member, sales_form, kpi_version):
    make_submission(task_session, sales_form, sales_member, datetime.now(UTC).date(), {})

    result = scorecard_tasks.backfill_recent_metrics(str(agency.id))

    assert result["processed"] == 1
    assert result["failed"] == 0


def test_task_names():
    assert scorecard_tasks.recompute_submission_metrics.name == "scorecard.tasks.scorecards.recompute_submission_metrics"
    assert scorecard_tasks.backfill_metrics.name == "scorecard.tasks.scorecards.backfill_metrics"
