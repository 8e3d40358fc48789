from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from scorecard.api.deps import get_db
from scorecard.models.forms import FormTemplate
from scorecard.models.scorecard import MetricsDaily
from scorecard.schemas.kpi import FormBindingRead, KpiCreate, KpiLabelUpdate, KpiRead, KpiVersionRead
from scorecard.schemas.scorecard import (
    BackfillRequest,
    MemberTargetUpdate,
    MetricsDailyRead,
    RecomputeRequest,
    ScorecardRulesRead,
    ScorecardRulesUpsert,
    TargetRead,
    TargetsUpsert,
)
from scorecard.services.backfill import BackfillCriteria, metrics_backfill
from scorecard.services.common import coerce_uuid
from scorecard.services.errors import KpiBindingMissingError, ScorecardError, SubmissionNotFoundError
from scorecard.services.kpi_catalog import kpi_catalog
from scorecard.services.recompute import RecomputeResult, metrics_recompute
from scorecard.services.rules import scorecard_rules
from scorecard.services.targets import scorecard_targets

router = APIRouter(prefix="/scorecards", tags=["scorecards"])


def _recompute_payload(result: RecomputeResult) -> dict:
    return {
        "submission_id": result.submission_id,
        "status": result.status,
        "reason": result.reason,
        "metrics_daily_id": str(result.metrics_daily_id) if result.metrics_daily_id else None,
        "date": result.work_date.isoformat() if result.work_date else None,
        "role": result.role.value if result.role else None,
        "hits": result.hits,
        "daily_score": result.daily_score,
        "pass": result.passed,
        "is_counted_day": result.is_counted_day,
        "is_late": result.is_late,
        "kpi_version_id": str(result.kpi_version_id) if result.kpi_version_id else None,
        "label_at_submit": result.label_at_submit,
    }


# --- Rules ---


@router.get("/rules/{agency_id}/{role}", response_model=ScorecardRulesRead)
def get_rules(agency_id: str, role: str, db: Session = Depends(get_db)):
    rules = scorecard_rules.get_or_create(db, agency_id, role)
    db.commit()
    db.refresh(rules)
    return rules


@router.put("/rules/{agency_id}/{role}", response_model=ScorecardRulesRead)
def put_rules(agency_id: str, role: str, payload: ScorecardRulesUpsert, db: Session = Depends(get_db)):
    return scorecard_rules.upsert(db, agency_id, role, payload)


# --- Targets ---


@router.get("/targets/{agency_id}", response_model=list[TargetRead])
def list_targets(agency_id: str, team_member_id: str | None = Query(None), db: Session = Depends(get_db)):
    return scorecard_targets.list(db, agency_id, team_member_id)


@router.put("/targets/{agency_id}", response_model=list[TargetRead])
def put_agency_targets(agency_id: str, payload: TargetsUpsert, db: Session = Depends(get_db)):
    return scorecard_targets.upsert_agency_targets(db, agency_id, payload)


@router.put("/targets/{agency_id}/members/{member_id}/{metric_key}", response_model=TargetRead)
def put_member_target(
    agency_id: str, member_id: str, metric_key: str, payload: MemberTargetUpdate, db: Session = Depends(get_db)
):
    return scorecard_targets.set_member_target(db, agency_id, member_id, metric_key, payload.value_number)


@router.delete("/targets/{agency_id}/members/{member_id}/{metric_key}", status_code=204)
def delete_member_target(agency_id: str, member_id: str, metric_key: str, db: Session = Depends(get_db)):
    scorecard_targets.clear_member_target(db, agency_id, member_id, metric_key)


# --- KPI catalog ---


@router.get("/kpis/{agency_id}", response_model=list[KpiRead])
def list_kpis(
    agency_id: str,
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
):
    return kpi_catalog.list(db, agency_id, include_inactive=include_inactive)


@router.post("/kpis/{agency_id}", response_model=KpiRead, status_code=201)
def create_kpi(agency_id: str, payload: KpiCreate, db: Session = Depends(get_db)):
    return kpi_catalog.create(db, agency_id, payload)


@router.patch("/kpis/item/{kpi_id}/label", response_model=KpiVersionRead)
def rename_kpi(kpi_id: str, payload: KpiLabelUpdate, db: Session = Depends(get_db)):
    return kpi_catalog.rename(db, kpi_id, payload.label)


@router.get("/kpis/item/{kpi_id}/usage")
def kpi_usage(kpi_id: str, db: Session = Depends(get_db)):
    return kpi_catalog.usage(db, kpi_id).as_dict()


@router.delete("/kpis/item/{kpi_id}")
def delete_kpi(kpi_id: str, force: bool = Query(False), db: Session = Depends(get_db)):
    usage = kpi_catalog.deactivate(db, kpi_id, force=force)
    return {"deactivated": True, "forced": force, "usage": usage.as_dict()}


@router.post("/forms/{form_id}/bind", response_model=FormBindingRead)
def bind_form(form_id: str, db: Session = Depends(get_db)):
    form = db.get(FormTemplate, coerce_uuid(form_id))
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    version_ids = kpi_catalog.bind_form_kpis(db, form)
    db.commit()
    return FormBindingRead(form_template_id=form.id, kpi_version_ids=version_ids)


# --- Scoring ---


@router.post("/submissions/{submission_id}/recompute")
def recompute_submission(
    submission_id: str, payload: RecomputeRequest | None = None, db: Session = Depends(get_db)
):
    payload = payload or RecomputeRequest()
    try:
        result = metrics_recompute.recompute_submission(
            db,
            submission_id,
            kpi_version_id=payload.kpi_version_id,
            label_at_submit=payload.label_at_submit,
            strict=payload.strict,
        )
    except SubmissionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except KpiBindingMissingError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ScorecardError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _recompute_payload(result)


@router.post("/backfill")
def backfill(payload: BackfillRequest, db: Session = Depends(get_db)):
    if payload.start_date and payload.end_date and payload.start_date > payload.end_date:
        raise HTTPException(status_code=400, detail="start_date must be on or before end_date")
    criteria = BackfillCriteria(
        agency_id=str(payload.agency_id) if payload.agency_id else None,
        team_member_id=str(payload.team_member_id) if payload.team_member_id else None,
        start_date=payload.start_date,
        end_date=payload.end_date,
        only_inconsistent=payload.only_inconsistent,
        limit=payload.limit,
    )
    return metrics_backfill.run(db, criteria).as_dict()


@router.get("/metrics/{team_member_id}", response_model=list[MetricsDailyRead])
def member_metrics(
    team_member_id: str,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
):
    end = end_date or datetime.now(UTC).date()
    start = start_date or end - timedelta(days=30)
    return (
        db.query(MetricsDaily)
        .filter(
            MetricsDaily.team_member_id == coerce_uuid(team_member_id),
            MetricsDaily.date >= start,
            MetricsDaily.date <= end,
        )
        .order_by(MetricsDaily.date.asc())
        .all()
    )
