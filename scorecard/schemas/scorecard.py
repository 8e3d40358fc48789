from datetime import date, datetime
from datetime import date as date_type
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from scorecard.models.agency import MemberRole


class ScorecardRulesBase(BaseModel):
    selected_metrics: list[str] = Field(default_factory=list)
    ring_metrics: list[str] = Field(default_factory=list)
    weights: dict[str, int] = Field(default_factory=dict)
    n_required: int | None = None
    counted_days: dict[str, bool] = Field(default_factory=dict)
    count_weekend_if_submitted: bool = True
    late_counts_for_pass: bool = False
    backfill_days: int = Field(default=7, ge=0, le=365)


class ScorecardRulesUpsert(ScorecardRulesBase):
    pass


class ScorecardRulesRead(ScorecardRulesBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    agency_id: UUID
    role: MemberRole
    created_at: datetime
    updated_at: datetime


class TargetValue(BaseModel):
    metric_key: str = Field(min_length=1, max_length=120)
    value_number: float = Field(ge=0)


class TargetsUpsert(BaseModel):
    targets: list[TargetValue]


class MemberTargetUpdate(BaseModel):
    value_number: float = Field(ge=0)


class TargetRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    agency_id: UUID
    team_member_id: UUID | None = None
    metric_key: str
    value_number: float


class MetricsDailyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    agency_id: UUID
    team_member_id: UUID
    date: date_type
    role: MemberRole
    outbound_calls: int
    talk_minutes: int
    quoted_households: int
    quoted_entity: str | None = None
    items_sold: int
    sold_policies: int
    sold_premium_cents: int
    cross_sells_uncovered: int
    mini_reviews: int
    custom_kpis: dict
    hits: int
    daily_score: int
    pass_: bool = Field(serialization_alias="pass")
    is_late: bool
    is_counted_day: bool
    streak_count: int
    kpi_version_id: UUID | None = None
    label_at_submit: str | None = None
    final_submission_id: UUID | None = None
    submitted_at: datetime | None = None


class RecomputeRequest(BaseModel):
    kpi_version_id: UUID | None = None
    label_at_submit: str | None = None
    strict: bool | None = None


class BackfillRequest(BaseModel):
    agency_id: UUID | None = None
    team_member_id: UUID | None = None
    start_date: date | None = None
    end_date: date | None = None
    only_inconsistent: bool = False
    limit: int | None = Field(default=None, ge=1)
