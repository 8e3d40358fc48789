import uuid
from datetime import UTC, datetime
from datetime import date as date_type

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scorecard.db import Base
from scorecard.models.agency import MemberRole

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DEFAULT_COUNTED_DAYS = {
    "monday": True,
    "tuesday": True,
    "wednesday": True,
    "thursday": True,
    "friday": True,
    "saturday": False,
    "sunday": False,
}


class ScorecardRules(Base):
    __tablename__ = "scorecard_rules"
    __table_args__ = (UniqueConstraint("agency_id", "role", name="uq_scorecard_rules_agency_role"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("agencies.id"), nullable=False)
    role: Mapped[MemberRole] = mapped_column(Enum(MemberRole), nullable=False)
    selected_metrics: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    ring_metrics: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    weights: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    n_required: Mapped[int | None] = mapped_column(Integer)
    counted_days: Mapped[dict] = mapped_column(JSON, nullable=False, default=lambda: dict(DEFAULT_COUNTED_DAYS))
    count_weekend_if_submitted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    late_counts_for_pass: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    backfill_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )


class Target(Base):
    __tablename__ = "targets"
    __table_args__ = (
        UniqueConstraint("agency_id", "team_member_id", "metric_key", name="uq_targets_agency_member_metric"),
        # NULL members are distinct under the constraint above; one agency-wide row per metric.
        Index(
            "uq_targets_agency_default",
            "agency_id",
            "metric_key",
            unique=True,
            postgresql_where=text("team_member_id IS NULL"),
            sqlite_where=text("team_member_id IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("agencies.id"), nullable=False)
    team_member_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("team_members.id"))
    metric_key: Mapped[str] = mapped_column(String(120), nullable=False)
    value_number: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )


class MetricsDaily(Base):
    __tablename__ = "metrics_daily"
    __table_args__ = (
        UniqueConstraint("team_member_id", "date", name="uq_metrics_daily_member_date"),
        Index("ix_metrics_daily_agency_date", "agency_id", "date"),
        Index("ix_metrics_daily_member_date", "team_member_id", "date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("agencies.id"), nullable=False)
    team_member_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("team_members.id"), nullable=False)
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    role: Mapped[MemberRole] = mapped_column(Enum(MemberRole), nullable=False, default=MemberRole.Sales)

    outbound_calls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    talk_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quoted_households: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quoted_entity: Mapped[str | None] = mapped_column(String(80))
    items_sold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sold_policies: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sold_premium_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    cross_sells_uncovered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mini_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    custom_kpis: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    hits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pass_: Mapped[bool] = mapped_column("pass", Boolean, nullable=False, default=False)
    is_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_counted_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    streak_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    kpi_version_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("kpi_versions.id"))
    label_at_submit: Mapped[str | None] = mapped_column(String(200))
    final_submission_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("submissions.id"))
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    team_member = relationship("TeamMember")
    kpi_version = relationship("KpiVersion")
