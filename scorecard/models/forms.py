import enum
import uuid
from datetime import UTC, date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, Enum, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scorecard.db import Base
from scorecard.models.agency import MemberRole


class FormStatus(enum.Enum):
    draft = "draft"
    published = "published"
    archived = "archived"


class FormTemplate(Base):
    __tablename__ = "form_templates"
    __table_args__ = (Index("ix_form_templates_agency_status", "agency_id", "status"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("agencies.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[MemberRole] = mapped_column(Enum(MemberRole), nullable=False, default=MemberRole.Sales)
    status: Mapped[FormStatus] = mapped_column(Enum(FormStatus), nullable=False, default=FormStatus.draft)
    schema_json: Mapped[dict | None] = mapped_column(JSON)
    settings_json: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    agency = relationship("Agency")


class Submission(Base):
    """A representative's daily form submission. Written by intake, read-only to scoring."""

    __tablename__ = "submissions"
    __table_args__ = (
        Index("ix_submissions_member_work_date", "team_member_id", "work_date"),
        Index("ix_submissions_form", "form_template_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    form_template_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("form_templates.id"), nullable=False
    )
    team_member_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("team_members.id"), nullable=False)
    work_date: Mapped[date | None] = mapped_column(Date)
    submission_date: Mapped[date] = mapped_column(Date, nullable=False, default=lambda: datetime.now(UTC).date())
    payload_json: Mapped[dict | None] = mapped_column(JSON)
    late: Mapped[bool] = mapped_column(Boolean, default=False)
    final: Mapped[bool] = mapped_column(Boolean, default=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    form_template = relationship("FormTemplate")
    team_member = relationship("TeamMember")

    @property
    def effective_date(self) -> date:
        return self.work_date or self.submission_date
