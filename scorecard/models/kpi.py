import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scorecard.db import Base
from scorecard.models.agency import MemberRole

CUSTOM_KPI_PREFIX = "custom_"


class Kpi(Base):
    __tablename__ = "kpis"
    __table_args__ = (
        UniqueConstraint("agency_id", "key", name="uq_kpis_agency_key"),
        Index("ix_kpis_agency_active", "agency_id", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("agencies.id"), nullable=False)
    key: Mapped[str] = mapped_column(String(120), nullable=False)
    type: Mapped[str] = mapped_column(String(40), nullable=False, default="number")
    role: Mapped[MemberRole | None] = mapped_column(Enum(MemberRole))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    versions = relationship("KpiVersion", back_populates="kpi", order_by="KpiVersion.valid_from")

    @property
    def is_custom(self) -> bool:
        return self.key.startswith(CUSTOM_KPI_PREFIX)


class KpiVersion(Base):
    """Display label of a KPI over a validity window; only one open-ended version per KPI."""

    __tablename__ = "kpi_versions"
    __table_args__ = (
        Index("ix_kpi_versions_kpi", "kpi_id"),
        Index(
            "uq_kpi_versions_open",
            "kpi_id",
            unique=True,
            postgresql_where=text("valid_to IS NULL"),
            sqlite_where=text("valid_to IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kpi_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("kpis.id"), nullable=False)
    label: Mapped[str] = mapped_column(String(200), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    kpi = relationship("Kpi", back_populates="versions")


class FormKpiBinding(Base):
    __tablename__ = "form_kpi_bindings"
    __table_args__ = (UniqueConstraint("form_template_id", "kpi_version_id", name="uq_form_kpi_binding"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    form_template_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("form_templates.id"), nullable=False
    )
    kpi_version_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("kpi_versions.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    form_template = relationship("FormTemplate")
    kpi_version = relationship("KpiVersion")
