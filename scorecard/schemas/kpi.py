from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from scorecard.models.agency import MemberRole


class KpiCreate(BaseModel):
    label: str = Field(default="New Custom KPI", min_length=1, max_length=200)
    type: str = Field(default="number", max_length=40)
    role: MemberRole | None = None
    key: str | None = Field(default=None, max_length=120)


class KpiLabelUpdate(BaseModel):
    label: str = Field(min_length=1, max_length=200)


class KpiVersionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kpi_id: UUID
    label: str
    valid_from: datetime
    valid_to: datetime | None = None


class KpiRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    agency_id: UUID
    key: str
    type: str
    role: MemberRole | None = None
    is_active: bool
    is_custom: bool
    created_at: datetime


class FormBindingRead(BaseModel):
    form_template_id: UUID
    kpi_version_ids: list[UUID]
