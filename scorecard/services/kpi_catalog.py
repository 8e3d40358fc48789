from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from scorecard.config import settings
from scorecard.models.agency import MemberRole
from scorecard.models.forms import FormStatus, FormTemplate
from scorecard.models.kpi import CUSTOM_KPI_PREFIX, FormKpiBinding, Kpi, KpiVersion
from scorecard.models.scorecard import ScorecardRules
from scorecard.schemas.kpi import KpiCreate
from scorecard.services.common import coerce_uuid
from scorecard.services.custom_kpis import payload_candidates, schema_bindings
from scorecard.services.errors import KpiBindingMissingError
from scorecard.services.rules import scorecard_rules

logger = logging.getLogger(__name__)

UNBOUND_LABEL = "unbound"


@dataclass(frozen=True)
class KpiBindingResult:
    kpi_version_id: uuid.UUID | None
    label: str
    bound: bool


@dataclass
class KpiUsage:
    kpi_id: str
    key: str
    active_forms: list[dict] = field(default_factory=list)
    scoring_rules: list[dict] = field(default_factory=list)
    display_rules: list[dict] = field(default_factory=list)

    @property
    def is_blocked(self) -> bool:
        return bool(self.active_forms or self.scoring_rules or self.display_rules)

    def as_dict(self) -> dict:
        return {
            "kpi_id": self.kpi_id,
            "key": self.key,
            "can_remove": not self.is_blocked,
            "active_forms": self.active_forms,
            "scoring_rules": self.scoring_rules,
            "display_rules": self.display_rules,
        }


def _strict_default() -> bool:
    return settings.scorecard_binding_policy.strip().lower() == "strict"


def _form_references_kpi(form: FormTemplate, kpi: Kpi) -> bool:
    for binding in schema_bindings(form.schema_json):
        if binding.kpi_id and binding.kpi_id == str(kpi.id):
            return True
        if binding.kpi_slug == kpi.key:
            return True
    return False


class KpiCatalogService:
    def get(self, db: Session, kpi_id: str) -> Kpi:
        kpi = db.get(Kpi, coerce_uuid(kpi_id))
        if not kpi:
            raise HTTPException(status_code=404, detail="KPI not found")
        return kpi

    def list(
        self, db: Session, agency_id: str, role: MemberRole | None = None, include_inactive: bool = False
    ) -> list[Kpi]:
        query = db.query(Kpi).filter(Kpi.agency_id == coerce_uuid(agency_id))
        if not include_inactive:
            query = query.filter(Kpi.is_active.is_(True))
        if role is not None:
            query = query.filter(or_(Kpi.role == role, Kpi.role.is_(None)))
        return query.order_by(Kpi.key.asc()).all()

    def current_version(self, db: Session, kpi_id) -> KpiVersion | None:
        return (
            db.query(KpiVersion)
            .filter(KpiVersion.kpi_id == coerce_uuid(kpi_id), KpiVersion.valid_to.is_(None))
            .first()
        )

    def create(self, db: Session, agency_id: str, payload: KpiCreate) -> Kpi:
        key = (payload.key or "").strip() or f"{CUSTOM_KPI_PREFIX}{uuid.uuid4().hex[:12]}"
        kpi = Kpi(
            agency_id=coerce_uuid(agency_id),
            key=key,
            type=payload.type,
            role=payload.role,
            is_active=True,
        )
        db.add(kpi)
        try:
            db.flush()
        except IntegrityError as exc:
            db.rollback()
            raise HTTPException(status_code=409, detail=f"KPI key {key} already exists") from exc
        db.add(KpiVersion(kpi_id=kpi.id, label=payload.label.strip(), valid_from=datetime.now(UTC)))
        db.commit()
        db.refresh(kpi)
        logger.info("Created KPI %s (%s) for agency=%s", kpi.key, kpi.id, agency_id)
        return kpi

    def rename(self, db: Session, kpi_id: str, label: str) -> KpiVersion:
        """Give a KPI a new display label.

        The open version is closed and a new one opened; versions already
        referenced by metrics keep their label, and the KPI key never changes.
        """
        kpi = self.get(db, kpi_id)
        new_label = label.strip()
        if not new_label:
            raise HTTPException(status_code=400, detail="Label is required")
        current = self.current_version(db, kpi.id)
        if current and current.label == new_label:
            return current

        now = datetime.now(UTC)
        if current:
            current.valid_to = now
            db.flush()
        version = KpiVersion(kpi_id=kpi.id, label=new_label, valid_from=now)
        db.add(version)
        db.commit()
        db.refresh(version)
        return version

    def bind_form_kpis(self, db: Session, form: FormTemplate) -> list[uuid.UUID]:
        """Bind a form to the open versions of the KPIs its schema references.

        Falls back to the agency's most recent open version when the schema
        references nothing in the catalog. Flushes, does not commit.
        """
        kpis = self.list(db, str(form.agency_id))
        by_id = {str(kpi.id): kpi for kpi in kpis}
        by_key = {kpi.key: kpi for kpi in kpis}

        referenced: dict[str, Kpi] = {}
        for binding in schema_bindings(form.schema_json):
            kpi = by_id.get(binding.kpi_id or "") or by_key.get(binding.kpi_slug)
            if kpi:
                referenced[str(kpi.id)] = kpi
        for descriptor in (form.schema_json or {}).get("kpis") or []:
            if not isinstance(descriptor, dict):
                continue
            for candidate in payload_candidates(descriptor.get("key")):
                kpi = by_key.get(candidate)
                if kpi:
                    referenced[str(kpi.id)] = kpi
                    break

        version_ids: list[uuid.UUID] = []
        for kpi in referenced.values():
            version = self.current_version(db, kpi.id)
            if version:
                version_ids.append(version.id)

        if not version_ids:
            fallback = (
                db.query(KpiVersion)
                .join(Kpi, Kpi.id == KpiVersion.kpi_id)
                .filter(
                    Kpi.agency_id == form.agency_id,
                    Kpi.is_active.is_(True),
                    KpiVersion.valid_to.is_(None),
                )
                .order_by(KpiVersion.valid_from.desc())
                .first()
            )
            if fallback:
                version_ids.append(fallback.id)

        existing = {
            row[0]
            for row in db.query(FormKpiBinding.kpi_version_id)
            .filter(FormKpiBinding.form_template_id == form.id)
            .all()
        }
        for version_id in version_ids:
            if version_id in existing:
                continue
            db.add(FormKpiBinding(form_template_id=form.id, kpi_version_id=version_id))
        db.flush()
        if version_ids:
            logger.info("Bound form %s to %d KPI version(s)", form.id, len(version_ids))
        return version_ids

    def _open_binding(self, db: Session, form_template_id) -> KpiVersion | None:
        return (
            db.query(KpiVersion)
            .join(FormKpiBinding, FormKpiBinding.kpi_version_id == KpiVersion.id)
            .filter(
                FormKpiBinding.form_template_id == coerce_uuid(form_template_id),
                KpiVersion.valid_to.is_(None),
            )
            .order_by(FormKpiBinding.created_at.asc(), KpiVersion.valid_from.asc())
            .first()
        )

    def resolve_binding(self, db: Session, form: FormTemplate, strict: bool | None = None) -> KpiBindingResult:
        """KPI version and frozen label to stamp on a submission of ``form``.

        Tries the existing binding, then auto-binds. With nothing to bind,
        strict mode raises ``KpiBindingMissingError`` and lenient mode returns
        the ``unbound`` placeholder.
        """
        version = self._open_binding(db, form.id)
        if version is None:
            self.bind_form_kpis(db, form)
            version = self._open_binding(db, form.id)
        if version is not None:
            return KpiBindingResult(kpi_version_id=version.id, label=version.label, bound=True)

        if _strict_default() if strict is None else strict:
            raise KpiBindingMissingError(str(form.id))
        logger.warning("Form %s has no active KPI version; scoring with placeholder label", form.id)
        return KpiBindingResult(kpi_version_id=None, label=UNBOUND_LABEL, bound=False)

    def usage(self, db: Session, kpi_id: str) -> KpiUsage:
        """References that block removing a KPI: live forms and rules still using it."""
        kpi = self.get(db, kpi_id)
        result = KpiUsage(kpi_id=str(kpi.id), key=kpi.key)

        bound_form_ids = {
            row[0]
            for row in db.query(FormKpiBinding.form_template_id)
            .join(KpiVersion, KpiVersion.id == FormKpiBinding.kpi_version_id)
            .filter(KpiVersion.kpi_id == kpi.id)
            .all()
        }
        forms = (
            db.query(FormTemplate)
            .filter(FormTemplate.agency_id == kpi.agency_id, FormTemplate.status == FormStatus.published)
            .order_by(FormTemplate.name.asc())
            .all()
        )
        for form in forms:
            if form.id in bound_form_ids or _form_references_kpi(form, kpi):
                result.active_forms.append({"id": str(form.id), "name": form.name})

        rules_rows = (
            db.query(ScorecardRules)
            .filter(ScorecardRules.agency_id == kpi.agency_id)
            .order_by(ScorecardRules.role.asc())
            .all()
        )
        for rules in rules_rows:
            if kpi.key in (rules.selected_metrics or []):
                result.scoring_rules.append({"id": str(rules.id), "role": rules.role.value})
            if kpi.key in (rules.ring_metrics or []):
                result.display_rules.append({"id": str(rules.id), "role": rules.role.value})
        return result

    def deactivate(self, db: Session, kpi_id: str, force: bool = False) -> KpiUsage:
        """Retire a KPI. Refuses while live forms or rules reference it unless ``force``.

        Forcing strips the key from the agency's rules; forms keep their
        historical bindings and re-bind on next use.
        """
        usage = self.usage(db, kpi_id)
        if usage.is_blocked and not force:
            raise HTTPException(status_code=409, detail=usage.as_dict())

        kpi = self.get(db, kpi_id)
        if force:
            scorecard_rules.remove_metric(db, str(kpi.agency_id), kpi.key)
        current = self.current_version(db, kpi.id)
        if current:
            current.valid_to = datetime.now(UTC)
        kpi.is_active = False
        db.commit()
        logger.info("Deactivated KPI %s (%s), forced=%s", kpi.key, kpi.id, force)
        return usage


kpi_catalog = KpiCatalogService()
