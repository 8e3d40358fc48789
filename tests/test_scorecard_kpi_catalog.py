"""Tests for the KPI catalog, form bindings and KPI lifecycle."""

import pytest
from fastapi import HTTPException

from scorecard.models import FormKpiBinding, FormStatus, KpiVersion, MemberRole
from scorecard.schemas.kpi import KpiCreate
from scorecard.services.errors import KpiBindingMissingError
from scorecard.services.kpi_catalog import UNBOUND_LABEL, kpi_catalog
from scorecard.services.rules import scorecard_rules
from tests.factories import make_form, make_kpi, set_rules

# =============================================================================
# Create / rename
# =============================================================================


def test_create_custom_kpi_generates_slug_and_version(db_session, agency):
    kpi = kpi_catalog.create(db_session, str(agency.id), KpiCreate(label="Life Apps"))

    assert kpi.key.startswith("custom_")
    assert kpi.is_custom is True
    version = kpi_catalog.current_version(db_session, kpi.id)
    assert version.label == "Life Apps"
    assert version.valid_to is None


def test_create_duplicate_key_conflicts(db_session, agency):
    kpi_catalog.create(db_session, str(agency.id), KpiCreate(label="Calls", key="outbound_calls"))
    with pytest.raises(HTTPException) as exc:
        kpi_catalog.create(db_session, str(agency.id), KpiCreate(label="Calls again", key="outbound_calls"))
    assert exc.value.status_code == 409


def test_rename_opens_new_version_and_keeps_key(db_session, agency):
    kpi, original = make_kpi(db_session, agency, "custom_abc123", "Reviews")

    renamed = kpi_catalog.rename(db_session, str(kpi.id), "Google Reviews")

    db_session.refresh(original)
    db_session.refresh(kpi)
    assert original.valid_to is not None
    assert original.label == "Reviews"
    assert renamed.label == "Google Reviews"
    assert renamed.valid_to is None
    assert kpi.key == "custom_abc123"
    open_versions = (
        db_session.query(KpiVersion).filter(KpiVersion.kpi_id == kpi.id, KpiVersion.valid_to.is_(None)).count()
    )
    assert open_versions == 1


def test_rename_to_same_label_is_noop(db_session, agency):
    kpi, original = make_kpi(db_session, agency, "custom_same", "Reviews")
    assert kpi_catalog.rename(db_session, str(kpi.id), " Reviews ").id == original.id


def test_get_unknown_kpi_is_404(db_session):
    with pytest.raises(HTTPException) as exc:
        kpi_catalog.get(db_session, "5b0f5a49-7f0e-4a0c-9d4e-0d6b9b0f1a2c")
    assert exc.value.status_code == 404


# =============================================================================
# Binding resolution
# =============================================================================


def test_resolve_binding_auto_binds_schema_slug(db_session, agency):
    kpi, version = make_kpi(db_session, agency, "custom_reviews", "Reviews")
    form = make_form(
        db_session,
        agency,
        schema={"kpis": [{"key": "reviews", "selectedKpiSlug": "custom_reviews"}]},
    )

    binding = kpi_catalog.resolve_binding(db_session, form)

    assert binding.bound is True
    assert binding.kpi_version_id == version.id
    assert binding.label == "Reviews"
    assert db_session.query(FormKpiBinding).filter(FormKpiBinding.form_template_id == form.id).count() == 1


def test_resolve_binding_falls_back_to_agency_version(db_session, agency, sales_form, kpi_version):
    binding = kpi_catalog.resolve_binding(db_session, sales_form)

    assert binding.kpi_version_id == kpi_version.id
    assert binding.label == "Outbound Calls"


def test_resolve_binding_follows_rename(db_session, agency):
    kpi, _ = make_kpi(db_session, agency, "custom_reviews", "Reviews")
    form = make_form(db_session, agency, schema={"kpis": [{"key": "r", "selectedKpiSlug": "custom_reviews"}]})
    kpi_catalog.resolve_binding(db_session, form)

    renamed = kpi_catalog.rename(db_session, str(kpi.id), "Five Star Reviews")
    binding = kpi_catalog.resolve_binding(db_session, form)

    assert binding.kpi_version_id == renamed.id
    assert binding.label == "Five Star Reviews"


def test_resolve_binding_lenient_placeholder(db_session, sales_form):
    binding = kpi_catalog.resolve_binding(db_session, sales_form, strict=False)

    assert binding.bound is False
    assert binding.kpi_version_id is None
    assert binding.label == UNBOUND_LABEL


def test_resolve_binding_strict_raises(db_session, sales_form):
    with pytest.raises(KpiBindingMissingError):
        kpi_catalog.resolve_binding(db_session, sales_form, strict=True)


# =============================================================================
# Usage / deactivate
# =============================================================================


def test_usage_reports_forms_and_rules(db_session, agency):
    kpi, _ = make_kpi(db_session, agency, "custom_reviews", "Reviews")
    make_form(
        db_session,
        agency,
        name="Live form",
        schema={"kpis": [{"key": "r", "selectedKpiSlug": "custom_reviews"}]},
    )
    make_form(
        db_session,
        agency,
        name="Draft form",
        status=FormStatus.draft,
        schema={"kpis": [{"key": "r", "selectedKpiSlug": "custom_reviews"}]},
    )
    set_rules(db_session, agency, MemberRole.Sales, selected_metrics=["custom_reviews"], ring_metrics=["custom_reviews"])

    usage = kpi_catalog.usage(db_session, str(kpi.id))

    assert [form["name"] for form in usage.active_forms] == ["Live form"]
    assert [rule["role"] for rule in usage.scoring_rules] == ["Sales"]
    assert [rule["role"] for rule in usage.display_rules] == ["Sales"]
    assert usage.as_dict()["can_remove"] is False


def test_deactivate_refuses_while_referenced(db_session, agency):
    kpi, _ = make_kpi(db_session, agency, "custom_reviews", "Reviews")
    set_rules(db_session, agency, MemberRole.Sales, selected_metrics=["custom_reviews"])

    with pytest.raises(HTTPException) as exc:
        kpi_catalog.deactivate(db_session, str(kpi.id))
    assert exc.value.status_code == 409
    assert exc.value.detail["scoring_rules"]


def test_force_deactivate_strips_rules_and_closes_version(db_session, agency):
    kpi, version = make_kpi(db_session, agency, "custom_reviews", "Reviews")
    set_rules(
        db_session,
        agency,
        MemberRole.Sales,
        selected_metrics=["outbound_calls", "custom_reviews"],
        ring_metrics=["custom_reviews"],
        weights={"custom_reviews": 5},
    )

    kpi_catalog.deactivate(db_session, str(kpi.id), force=True)

    db_session.refresh(kpi)
    db_session.refresh(version)
    rules = scorecard_rules.get(db_session, str(agency.id), MemberRole.Sales)
    assert kpi.is_active is False
    assert version.valid_to is not None
    assert rules.selected_metrics == ["outbound_calls"]
    assert rules.ring_metrics == []
    assert "custom_reviews" not in rules.weights


def test_deactivate_unused_kpi(db_session, agency):
    kpi, _ = make_kpi(db_session, agency, "custom_unused", "Unused")
    usage = kpi_catalog.deactivate(db_session, str(kpi.id))

    assert usage.is_blocked is False
    assert kpi_catalog.list(db_session, str(agency.id)) == []
    assert len(kpi_catalog.list(db_session, str(agency.id), include_inactive=True)) == 1
