"""Tests for schema-driven custom KPI extraction."""

from scorecard.services.custom_kpis import extract_custom_kpis, payload_candidates, schema_bindings


def _schema(*descriptors):
    return {"kpis": list(descriptors)}


def test_schema_bindings_skip_descriptors_without_slug():
    schema = _schema(
        {"key": "calls", "label": "Calls"},
        {"key": "reviews", "selectedKpiSlug": "custom_reviews", "selectedKpiId": "k-1"},
        "garbage",
    )
    bindings = schema_bindings(schema)

    assert len(bindings) == 1
    assert bindings[0].field_key == "reviews"
    assert bindings[0].kpi_slug == "custom_reviews"
    assert bindings[0].kpi_id == "k-1"
    assert bindings[0].is_custom is True


def test_schema_bindings_tolerate_missing_schema():
    assert schema_bindings(None) == []
    assert schema_bindings({"kpis": "nope"}) == []


def test_payload_candidates_strip_preselected_prefix():
    assert payload_candidates("preselected_kpi_2_reviews") == ["preselected_kpi_2_reviews", "reviews"]
    assert payload_candidates("reviews") == ["reviews"]
    assert payload_candidates(None) == []


def test_value_stored_under_slug_not_field_key():
    schema = _schema({"key": "field_17", "selectedKpiSlug": "custom_reviews"})
    assert extract_custom_kpis(schema, {"field_17": "4"}) == {"custom_reviews": 4.0}


def test_preselected_field_falls_back_to_stripped_name():
    schema = _schema({"key": "preselected_kpi_1_life_apps", "selectedKpiSlug": "custom_life_apps"})
    assert extract_custom_kpis(schema, {"life_apps": 2}) == {"custom_life_apps": 2.0}


def test_declared_key_wins_over_stripped_name():
    schema = _schema({"key": "preselected_kpi_1_life_apps", "selectedKpiSlug": "custom_life_apps"})
    payload = {"preselected_kpi_1_life_apps": 5, "life_apps": 2}
    assert extract_custom_kpis(schema, payload) == {"custom_life_apps": 5.0}


def test_standard_slugs_are_not_custom_values():
    schema = _schema({"key": "outbound_calls", "selectedKpiSlug": "outbound_calls"})
    assert extract_custom_kpis(schema, {"outbound_calls": 10}) == {}


def test_malformed_value_does_not_abort_other_kpis():
    schema = _schema(
        {"key": "a", "selectedKpiSlug": "custom_a"},
        {"key": "b", "selectedKpiSlug": "custom_b"},
    )
    assert extract_custom_kpis(schema, {"a": "lots", "b": "3.5"}) == {"custom_b": 3.5}


def test_missing_values_are_omitted():
    schema = _schema({"key": "a", "selectedKpiSlug": "custom_a"})
    assert extract_custom_kpis(schema, {"a": ""}) == {}
    assert extract_custom_kpis(schema, None) == {}
