"""Tests for target resolution and admin writes."""

import pytest
from fastapi import HTTPException

from scorecard.schemas.scorecard import TargetsUpsert, TargetValue
from scorecard.services.targets import scorecard_targets
from tests.factories import make_member, set_target


def test_member_target_overrides_agency_target(db_session, agency, sales_member):
    set_target(db_session, agency, "outbound_calls", 50)
    set_target(db_session, agency, "outbound_calls", 80, member=sales_member)

    assert scorecard_targets.resolve(db_session, str(agency.id), str(sales_member.id), "outbound_calls") == 80.0


def test_agency_target_applies_to_other_members(db_session, agency, sales_member):
    other = make_member(db_session, agency, name="Other Rep")
    set_target(db_session, agency, "outbound_calls", 50)
    set_target(db_session, agency, "outbound_calls", 80, member=sales_member)

    assert scorecard_targets.resolve(db_session, str(agency.id), str(other.id), "outbound_calls") == 50.0


def test_missing_target_is_zero(db_session, agency, sales_member):
    assert scorecard_targets.resolve(db_session, str(agency.id), str(sales_member.id), "mini_reviews") == 0.0


def test_target_stored_under_legacy_key_is_found(db_session, agency, sales_member):
    set_target(db_session, agency, "quoted_count", 6)

    assert scorecard_targets.resolve(db_session, str(agency.id), str(sales_member.id), "quoted_households") == 6.0


def test_canonical_target_beats_legacy_target(db_session, agency, sales_member):
    set_target(db_session, agency, "sold_items", 1)
    set_target(db_session, agency, "items_sold", 3)

    assert scorecard_targets.resolve(db_session, str(agency.id), str(sales_member.id), "items_sold") == 3.0


def test_resolve_many(db_session, agency, sales_member):
    set_target(db_session, agency, "outbound_calls", 50)
    set_target(db_session, agency, "talk_minutes", 100)
    set_target(db_session, agency, "talk_minutes", 120, member=sales_member)

    targets = scorecard_targets.resolve_many(
        db_session, str(agency.id), str(sales_member.id), ["outbound_calls", "talk_minutes", "custom_x"]
    )
    assert targets == {"outbound_calls": 50.0, "talk_minutes": 120.0, "custom_x": 0.0}


def test_upsert_agency_targets_updates_in_place(db_session, agency):
    scorecard_targets.upsert_agency_targets(
        db_session, str(agency.id), TargetsUpsert(targets=[TargetValue(metric_key="outbound_calls", value_number=40)])
    )
    rows = scorecard_targets.upsert_agency_targets(
        db_session,
        str(agency.id),
        TargetsUpsert(
            targets=[
                TargetValue(metric_key="outbound_calls", value_number=45),
                TargetValue(metric_key="sold_items", value_number=2),
            ]
        ),
    )

    assert {row.metric_key: float(row.value_number) for row in rows} == {"outbound_calls": 45.0, "items_sold": 2.0}
    assert len(scorecard_targets.list(db_session, str(agency.id))) == 2


def test_upsert_agency_targets_rejects_duplicates(db_session, agency):
    payload = TargetsUpsert(
        targets=[
            TargetValue(metric_key="items_sold", value_number=2),
            TargetValue(metric_key="sold_items", value_number=3),
        ]
    )
    with pytest.raises(HTTPException) as exc:
        scorecard_targets.upsert_agency_targets(db_session, str(agency.id), payload)
    assert exc.value.status_code == 400


def test_set_and_clear_member_target(db_session, agency, sales_member):
    target = scorecard_targets.set_member_target(db_session, str(agency.id), str(sales_member.id), "talk_minutes", 90)
    assert target.team_member_id == sales_member.id

    updated = scorecard_targets.set_member_target(
        db_session, str(agency.id), str(sales_member.id), "talk_minutes", 95
    )
    assert updated.id == target.id
    assert float(updated.value_number) == 95.0

    scorecard_targets.clear_member_target(db_session, str(agency.id), str(sales_member.id), "talk_minutes")
    assert scorecard_targets.list(db_session, str(agency.id), str(sales_member.id)) == []


def test_clear_missing_member_target_is_404(db_session, agency, sales_member):
    with pytest.raises(HTTPException) as exc:
        scorecard_targets.clear_member_target(db_session, str(agency.id), str(sales_member.id), "talk_minutes")
    assert exc.value.status_code == 404
