"""create scorecard tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    member_role = postgresql.ENUM("Sales", "Service", "Hybrid", "Manager", name="memberrole", create_type=False)
    member_role.create(op.get_bind(), checkfirst=True)

    form_status = postgresql.ENUM("draft", "published", "archived", name="formstatus", create_type=False)
    form_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "agencies",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "team_members",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("role", member_role, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["agency_id"], ["agencies.id"]),
    )
    op.create_index("ix_team_members_agency", "team_members", ["agency_id"])

    op.create_table(
        "form_templates",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("role", member_role, nullable=False),
        sa.Column("status", form_status, nullable=False),
        sa.Column("schema_json", sa.JSON(), nullable=True),
        sa.Column("settings_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["agency_id"], ["agencies.id"]),
    )
    op.create_index("ix_form_templates_agency_status", "form_templates", ["agency_id", "status"])

    op.create_table(
        "submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("form_template_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("team_member_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=True),
        sa.Column("submission_date", sa.Date(), nullable=False),
        sa.Column("payload_json", sa.JSON(), nullable=True),
        sa.Column("late", sa.Boolean(), nullable=True, server_default=sa.text("false")),
        sa.Column("final", sa.Boolean(), nullable=True, server_default=sa.text("false")),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["form_template_id"], ["form_templates.id"]),
        sa.ForeignKeyConstraint(["team_member_id"], ["team_members.id"]),
    )
    op.create_index("ix_submissions_member_work_date", "submissions", ["team_member_id", "work_date"])
    op.create_index("ix_submissions_form", "submissions", ["form_template_id"])

    op.create_table(
        "kpis",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("key", sa.String(120), nullable=False),
        sa.Column("type", sa.String(40), nullable=False, server_default="number"),
        sa.Column("role", member_role, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["agency_id"], ["agencies.id"]),
        sa.UniqueConstraint("agency_id", "key", name="uq_kpis_agency_key"),
    )
    op.create_index("ix_kpis_agency_active", "kpis", ["agency_id", "is_active"])

    op.create_table(
        "kpi_versions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("kpi_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("label", sa.String(200), nullable=False),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["kpi_id"], ["kpis.id"]),
    )
    op.create_index("ix_kpi_versions_kpi", "kpi_versions", ["kpi_id"])
    op.create_index(
        "uq_kpi_versions_open",
        "kpi_versions",
        ["kpi_id"],
        unique=True,
        postgresql_where=sa.text("valid_to IS NULL"),
    )

    op.create_table(
        "form_kpi_bindings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("form_template_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kpi_version_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["form_template_id"], ["form_templates.id"]),
        sa.ForeignKeyConstraint(["kpi_version_id"], ["kpi_versions.id"]),
        sa.UniqueConstraint("form_template_id", "kpi_version_id", name="uq_form_kpi_binding"),
    )

    op.create_table(
        "scorecard_rules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", member_role, nullable=False),
        sa.Column("selected_metrics", sa.JSON(), nullable=False),
        sa.Column("ring_metrics", sa.JSON(), nullable=False),
        sa.Column("weights", sa.JSON(), nullable=False),
        sa.Column("n_required", sa.Integer(), nullable=True),
        sa.Column("counted_days", sa.JSON(), nullable=False),
        sa.Column("count_weekend_if_submitted", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("late_counts_for_pass", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("backfill_days", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["agency_id"], ["agencies.id"]),
        sa.UniqueConstraint("agency_id", "role", name="uq_scorecard_rules_agency_role"),
    )

    op.create_table(
        "targets",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("team_member_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("metric_key", sa.String(120), nullable=False),
        sa.Column("value_number", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["agency_id"], ["agencies.id"]),
        sa.ForeignKeyConstraint(["team_member_id"], ["team_members.id"]),
        sa.UniqueConstraint("agency_id", "team_member_id", "metric_key", name="uq_targets_agency_member_metric"),
    )
    op.create_index(
        "uq_targets_agency_default",
        "targets",
        ["agency_id", "metric_key"],
        unique=True,
        postgresql_where=sa.text("team_member_id IS NULL"),
    )

    op.create_table(
        "metrics_daily",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("team_member_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("role", member_role, nullable=False),
        sa.Column("outbound_calls", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("talk_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quoted_households", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quoted_entity", sa.String(80), nullable=True),
        sa.Column("items_sold", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sold_policies", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sold_premium_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("cross_sells_uncovered", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mini_reviews", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("custom_kpis", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("hits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("daily_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pass", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_late", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_counted_day", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("streak_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("kpi_version_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("label_at_submit", sa.String(200), nullable=True),
        sa.Column("final_submission_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["agency_id"], ["agencies.id"]),
        sa.ForeignKeyConstraint(["team_member_id"], ["team_members.id"]),
        sa.ForeignKeyConstraint(["kpi_version_id"], ["kpi_versions.id"]),
        sa.ForeignKeyConstraint(["final_submission_id"], ["submissions.id"]),
        sa.UniqueConstraint("team_member_id", "date", name="uq_metrics_daily_member_date"),
    )
    op.create_index("ix_metrics_daily_agency_date", "metrics_daily", ["agency_id", "date"])
    op.create_index("ix_metrics_daily_member_date", "metrics_daily", ["team_member_id", "date"])


def downgrade() -> None:
    op.drop_index("ix_metrics_daily_member_date", table_name="metrics_daily")
    op.drop_index("ix_metrics_daily_agency_date", table_name="metrics_daily")
    op.drop_table("metrics_daily")

    op.drop_index("uq_targets_agency_default", table_name="targets")
    op.drop_table("targets")

    op.drop_table("scorecard_rules")
    op.drop_table("form_kpi_bindings")

    op.drop_index("uq_kpi_versions_open", table_name="kpi_versions")
    op.drop_index("ix_kpi_versions_kpi", table_name="kpi_versions")
    op.drop_table("kpi_versions")

    op.drop_index("ix_kpis_agency_active", table_name="kpis")
    op.drop_table("kpis")

    op.drop_index("ix_submissions_form", table_name="submissions")
    op.drop_index("ix_submissions_member_work_date", table_name="submissions")
    op.drop_table("submissions")

    op.drop_index("ix_form_templates_agency_status", table_name="form_templates")
    op.drop_table("form_templates")

    op.drop_index("ix_team_members_agency", table_name="team_members")
    op.drop_table("team_members")
    op.drop_table("agencies")

    sa.Enum(name="formstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="memberrole").drop(op.get_bind(), checkfirst=True)
