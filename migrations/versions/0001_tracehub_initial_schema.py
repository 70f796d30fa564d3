"""tracehub_initial_schema

Creates the TraceHub core tables:
  - users, audit_events, id_sequences
  - user_requirements, system_requirements, risk_records, test_cases
  - test_steps, test_runs, test_run_cases, test_step_results, test_results
  - traces (no type columns; UNIQUE(from_id, to_id))

Tables created conditionally (IF NOT EXISTS semantics) so databases that
already received them via db.create_all() in development upgrade cleanly.

Revision ID: 0001_tracehub_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '0001_tracehub_initial'
down_revision = None
branch_labels = None
depends_on = None


def _lifecycle_columns():
    return [
        sa.Column("id", sa.String(length=20), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft",
                  comment="draft | approved"),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("modified_by", sa.Integer(), nullable=True),
        sa.Column("last_modified", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    existing = set(sa_inspect(bind).get_table_names())

    # ── Auth / audit / sequences ──────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("password_hash", sa.String(length=256), nullable=True),
            sa.Column("full_name", sa.String(length=200), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    if "audit_events" not in existing:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("event_type", sa.String(length=30), nullable=False),
            sa.Column("event_name", sa.String(length=60), nullable=False),
            sa.Column("aggregate_type", sa.String(length=40), nullable=False),
            sa.Column("aggregate_id", sa.String(length=60), nullable=False),
            sa.Column("actor_id", sa.Integer(), nullable=True),
            sa.Column("payload_json", sa.Text(), nullable=True),
            sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_aggregate", "audit_events", ["aggregate_type", "aggregate_id"])
        op.create_index("idx_audit_event_name", "audit_events", ["event_name"])
        op.create_index("idx_audit_occurred", "audit_events", ["occurred_at"])

    if "id_sequences" not in existing:
        op.create_table(
            "id_sequences",
            sa.Column("name", sa.String(length=10), nullable=False),
            sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
            sa.PrimaryKeyConstraint("name"),
        )

    # ── Lifecycle-bearing entities ────────────────────────────────────────
    for table in ("user_requirements", "system_requirements", "test_cases"):
        if table not in existing:
            op.create_table(table, *_lifecycle_columns(), sa.PrimaryKeyConstraint("id"))
            op.create_index(f"ix_{table}_deleted_at", table, ["deleted_at"])

    if "risk_records" not in existing:
        op.create_table(
            "risk_records",
            *_lifecycle_columns(),
            sa.Column("hazard", sa.Text(), nullable=False, server_default=""),
            sa.Column("harm", sa.Text(), nullable=False, server_default=""),
            sa.Column("foreseeable_sequence", sa.Text(), nullable=True),
            sa.Column("severity", sa.Integer(), nullable=False),
            sa.Column("probability_p1", sa.Integer(), nullable=False),
            sa.Column("probability_p2", sa.Integer(), nullable=False),
            sa.Column("p_total_calculation_method", sa.Text(), nullable=False, server_default=""),
            sa.Column("p_total", sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_risk_records_deleted_at", "risk_records", ["deleted_at"])

    # ── Test execution ────────────────────────────────────────────────────
    if "test_steps" not in existing:
        op.create_table(
            "test_steps",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("test_case_id", sa.String(length=20), nullable=False),
            sa.Column("step_number", sa.Integer(), nullable=False),
            sa.Column("action", sa.Text(), nullable=False),
            sa.Column("expected_result", sa.Text(), nullable=False),
            sa.ForeignKeyConstraint(["test_case_id"], ["test_cases.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("test_case_id", "step_number", name="uq_test_step_case_number"),
        )

    if "test_runs" not in existing:
        op.create_table(
            "test_runs",
            sa.Column("id", sa.String(length=20), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="not_started"),
            sa.Column("overall_result", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("approved_by", sa.Integer(), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "test_run_cases" not in existing:
        op.create_table(
            "test_run_cases",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("test_run_id", sa.String(length=20), nullable=False),
            sa.Column("test_case_id", sa.String(length=20), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="not_started"),
            sa.Column("result", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("executed_by", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["test_run_id"], ["test_runs.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["test_case_id"], ["test_cases.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("test_run_id", "test_case_id", name="uq_test_run_case"),
        )

    if "test_step_results" not in existing:
        op.create_table(
            "test_step_results",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("test_run_case_id", sa.Integer(), nullable=False),
            sa.Column("step_number", sa.Integer(), nullable=False),
            sa.Column("expected_result", sa.Text(), nullable=True),
            sa.Column("actual_result", sa.Text(), nullable=False),
            sa.Column("status", sa.String(length=10), nullable=False, comment="pass | fail"),
            sa.Column("evidence_ref", sa.String(length=200), nullable=True),
            sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("executed_by", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["test_run_case_id"], ["test_run_cases.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("test_run_case_id", "step_number", name="uq_step_result_case_step"),
        )

    if "test_results" not in existing:
        op.create_table(
            "test_results",
            sa.Column("id", sa.String(length=20), nullable=False),
            sa.Column("test_run_id", sa.String(length=20), nullable=False),
            sa.Column("test_case_id", sa.String(length=20), nullable=False),
            sa.Column("result", sa.String(length=10), nullable=False, comment="pass | fail"),
            sa.Column("executed_by", sa.Integer(), nullable=True),
            sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["test_run_id"], ["test_runs.id"]),
            sa.ForeignKeyConstraint(["test_case_id"], ["test_cases.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    # ── Traceability ──────────────────────────────────────────────────────
    if "traces" not in existing:
        op.create_table(
            "traces",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("from_id", sa.String(length=20), nullable=False),
            sa.Column("to_id", sa.String(length=20), nullable=False),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("is_system_generated", sa.Boolean(), nullable=False,
                      server_default=sa.false()),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("from_id", "to_id", name="uq_trace_from_to"),
        )
        op.create_index("ix_traces_from_id", "traces", ["from_id"])
        op.create_index("idx_trace_to", "traces", ["to_id"])


def downgrade():
    for table in (
        "traces", "test_results", "test_step_results", "test_run_cases", "test_runs",
        "test_steps", "risk_records", "test_cases", "system_requirements",
        "user_requirements", "id_sequences", "audit_events", "users",
    ):
        op.drop_table(table)
