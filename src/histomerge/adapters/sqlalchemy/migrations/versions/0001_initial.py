"""Initial output tables.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

BATCH_STATUS = ("RUNNING", "SUCCEEDED", "FAILED", "CANCELLED")
MATCH_METHOD = ("EXACT", "ONE_SIDED_PRIMARY", "ONE_SIDED_FALLBACK", "FUZZY", "NONE")
REVIEW_REASON = (
    "MISSING_KEY",
    "FUZZY_MATCH",
    "KEY_COLLISION_SUSPECTED",
    "HISTORY_CONSISTENCY",
)


def upgrade() -> None:
    op.create_table(
        "history_version",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("master_id", sa.String(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("version_fields", sa.Text(), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_current", sa.Boolean(), nullable=False),
        sa.Column("opened_batch_id", sa.String(), nullable=False),
        sa.Column("closed_batch_id", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_history_version"),
        sa.UniqueConstraint(
            "entity_type",
            "master_id",
            "version_number",
            name="uq_history_version_history_version_entity_type",
        ),
    )
    op.create_index(
        "ix_history_version_master",
        "history_version",
        ["entity_type", "master_id", "valid_from"],
    )
    op.create_index(
        "uq_history_version_current",
        "history_version",
        ["entity_type", "master_id"],
        unique=True,
        sqlite_where=sa.text("is_current = 1"),
        postgresql_where=sa.text("is_current"),
    )

    op.create_table(
        "process_instance",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("process_type", sa.String(), nullable=False),
        sa.Column("process_id", sa.String(), nullable=False),
        sa.Column("created_batch_id", sa.String(), nullable=False),
        sa.Column("updated_batch_id", sa.String(), nullable=False),
        sa.Column("slots", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column("durations", sa.Text(), nullable=False),
        sa.Column("is_closed", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_process_instance"),
        sa.UniqueConstraint(
            "process_type",
            "process_id",
            name="uq_process_instance_process_instance_process_type",
        ),
    )

    op.create_table(
        "batch_run",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("batch_id", sa.String(), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("batch_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*BATCH_STATUS, name="batchstatus", native_enum=False),
            nullable=False,
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("records_read", sa.Integer(), nullable=False),
        sa.Column("groups_resolved", sa.Integer(), nullable=False),
        sa.Column("conflicts_logged", sa.Integer(), nullable=False),
        sa.Column("rows_written", sa.Integer(), nullable=False),
        sa.Column("rows_rejected", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_batch_run"),
        sa.UniqueConstraint(
            "batch_id", "entity_type", name="uq_batch_run_batch_run_batch_id"
        ),
    )

    op.create_table(
        "canonical_record",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("master_id", sa.String(), nullable=False),
        sa.Column("batch_id", sa.String(), nullable=False),
        sa.Column("fields", sa.Text(), nullable=False),
        sa.Column("source_of_each_field", sa.Text(), nullable=False),
        sa.Column("quality_score", sa.Integer(), nullable=False),
        sa.Column("quality_issues", sa.Text(), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column(
            "match_method",
            sa.Enum(*MATCH_METHOD, name="matchmethod", native_enum=False),
            nullable=False,
        ),
        sa.Column("match_confidence", sa.Integer(), nullable=False),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_canonical_record"),
        sa.UniqueConstraint(
            "entity_type",
            "batch_id",
            "master_id",
            name="uq_canonical_record_canonical_record_entity_type",
        ),
    )

    op.create_table(
        "conflict_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("master_id", sa.String(), nullable=False),
        sa.Column("field_name", sa.String(), nullable=False),
        sa.Column("batch_id", sa.String(), nullable=False),
        sa.Column("primary_value", sa.Text(), nullable=True),
        sa.Column("fallback_value", sa.Text(), nullable=True),
        sa.Column("resolved_value", sa.Text(), nullable=True),
        sa.Column("resolution_rule", sa.String(), nullable=False),
        sa.Column("logged_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_conflict_log"),
        sa.UniqueConstraint(
            "batch_id",
            "entity_type",
            "master_id",
            "field_name",
            name="uq_conflict_log_conflict_log_batch_id",
        ),
    )

    op.create_table(
        "review_item",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("master_id", sa.String(), nullable=False),
        sa.Column(
            "reason",
            sa.Enum(*REVIEW_REASON, name="reviewreason", native_enum=False),
            nullable=False,
        ),
        sa.Column("batch_id", sa.String(), nullable=False),
        sa.Column("detail", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_review_item"),
        sa.UniqueConstraint(
            "batch_id",
            "entity_type",
            "master_id",
            "reason",
            name="uq_review_item_review_item_batch_id",
        ),
    )


def downgrade() -> None:
    op.drop_table("review_item")
    op.drop_table("conflict_log")
    op.drop_table("canonical_record")
    op.drop_table("batch_run")
    op.drop_table("process_instance")
    op.drop_index("uq_history_version_current", table_name="history_version")
    op.drop_index("ix_history_version_master", table_name="history_version")
    op.drop_table("history_version")
