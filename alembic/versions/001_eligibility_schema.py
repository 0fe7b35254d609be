"""Eligibility schema — conditions, statuses, evaluation logs, notifications, audit log.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    # ── Condition catalog (authored by the admin workflow) ─────────────

    op.create_table(
        "eligibility_conditions",
        sa.Column("target_type", sa.String(20), nullable=False, comment="TargetType enum value"),
        sa.Column("target_code", sa.String(20), nullable=False, comment="S01..S06, BOMBE, ..."),
        sa.Column("condition_type", sa.String(50), nullable=False, comment="ConditionType enum value"),
        sa.Column("condition_key", sa.String(100), nullable=False),
        sa.Column("condition_label", sa.Text(), nullable=False),
        sa.Column("condition_description", sa.Text()),
        sa.Column("operator", sa.String(30), nullable=False),
        sa.Column("required_value", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("weight", sa.Integer(), nullable=False),
        sa.Column("is_mandatory", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("target_type", "target_code", "condition_key", name="uq_condition_target_key"),
        sa.CheckConstraint("weight >= 0 AND weight <= 100", name="ck_condition_weight_range"),
    )
    op.create_index("ix_eligibility_conditions_target_code", "eligibility_conditions", ["target_code"])
    op.create_index("ix_eligibility_conditions_is_active", "eligibility_conditions", ["is_active"])

    # ── Per-(customer, target) state ───────────────────────────────────

    op.create_table(
        "customer_eligibility_status",
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("target_type", sa.String(20), nullable=False, comment="ACCOUNT or SERVICE"),
        sa.Column("target_code", sa.String(20), nullable=False),
        sa.Column("is_eligible", sa.Boolean(), nullable=False),
        sa.Column("is_activated", sa.Boolean(), nullable=False),
        sa.Column("eligibility_score", sa.Numeric(5, 2), nullable=False),
        sa.Column("progress_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("conditions_met", postgresql.JSONB(astext_type=sa.Text())),
        sa.Column("conditions_missing", postgresql.JSONB(astext_type=sa.Text())),
        sa.Column("estimated_days_to_eligibility", sa.Integer()),
        sa.Column("last_evaluated_at", sa.DateTime(timezone=True)),
        sa.Column("eligible_since", sa.DateTime(timezone=True)),
        sa.Column("activated_at", sa.DateTime(timezone=True)),
        sa.Column("last_notified_at", sa.DateTime(timezone=True)),
        sa.Column("last_progress_milestone", sa.Integer(), nullable=False),
        sa.Column("auto_activate_when_eligible", sa.Boolean(), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("customer_id", "target_type", "target_code", name="uq_eligibility_customer_target"),
        sa.CheckConstraint("eligibility_score >= 0 AND eligibility_score <= 100", name="ck_eligibility_score_range"),
        sa.CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100", name="ck_eligibility_progress_range"
        ),
    )
    op.create_index("ix_customer_eligibility_status_customer_id", "customer_eligibility_status", ["customer_id"])
    op.create_index("ix_customer_eligibility_status_is_eligible", "customer_eligibility_status", ["is_eligible"])

    # ── Append-only evaluation trail ───────────────────────────────────

    op.create_table(
        "eligibility_evaluation_logs",
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("target_type", sa.String(20), nullable=False),
        sa.Column("target_code", sa.String(20), nullable=False),
        sa.Column("previous_eligibility", sa.Boolean(), comment="NULL on first evaluation"),
        sa.Column("new_eligibility", sa.Boolean(), nullable=False),
        sa.Column("previous_score", sa.Numeric(5, 2)),
        sa.Column("new_score", sa.Numeric(5, 2), nullable=False),
        sa.Column("conditions_evaluated", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("trigger_event", sa.String(30), nullable=False, comment="TriggerEvent enum value"),
        sa.Column("action_taken", sa.String(20), nullable=False, comment="ActionTaken enum value"),
        sa.Column("notification_id", postgresql.UUID(as_uuid=True)),
        sa.Column("evaluated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_eligibility_evaluation_logs_customer_id", "eligibility_evaluation_logs", ["customer_id"])
    op.create_index("ix_eligibility_evaluation_logs_evaluated_at", "eligibility_evaluation_logs", ["evaluated_at"])
    op.create_index("ix_evaluation_logs_target", "eligibility_evaluation_logs", ["target_type", "target_code"])

    # ── Customer notification feed ─────────────────────────────────────

    op.create_table(
        "customer_notifications",
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("notification_type", sa.String(20), nullable=False),
        sa.Column("priority", sa.String(10), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("action_label", sa.Text()),
        sa.Column("action_url", sa.Text()),
        sa.Column("icon", sa.String(50)),
        sa.Column("target_type", sa.String(20)),
        sa.Column("target_code", sa.String(20)),
        sa.Column("display_duration_seconds", sa.Integer(), nullable=False),
        sa.Column("is_repeatable", sa.Boolean(), nullable=False),
        sa.Column("repeat_interval_hours", sa.Integer()),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("is_dismissed", sa.Boolean(), nullable=False),
        sa.Column("is_action_taken", sa.Boolean(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True)),
        sa.Column("dismissed_at", sa.DateTime(timezone=True)),
        sa.Column("action_taken_at", sa.DateTime(timezone=True)),
        sa.Column("scheduled_for", sa.DateTime(timezone=True)),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("last_shown_at", sa.DateTime(timezone=True)),
        sa.Column("shown_count", sa.Integer(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text())),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_customer_notifications_customer_id", "customer_notifications", ["customer_id"])
    op.create_index("ix_customer_notifications_notification_type", "customer_notifications", ["notification_type"])
    op.create_index("ix_customer_notifications_is_read", "customer_notifications", ["is_read"])
    op.create_index("ix_customer_notifications_scheduled_for", "customer_notifications", ["scheduled_for"])

    # ── System event trail ─────────────────────────────────────────────

    op.create_table(
        "audit_log",
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("customer_id", sa.Integer()),
        sa.Column("actor_id", sa.String(100), comment="Customer ID, admin ID, or 'system'"),
        sa.Column("actor_role", sa.String(50), comment="customer, admin, system, job"),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text())),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_event_type", "audit_log", ["event_type"])
    op.create_index("ix_audit_log_customer_id", "audit_log", ["customer_id"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("customer_notifications")
    op.drop_table("eligibility_evaluation_logs")
    op.drop_table("customer_eligibility_status")
    op.drop_table("eligibility_conditions")
