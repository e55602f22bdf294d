"""create_audit_events_table

Revision ID: 3f9c2a71b8d4
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "3f9c2a71b8d4"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        # Actor snapshot
        sa.Column("actor_id", sa.String(255), nullable=False),
        sa.Column("actor_role", sa.String(20), nullable=False),
        sa.Column("actor_name", sa.String(255), nullable=False),
        sa.Column("actor_email", sa.String(255), nullable=False),
        # Action and target
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("resource_type", sa.String(30), nullable=True),
        sa.Column("resource_id", sa.String(255), nullable=True),
        sa.Column("resource_name", sa.String(500), nullable=True),
        sa.Column("related_student_id", sa.String(255), nullable=True),
        sa.Column("related_class_id", sa.String(255), nullable=True),
        # Request context
        sa.Column("ip_address", sa.String(64), nullable=False),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("request_method", sa.String(10), nullable=True),
        sa.Column("request_url", sa.Text, nullable=True),
        sa.Column("request_headers", sa.JSON, nullable=True),
        sa.Column("request_id", sa.String(255), nullable=True),
        sa.Column("response_status", sa.Integer, nullable=True),
        sa.Column("response_time_ms", sa.Float, nullable=True),
        sa.Column("session_id", sa.String(255), nullable=True),
        sa.Column("device_info", sa.String(500), nullable=True),
        sa.Column("location", sa.JSON, nullable=True),
        # Change payload
        sa.Column("old_values", sa.JSON, nullable=True),
        sa.Column("new_values", sa.JSON, nullable=True),
        sa.Column("changed_fields", sa.JSON, nullable=False),
        sa.Column("details", sa.JSON, nullable=True),
        sa.Column("tags", sa.JSON, nullable=False),
        # Classification
        sa.Column("risk_level", sa.String(10), nullable=False),
        sa.Column("is_suspicious", sa.Boolean, nullable=False),
        sa.Column("suspicious_reason", sa.Text, nullable=True),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("error_code", sa.String(100), nullable=True),
        # Compliance and retention
        sa.Column("is_compliance_relevant", sa.Boolean, nullable=False),
        sa.Column("compliance_type", sa.String(30), nullable=True),
        sa.Column("retention_period_days", sa.Integer, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_index("ix_audit_events_actor_timestamp", "audit_events", ["actor_id", "timestamp"])
    op.create_index("ix_audit_events_action_timestamp", "audit_events", ["action", "timestamp"])
    op.create_index("ix_audit_events_resource", "audit_events", ["resource_type", "resource_id"])
    op.create_index(
        "ix_audit_events_student_timestamp", "audit_events", ["related_student_id", "timestamp"]
    )
    op.create_index("ix_audit_events_ip_address", "audit_events", ["ip_address"])
    op.create_index("ix_audit_events_timestamp", "audit_events", ["timestamp"])
    op.create_index(
        "ix_audit_events_risk_suspicious", "audit_events", ["risk_level", "is_suspicious"]
    )
    op.create_index("ix_audit_events_status", "audit_events", ["status"])
    op.create_index("ix_audit_events_expires_at", "audit_events", ["expires_at"])


def downgrade() -> None:
    for name in (
        "ix_audit_events_expires_at",
        "ix_audit_events_status",
        "ix_audit_events_risk_suspicious",
        "ix_audit_events_timestamp",
        "ix_audit_events_ip_address",
        "ix_audit_events_student_timestamp",
        "ix_audit_events_resource",
        "ix_audit_events_action_timestamp",
        "ix_audit_events_actor_timestamp",
    ):
        op.drop_index(name, table_name="audit_events")

    op.drop_table("audit_events")
