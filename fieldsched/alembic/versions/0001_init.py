"""init schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # -------------------------
    # Reference data
    # -------------------------
    op.create_table(
        "job_sites",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("street_number", sa.String(length=20), nullable=True),
        sa.Column("street", sa.String(length=200), nullable=True),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("zip", sa.String(length=10), nullable=True),
        sa.Column("county", sa.String(length=120), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_job_sites_name", "job_sites", ["name"])

    op.create_table(
        "recurring_services",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_site_id", sa.Integer(), sa.ForeignKey("job_sites.id"), nullable=False),
        sa.Column("service_type", sa.String(length=120), nullable=False),
        sa.Column("frequency", sa.String(length=40), nullable=False),
        sa.Column("last_service_date", sa.Date(), nullable=True),
        sa.Column("day_constraint", sa.String(length=12), nullable=True),
        sa.Column("time_constraint", sa.String(length=40), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("office_notes", sa.Text(), nullable=True),
        sa.Column("manifest_county", sa.String(length=120), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_recurring_services_job_site_id", "recurring_services", ["job_site_id"])
    op.create_index("ix_recurring_services_is_active", "recurring_services", ["is_active"])

    # -------------------------
    # Ledgers
    # -------------------------
    op.create_table(
        "service_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("recorded_at", sa.Date(), nullable=False),
        sa.Column("batch_id", sa.String(length=40), nullable=True),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("recurring_services.id"), nullable=False),
        sa.Column("job_site_id", sa.Integer(), nullable=True),
        sa.Column("job_site_name", sa.String(length=200), nullable=True),
        sa.Column("service_type", sa.String(length=120), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("event_type", sa.String(length=20), nullable=False),
        sa.Column("action_date", sa.Date(), nullable=True),
        sa.Column("performed_by", sa.String(length=200), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_index("ix_service_events_batch_id", "service_events", ["batch_id"])
    op.create_index("ix_service_events_event_type", "service_events", ["event_type"])
    op.create_index("ix_service_events_service_scheduled", "service_events", ["service_id", "scheduled_date"])

    op.create_table(
        "manifest_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("recurring_services.id"), nullable=False),
        sa.Column("batch_id", sa.String(length=40), nullable=True),
        sa.Column("job_site_id", sa.Integer(), nullable=True),
        sa.Column("job_site_name", sa.String(length=200), nullable=True),
        sa.Column("address", sa.String(length=300), nullable=True),
        sa.Column("service_type", sa.String(length=120), nullable=True),
        sa.Column("county", sa.String(length=120), nullable=False),
        sa.Column("date_completed", sa.Date(), nullable=False),
        sa.Column("quarter", sa.String(length=10), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_manifest_entries_service_id", "manifest_entries", ["service_id"])
    op.create_index("ix_manifest_entries_quarter_county", "manifest_entries", ["quarter", "county"])

    # -------------------------
    # Locks + audit
    # -------------------------
    op.create_table(
        "processing_locks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("lock_key", sa.String(length=80), nullable=False),
        sa.Column("owner", sa.String(length=120), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("lock_key", name="uq_processing_locks_lock_key"),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor", sa.String(length=200), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=80), nullable=False),
        sa.Column("entity_id", sa.String(length=80), nullable=False),
        sa.Column("before_json", sa.Text(), nullable=True),
        sa.Column("after_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"])


def downgrade():
    op.drop_index("ix_audit_events_entity", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_table("processing_locks")

    op.drop_index("ix_manifest_entries_quarter_county", table_name="manifest_entries")
    op.drop_index("ix_manifest_entries_service_id", table_name="manifest_entries")
    op.drop_table("manifest_entries")

    op.drop_index("ix_service_events_service_scheduled", table_name="service_events")
    op.drop_index("ix_service_events_event_type", table_name="service_events")
    op.drop_index("ix_service_events_batch_id", table_name="service_events")
    op.drop_table("service_events")

    op.drop_index("ix_recurring_services_is_active", table_name="recurring_services")
    op.drop_index("ix_recurring_services_job_site_id", table_name="recurring_services")
    op.drop_table("recurring_services")

    op.drop_index("ix_job_sites_name", table_name="job_sites")
    op.drop_table("job_sites")
