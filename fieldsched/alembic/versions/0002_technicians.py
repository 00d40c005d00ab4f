"""add technicians

Revision ID: 0002_technicians
Revises: 0001_init
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


revision = "0002_technicians"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "technicians",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column("email", sa.String(length=200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_technicians_name", "technicians", ["name"])


def downgrade():
    op.drop_index("ix_technicians_name", table_name="technicians")
    op.drop_table("technicians")
