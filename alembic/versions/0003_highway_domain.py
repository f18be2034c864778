"""Dominio de rodovias y kms conocidos"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0003_highway_domain"
down_revision = "0002_detection_indexes"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "highways",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index(op.f("ix_highways_id"), "highways", ["id"], unique=False)

    op.create_table(
        "highway_kms",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("value", sa.String(length=64), nullable=False),
        sa.Column("highway_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["highway_id"], ["highways.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("highway_id", "value", name="uq_highway_kms_highway_value"),
    )
    op.create_index(op.f("ix_highway_kms_id"), "highway_kms", ["id"], unique=False)
    op.create_index(op.f("ix_highway_kms_value"), "highway_kms", ["value"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_highway_kms_value"), table_name="highway_kms")
    op.drop_index(op.f("ix_highway_kms_id"), table_name="highway_kms")
    op.drop_table("highway_kms")
    op.drop_index(op.f("ix_highways_id"), table_name="highways")
    op.drop_table("highways")
