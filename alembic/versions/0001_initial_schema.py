"""Initial schema for radar-sync: locations and detections"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("concessionaire", sa.String(length=255), nullable=True),
        sa.Column("plaza", sa.String(length=255), nullable=True),
        sa.Column("highway", sa.String(length=64), nullable=True),
        sa.Column("km", sa.String(length=64), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True, comment="WGS84"),
        sa.Column("longitude", sa.Float(), nullable=True, comment="WGS84"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_locations_id"), "locations", ["id"], unique=False)

    op.create_table(
        "detections",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.Time(), nullable=False),
        sa.Column("plate", sa.String(length=7), nullable=False),
        sa.Column("plaza", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("highway", sa.String(length=64), nullable=False),
        sa.Column("km", sa.String(length=64), nullable=False),
        sa.Column("direction", sa.String(length=32), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_detections_id"), "detections", ["id"], unique=False)
    op.create_index(op.f("ix_detections_location_id"), "detections", ["location_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_detections_location_id"), table_name="detections")
    op.drop_index(op.f("ix_detections_id"), table_name="detections")
    op.drop_table("detections")
    op.drop_index(op.f("ix_locations_id"), table_name="locations")
    op.drop_table("locations")
