from __future__ import annotations

from alembic import op


revision = "0002_detection_indexes"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Consultas por matrícula, por (rodovia, km) del job de vinculación y por ventana de fechas.
    op.create_index("ix_detections_plate", "detections", ["plate"], unique=False)
    op.create_index("ix_detections_highway_km", "detections", ["highway", "km"], unique=False)
    op.create_index("ix_detections_date_time", "detections", ["date", "time"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_detections_date_time", table_name="detections")
    op.drop_index("ix_detections_highway_km", table_name="detections")
    op.drop_index("ix_detections_plate", table_name="detections")
