"""create sensor_names table

Revision ID: 002_create_sensor_names_table
Revises: 001_create_sensor_data_table
Create Date: 2026-10-05

Operator-assigned display names, keyed by sensor MAC.
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "002_create_sensor_names_table"
down_revision: str | None = "001_create_sensor_data_table"
description: str = "Create sensor_names table for custom sensor naming"


def upgrade() -> None:
    op.create_table(
        "sensor_names",
        sa.Column("sensor_mac", sa.Text, primary_key=True),
        sa.Column("custom_name", sa.Text, nullable=False),
        sa.Column(
            "created_at",
            sa.Integer,
            nullable=False,
            server_default=sa.text("(CAST(strftime('%s', 'now') AS INTEGER))"),
        ),
        sa.Column(
            "updated_at",
            sa.Integer,
            nullable=False,
            server_default=sa.text("(CAST(strftime('%s', 'now') AS INTEGER))"),
        ),
    )
    op.create_index("idx_sensor_names_updated", "sensor_names", ["updated_at"])


def downgrade() -> None:
    op.drop_index("idx_sensor_names_updated", table_name="sensor_names")
    op.drop_table("sensor_names")
