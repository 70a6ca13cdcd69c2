"""create sensor_data table

Revision ID: 001_create_sensor_data_table
Revises:
Create Date: 2026-10-05

Creates the append-only readings table and its time indexes.
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "001_create_sensor_data_table"
down_revision: str | None = None
description: str = "Create sensor_data table for decoded readings"


def upgrade() -> None:
    op.create_table(
        "sensor_data",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("sensor_mac", sa.Text, nullable=False),
        sa.Column("temperature", sa.REAL, nullable=False),
        sa.Column("humidity", sa.REAL, nullable=True),
        sa.Column("pressure", sa.REAL, nullable=True),
        sa.Column("battery_voltage", sa.Integer, nullable=True),
        sa.Column("tx_power", sa.Integer, nullable=True),
        sa.Column("movement_counter", sa.Integer, nullable=True),
        sa.Column("measurement_sequence", sa.Integer, nullable=True),
        sa.Column("acceleration_x", sa.Integer, nullable=True),
        sa.Column("acceleration_y", sa.Integer, nullable=True),
        sa.Column("acceleration_z", sa.Integer, nullable=True),
        sa.Column("timestamp", sa.Integer, nullable=False),
    )
    op.create_index("idx_sensor_data_mac_time", "sensor_data", ["sensor_mac", "timestamp"])
    op.create_index("idx_sensor_data_time", "sensor_data", ["timestamp"])


def downgrade() -> None:
    op.drop_index("idx_sensor_data_time", table_name="sensor_data")
    op.drop_index("idx_sensor_data_mac_time", table_name="sensor_data")
    op.drop_table("sensor_data")
