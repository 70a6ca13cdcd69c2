"""ensure timestamps are epoch seconds

Revision ID: 003_ensure_seconds
Revises: 002_create_sensor_names_table
Create Date: 2026-10-08

Early gateway firmware reported millisecond timestamps. Anything further in
the future than a day when read as seconds is treated as milliseconds.
"""

from alembic import op

# revision identifiers
revision: str = "003_ensure_seconds"
down_revision: str | None = "002_create_sensor_names_table"
description: str = "Ensure all timestamps are in seconds"


def upgrade() -> None:
    op.execute(
        "UPDATE sensor_data SET timestamp = timestamp / 1000 "
        "WHERE timestamp > CAST(strftime('%s', 'now') AS INTEGER) + 86400"
    )


def downgrade() -> None:
    # Not reversible: millisecond precision is lost on upgrade.
    pass
