"""SQLAlchemy ORM models for the Ruuvi time-series store.

The schema itself is owned by the migrations in ruuvi_home.migrations.versions;
these mappings must stay in step with them.
"""

from sqlalchemy import REAL, Index, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class SensorReading(Base):
    __tablename__ = "sensor_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sensor_mac: Mapped[str] = mapped_column(Text, nullable=False)
    temperature: Mapped[float] = mapped_column(REAL, nullable=False)
    humidity: Mapped[float | None] = mapped_column(REAL, nullable=True)
    pressure: Mapped[float | None] = mapped_column(REAL, nullable=True)
    battery_voltage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tx_power: Mapped[int | None] = mapped_column(Integer, nullable=True)
    movement_counter: Mapped[int | None] = mapped_column(Integer, nullable=True)
    measurement_sequence: Mapped[int | None] = mapped_column(Integer, nullable=True)
    acceleration_x: Mapped[int | None] = mapped_column(Integer, nullable=True)
    acceleration_y: Mapped[int | None] = mapped_column(Integer, nullable=True)
    acceleration_z: Mapped[int | None] = mapped_column(Integer, nullable=True)
    timestamp: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_sensor_data_mac_time", "sensor_mac", "timestamp"),
        Index("idx_sensor_data_time", "timestamp"),
    )


class SensorName(Base):
    __tablename__ = "sensor_names"

    sensor_mac: Mapped[str] = mapped_column(Text, primary_key=True)
    custom_name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (Index("idx_sensor_names_updated", "updated_at"),)


class SchemaMigration(Base):
    __tablename__ = "schema_migrations"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    applied_at: Mapped[int] = mapped_column(Integer, nullable=False)
