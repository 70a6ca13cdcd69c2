"""Time-series store: reading persistence, sensor aliases and aggregation."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass

from sqlalchemy import Integer, cast, delete, desc, func, insert, select, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from ruuvi_home.health import store_write_failures
from ruuvi_home.models import SensorName, SensorReading as SensorReadingRow
from ruuvi_home.schemas import (
    AggregatedBucket,
    LatestReading,
    RawReading,
    SensorNameOut,
    SensorReading,
)
from ruuvi_home.utils.timestamps import Clock, epoch_now, is_number

logger = logging.getLogger(__name__)

_MAC_STRIP_RE = re.compile(r"[^a-f0-9:-]")
_HEX_RE = re.compile(r"[a-f0-9]")

AGGREGATED_LIMIT = 2000
RAW_LIMIT = 10000


@dataclass(frozen=True)
class RangeWindow:
    lookback_hours: int
    bucket_seconds: int


# lookback window and aggregation bucket width per time range
TIME_RANGES: dict[str, RangeWindow] = {
    "hour": RangeWindow(1, 300),
    "day": RangeWindow(24, 3600),
    "week": RangeWindow(168, 21600),
    "month": RangeWindow(720, 86400),
    "year": RangeWindow(8760, 2592000),
}


class InvalidTimeRange(ValueError):
    """Raised for a time range outside TIME_RANGES."""


def resolve_time_range(time_range: str) -> RangeWindow:
    window = TIME_RANGES.get(time_range) if isinstance(time_range, str) else None
    if window is None:
        raise InvalidTimeRange(f"Invalid time range: {time_range!r}")
    return window


def sanitize_mac(mac: str) -> str:
    """Lowercase and drop anything that is not hex or a separator."""
    return _MAC_STRIP_RE.sub("", mac.lower())


def _round(value: float | None) -> float | None:
    return None if value is None else round(value, 2)


class TimeSeriesStore:
    """Append-only reading storage on top of the SQLite engine.

    Writes are at-most-once: a reading that fails validation or insertion is
    logged and lost, never retried.
    """

    def __init__(self, engine: AsyncEngine, clock: Clock = time.time):
        self.engine = engine
        self._clock = clock

    def _since(self, window: RangeWindow) -> int:
        return epoch_now(self._clock) - window.lookback_hours * 3600

    # --- Readings ---

    async def save(self, reading: SensorReading) -> bool:
        """Insert one reading. Returns False (after logging) if it was dropped."""
        if not isinstance(reading.sensor_mac, str) or not reading.sensor_mac:
            logger.warning("Dropping reading with invalid sensor MAC: %r", reading.sensor_mac)
            store_write_failures.inc()
            return False
        if not is_number(reading.temperature):
            logger.warning("Dropping reading with invalid temperature: %r", reading.temperature)
            store_write_failures.inc()
            return False
        if not is_number(reading.timestamp) or reading.timestamp <= 0:
            logger.warning("Dropping reading with invalid timestamp: %r", reading.timestamp)
            store_write_failures.inc()
            return False

        values = reading.model_dump()
        values["sensor_mac"] = sanitize_mac(reading.sensor_mac)
        if not _HEX_RE.search(values["sensor_mac"]):
            logger.warning("Dropping reading with invalid sensor MAC: %r", reading.sensor_mac)
            store_write_failures.inc()
            return False
        values["timestamp"] = int(reading.timestamp)

        try:
            async with AsyncSession(self.engine) as session:
                async with session.begin():
                    await session.execute(insert(SensorReadingRow).values(**values))
        except Exception:
            logger.exception("Database insert failed for sensor %s", values["sensor_mac"])
            store_write_failures.inc()
            return False
        return True

    async def query_aggregated(self, time_range: str) -> list[AggregatedBucket]:
        """Bucketed avg/min/max per sensor over the range's lookback window."""
        window = resolve_time_range(time_range)
        width = window.bucket_seconds
        bucket = (cast(SensorReadingRow.timestamp / width, Integer) * width).label("bucket")

        stmt = (
            select(
                SensorReadingRow.sensor_mac,
                bucket,
                func.avg(SensorReadingRow.temperature).label("avg_temperature"),
                func.min(SensorReadingRow.temperature).label("min_temperature"),
                func.max(SensorReadingRow.temperature).label("max_temperature"),
                func.avg(SensorReadingRow.humidity).label("avg_humidity"),
                func.min(SensorReadingRow.humidity).label("min_humidity"),
                func.max(SensorReadingRow.humidity).label("max_humidity"),
                func.count().label("data_points"),
            )
            .where(SensorReadingRow.timestamp > self._since(window))
            .group_by(SensorReadingRow.sensor_mac, bucket)
            .order_by(bucket, SensorReadingRow.sensor_mac)
            .limit(AGGREGATED_LIMIT)
        )

        async with AsyncSession(self.engine) as session:
            rows = (await session.execute(stmt)).all()

        return [
            AggregatedBucket(
                sensor_mac=row.sensor_mac,
                timestamp=int(row.bucket),
                avg_temperature=_round(row.avg_temperature),
                min_temperature=_round(row.min_temperature),
                max_temperature=_round(row.max_temperature),
                avg_humidity=_round(row.avg_humidity),
                min_humidity=_round(row.min_humidity),
                max_humidity=_round(row.max_humidity),
                data_points=row.data_points,
            )
            for row in rows
        ]

    async def query_raw(self, time_range: str) -> list[RawReading]:
        window = resolve_time_range(time_range)
        stmt = (
            select(
                SensorReadingRow.sensor_mac,
                SensorReadingRow.temperature,
                SensorReadingRow.humidity,
                SensorReadingRow.timestamp,
            )
            .where(SensorReadingRow.timestamp > self._since(window))
            .order_by(SensorReadingRow.timestamp)
            .limit(RAW_LIMIT)
        )
        async with AsyncSession(self.engine) as session:
            rows = (await session.execute(stmt)).all()
        return [
            RawReading(
                sensor_mac=row.sensor_mac,
                temperature=row.temperature,
                humidity=row.humidity,
                timestamp=row.timestamp,
            )
            for row in rows
        ]

    async def latest_per_sensor(self) -> list[LatestReading]:
        """Most recent reading of every sensor, in one ranked query."""
        ranked = select(
            SensorReadingRow.sensor_mac,
            SensorReadingRow.temperature,
            SensorReadingRow.humidity,
            SensorReadingRow.timestamp,
            SensorReadingRow.pressure,
            SensorReadingRow.battery_voltage,
            SensorReadingRow.tx_power,
            func.row_number()
            .over(
                partition_by=SensorReadingRow.sensor_mac,
                order_by=desc(SensorReadingRow.timestamp),
            )
            .label("rn"),
        ).subquery("ranked")

        stmt = select(ranked).where(ranked.c.rn == 1).order_by(ranked.c.sensor_mac)
        now = epoch_now(self._clock)

        async with AsyncSession(self.engine) as session:
            rows = (await session.execute(stmt)).all()

        return [
            LatestReading(
                sensor_mac=row.sensor_mac,
                temperature=_round(row.temperature),
                humidity=_round(row.humidity),
                timestamp=row.timestamp,
                pressure=_round(row.pressure),
                battery_voltage=row.battery_voltage,
                tx_power=row.tx_power,
                seconds_ago=now - row.timestamp,
            )
            for row in rows
        ]

    async def retention_cleanup(self, days_to_keep: int = 365) -> int:
        """Delete readings older than ``days_to_keep`` days. Returns rows removed."""
        cutoff = epoch_now(self._clock) - days_to_keep * 24 * 60 * 60
        async with AsyncSession(self.engine) as session:
            async with session.begin():
                result = await session.execute(
                    delete(SensorReadingRow).where(SensorReadingRow.timestamp < cutoff)
                )
        removed = result.rowcount
        logger.info("Cleaned %d readings older than %d days", removed, days_to_keep)
        return removed

    async def optimize(self) -> None:
        """Reclaim free pages and refresh planner statistics."""
        async with self.engine.connect() as conn:
            await conn.execute(text("PRAGMA incremental_vacuum(1000)"))
            await conn.execute(text("ANALYZE"))
            await conn.commit()
        logger.info("Database optimization completed")

    # --- Aliases ---

    async def list_aliases(self) -> list[SensorNameOut]:
        async with AsyncSession(self.engine) as session:
            result = await session.execute(select(SensorName).order_by(SensorName.sensor_mac))
            names = result.scalars().all()
        return [
            SensorNameOut(
                sensor_mac=n.sensor_mac,
                custom_name=n.custom_name,
                created_at=n.created_at,
                updated_at=n.updated_at,
            )
            for n in names
        ]

    async def set_alias(self, sensor_mac: str, custom_name: str) -> None:
        """Insert or replace the alias for ``sensor_mac``; created_at survives updates."""
        now = epoch_now(self._clock)
        stmt = sqlite_insert(SensorName).values(
            sensor_mac=sensor_mac,
            custom_name=custom_name,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[SensorName.sensor_mac],
            set_={"custom_name": stmt.excluded.custom_name, "updated_at": now},
        )
        async with AsyncSession(self.engine) as session:
            async with session.begin():
                await session.execute(stmt)

    async def delete_alias(self, sensor_mac: str) -> bool:
        async with AsyncSession(self.engine) as session:
            async with session.begin():
                result = await session.execute(
                    delete(SensorName).where(SensorName.sensor_mac == sensor_mac)
                )
        return result.rowcount > 0
