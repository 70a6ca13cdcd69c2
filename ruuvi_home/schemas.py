"""Pydantic v2 models for readings and the WebSocket protocol.

Python attributes are snake_case; the JSON wire format is camelCase, so every
model serializes with ``model_dump(by_alias=True)``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

TimeRange = Literal["hour", "day", "week", "month", "year"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Readings ---


class SensorReading(CamelModel):
    """One decoded, validated measurement as emitted by ingestion."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    sensor_mac: str
    temperature: float
    humidity: float | None = None
    pressure: float | None = None
    battery_voltage: int | None = None
    tx_power: int | None = None
    movement_counter: int | None = None
    measurement_sequence: int | None = None
    acceleration_x: int | None = None
    acceleration_y: int | None = None
    acceleration_z: int | None = None
    timestamp: int


class LiveReading(CamelModel):
    """The reduced reading pushed to every client on arrival."""

    sensor_mac: str
    temperature: float
    humidity: float | None
    timestamp: int
    seconds_ago: int = 0


class RawReading(CamelModel):
    sensor_mac: str
    temperature: float
    humidity: float | None
    timestamp: int


class LatestReading(CamelModel):
    sensor_mac: str
    temperature: float
    humidity: float | None
    timestamp: int
    pressure: float | None
    battery_voltage: int | None
    tx_power: int | None
    seconds_ago: int


class AggregatedBucket(CamelModel):
    sensor_mac: str
    timestamp: int
    avg_temperature: float
    min_temperature: float
    max_temperature: float
    avg_humidity: float | None
    min_humidity: float | None
    max_humidity: float | None
    data_points: int


class SensorNameOut(CamelModel):
    sensor_mac: str
    custom_name: str
    created_at: int
    updated_at: int


# --- Client -> server requests ---


class GetDataRequest(CamelModel):
    type: Literal["getData"]
    # null or "" falls back to the default range in the hub
    time_range: str | None = None


class GetLatestReadingsRequest(CamelModel):
    type: Literal["getLatestReadings"]


class AdminAuthRequest(CamelModel):
    type: Literal["adminAuth"]
    # Left untyped so a malformed password still gets an adminAuthResult
    password: Any = None


class GetSensorNamesRequest(CamelModel):
    type: Literal["getSensorNames"]


class SetSensorNameRequest(CamelModel):
    type: Literal["setSensorName"]
    sensor_mac: str | None = None
    custom_name: str | None = None
    admin_token: str | None = None


class DeleteSensorNameRequest(CamelModel):
    type: Literal["deleteSensorName"]
    sensor_mac: str | None = None
    admin_token: str | None = None


# --- Server -> client messages ---


class SensorDataMessage(CamelModel):
    type: Literal["sensorData"] = "sensorData"
    data: LiveReading


class HistoricalDataMessage(CamelModel):
    type: Literal["historicalData"] = "historicalData"
    data: list[AggregatedBucket]
    truncated: bool
    time_range: TimeRange
    bucket_size: int
    aggregated: bool = True


class LatestReadingsMessage(CamelModel):
    type: Literal["latestReadings"] = "latestReadings"
    data: list[LatestReading]
    timestamp: int


class SensorNamesMessage(CamelModel):
    type: Literal["sensorNames"] = "sensorNames"
    data: list[SensorNameOut]


class SensorNameSetMessage(CamelModel):
    type: Literal["sensorNameSet"] = "sensorNameSet"
    success: bool = True
    sensor_mac: str
    custom_name: str


class SensorNameDeletedMessage(CamelModel):
    type: Literal["sensorNameDeleted"] = "sensorNameDeleted"
    success: bool = True
    sensor_mac: str


class AdminAuthResultMessage(CamelModel):
    type: Literal["adminAuthResult"] = "adminAuthResult"
    success: bool
    token: str | None = None
    message: str | None = None


class ErrorMessage(CamelModel):
    type: Literal["error"] = "error"
    message: str


# --- HTTP ---


class MigrationStatusOut(BaseModel):
    is_up_to_date: bool
    applied: list[str]
    pending: list[str]
    last_migration: str | None


class StatusOut(BaseModel):
    status: str
    connected_clients: int
    active_admin_sessions: int
    mqtt_connected: bool
    migrations: MigrationStatusOut
