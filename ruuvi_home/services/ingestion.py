"""Ingestion gateway: turns raw gateway MQTT messages into SensorReadings.

Every message runs through the same flat sequence of steps. Each step either
returns its product or raises MessageRejected; the first rejection ends
processing for that message, is logged and counted, and never escapes
process_message.
"""

from __future__ import annotations

import json
import logging
import math
import re
import time

from ruuvi_home.health import readings_dropped, readings_ingested
from ruuvi_home.schemas import SensorReading
from ruuvi_home.utils.decoder import DecodedPayload, decode_df5
from ruuvi_home.utils.timestamps import Clock, epoch_now, is_number, is_timestamp_fresh

logger = logging.getLogger(__name__)

MAX_MESSAGE_BYTES = 8192
MAX_TOPIC_LENGTH = 256
MAX_BLE_DATA_LENGTH = 200

# Manufacturer ID 0x0499 (Ruuvi Innovations), little endian in the advertisement
RUUVI_MARKER = "9904"
DF5_HEX_LENGTH = 48

SUBSCRIPTIONS = ("ruuvi/+/+", "gateway/+/+", "ruuvi/+")

_SEGMENT = r"[A-Za-z0-9:_.-]+"
# ruuvi|gateway/{gateway_id}/{sensor_mac}, or legacy ruuvi/{sensor_mac}
TOPIC_RE = re.compile(
    rf"^(?:(?:ruuvi|gateway)/(?P<gateway>{_SEGMENT})/(?P<mac>{_SEGMENT})"
    rf"|ruuvi/(?P<legacy_mac>{_SEGMENT}))$"
)
HEX_RE = re.compile(r"^[0-9A-Fa-f]*$")
VALID_MAC_RE = re.compile(r"^[a-f0-9:-]{12,17}$")

TEMPERATURE_RANGE = (-40.0, 85.0)
HUMIDITY_RANGE = (0.0, 100.0)
PRESSURE_RANGE = (300.0, 1100.0)


class MessageRejected(Exception):
    """A gateway message that does not yield a reading."""

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


def check_size(payload: bytes) -> None:
    if len(payload) > MAX_MESSAGE_BYTES:
        raise MessageRejected("too_large", f"{len(payload)} bytes")


def match_topic(topic: str) -> re.Match:
    if not isinstance(topic, str) or len(topic) > MAX_TOPIC_LENGTH:
        raise MessageRejected("bad_topic", repr(topic)[:64])
    match = TOPIC_RE.match(topic)
    if match is None:
        raise MessageRejected("bad_topic", topic)
    return match


def parse_body(payload: bytes) -> dict:
    try:
        body = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MessageRejected("bad_json", str(exc)) from exc
    if not isinstance(body, dict):
        raise MessageRejected("bad_json", "body is not an object")
    data = body.get("data")
    if not isinstance(data, str):
        raise MessageRejected("no_data", "missing or non-string data field")
    if len(data) > MAX_BLE_DATA_LENGTH:
        raise MessageRejected("data_too_long", f"{len(data)} chars")
    return body


def extract_ruuvi_payload(ble_data: str) -> str:
    """Return the 48 hex chars following the Ruuvi manufacturer marker."""
    if not HEX_RE.match(ble_data):
        raise MessageRejected("bad_hex", "non-hex characters in data")
    start = ble_data.upper().find(RUUVI_MARKER)
    if start == -1:
        raise MessageRejected("no_ruuvi_data")
    start += len(RUUVI_MARKER)
    payload = ble_data[start:start + DF5_HEX_LENGTH]
    if len(payload) != DF5_HEX_LENGTH:
        raise MessageRejected("short_payload", f"{len(payload)} hex chars")
    return payload.upper()


def decode(hex_payload: str) -> DecodedPayload:
    decoded = decode_df5(hex_payload)
    if decoded is None:
        raise MessageRejected("undecodable", hex_payload)
    if decoded.temperature is None:
        raise MessageRejected("no_temperature")
    return decoded


def resolve_mac(topic_match: re.Match, decoded: DecodedPayload) -> str:
    """The MAC carried in the topic wins over the one in the payload."""
    topic_mac = topic_match.group("mac") or topic_match.group("legacy_mac")
    return (topic_mac or decoded.mac).lower()


def resolve_timestamp(body: dict, clock: Clock) -> int:
    ts = body.get("ts")
    if is_number(ts):
        return int(ts)
    return epoch_now(clock)


def validate_reading(
    reading: SensorReading, *, max_skew_sec: int, clock: Clock
) -> SensorReading:
    if not VALID_MAC_RE.match(reading.sensor_mac):
        raise MessageRejected("bad_mac", reading.sensor_mac)

    temperature = reading.temperature
    lo, hi = TEMPERATURE_RANGE
    if not math.isfinite(temperature) or not lo <= temperature <= hi:
        raise MessageRejected("out_of_range", f"temperature={temperature}")

    if not is_timestamp_fresh(reading.timestamp, max_skew_sec=max_skew_sec, clock=clock):
        raise MessageRejected("stale_timestamp", str(reading.timestamp))

    for field, (lo, hi) in (("humidity", HUMIDITY_RANGE), ("pressure", PRESSURE_RANGE)):
        value = getattr(reading, field)
        if value is not None and not lo <= value <= hi:
            raise MessageRejected("out_of_range", f"{field}={value}")

    return reading


class IngestionGateway:
    """Decodes, validates and normalizes gateway messages, one reading each."""

    def __init__(self, *, max_skew_sec: int = 3600, clock: Clock = time.time):
        self.max_skew_sec = max_skew_sec
        self._clock = clock

    def process_message(self, topic: str, payload: bytes) -> SensorReading | None:
        """Return the reading carried by one MQTT message, or None if dropped."""
        try:
            check_size(payload)
            topic_match = match_topic(topic)
            body = parse_body(payload)
            decoded = decode(extract_ruuvi_payload(body["data"]))
            reading = SensorReading(
                sensor_mac=resolve_mac(topic_match, decoded),
                temperature=decoded.temperature,
                humidity=decoded.humidity,
                pressure=decoded.pressure,
                battery_voltage=decoded.battery_voltage,
                tx_power=decoded.tx_power,
                movement_counter=decoded.movement_counter,
                measurement_sequence=decoded.measurement_sequence,
                acceleration_x=decoded.acceleration_x,
                acceleration_y=decoded.acceleration_y,
                acceleration_z=decoded.acceleration_z,
                timestamp=resolve_timestamp(body, self._clock),
            )
            validate_reading(reading, max_skew_sec=self.max_skew_sec, clock=self._clock)
        except MessageRejected as exc:
            level = logging.DEBUG if exc.reason == "no_ruuvi_data" else logging.WARNING
            logger.log(level, "Dropped message on %s: %s", topic, exc)
            readings_dropped.labels(reason=exc.reason).inc()
            return None
        except Exception:
            logger.exception("Unexpected error processing message on %s", topic)
            readings_dropped.labels(reason="error").inc()
            return None

        readings_ingested.inc()
        logger.debug(
            "Decoded sensor data: %s - %s°C, %s%%",
            reading.sensor_mac,
            reading.temperature,
            reading.humidity,
        )
        return reading
