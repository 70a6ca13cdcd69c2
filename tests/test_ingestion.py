"""Tests for the MQTT message ingestion gateway."""

import json

import pytest
from prometheus_client import REGISTRY

from ruuvi_home.services.ingestion import (
    MAX_MESSAGE_BYTES,
    IngestionGateway,
    MessageRejected,
    extract_ruuvi_payload,
    match_topic,
)

NOW = 1_700_000_000
VALID = "0512FC5394C37C0004FFFC040CAC364200CDCBB8334C884F"
BLE_PREFIX = "0201061BFF9904"


@pytest.fixture
def gateway():
    return IngestionGateway(clock=lambda: NOW)


def _payload(hex_payload=VALID, ts=NOW, **extra):
    body = {"data": BLE_PREFIX + hex_payload, "ts": ts, **extra}
    if ts is None:
        del body["ts"]
    return json.dumps(body).encode()


def _with_temperature(raw_hex):
    return "05" + raw_hex + VALID[6:]


def _dropped(reason):
    return REGISTRY.get_sample_value("ruuvi_readings_dropped_total", {"reason": reason}) or 0


# Valid ingestion
def test_valid_message(gateway):
    reading = gateway.process_message("ruuvi/gw1/AA:BB:CC:DD:EE:FF", _payload())
    assert reading is not None
    assert reading.sensor_mac == "aa:bb:cc:dd:ee:ff"
    assert reading.temperature == 24.3
    assert reading.humidity == 53.49
    assert reading.pressure == 1000.44
    assert reading.battery_voltage == 2977
    assert reading.tx_power == 4
    assert reading.movement_counter == 66
    assert reading.measurement_sequence == 205
    assert reading.acceleration_z == 1036
    assert reading.timestamp == NOW


def test_gateway_topic_prefix(gateway):
    reading = gateway.process_message("gateway/gw1/AABBCCDDEEFF", _payload())
    assert reading.sensor_mac == "aabbccddeeff"


def test_legacy_topic(gateway):
    reading = gateway.process_message("ruuvi/AA:BB:CC:DD:EE:11", _payload())
    assert reading.sensor_mac == "aa:bb:cc:dd:ee:11"


def test_topic_mac_wins_over_payload_mac(gateway):
    reading = gateway.process_message("ruuvi/gw1/11:22:33:44:55:66", _payload())
    assert reading.sensor_mac == "11:22:33:44:55:66"


def test_missing_ts_uses_receive_time(gateway):
    reading = gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", _payload(ts=None))
    assert reading.timestamp == NOW


def test_non_numeric_ts_uses_receive_time(gateway):
    reading = gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", _payload(ts="yesterday"))
    assert reading.timestamp == NOW


def test_fractional_ts_truncated(gateway):
    reading = gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", _payload(ts=NOW + 0.9))
    assert reading.timestamp == NOW


# Rejections
def test_unknown_topic_dropped(gateway):
    before = _dropped("bad_topic")
    assert gateway.process_message("homeassistant/sensor/x", _payload()) is None
    assert _dropped("bad_topic") == before + 1


def test_oversized_message_dropped(gateway):
    payload = b"{" + b" " * MAX_MESSAGE_BYTES + b"}"
    before = _dropped("too_large")
    assert gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", payload) is None
    assert _dropped("too_large") == before + 1


def test_invalid_json_dropped(gateway):
    assert gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", b"not json") is None


def test_json_array_dropped(gateway):
    assert gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", b"[1, 2]") is None


def test_missing_data_field_dropped(gateway):
    payload = json.dumps({"ts": NOW}).encode()
    assert gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", payload) is None


def test_non_ruuvi_advertisement_dropped(gateway):
    payload = json.dumps({"data": "0201061AFF4C000215", "ts": NOW}).encode()
    before = _dropped("no_ruuvi_data")
    assert gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", payload) is None
    assert _dropped("no_ruuvi_data") == before + 1


def test_wrong_data_format_dropped(gateway):
    payload = _payload("03" + VALID[2:])
    assert gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", payload) is None


def test_invalid_temperature_sentinel_dropped(gateway):
    assert gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", _payload(_with_temperature("8000"))) is None


def test_invalid_mac_in_topic_dropped(gateway):
    assert gateway.process_message("ruuvi/gw1/not-a-mac", _payload()) is None


# Temperature bounds are inclusive
@pytest.mark.parametrize(
    "raw_hex,expected",
    [("E0C0", -40.0), ("4268", 85.0)],
    ids=["minus_40", "plus_85"],
)
def test_temperature_bounds_accepted(gateway, raw_hex, expected):
    reading = gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", _payload(_with_temperature(raw_hex)))
    assert reading is not None
    assert reading.temperature == expected


@pytest.mark.parametrize("raw_hex", ["E0BE", "426A"], ids=["minus_40_01", "plus_85_01"])
def test_temperature_out_of_bounds_dropped(gateway, raw_hex):
    before = _dropped("out_of_range")
    assert gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", _payload(_with_temperature(raw_hex))) is None
    assert _dropped("out_of_range") == before + 1


def test_humidity_out_of_range_dropped(gateway):
    payload = _payload("0512FCFFFE" + VALID[10:])
    assert gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", payload) is None


# Timestamp skew is inclusive at one hour
@pytest.mark.parametrize("offset", [3600, -3600])
def test_timestamp_at_skew_limit_accepted(gateway, offset):
    reading = gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", _payload(ts=NOW + offset))
    assert reading is not None
    assert reading.timestamp == NOW + offset


@pytest.mark.parametrize("offset", [3601, -3601])
def test_timestamp_beyond_skew_dropped(gateway, offset):
    before = _dropped("stale_timestamp")
    assert gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", _payload(ts=NOW + offset)) is None
    assert _dropped("stale_timestamp") == before + 1


def test_accepted_reading_counted(gateway):
    before = REGISTRY.get_sample_value("ruuvi_readings_ingested_total") or 0
    gateway.process_message("ruuvi/gw1/AABBCCDDEEFF", _payload())
    assert REGISTRY.get_sample_value("ruuvi_readings_ingested_total") == before + 1


# Steps
def test_extract_payload_uppercases_and_slices():
    assert extract_ruuvi_payload("0201061bff9904" + VALID.lower() + "ff") == VALID


def test_extract_payload_short_rejected():
    with pytest.raises(MessageRejected) as exc_info:
        extract_ruuvi_payload(BLE_PREFIX + VALID[:20])
    assert exc_info.value.reason == "short_payload"


def test_match_topic_groups():
    match = match_topic("gateway/kitchen/AA:BB:CC:DD:EE:FF")
    assert match.group("gateway") == "kitchen"
    assert match.group("mac") == "AA:BB:CC:DD:EE:FF"


@pytest.mark.parametrize("topic", ["ruuvi", "ruuvi/a/b/c", "other/a/b", "ruuvi/a b/c"])
def test_match_topic_rejects(topic):
    with pytest.raises(MessageRejected):
        match_topic(topic)
