"""Tests for the RuuviTag Data Format 5 decoder."""

import pytest

from ruuvi_home.utils.decoder import decode_df5

# Reference vectors from the Ruuvi DF5 documentation
VALID = "0512FC5394C37C0004FFFC040CAC364200CDCBB8334C884F"
MINIMUM = "058001000000008001800180010000000000CBB8334C884F"
INVALID = "058000FFFFFFFF800080008000FFFFFFFFFFFFFFFFFFFFFF"


def test_decode_valid_vector():
    d = decode_df5(VALID)
    assert d is not None
    assert d.data_format == 5
    assert d.temperature == 24.3
    assert d.humidity == 53.49
    assert d.pressure == 1000.44
    assert (d.acceleration_x, d.acceleration_y, d.acceleration_z) == (4, -4, 1036)
    assert d.battery_voltage == 2977
    assert d.tx_power == 4
    assert d.movement_counter == 66
    assert d.measurement_sequence == 205
    assert d.mac == "cbb8334c884f"


def test_decode_gateway_vector():
    """Missing humidity and pressure alongside valid power and motion fields."""
    d = decode_df5("050F18FFFFFFFFFFF0FFEC0414AA96A8DE8E123456789ABC")
    assert d.temperature == 19.32
    assert d.humidity is None
    assert d.pressure is None
    assert (d.acceleration_x, d.acceleration_y, d.acceleration_z) == (-16, -20, 1044)
    assert d.battery_voltage == 2964
    assert d.tx_power == 4
    assert d.movement_counter == 168
    assert d.measurement_sequence == 56974
    assert d.mac == "123456789abc"


def test_decode_minimum_vector():
    d = decode_df5(MINIMUM)
    assert d.temperature == pytest.approx(-163.835, abs=0.01)
    assert d.humidity == 0
    assert d.pressure == 500.0
    assert d.acceleration_x == -32767
    assert d.battery_voltage == 1600
    assert d.tx_power == -40
    assert d.movement_counter == 0
    assert d.measurement_sequence == 0


def test_decode_all_sentinels_are_none():
    """Every field carrying its invalid marker decodes to None."""
    d = decode_df5(INVALID)
    assert d is not None
    assert d.temperature is None
    assert d.humidity is None
    assert d.pressure is None
    assert d.acceleration_x is None
    assert d.acceleration_y is None
    assert d.acceleration_z is None
    assert d.battery_voltage is None
    assert d.tx_power is None
    assert d.movement_counter is None
    assert d.measurement_sequence is None
    assert d.mac == "ffffffffffff"


def test_sentinels_are_independent():
    """An invalid temperature alone leaves the other fields intact."""
    payload = "058000" + VALID[6:]
    d = decode_df5(payload)
    assert d.temperature is None
    assert d.humidity == 53.49
    assert d.battery_voltage == 2977


def test_lowercase_and_prefixed_hex():
    assert decode_df5(VALID.lower()) == decode_df5(VALID)
    assert decode_df5("0x" + VALID) == decode_df5(VALID)


@pytest.mark.parametrize(
    "payload",
    [
        "",
        VALID[:-2],
        VALID + "00",
        "03" + VALID[2:],
        "ZZ" + VALID[2:],
        VALID[:-1],
    ],
    ids=["empty", "short", "long", "wrong_format", "non_hex", "odd_length"],
)
def test_decode_rejects_malformed(payload):
    assert decode_df5(payload) is None


def test_decode_non_string_returns_none():
    assert decode_df5(None) is None
    assert decode_df5(12345) is None


def test_decode_is_deterministic():
    assert decode_df5(VALID) == decode_df5(VALID)
