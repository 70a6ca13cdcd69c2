"""RuuviTag Data Format 5 (RAWv2) payload decoder."""

from __future__ import annotations

import binascii
import logging
import struct
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DATA_FORMAT_5 = 0x05
PAYLOAD_LENGTH = 24

# format(u8), temp(i16), hum(u16), pres(u16), acc_x/y/z(i16),
# power_info(u16), movement(u8), sequence(u16), mac(6 bytes)
_DF5_FORMAT = ">BhHHhhhHBH6s"

# Sentinels marking an invalid / unavailable measurement
_INVALID_I16 = -32768
_INVALID_U16 = 0xFFFF
_INVALID_U8 = 0xFF
_INVALID_BATTERY = 0b11111111111
_INVALID_TX_POWER = 0b11111


@dataclass(frozen=True)
class DecodedPayload:
    data_format: int
    temperature: float | None
    humidity: float | None
    pressure: float | None
    acceleration_x: int | None
    acceleration_y: int | None
    acceleration_z: int | None
    battery_voltage: int | None
    tx_power: int | None
    movement_counter: int | None
    measurement_sequence: int | None
    mac: str


def _temperature(raw: int) -> float | None:
    if raw == _INVALID_I16:
        return None
    return round(raw / 200, 2)


def _humidity(raw: int) -> float | None:
    if raw == _INVALID_U16:
        return None
    return round(raw / 400, 2)


def _pressure(raw: int) -> float | None:
    if raw == _INVALID_U16:
        return None
    return round((raw + 50000) / 100, 2)


def _acceleration(raw: int) -> int | None:
    return None if raw == _INVALID_I16 else raw


def _battery_voltage(power_info: int) -> int | None:
    voltage = power_info >> 5
    if voltage == _INVALID_BATTERY:
        return None
    return voltage + 1600


def _tx_power(power_info: int) -> int | None:
    power = power_info & 0x1F
    if power == _INVALID_TX_POWER:
        return None
    return -40 + power * 2


def decode_df5(hex_payload: str) -> DecodedPayload | None:
    """Decode a 48-character hex Data Format 5 payload.

    Returns None when the input is not a 24-byte format 5 payload or cannot
    be parsed. Fields carrying their protocol sentinel decode to None
    independently of each other.
    """
    try:
        clean = hex_payload.strip()
        if clean[:2].lower() == "0x":
            clean = clean[2:]
        data = binascii.unhexlify(clean)
        if len(data) != PAYLOAD_LENGTH or data[0] != DATA_FORMAT_5:
            return None

        (
            data_format,
            temperature,
            humidity,
            pressure,
            acc_x,
            acc_y,
            acc_z,
            power_info,
            movement,
            sequence,
            mac,
        ) = struct.unpack(_DF5_FORMAT, data)

        return DecodedPayload(
            data_format=data_format,
            temperature=_temperature(temperature),
            humidity=_humidity(humidity),
            pressure=_pressure(pressure),
            acceleration_x=_acceleration(acc_x),
            acceleration_y=_acceleration(acc_y),
            acceleration_z=_acceleration(acc_z),
            battery_voltage=_battery_voltage(power_info),
            tx_power=_tx_power(power_info),
            movement_counter=None if movement == _INVALID_U8 else movement,
            measurement_sequence=None if sequence == _INVALID_U16 else sequence,
            mac=mac.hex(),
        )
    except (binascii.Error, struct.error, TypeError, ValueError, AttributeError):
        logger.debug("Undecodable DF5 payload: %r", hex_payload)
        return None
