# param_decoder.py
"""
Pure conversions between raw device integers and physical units, plus
the request/response framing of the history and settings commands.

Nothing in here touches the transport; every function takes and returns
plain bytes or numbers so it can be tested without a device.
"""

import struct
from dataclasses import dataclass
from typing import List, Optional, Union

from aranet_errors import InvalidData
from aranet_protocol import (
    HISTORY_V1_DATA_OFFSET,
    HISTORY_V1_REQUEST,
    HISTORY_V2_HEADER_LEN,
    HISTORY_V2_REQUEST,
    SET_INTERVAL,
    HistoryParam,
)
from models import CurrentReading, DeviceType, MeasurementInterval, Status

# ----------------------------------------------------------------------
# Unit conversions
# ----------------------------------------------------------------------
def raw_to_temperature(raw: int) -> float:
    """Twentieths of a degree → °C."""
    return raw / 20.0

def temperature_to_raw(celsius: float) -> int:
    return int(round(celsius * 20))

def raw_to_pressure(raw: int) -> float:
    """Tenths of a hPa → hPa."""
    return raw / 10.0

def pressure_to_raw(hpa: float) -> int:
    return int(round(hpa * 10))

def raw_to_humidity2(raw: int) -> int:
    """Tenths of a percent → whole percent, clamped to 100."""
    return min(raw // 10, 100)

def raw_to_radon(raw: int) -> int:
    """Radon is already Bq/m³."""
    return raw

def to_hex_string(byte_array: Union[bytes, bytearray]) -> str:
    """
    Convert a sequence of bytes to a colon‑separated hex string.

    >>> to_hex_string(b"\\x01\\xab")
    '01:ab'
    """
    return ":".join(f"{c:02x}" for c in byte_array)

# ----------------------------------------------------------------------
# Fixed‑width little endian helpers
# ----------------------------------------------------------------------
def read_u16_le(data: bytes, what: str) -> int:
    if len(data) < 2:
        raise InvalidData(f"{what}: expected at least 2 bytes, got {len(data)}")
    return struct.unpack_from("<H", data)[0]

def decode_value(param: HistoryParam, data: bytes, offset: int = 0) -> int:
    width = param.value_width
    if width == 1:
        return data[offset]
    if width == 2:
        return struct.unpack_from("<H", data, offset)[0]
    return struct.unpack_from("<I", data, offset)[0]

# ----------------------------------------------------------------------
# History framing
# ----------------------------------------------------------------------
def build_history_v2_request(param: HistoryParam, index: int) -> bytes:
    """``[0x61, param, index_lo, index_hi]``"""
    return struct.pack("<BBH", HISTORY_V2_REQUEST, int(param), index & 0xFFFF)

def build_history_v1_request(param: HistoryParam, total_readings: int) -> bytes:
    """``[0x82, param, 0x01, 0x00, total_lo, total_hi]``; always the whole range."""
    return struct.pack("<BBHH", HISTORY_V1_REQUEST, int(param), 1, total_readings & 0xFFFF)

def build_set_interval(interval: MeasurementInterval) -> bytes:
    return bytes([SET_INTERVAL, interval.minutes])


@dataclass(frozen=True)
class HistoryV2Response:
    param: int
    interval: int
    total_readings: int
    seconds_ago: int
    start_index: int
    count: int
    payload: bytes

    def values(self, param: HistoryParam) -> List[int]:
        """Decode ``min(len(payload) // width, count)`` values."""
        width = param.value_width
        available = min(len(self.payload) // width, self.count)
        return [decode_value(param, self.payload, i * width) for i in range(available)]


def parse_history_v2_response(data: bytes) -> HistoryV2Response:
    """
    Split an index‑based response into header fields and payload.

    Raises
    ------
    InvalidData
        If the response is shorter than the 10‑byte header.
    """
    if len(data) < HISTORY_V2_HEADER_LEN:
        raise InvalidData(
            f"history response too short: expected at least {HISTORY_V2_HEADER_LEN} "
            f"bytes, got {len(data)}"
        )
    param, interval, total, ago, start, count = struct.unpack_from("<BHHHHB", data)
    return HistoryV2Response(param, interval, total, ago, start, count,
                             bytes(data[HISTORY_V2_HEADER_LEN:]))


def parse_history_v1_notification(data: bytes) -> Optional[tuple]:
    """
    Return ``(param_id, [u16 values])`` for a legacy notification, or
    ``None`` when it is too short to carry a parameter id.
    """
    if len(data) < HISTORY_V1_DATA_OFFSET:
        return None
    body = data[HISTORY_V1_DATA_OFFSET:]
    usable = len(body) - len(body) % 2
    values = [v for (v,) in struct.iter_unpack("<H", body[:usable])]
    return data[0], values

# ----------------------------------------------------------------------
# Current readings
# ----------------------------------------------------------------------
ARANET4_READING_LEN = 13
ARANET2_READING_LEN = 7
RADON_READING_LEN = 18
RADIATION_READING_LEN = 28

def _require(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise InvalidData(f"{what}: expected at least {size} bytes, got {len(data)}")

def parse_aranet4_reading(data: bytes) -> CurrentReading:
    _require(data, ARANET4_READING_LEN, "Aranet4 reading")
    co2, temp, pressure, humidity, battery, status, interval, age = \
        struct.unpack_from("<HHHBBBHH", data)
    return CurrentReading(
        co2=co2,
        temperature=raw_to_temperature(temp),
        pressure=raw_to_pressure(pressure),
        humidity=humidity,
        battery=battery,
        status=Status.from_raw(status),
        interval=interval,
        age=age,
    )

def parse_aranet2_reading(data: bytes) -> CurrentReading:
    _require(data, ARANET2_READING_LEN, "Aranet2 reading")
    temp, humidity, battery, status, interval = struct.unpack_from("<HBBBH", data)
    return CurrentReading(
        temperature=raw_to_temperature(temp),
        humidity=humidity,
        battery=battery,
        status=Status.from_raw(status),
        interval=interval,
    )

def parse_radon_reading(data: bytes) -> CurrentReading:
    _require(data, RADON_READING_LEN - 1, "radon reading")
    # leading u16 is the device type marker
    _, interval, age, battery, temp, pressure, humidity, radon = \
        struct.unpack_from("<HHHBHHHI", data)
    status = data[17] if len(data) >= RADON_READING_LEN else Status.ERROR
    return CurrentReading(
        temperature=raw_to_temperature(temp),
        pressure=raw_to_pressure(pressure),
        humidity=raw_to_humidity2(humidity),
        battery=battery,
        status=Status.from_raw(status),
        interval=interval,
        age=age,
        radon=raw_to_radon(radon),
    )

def parse_radiation_reading(data: bytes) -> CurrentReading:
    _require(data, RADIATION_READING_LEN - 1, "radiation reading")
    interval, age, battery, rate_nsv, total_nsv, duration = \
        struct.unpack_from("<HHBIQQ", data, 2)
    status = data[27] if len(data) >= RADIATION_READING_LEN else Status.ERROR
    return CurrentReading(
        battery=battery,
        status=Status.from_raw(status),
        interval=interval,
        age=age,
        radiation_rate=rate_nsv / 1000.0,          # nSv/h → µSv/h
        radiation_total=total_nsv / 1_000_000.0,   # nSv → mSv
        radiation_duration=duration,
    )

def parse_current_reading(data: bytes, device_type: Optional[DeviceType]) -> CurrentReading:
    """Dispatch on device family; unknown families use the Aranet4 layout."""
    if device_type is DeviceType.ARANET2:
        return parse_aranet2_reading(data)
    if device_type is DeviceType.RADON:
        return parse_radon_reading(data)
    if device_type is DeviceType.RADIATION:
        return parse_radiation_reading(data)
    return parse_aranet4_reading(data)
