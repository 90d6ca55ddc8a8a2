# aranet_protocol.py
"""
Process‑wide, read‑only protocol table: GATT characteristic UUIDs,
command opcodes and history parameter ids.
"""

from enum import IntEnum

# ----------------------------------------------------------------------
# Advertising
# ----------------------------------------------------------------------
SERVICE_UUID_NEW = "0000fce0-0000-1000-8000-00805f9b34fb"
SERVICE_UUID_OLD = "f0cd1400-95da-4f4b-9ac8-aa55d312af0c"
MANUFACTURER_ID = 0x0702

# ----------------------------------------------------------------------
# Vendor characteristics
# ----------------------------------------------------------------------
_VENDOR = "f0cd{:04x}-95da-4f4b-9ac8-aa55d312af0c"

SENSOR_STATE = _VENDOR.format(0x1401)
COMMAND = _VENDOR.format(0x1402)
CALIBRATION = _VENDOR.format(0x1502)
CURRENT_READINGS = _VENDOR.format(0x1503)
TOTAL_READINGS = _VENDOR.format(0x2001)
READ_INTERVAL = _VENDOR.format(0x2002)
HISTORY_V1 = _VENDOR.format(0x2003)
SECONDS_SINCE_UPDATE = _VENDOR.format(0x2004)
HISTORY_V2 = _VENDOR.format(0x2005)
CURRENT_READINGS_DETAIL = _VENDOR.format(0x3001)
CURRENT_READINGS_DETAIL_ALT = _VENDOR.format(0x3003)

# ----------------------------------------------------------------------
# Standard characteristics
# ----------------------------------------------------------------------
_STANDARD = "0000{:04x}-0000-1000-8000-00805f9b34fb"

DEVICE_NAME = _STANDARD.format(0x2A00)
BATTERY_LEVEL = _STANDARD.format(0x2A19)
MODEL_NUMBER = _STANDARD.format(0x2A24)
SERIAL_NUMBER = _STANDARD.format(0x2A25)
FIRMWARE_REVISION = _STANDARD.format(0x2A26)
HARDWARE_REVISION = _STANDARD.format(0x2A27)
SOFTWARE_REVISION = _STANDARD.format(0x2A28)
MANUFACTURER_NAME = _STANDARD.format(0x2A29)

# ----------------------------------------------------------------------
# Command opcodes (written to COMMAND)
# ----------------------------------------------------------------------
HISTORY_V2_REQUEST = 0x61
HISTORY_V1_REQUEST = 0x82
SET_INTERVAL = 0x90
SET_SMART_HOME = 0x91
SET_BLUETOOTH_RANGE = 0x92

# ----------------------------------------------------------------------
# History framing
# ----------------------------------------------------------------------
HISTORY_V2_HEADER_LEN = 10
HISTORY_V1_DATA_OFFSET = 3          # notification: param, 2 bytes, values…
HISTORY_V1_TIMEOUT = 5.0            # seconds per notification wait
HISTORY_V1_MAX_TIMEOUTS = 3         # consecutive waits before giving up


class HistoryParam(IntEnum):
    TEMPERATURE = 1
    HUMIDITY = 2        # 1 byte, percent
    PRESSURE = 3
    CO2 = 4
    HUMIDITY2 = 5       # 2 bytes, tenths of a percent
    RADON = 10          # 4 bytes, Bq/m³

    @property
    def value_width(self) -> int:
        """Bytes per value in an index‑based history response."""
        if self is HistoryParam.HUMIDITY:
            return 1
        if self is HistoryParam.RADON:
            return 4
        return 2

    @property
    def supports_v1(self) -> bool:
        return self not in (HistoryParam.HUMIDITY2, HistoryParam.RADON)


# Download order per device class
CO2_CLASS_PARAMS = (
    HistoryParam.CO2,
    HistoryParam.TEMPERATURE,
    HistoryParam.PRESSURE,
    HistoryParam.HUMIDITY,
)
RADON_CLASS_PARAMS = (
    HistoryParam.RADON,
    HistoryParam.TEMPERATURE,
    HistoryParam.PRESSURE,
    HistoryParam.HUMIDITY2,
)
