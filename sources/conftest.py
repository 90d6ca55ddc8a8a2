# conftest.py
"""
Shared fixtures: a fake ``BleakClient`` that simulates an Aranet ring
buffer, so the protocol client, the device layer and the controller can
be exercised without hardware.
"""

import asyncio
import os
import struct
import tempfile
from datetime import datetime, timezone
from pathlib import Path

# keep test logging out of the working directory; must run before app_logger is imported
os.environ.setdefault("ARANET_LOG_FILE", str(Path(tempfile.gettempdir()) / "aranet_sync_test.log"))

import pytest
from bleak.exc import BleakCharacteristicNotFoundError

import aranet_protocol as proto
from aranet_protocol import HistoryParam
from history_db import HistoryDB
from history_repository import HistoryRepository

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


async def no_sleep(_seconds: float) -> None:
    """Pacing stand‑in that still yields to the loop."""
    await asyncio.sleep(0)


class _Services:
    def __init__(self, uuids):
        self.uuids = uuids

    def get_characteristic(self, uuid):
        return uuid if uuid in self.uuids else None


class FakeBleakClient:
    """
    Enough of ``BleakClient`` for ``AranetDevice``.

    ``history`` maps a ``HistoryParam`` to raw values, index 1 first.
    ``batch`` caps the values per index‑based response. ``mismatches``
    answers that many reads with the wrong parameter first.
    """

    def __init__(self, history=None, interval=300, ago=0, batch=20,
                 mismatches=0, legacy=False, current=None, battery=87,
                 strings=None, missing=(), total=None):
        self.history = {HistoryParam(k): list(v) for k, v in (history or {}).items()}
        self.interval = interval
        self.ago = ago
        self.batch = batch
        self.mismatches = mismatches
        self.current = current
        self.battery = battery
        self.strings = strings or {}
        self.is_connected = False
        self.connect_calls = 0
        self.writes = []
        self.reads = []
        self.address = "AA:BB:CC:DD:EE:FF"
        self.short_response = False
        self._total = total
        self._request = None
        self._notify = {}

        uuids = {
            proto.COMMAND, proto.TOTAL_READINGS, proto.READ_INTERVAL,
            proto.SECONDS_SINCE_UPDATE, proto.CURRENT_READINGS_DETAIL,
            proto.CURRENT_READINGS_DETAIL_ALT, proto.BATTERY_LEVEL, proto.HISTORY_V1,
        }
        if not legacy:
            uuids.add(proto.HISTORY_V2)
        uuids.update(self.strings)
        uuids.difference_update(missing)
        self.services = _Services(uuids)

    @property
    def total(self) -> int:
        if self._total is not None:
            return self._total
        return max((len(v) for v in self.history.values()), default=0)

    # -- session ---------------------------------------------------------
    async def connect(self):
        self.connect_calls += 1
        self.is_connected = True
        return True

    async def disconnect(self):
        self.is_connected = False
        return True

    # -- GATT --------------------------------------------------------------
    def _check(self, uuid):
        if self.services.get_characteristic(uuid) is None:
            raise BleakCharacteristicNotFoundError(uuid)

    async def read_gatt_char(self, uuid):
        self._check(uuid)
        self.reads.append(uuid)
        if uuid == proto.TOTAL_READINGS:
            return bytearray(struct.pack("<H", self.total))
        if uuid == proto.READ_INTERVAL:
            return bytearray(struct.pack("<H", self.interval))
        if uuid == proto.SECONDS_SINCE_UPDATE:
            return bytearray(struct.pack("<H", self.ago))
        if uuid == proto.HISTORY_V2:
            return bytearray(self._history_response())
        if uuid in (proto.CURRENT_READINGS_DETAIL, proto.CURRENT_READINGS_DETAIL_ALT):
            return bytearray(self.current or b"")
        if uuid == proto.BATTERY_LEVEL:
            return bytearray([self.battery])
        if uuid in self.strings:
            return bytearray(self.strings[uuid])
        return bytearray()

    def _history_response(self) -> bytes:
        if self.short_response:
            return b"\x04\x00\x00"
        param, index = self._request
        if self.mismatches:
            self.mismatches -= 1
            param = HistoryParam.TEMPERATURE if param != HistoryParam.TEMPERATURE else HistoryParam.CO2
            return struct.pack("<BHHHHB", param, self.interval, self.total, self.ago, index, 0)
        values = self.history.get(param, [])
        chunk = values[index - 1:index - 1 + self.batch] if index >= 1 else []
        fmt = {1: "B", 2: "H", 4: "I"}[param.value_width]
        payload = b"".join(struct.pack("<" + fmt, v) for v in chunk)
        header = struct.pack("<BHHHHB", param, self.interval, self.total, self.ago,
                             index, len(chunk))
        return header + payload

    async def write_gatt_char(self, uuid, data, response=False):
        self._check(uuid)
        data = bytes(data)
        self.writes.append((uuid, data))
        if data[0] == proto.HISTORY_V2_REQUEST:
            self._request = (HistoryParam(data[1]), struct.unpack_from("<H", data, 2)[0])
        elif data[0] == proto.HISTORY_V1_REQUEST:
            self._push_v1(HistoryParam(data[1]))

    def _push_v1(self, param):
        callback = self._notify.get(proto.HISTORY_V1)
        if callback is None:
            return
        values = self.history.get(param, [])
        loop = asyncio.get_running_loop()
        for offset in range(0, len(values), 10):
            chunk = values[offset:offset + 10]
            body = b"".join(struct.pack("<H", v) for v in chunk)
            frame = bytearray(struct.pack("<BH", param, offset + 1) + body)
            loop.call_soon(callback, proto.HISTORY_V1, frame)

    async def start_notify(self, uuid, callback):
        self._check(uuid)
        self._notify[uuid] = callback

    async def stop_notify(self, uuid):
        self._notify.pop(uuid, None)


def aranet4_history(count: int, co2_base: int = 400):
    """Raw arrays for ``count`` Aranet4 samples with recognisable values."""
    return {
        HistoryParam.CO2: [co2_base + i for i in range(count)],
        HistoryParam.TEMPERATURE: [440 + i for i in range(count)],    # 22.0 °C + i/20
        HistoryParam.PRESSURE: [10130 + i for i in range(count)],     # 1013.0 hPa + i/10
        HistoryParam.HUMIDITY: [40 + (i % 50) for i in range(count)],
    }


def radon_history(count: int):
    return {
        HistoryParam.RADON: [100 + i for i in range(count)],
        HistoryParam.TEMPERATURE: [400 for _ in range(count)],
        HistoryParam.PRESSURE: [10000 for _ in range(count)],
        HistoryParam.HUMIDITY2: [455 for _ in range(count)],
    }


@pytest.fixture
def db(tmp_path):
    database = HistoryDB(tmp_path / "history.db")
    yield database
    database.close()


@pytest.fixture
def repo(db):
    return HistoryRepository(db)
