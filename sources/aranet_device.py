# aranet_device.py
"""
Device capability contract and its bleak‑backed implementation.

``SensorDevice`` is the narrow interface the sync controller (and any
surrounding UI or service) depends on. ``AranetDevice`` satisfies it over
a ``BleakClient`` and also acts as the ``GattSession`` the history
client drives.
"""

import abc
import asyncio
import re
from typing import Callable, List, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakCharacteristicNotFoundError, BleakError

from aranet_errors import (
    AranetError,
    CharacteristicNotFound,
    DeviceNotFound,
    InvalidData,
    NotConnected,
    WriteFailed,
)
from aranet_protocol import (
    BATTERY_LEVEL,
    COMMAND,
    CURRENT_READINGS_DETAIL,
    CURRENT_READINGS_DETAIL_ALT,
    DEVICE_NAME,
    FIRMWARE_REVISION,
    HARDWARE_REVISION,
    HISTORY_V2,
    MANUFACTURER_NAME,
    MODEL_NUMBER,
    READ_INTERVAL,
    SERIAL_NUMBER,
    SOFTWARE_REVISION,
)
from app_logger import logger, log_debug
from history_client import HistoryClient, HistoryOptions
from models import (
    CurrentReading,
    DeviceInfo,
    DeviceType,
    HistoryInfo,
    HistoryRecord,
    MeasurementInterval,
)
from param_decoder import build_set_interval, parse_current_reading, read_u16_le, to_hex_string
from settings import DEFAULT_SCAN_TIMEOUT

# MAC on Linux/Windows, CoreBluetooth UUID on macOS
_ADDRESS_RE = re.compile(
    r"^([0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2}$"
    r"|^[0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12}$"
)


class SensorDevice(abc.ABC):
    """Everything the sync needs from one sensor, real or simulated."""

    device_id: str
    name: Optional[str]
    device_type: Optional[DeviceType]

    @property
    @abc.abstractmethod
    def is_connected(self) -> bool: ...

    @abc.abstractmethod
    async def connect(self) -> None: ...

    @abc.abstractmethod
    async def disconnect(self) -> None: ...

    @abc.abstractmethod
    async def read_current(self) -> CurrentReading: ...

    @abc.abstractmethod
    async def read_battery(self) -> int: ...

    @abc.abstractmethod
    async def read_device_info(self) -> DeviceInfo: ...

    @abc.abstractmethod
    async def get_history_info(self) -> HistoryInfo: ...

    @abc.abstractmethod
    async def download_history_with_options(
        self, options: Optional[HistoryOptions] = None) -> List[HistoryRecord]: ...

    async def download_history(self) -> List[HistoryRecord]:
        return await self.download_history_with_options(HistoryOptions())

    @abc.abstractmethod
    async def get_interval(self) -> MeasurementInterval: ...

    @abc.abstractmethod
    async def set_interval(self, interval: MeasurementInterval) -> None: ...


class AranetDevice(SensorDevice):
    """
    One Aranet sensor reached over Bluetooth LE.

    Parameters
    ----------
    identifier : str
        Bluetooth address (or macOS UUID) or advertised name.
    device_type : DeviceType | None
        Family, guessed from the advertised name on connect when omitted.
    scan_timeout : float
        Seconds allowed for discovery.
    client : BleakClient | None
        Pre‑built client; skips discovery.
    """

    def __init__(self, identifier: str, device_type: Optional[DeviceType] = None,
                 scan_timeout: float = DEFAULT_SCAN_TIMEOUT,
                 client: Optional[BleakClient] = None):
        self.device_id = identifier
        self.name: Optional[str] = None if _ADDRESS_RE.match(identifier) else identifier
        self.device_type = device_type or DeviceType.from_name(self.name)
        self.scan_timeout = scan_timeout
        self._client = client
        self.history = HistoryClient(self)

    def __repr__(self) -> str:
        return f"AranetDevice({self.device_id!r}, {self.device_type!r})"

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    async def connect(self) -> None:
        if self.is_connected:
            return
        if self._client is None:
            self._client = BleakClient(await self._discover())
        try:
            await self._client.connect()
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            raise DeviceNotFound(f"could not connect to {self.device_id}: {exc}") from exc
        logger.info("connected to %s (%s)", self.device_id,
                    self.device_type.label if self.device_type else "unknown type")

    async def _discover(self):
        try:
            if _ADDRESS_RE.match(self.device_id):
                ble_device = await BleakScanner.find_device_by_address(
                    self.device_id, timeout=self.scan_timeout)
            else:
                ble_device = await BleakScanner.find_device_by_name(
                    self.device_id, timeout=self.scan_timeout)
        except BleakError as exc:
            raise DeviceNotFound(f"scan for {self.device_id} failed: {exc}") from exc
        if ble_device is None:
            raise DeviceNotFound(f"{self.device_id} not found within {self.scan_timeout:g} s")
        if ble_device.name:
            self.name = ble_device.name
            self.device_type = self.device_type or DeviceType.from_name(ble_device.name)
        return ble_device

    async def disconnect(self) -> None:
        if self.is_connected:
            try:
                await self._client.disconnect()
            except BleakError as exc:
                logger.warning("disconnect from %s failed: %s", self.device_id, exc)
            else:
                logger.info("disconnected from %s", self.device_id)

    def _require_client(self) -> BleakClient:
        if not self.is_connected:
            raise NotConnected(f"{self.device_id} is not connected")
        return self._client

    # ------------------------------------------------------------------
    # GattSession
    # ------------------------------------------------------------------
    def has_characteristic(self, uuid: str) -> bool:
        return self._require_client().services.get_characteristic(uuid) is not None

    async def read(self, uuid: str) -> bytes:
        client = self._require_client()
        try:
            return bytes(await client.read_gatt_char(uuid))
        except BleakCharacteristicNotFoundError as exc:
            raise CharacteristicNotFound(uuid) from exc
        except BleakError as exc:
            if not client.is_connected:
                raise NotConnected(f"{self.device_id} dropped the connection") from exc
            raise InvalidData(f"read of {uuid} failed: {exc}") from exc

    async def write(self, uuid: str, data: bytes) -> None:
        client = self._require_client()
        try:
            await client.write_gatt_char(uuid, data, response=True)
        except BleakCharacteristicNotFoundError as exc:
            raise CharacteristicNotFound(uuid) from exc
        except BleakError as exc:
            if not client.is_connected:
                raise NotConnected(f"{self.device_id} dropped the connection") from exc
            raise WriteFailed(uuid, str(exc)) from exc

    async def start_notify(self, uuid: str, callback: Callable[[bytes], None]) -> None:
        client = self._require_client()
        await client.start_notify(uuid, lambda _sender, data: callback(bytes(data)))

    async def stop_notify(self, uuid: str) -> None:
        client = self._require_client()
        await client.stop_notify(uuid)

    # ------------------------------------------------------------------
    # Readings & settings
    # ------------------------------------------------------------------
    async def read_current(self) -> CurrentReading:
        try:
            data = await self.read(CURRENT_READINGS_DETAIL)
        except CharacteristicNotFound:
            log_debug("%s: detail slot missing, trying the alternate one", self.device_id)
            data = await self.read(CURRENT_READINGS_DETAIL_ALT)
        log_debug("current reading %s", to_hex_string(data))
        return parse_current_reading(data, self.device_type)

    async def read_battery(self) -> int:
        data = await self.read(BATTERY_LEVEL)
        if not data:
            raise InvalidData("empty battery level")
        return data[0]

    async def _read_string(self, uuid: str) -> str:
        try:
            data = await self.read(uuid)
        except AranetError as exc:
            log_debug("%s: %s unreadable (%s)", self.device_id, uuid, exc)
            return ""
        return data.decode("utf-8", errors="replace").rstrip("\x00")

    async def read_device_info(self) -> DeviceInfo:
        self._require_client()
        name, model, serial, firmware, hardware, software, manufacturer = await asyncio.gather(
            *(self._read_string(uuid) for uuid in (
                DEVICE_NAME, MODEL_NUMBER, SERIAL_NUMBER, FIRMWARE_REVISION,
                HARDWARE_REVISION, SOFTWARE_REVISION, MANUFACTURER_NAME))
        )
        return DeviceInfo(name=name or (self.name or ""), model=model, serial=serial,
                          firmware=firmware, hardware=hardware, software=software,
                          manufacturer=manufacturer)

    async def get_interval(self) -> MeasurementInterval:
        seconds = read_u16_le(await self.read(READ_INTERVAL), "read interval")
        return MeasurementInterval.from_seconds(seconds)

    async def set_interval(self, interval: MeasurementInterval) -> None:
        await self.write(COMMAND, build_set_interval(interval))
        logger.info("%s: measurement interval set to %d min", self.device_id, interval.minutes)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    async def get_history_info(self) -> HistoryInfo:
        self._require_client()
        return await self.history.get_history_info()

    async def download_history_with_options(
            self, options: Optional[HistoryOptions] = None) -> List[HistoryRecord]:
        legacy = not self.has_characteristic(HISTORY_V2)
        if legacy:
            logger.info("%s has no index-based history, using notifications", self.device_id)
        return await self.history.download_history_with_options(
            self.device_type, options, legacy=legacy)
