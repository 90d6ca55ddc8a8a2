# sync_controller.py
"""
Glues a sensor to the repository: one sync is
info → start index → download → insert → watermark.

Connect and download run under a single hard timeout. Nothing is
written until the whole requested range is in memory, and the
watermark only moves after the insert succeeded.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

from aranet_device import SensorDevice
from aranet_errors import AranetError, OperationTimeout
from app_logger import logger
from history_client import HistoryOptions, ProgressCallback
from history_repository import HistoryRepository
from models import HistoryInfo, HistoryRecord
from settings import DEFAULT_READ_DELAY, DEFAULT_SYNC_TIMEOUT


@dataclass
class SyncReport:
    device_id: str
    start_index: int
    total_readings: int
    downloaded: int
    inserted: int
    total_cached: int


class SyncController:
    def __init__(self, repo: HistoryRepository,
                 sync_timeout: float = DEFAULT_SYNC_TIMEOUT,
                 read_delay: float = DEFAULT_READ_DELAY,
                 progress_callback: Optional[ProgressCallback] = None):
        self.repo = repo
        self.sync_timeout = sync_timeout
        self.read_delay = read_delay
        self.progress_callback = progress_callback
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, device_id: str) -> asyncio.Lock:
        return self._locks.setdefault(device_id, asyncio.Lock())

    async def sync_device(self, device: SensorDevice, full: bool = False) -> SyncReport:
        """
        Bring the local history of ``device`` up to date.

        Raises
        ------
        OperationTimeout
            Connect plus download exceeded ``sync_timeout``; nothing stored.
        AranetError
            Any device or store failure. A store failure after a download
            leaves the sync state untouched.
        """
        async with self._lock_for(device.device_id):
            try:
                info, start, records = await asyncio.wait_for(
                    self._fetch(device, full), self.sync_timeout)
            except asyncio.TimeoutError:
                raise OperationTimeout(f"sync of {device.device_id}", self.sync_timeout) from None
            finally:
                await device.disconnect()

            inserted = self.repo.insert_history(device.device_id, records) if records else 0
            self.repo.update_sync_state(device.device_id, info.total_readings, info.total_readings)

            report = SyncReport(
                device_id=device.device_id,
                start_index=start,
                total_readings=info.total_readings,
                downloaded=len(records),
                inserted=inserted,
                total_cached=self.repo.count_history(device.device_id),
            )
            logger.info("%s: downloaded %d, inserted %d, %d cached",
                        report.device_id, report.downloaded, report.inserted, report.total_cached)
            return report

    async def _fetch(self, device: SensorDevice, full: bool):
        await device.connect()
        try:
            device_info = await device.read_device_info()
        except AranetError as exc:
            # metadata is optional, history is not
            logger.warning("%s: device info unavailable: %s", device.device_id, exc)
        else:
            self.repo.save_device_info(
                device.device_id, device_info,
                device.device_type.label if device.device_type else None)

        info: HistoryInfo = await device.get_history_info()
        start = 1 if full else self.repo.calculate_sync_start(device.device_id, info.total_readings)

        records: List[HistoryRecord] = []
        if start <= info.total_readings:
            records = await device.download_history_with_options(HistoryOptions(
                start_index=start,
                end_index=info.total_readings,
                read_delay=self.read_delay,
                progress_callback=self.progress_callback,
            ))
        else:
            logger.info("%s: already up to date", device.device_id)
        return info, start, records

    async def sync_all(self, devices: Sequence[SensorDevice],
                       full: bool = False) -> Dict[str, Union[SyncReport, BaseException]]:
        """Sync devices concurrently; each entry is a report or the error it raised."""
        results = await asyncio.gather(
            *(self.sync_device(d, full) for d in devices), return_exceptions=True)
        summary: Dict[str, Union[SyncReport, BaseException]] = {}
        for device, result in zip(devices, results):
            if isinstance(result, BaseException):
                logger.error("%s: sync failed: %s", device.device_id, result)
            summary[device.device_id] = result
        return summary
