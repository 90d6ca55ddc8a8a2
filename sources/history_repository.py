# history_repository.py
"""
Higher‑level service the sync controller depends on.
It knows *what* to store and when a full resync is needed, not *how*
rows are written.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from aranet_errors import StoreError
from app_logger import logger
from history_db import HistoryDB
from models import DeviceInfo, HistoryRecord, HistoryStats, StoredDevice, StoredHistoryRecord, SyncState
from sync_engine import FULL_RESYNC, decide_sync_start, log_decision
from timing_decorator import timed


class HistoryRepository:
    """
    Public API for incremental sync: ``calculate_sync_start`` before a
    download, ``insert_history`` with its records, then
    ``update_sync_state`` once they are safely stored.
    """

    def __init__(self, db: HistoryDB):
        self.db = db
        self.device_map: Dict[str, StoredDevice] = {d.id: d for d in db.list_devices()}

    # ------------------------------------------------------------------
    # Incremental sync
    # ------------------------------------------------------------------
    def calculate_sync_start(self, device_id: str, current_total: int,
                             now: Optional[datetime] = None) -> int:
        """
        1‑based index the next download should start from.

        A store that cannot report its sync state costs a full download,
        never a skipped record, so read failures resolve to index 1.
        """
        try:
            state = self.db.get_sync_state(device_id)
            newest = None
            if state is not None and state.total_readings == current_total:
                newest = self.db.newest_history_timestamp(device_id)
        except StoreError as exc:
            logger.warning("%s: sync state unavailable (%s), downloading everything",
                           device_id, exc)
            return FULL_RESYNC

        decision = decide_sync_start(state, current_total, newest, now)
        log_decision(device_id, decision)
        return decision.start_index

    @timed("history insert")
    def insert_history(self, device_id: str, records: Sequence[HistoryRecord]) -> int:
        """
        Persist records, skipping those already stored.

        Returns
        -------
        int
            Number of new rows. Store failures raise ``StoreError``.
        """
        if device_id not in self.device_map:
            self.db.upsert_device(device_id)
            self.device_map[device_id] = self.db.get_device(device_id)
            logger.info("registered device %s", device_id)

        inserted = self.db.insert_history(device_id, records)
        logger.info("%s: stored %d of %d records", device_id, inserted, len(records))
        return inserted

    def update_sync_state(self, device_id: str, last_index: int, total: int) -> None:
        self.db.update_sync_state(device_id, last_index, total, datetime.now(timezone.utc))
        logger.debug("%s: sync watermark now %d/%d", device_id, last_index, total)

    def get_sync_state(self, device_id: str) -> Optional[SyncState]:
        return self.db.get_sync_state(device_id)

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------
    def save_device_info(self, device_id: str, info: DeviceInfo,
                         device_type: Optional[str] = None) -> StoredDevice:
        self.db.update_device_metadata(
            device_id,
            name=info.name or None,
            device_type=device_type,
            serial=info.serial or None,
            firmware=info.firmware or None,
            hardware=info.hardware or None,
        )
        device = self.db.get_device(device_id)
        self.device_map[device_id] = device
        return device

    def list_devices(self) -> List[StoredDevice]:
        return self.db.list_devices()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def query_history(self, device_id: Optional[str] = None, **filters) -> List[StoredHistoryRecord]:
        return self.db.query_history(device_id, **filters)

    def count_history(self, device_id: Optional[str] = None) -> int:
        return self.db.count_history(device_id)

    def history_stats(self, device_id: Optional[str] = None, **filters) -> HistoryStats:
        return self.db.history_stats(device_id, **filters)
