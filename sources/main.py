#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""main.py
Minimal executable that syncs the stored history of every configured
Aranet sensor into the local SQLite cache.

Devices, database location and timings come from ``settings.py`` and
the ``ARANET_*`` environment variables, e.g.::

    ARANET_DEVICES="Aranet4 1A2B3,AA:BB:CC:DD:EE:FF" python main.py
"""

import asyncio
import sys
from typing import Dict, List, Tuple, Union

from aranet_device import AranetDevice
from app_logger import logger, set_log_file
from history_db import HistoryDB
from history_repository import HistoryRepository
from settings import SyncSettings
from sync_controller import SyncController, SyncReport


def build_components(settings: SyncSettings) -> Tuple[HistoryDB, SyncController, List[AranetDevice]]:
    """
    Build the whole stack and return the database, a ready‑to‑use
    controller and one device object per configured identifier.
    """
    # 1️⃣  Persistence layer
    db = HistoryDB(db_path=settings.db_path)
    repo = HistoryRepository(db)

    # 2️⃣  Controller – glues repo + devices
    controller = SyncController(repo, sync_timeout=settings.sync_timeout,
                                read_delay=settings.read_delay)

    # 3️⃣  Devices
    devices = [AranetDevice(identifier, scan_timeout=settings.scan_timeout)
               for identifier in settings.devices]
    return db, controller, devices


async def sync(settings: SyncSettings, full: bool = False) -> Dict[str, Union[SyncReport, BaseException]]:
    db, controller, devices = build_components(settings)
    try:
        return await controller.sync_all(devices, full=full)
    finally:
        db.close()


def main() -> int:
    settings = SyncSettings.from_env()
    set_log_file(settings.log_file)
    if not settings.devices:
        logger.error("no devices configured, set ARANET_DEVICES")
        return 2

    try:
        results = asyncio.run(sync(settings))
    except KeyboardInterrupt:
        logger.info("sync interrupted by user")
        return 130

    failed = 0
    for device_id, result in results.items():
        if isinstance(result, SyncReport):
            print(f"{device_id}: {result.downloaded} downloaded, "
                  f"{result.inserted} new, {result.total_cached} cached")
        else:
            failed += 1
            print(f"{device_id}: FAILED ({result})")
    return 1 if failed else 0


# ----------------------------------------------------------------------
# Main entry point
# ----------------------------------------------------------------------
if __name__ == "__main__":
    sys.exit(main())
