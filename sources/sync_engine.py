# sync_engine.py
"""
Decides which slice of a device's ring buffer still has to be
downloaded, given the remembered sync state and the freshly read total.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from app_logger import logger
from models import SyncState

# Longest sampling interval a device supports. An unchanged total older
# than this means the buffer most likely wrapped.
# TODO: derive from the device's configured interval once a family with
# intervals above 10 minutes exists.
WRAP_SUSPICION = timedelta(minutes=10)

FULL_RESYNC = 1


@dataclass(frozen=True)
class SyncDecision:
    start_index: int
    reason: str


def decide_sync_start(
    state: Optional[SyncState],
    current_total: int,
    newest_stored: Optional[datetime],
    now: Optional[datetime] = None,
) -> SyncDecision:
    """
    Start index (1‑based) of the next download.

    Parameters
    ----------
    state : SyncState | None
        What the store remembers about the previous sync.
    current_total : int
        ``total_readings`` just read from the device.
    newest_stored : datetime | None
        Timestamp of the newest stored record, ``None`` if none is stored.

    Returns
    -------
    SyncDecision
        ``start_index == current_total + 1`` means there is nothing new.
    """
    now = now or datetime.now(timezone.utc)

    if state is None or state.total_readings is None:
        return SyncDecision(FULL_RESYNC, "first sync")

    prior_total = state.total_readings

    if prior_total == current_total:
        if newest_stored is None:
            return SyncDecision(FULL_RESYNC, "local history missing, repopulating")
        if now - newest_stored > WRAP_SUSPICION:
            return SyncDecision(FULL_RESYNC, "unchanged total with stale data, buffer likely wrapped")
        return SyncDecision(current_total + 1, "no new readings")

    if current_total < prior_total:
        return SyncDecision(FULL_RESYNC, "device total shrank, device was reset")

    if state.last_history_index is not None:
        candidate = state.last_history_index + 1
        if candidate > current_total:
            return SyncDecision(FULL_RESYNC, "sync state ahead of device, resyncing")
        return SyncDecision(
            candidate, f"{current_total - prior_total} new readings since last sync")

    return SyncDecision(FULL_RESYNC, "no usable sync index")


def log_decision(device_id: str, decision: SyncDecision) -> None:
    logger.info("%s: sync from index %d (%s)", device_id, decision.start_index, decision.reason)
