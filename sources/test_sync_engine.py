"""Tests for the start-index decision procedure."""

from datetime import timedelta

from conftest import NOW
from models import SyncState
from sync_engine import WRAP_SUSPICION, decide_sync_start


def state(last_index, total, synced=NOW):
    return SyncState("dev", last_history_index=last_index, total_readings=total,
                     last_sync_at=synced)


def start(prior, current_total, newest_age=None):
    newest = None if newest_age is None else NOW - newest_age
    return decide_sync_start(prior, current_total, newest, NOW).start_index


class TestDecideSyncStart:
    def test_first_sync(self):
        assert start(None, 100) == 1

    def test_incremental_growth(self):
        assert start(state(100, 100), 110, timedelta(minutes=1)) == 101

    def test_no_change_with_fresh_data(self):
        assert start(state(100, 100), 100, timedelta(minutes=3)) == 101

    def test_no_change_with_stale_data_suspects_wrap(self):
        assert start(state(100, 100), 100, timedelta(minutes=30)) == 1

    def test_wrap_threshold_is_exclusive(self):
        assert start(state(100, 100), 100, WRAP_SUSPICION) == 101
        assert start(state(100, 100), 100, WRAP_SUSPICION + timedelta(seconds=1)) == 1

    def test_device_reset(self):
        assert start(state(500, 500), 200, timedelta(minutes=1)) == 1

    def test_cache_cleared(self):
        assert start(state(100, 100), 100, newest_age=None) == 1

    def test_inconsistent_index_forces_full_resync(self):
        assert start(state(300, 100), 120) == 1

    def test_missing_index_falls_back_to_full(self):
        assert start(state(None, 100), 120) == 1

    def test_state_without_total_is_first_sync(self):
        assert start(SyncState("dev"), 50) == 1

    def test_decision_carries_reason(self):
        decision = decide_sync_start(state(100, 100), 110, NOW, NOW)
        assert "10 new readings" in decision.reason
