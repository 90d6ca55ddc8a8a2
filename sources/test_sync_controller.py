"""End-to-end sync tests: fake device → protocol client → SQLite store."""

import asyncio
from unittest.mock import patch

import pytest

from aranet_device import AranetDevice
from aranet_errors import InvalidData, OperationTimeout, StoreError
from aranet_protocol import HistoryParam
from conftest import FakeBleakClient, aranet4_history, no_sleep
from history_client import HistoryClient
from models import DeviceType
from sync_controller import SyncController, SyncReport


def make_device(fake, identifier="AA:BB:CC:DD:EE:FF", device_type=DeviceType.ARANET4):
    device = AranetDevice(identifier, device_type=device_type, client=fake)
    device.history = HistoryClient(device, v1_timeout=0.05, sleep=no_sleep)
    return device


def grow(fake, extra):
    """Append ``extra`` samples to the fake ring buffer."""
    more = aranet4_history(fake.total + extra)
    for param, values in more.items():
        fake.history[param] = values


class TestSyncDevice:
    @pytest.mark.asyncio
    async def test_first_sync_downloads_everything(self, repo):
        fake = FakeBleakClient(history=aranet4_history(30), ago=5)
        controller = SyncController(repo, read_delay=0)

        report = await controller.sync_device(make_device(fake))

        assert report == SyncReport(device_id="AA:BB:CC:DD:EE:FF", start_index=1,
                                    total_readings=30, downloaded=30, inserted=30,
                                    total_cached=30)
        state = repo.get_sync_state("AA:BB:CC:DD:EE:FF")
        assert (state.last_history_index, state.total_readings) == (30, 30)
        assert not fake.is_connected

    @pytest.mark.asyncio
    async def test_second_sync_fetches_only_new_tail(self, repo):
        fake = FakeBleakClient(history=aranet4_history(30), interval=60)
        controller = SyncController(repo, read_delay=0)
        device = make_device(fake)
        await controller.sync_device(device)

        grow(fake, 4)
        fake.writes.clear()
        report = await controller.sync_device(device)

        assert report.start_index == 31
        assert report.downloaded == 4
        assert repo.get_sync_state(device.device_id).last_history_index == 34
        history_requests = [d for _, d in fake.writes if d[0] == 0x61]
        assert min(d[2] | d[3] << 8 for d in history_requests) == 31

    @pytest.mark.asyncio
    async def test_unchanged_device_downloads_nothing(self, repo):
        fake = FakeBleakClient(history=aranet4_history(10), interval=60)
        controller = SyncController(repo, read_delay=0)
        device = make_device(fake)
        await controller.sync_device(device)

        fake.writes.clear()
        report = await controller.sync_device(device)

        assert report.start_index == 11
        assert report.downloaded == 0
        assert report.inserted == 0
        assert [d for _, d in fake.writes if d[0] == 0x61] == []
        assert repo.get_sync_state(device.device_id).total_readings == 10

    @pytest.mark.asyncio
    async def test_full_flag_ignores_state(self, repo):
        fake = FakeBleakClient(history=aranet4_history(10), interval=60)
        controller = SyncController(repo, read_delay=0)
        device = make_device(fake)
        await controller.sync_device(device)

        report = await controller.sync_device(device, full=True)

        assert report.start_index == 1
        assert report.downloaded == 10

    @pytest.mark.asyncio
    async def test_device_metadata_saved(self, repo):
        fake = FakeBleakClient(history=aranet4_history(2))
        await SyncController(repo, read_delay=0).sync_device(make_device(fake))

        assert repo.db.get_device("AA:BB:CC:DD:EE:FF").device_type == "Aranet4"

    @pytest.mark.asyncio
    async def test_timeout_persists_nothing(self, repo):
        fake = FakeBleakClient(history=aranet4_history(10))
        device = make_device(fake)

        async def slow(_seconds):
            await asyncio.sleep(1)

        device.history = HistoryClient(device, sleep=slow)
        controller = SyncController(repo, sync_timeout=0.05)

        with pytest.raises(OperationTimeout):
            await controller.sync_device(device)

        assert repo.count_history(device.device_id) == 0
        assert repo.get_sync_state(device.device_id) is None
        assert not fake.is_connected

    @pytest.mark.asyncio
    async def test_download_error_persists_nothing(self, repo):
        fake = FakeBleakClient(history=aranet4_history(10))
        fake.short_response = True
        device = make_device(fake)

        with pytest.raises(InvalidData):
            await SyncController(repo, read_delay=0).sync_device(device)

        assert repo.count_history(device.device_id) == 0
        assert repo.get_sync_state(device.device_id) is None

    @pytest.mark.asyncio
    async def test_store_failure_keeps_watermark(self, repo):
        fake = FakeBleakClient(history=aranet4_history(10), interval=60)
        controller = SyncController(repo, read_delay=0)
        device = make_device(fake)
        await controller.sync_device(device)

        grow(fake, 5)
        with patch.object(repo.db, "insert_history", side_effect=StoreError("disk full")):
            with pytest.raises(StoreError):
                await controller.sync_device(device)

        state = repo.get_sync_state(device.device_id)
        assert (state.last_history_index, state.total_readings) == (10, 10)


class TestSyncAll:
    @pytest.mark.asyncio
    async def test_devices_sync_independently(self, repo):
        good = make_device(FakeBleakClient(history=aranet4_history(5)), "11:11:11:11:11:11")
        broken_fake = FakeBleakClient(history=aranet4_history(5))
        broken_fake.short_response = True
        broken = make_device(broken_fake, "22:22:22:22:22:22")

        results = await SyncController(repo, read_delay=0).sync_all([good, broken])

        assert isinstance(results["11:11:11:11:11:11"], SyncReport)
        assert isinstance(results["22:22:22:22:22:22"], InvalidData)
        assert repo.count_history("11:11:11:11:11:11") == 5

    @pytest.mark.asyncio
    async def test_same_device_is_not_synced_twice_at_once(self, repo):
        fake = FakeBleakClient(history=aranet4_history(8))
        device = make_device(fake)
        controller = SyncController(repo, read_delay=0)

        first, second = await asyncio.gather(
            controller.sync_device(device), controller.sync_device(device))

        assert first.start_index == 1 and first.downloaded == 8
        assert second.start_index == 9 and second.downloaded == 0
        assert repo.count_history(device.device_id) == 8
