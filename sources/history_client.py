# history_client.py
"""
History download protocol client.

Two wire variants are supported:

* index‑based (V2): write ``[0x61, param, idx_lo, idx_hi]`` to the command
  slot, wait ``read_delay``, read the history slot, repeat from the next
  undownloaded index;
* notification‑based (V1): write one ``[0x82, …]`` request per parameter
  and collect the values the device pushes on the legacy history slot.

The client is strictly sequential: one outstanding request per session.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from aranet_errors import InvalidData
from aranet_protocol import (
    COMMAND,
    HISTORY_V1,
    HISTORY_V1_MAX_TIMEOUTS,
    HISTORY_V1_TIMEOUT,
    HISTORY_V2,
    READ_INTERVAL,
    SECONDS_SINCE_UPDATE,
    TOTAL_READINGS,
    HistoryParam,
)
from app_logger import logger, log_debug
from models import DeviceType, HistoryInfo, HistoryProgress, HistoryRecord
from param_decoder import (
    build_history_v1_request,
    build_history_v2_request,
    parse_history_v1_notification,
    parse_history_v2_response,
    read_u16_le,
    to_hex_string,
)
from record_assembler import assemble_records, params_for
from settings import DEFAULT_READ_DELAY
from timing_decorator import timed

ProgressCallback = Callable[[HistoryProgress], None]


class GattSession(Protocol):
    """The slice of a connected transport the history client needs."""

    async def read(self, uuid: str) -> bytes: ...

    async def write(self, uuid: str, data: bytes) -> None: ...

    async def start_notify(self, uuid: str, callback: Callable[[bytes], None]) -> None: ...

    async def stop_notify(self, uuid: str) -> None: ...


@dataclass
class HistoryOptions:
    start_index: Optional[int] = None       # 1‑based, None → 1
    end_index: Optional[int] = None         # inclusive, None → total_readings
    read_delay: float = DEFAULT_READ_DELAY  # pause after every command write
    progress_callback: Optional[ProgressCallback] = None

    def resolve_range(self, total_readings: int) -> Tuple[int, int]:
        start = 1 if self.start_index is None else max(self.start_index, 1)
        end = total_readings if self.end_index is None else min(self.end_index, total_readings)
        return start, end

    def report(self, progress: HistoryProgress) -> None:
        if self.progress_callback is not None:
            self.progress_callback(progress)


class HistoryClient:
    """
    Drives the history protocols over a ``GattSession``.

    Parameters
    ----------
    session : GattSession
        Connected transport; the client never opens or closes it.
    v1_timeout : float
        Seconds to wait for each legacy notification.
    sleep : callable
        Pacing coroutine, ``asyncio.sleep`` unless a test swaps it.
    """

    def __init__(self, session: GattSession,
                 v1_timeout: float = HISTORY_V1_TIMEOUT,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.session = session
        self.v1_timeout = v1_timeout
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------
    async def get_history_info(self) -> HistoryInfo:
        total = read_u16_le(await self.session.read(TOTAL_READINGS), "total readings")
        interval = read_u16_le(await self.session.read(READ_INTERVAL), "read interval")
        ago_raw = await self.session.read(SECONDS_SINCE_UPDATE)
        # some firmwares answer with an empty slot right after a sample
        ago = read_u16_le(ago_raw, "seconds since update") if len(ago_raw) >= 2 else 0
        return HistoryInfo(total_readings=total, interval_seconds=interval,
                           seconds_since_update=ago)

    # ------------------------------------------------------------------
    # Index‑based protocol
    # ------------------------------------------------------------------
    async def download_param(
        self,
        param: HistoryParam,
        start: int,
        end: int,
        read_delay: float = DEFAULT_READ_DELAY,
        on_batch: Optional[Callable[[int], None]] = None,
    ) -> Dict[int, int]:
        """
        Download one parameter over ``[start, end]`` with the index protocol.

        Returns ``{absolute index: raw value}`` in ascending index order.
        Overlapping or repeated responses are harmless, and a run the device
        ends early with ``count == 0`` keeps the indices it actually sent.

        Raises
        ------
        InvalidData
            On a response shorter than the header, or one that announces
            values but carries none.
        """
        log_debug("downloading %s over [%d, %d]", param.name, start, end)
        values: Dict[int, int] = {}
        index = start

        while index <= end:
            request = build_history_v2_request(param, index)
            log_debug("-> %s", to_hex_string(request))
            await self.session.write(COMMAND, request)
            await self._sleep(read_delay)

            raw = await self.session.read(HISTORY_V2)
            log_debug("<- %s", to_hex_string(raw))
            response = parse_history_v2_response(raw)

            if response.param != int(param):
                # device has not serviced the write yet, ask again
                log_debug("expected param %d, got %d; retrying index %d",
                          int(param), response.param, index)
                await self._sleep(read_delay)
                continue

            if response.count == 0:
                log_debug("%s: end of history at index %d", param.name, index)
                break

            decoded = response.values(param)
            if not decoded:
                raise InvalidData(
                    f"history response for {param.name} announced {response.count} "
                    f"values but carried {len(response.payload)} payload bytes"
                )
            for offset, value in enumerate(decoded):
                absolute = response.start_index + offset
                if absolute > end:
                    break
                values[absolute] = value

            if on_batch is not None:
                on_batch(len(values))

            index = response.start_index + len(decoded)
            if response.start_index + response.count - 1 >= end:
                break

        return {k: values[k] for k in sorted(values)}

    # ------------------------------------------------------------------
    # Notification‑based protocol
    # ------------------------------------------------------------------
    async def download_param_v1(
        self,
        param: HistoryParam,
        total_readings: int,
        queue: "asyncio.Queue[bytes]",
        on_batch: Optional[Callable[[int], None]] = None,
    ) -> List[int]:
        """
        Request the whole range of ``param`` and gather pushed values until
        ``total_readings`` arrived or the device went quiet for
        ``HISTORY_V1_MAX_TIMEOUTS`` consecutive waits. Partial data is kept.
        """
        if not param.supports_v1:
            raise InvalidData(f"{param.name} is not available over the legacy history protocol")

        request = build_history_v1_request(param, total_readings)
        log_debug("-> %s", to_hex_string(request))
        await self.session.write(COMMAND, request)

        values: List[int] = []
        timeouts = 0
        while len(values) < total_readings:
            try:
                data = await asyncio.wait_for(queue.get(), self.v1_timeout)
            except asyncio.TimeoutError:
                timeouts += 1
                logger.warning("no history notification for %s (%d/%d), %d/%d values",
                               param.name, timeouts, HISTORY_V1_MAX_TIMEOUTS,
                               len(values), total_readings)
                if timeouts >= HISTORY_V1_MAX_TIMEOUTS:
                    break
                continue

            timeouts = 0
            parsed = parse_history_v1_notification(data)
            if parsed is None or parsed[0] != int(param):
                continue
            remaining = total_readings - len(values)
            values.extend(parsed[1][:remaining])
            if on_batch is not None:
                on_batch(len(values))

        if len(values) < total_readings:
            logger.warning("legacy history for %s incomplete: %d/%d values",
                           param.name, len(values), total_readings)
        return values

    # ------------------------------------------------------------------
    # Full download
    # ------------------------------------------------------------------
    @timed("history download")
    async def download_history_with_options(
        self,
        device_type: Optional[DeviceType],
        options: Optional[HistoryOptions] = None,
        legacy: bool = False,
    ) -> List[HistoryRecord]:
        """
        Download every parameter the device family carries and assemble
        timestamped records, oldest first.

        Returns an empty list for an empty device, an empty range or a
        family without history support.
        """
        options = options or HistoryOptions()
        params = params_for(device_type)
        if not params:
            logger.info("history download not supported for %s", device_type)
            return []

        info = await self.get_history_info()
        logger.info("device holds %d readings, interval %d s, last update %d s ago",
                    info.total_readings, info.interval_seconds, info.seconds_since_update)
        if info.total_readings == 0:
            return []

        start, end = options.resolve_range(info.total_readings)
        if start > end:
            return []

        if legacy:
            arrays = await self._download_all_v1(params, info, options)
            # legacy runs always start at index 1
            arrays = {p: {i: v for i, v in enumerate(values, start=1) if start <= i <= end}
                      for p, values in arrays.items()}
        else:
            arrays = await self._download_all_v2(params, start, end, options)

        records = assemble_records(arrays, info, device_type)
        logger.info("downloaded %d history records [%d, %d]", len(records), start, end)
        return records

    async def _download_all_v2(self, params: Sequence[HistoryParam], start: int, end: int,
                               options: HistoryOptions) -> Dict[HistoryParam, Dict[int, int]]:
        total_values = end - start + 1
        arrays: Dict[HistoryParam, Dict[int, int]] = {}
        for position, param in enumerate(params, start=1):
            def on_batch(done: int, param=param, position=position) -> None:
                options.report(HistoryProgress.build(
                    param.name, position, len(params), done, total_values))

            on_batch(0)
            arrays[param] = await self.download_param(
                param, start, end, options.read_delay, on_batch)
        return arrays

    async def _download_all_v1(self, params: Sequence[HistoryParam], info: HistoryInfo,
                               options: HistoryOptions) -> Dict[HistoryParam, List[int]]:
        if not all(p.supports_v1 for p in params):
            raise InvalidData("legacy history protocol cannot download radon parameters")

        queue: "asyncio.Queue[bytes]" = asyncio.Queue()
        await self.session.start_notify(HISTORY_V1, lambda data: queue.put_nowait(bytes(data)))
        arrays: Dict[HistoryParam, List[int]] = {}
        try:
            for position, param in enumerate(params, start=1):
                def on_batch(done: int, param=param, position=position) -> None:
                    options.report(HistoryProgress.build(
                        param.name, position, len(params), done, info.total_readings))

                on_batch(0)
                arrays[param] = await self.download_param_v1(
                    param, info.total_readings, queue, on_batch)
        finally:
            await self.session.stop_notify(HISTORY_V1)
        return arrays
