# record_assembler.py
"""
Zips the per‑parameter index maps downloaded by the history client into
timestamped ``HistoryRecord`` objects.

The device only reports the age of its newest sample and the sampling
interval, so every timestamp is reconstructed from a single anchor and
the sample's absolute ring‑buffer index:

    latest  = now - seconds_since_update
    ts[idx] = latest - (total_readings - idx) * interval

A change of interval somewhere inside the stored history makes older
timestamps wrong; that is a known limitation of the device protocol.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from aranet_protocol import CO2_CLASS_PARAMS, RADON_CLASS_PARAMS, HistoryParam
from app_logger import logger
from models import DeviceType, HistoryInfo, HistoryRecord
from param_decoder import raw_to_humidity2, raw_to_pressure, raw_to_radon, raw_to_temperature

IndexedValues = Mapping[int, int]

# Aranet2 answers the CO2 request with an empty run
OPTIONAL_PARAMS = frozenset({HistoryParam.CO2})


def params_for(device_type: Optional[DeviceType]) -> Sequence[HistoryParam]:
    """
    Parameters to download for a device family, in download order.

    Radon devices get radon and the two‑byte humidity. Radiation devices
    have no index‑based history and get an empty tuple. Everything else,
    unknown families included, is treated as CO2‑class.
    """
    if device_type is DeviceType.RADIATION:
        return ()
    if device_type is DeviceType.RADON:
        return RADON_CLASS_PARAMS
    return CO2_CLASS_PARAMS


def reading_times(indices: Iterable[int], info: HistoryInfo,
                  now: Optional[datetime] = None) -> List[datetime]:
    """Timestamps for the given absolute 1‑based indices, in the same order."""
    now = now or datetime.now(timezone.utc)
    # the device counts whole seconds
    latest = now.replace(microsecond=0) - timedelta(seconds=info.seconds_since_update)
    interval = info.interval_seconds
    return [latest - timedelta(seconds=(info.total_readings - idx) * interval)
            for idx in indices]


def complete_indices(arrays: Mapping[HistoryParam, IndexedValues]) -> List[int]:
    """
    Indices every carried parameter returned a value for, ascending.

    A parameter from ``OPTIONAL_PARAMS`` that came back empty is taken as
    not carried by the device and does not restrict the result.
    """
    carried = [values for param, values in arrays.items()
               if values or param not in OPTIONAL_PARAMS]
    if not carried:
        return []
    common = set(carried[0]).intersection(*carried[1:])
    seen = set().union(*carried)
    dropped = len(seen) - len(common)
    if dropped:
        logger.warning("dropping %d history indices missing from some parameters", dropped)
    return sorted(common)


def assemble_records(
    arrays: Dict[HistoryParam, IndexedValues],
    info: HistoryInfo,
    device_type: Optional[DeviceType],
    now: Optional[datetime] = None,
) -> List[HistoryRecord]:
    """
    Build records from raw values keyed by absolute index.

    Parameters
    ----------
    arrays : dict
        ``{param: {index: raw value}}`` for every downloaded parameter.
    info : HistoryInfo
        Counters read at the start of the download; ``total_readings``
        is the index of the newest sample.
    device_type : DeviceType | None
        Selects radon vs CO2‑class field mapping.

    Returns
    -------
    list[HistoryRecord]
        Oldest first, one per index present in every carried parameter.
    """
    indices = complete_indices(arrays)
    if not indices:
        return []
    times = reading_times(indices, info, now)

    temperature = arrays.get(HistoryParam.TEMPERATURE, {})
    pressure = arrays.get(HistoryParam.PRESSURE, {})

    records: List[HistoryRecord] = []
    if device_type is DeviceType.RADON:
        radon = arrays.get(HistoryParam.RADON, {})
        humidity = arrays.get(HistoryParam.HUMIDITY2, {})
        for idx, ts in zip(indices, times):
            records.append(HistoryRecord(
                timestamp=ts,
                co2=0,      # not applicable on radon devices
                temperature=raw_to_temperature(temperature[idx]),
                pressure=raw_to_pressure(pressure[idx]),
                humidity=raw_to_humidity2(humidity[idx]),
                radon=raw_to_radon(radon[idx]),
            ))
        return records

    co2 = arrays.get(HistoryParam.CO2, {})
    humidity = arrays.get(HistoryParam.HUMIDITY, {})
    for idx, ts in zip(indices, times):
        records.append(HistoryRecord(
            timestamp=ts,
            co2=co2.get(idx, 0),
            temperature=raw_to_temperature(temperature[idx]),
            pressure=raw_to_pressure(pressure[idx]),
            humidity=humidity[idx],
        ))
    return records
