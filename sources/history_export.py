# history_export.py
"""
CSV / JSON export and import of stored history.

Exports read straight from the store with ``pandas.read_sql_query``;
imports go back through ``HistoryRepository.insert_history`` so
duplicates are skipped the same way a device sync skips them.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO, Union

import pandas as pd

from aranet_errors import InvalidData
from app_logger import logger
from history_db import to_epoch
from history_repository import HistoryRepository
from models import HistoryRecord, ImportResult

EXPORT_COLUMNS = ["timestamp", "device_id", "co2", "temperature", "pressure", "humidity", "radon"]
RFC3339 = "%Y-%m-%dT%H:%M:%SZ"

PathOrBuffer = Union[str, Path, TextIO]

# ----------------------------------------------------------------------
# 1️⃣  READ HISTORY INTO A DATAFRAME
# ----------------------------------------------------------------------
def history_frame(repo: HistoryRepository, device_id: Optional[str] = None,
                  since: Optional[datetime] = None,
                  until: Optional[datetime] = None) -> pd.DataFrame:
    """Oldest‑first frame with the export columns and a UTC ``timestamp``."""
    sql = f"""
    SELECT {", ".join(EXPORT_COLUMNS)}
    FROM history
    WHERE (? IS NULL OR device_id = ?)
      AND (? IS NULL OR timestamp >= ?)
      AND (? IS NULL OR timestamp <= ?)
    ORDER BY device_id ASC, timestamp ASC
    """
    lo, hi = to_epoch(since), to_epoch(until)
    df = pd.read_sql_query(sql, repo.db.conn,
                           params=(device_id, device_id, lo, lo, hi, hi))
    df["timestamp"] = pd.to_datetime(df["timestamp"], unit="s", utc=True)
    df["radon"] = df["radon"].astype("Int64")
    return df

# ----------------------------------------------------------------------
# 2️⃣  EXPORT
# ----------------------------------------------------------------------
def _for_output(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    out["timestamp"] = out["timestamp"].dt.strftime(RFC3339)
    return out

def export_csv(repo: HistoryRepository, target: Optional[PathOrBuffer] = None,
               device_id: Optional[str] = None, **filters) -> str:
    """Write CSV to ``target`` (when given) and return the text."""
    text = _for_output(history_frame(repo, device_id, **filters)).to_csv(index=False)
    if target is not None:
        _write(target, text)
    return text

def export_json(repo: HistoryRepository, target: Optional[PathOrBuffer] = None,
                device_id: Optional[str] = None, **filters) -> str:
    """Write a JSON array of record objects to ``target`` and return it."""
    text = _for_output(history_frame(repo, device_id, **filters)).to_json(
        orient="records", indent=2)
    if target is not None:
        _write(target, text)
    return text

def _write(target: PathOrBuffer, text: str) -> None:
    if hasattr(target, "write"):
        target.write(text)
    else:
        Path(target).write_text(text, encoding="utf-8")

# ----------------------------------------------------------------------
# 3️⃣  IMPORT
# ----------------------------------------------------------------------
def import_csv(repo: HistoryRepository, source: PathOrBuffer,
               device_id: Optional[str] = None) -> ImportResult:
    try:
        df = pd.read_csv(source)
    except (ValueError, pd.errors.ParserError) as exc:
        raise InvalidData(f"cannot parse CSV history: {exc}") from exc
    return import_frame(repo, df, device_id)

def import_json(repo: HistoryRepository, source: PathOrBuffer,
                device_id: Optional[str] = None) -> ImportResult:
    try:
        df = pd.read_json(source, orient="records", convert_dates=False)
    except ValueError as exc:
        raise InvalidData(f"cannot parse JSON history: {exc}") from exc
    return import_frame(repo, df, device_id)

def _number(row: pd.Series, column: str, default, cast):
    value = row.get(column)
    if value is None or pd.isna(value):
        return default
    return cast(value)

def import_frame(repo: HistoryRepository, df: pd.DataFrame,
                 device_id: Optional[str] = None) -> ImportResult:
    """
    Insert the rows of ``df`` (export column layout).

    ``device_id`` fills rows whose own ``device_id`` is empty. Rows with a
    bad timestamp or no device end up in ``errors``; rows already stored
    count as ``skipped``.
    """
    result = ImportResult(total=len(df))
    by_device: dict = {}

    for position, row in df.iterrows():
        line = int(position) + 1
        owner = row.get("device_id")
        if owner is None or pd.isna(owner) or str(owner).strip() == "":
            owner = device_id
        if not owner:
            result.errors.append(f"row {line}: missing device_id")
            continue

        ts = pd.to_datetime(row.get("timestamp"), utc=True, errors="coerce")
        if ts is None or pd.isna(ts):
            result.errors.append(f"row {line}: invalid timestamp {row.get('timestamp')!r}")
            continue

        try:
            record = HistoryRecord(
                timestamp=ts.to_pydatetime(),
                co2=_number(row, "co2", 0, int),
                temperature=_number(row, "temperature", 0.0, float),
                pressure=_number(row, "pressure", 0.0, float),
                humidity=_number(row, "humidity", 0, int),
                radon=_number(row, "radon", None, int),
            )
        except (TypeError, ValueError) as exc:
            result.errors.append(f"row {line}: {exc}")
            continue
        by_device.setdefault(str(owner), []).append(record)

    valid = 0
    for owner, records in by_device.items():
        valid += len(records)
        result.imported += repo.insert_history(owner, records)
    result.skipped = valid - result.imported

    logger.info("import: %d rows, %d imported, %d skipped, %d errors",
                result.total, result.imported, result.skipped, len(result.errors))
    return result
