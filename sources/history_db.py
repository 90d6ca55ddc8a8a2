#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
File: history_db.py
Description:
    Low‑level DAO (Data‑Access‑Object)
    A thin wrapper around an embedded SQLite database that stores the
    history downloaded from Aranet sensors. The module defines a
    `HistoryDB` class with the device, history and sync‑state tables and
    the helpers the repository builds the incremental sync on.

    Key features:
        • Automatic schema creation (schema_version, devices, history, sync_state)
        • WAL journal so readers never block the single writer
        • `INSERT OR IGNORE` on UNIQUE(device_id, timestamp) for idempotent inserts
        • Upserts for devices and sync state
        • Query, count and aggregate helpers for history
        • Timestamps stored as Unix seconds (UTC)
"""
import sqlite3
import threading
from contextlib import contextmanager, suppress
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from aranet_errors import StoreError
from app_logger import logger
from models import HistoryRecord, HistoryStats, StoredDevice, StoredHistoryRecord, SyncState

SCHEMA_VERSION = 1

def to_epoch(ts: Optional[datetime]) -> Optional[int]:
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return int(ts.timestamp())

def from_epoch(value: Optional[int]) -> Optional[datetime]:
    return None if value is None else datetime.fromtimestamp(value, tz=timezone.utc)


class HistoryDB:
    """CRUD wrapper for the devices, history and sync_state tables."""

    def __init__(self, db_path: str | Path = "aranet.db"):
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StoreError(f"cannot open {db_path}: {exc}") from exc
        self.conn.row_factory = sqlite3.Row
        self.db_path = db_path
        self._write_lock = threading.Lock()
        self._ensure_schema()

    # --------------------------------------------------------------
    # Schema creation
    # --------------------------------------------------------------
    def _ensure_schema(self) -> None:
        with self._write_lock, self._errors("schema creation"):
            self.conn.executescript(
                """
                PRAGMA foreign_keys = ON;
                PRAGMA journal_mode = WAL;
                PRAGMA synchronous = NORMAL;

                CREATE TABLE IF NOT EXISTS schema_version (
                    id      INTEGER PRIMARY KEY CHECK (id = 1),
                    version INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS devices (
                    id          TEXT PRIMARY KEY,
                    name        TEXT,
                    device_type TEXT,
                    serial      TEXT,
                    firmware    TEXT,
                    hardware    TEXT,
                    first_seen  INTEGER NOT NULL,
                    last_seen   INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS history (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    device_id       TEXT    NOT NULL,
                    timestamp       INTEGER NOT NULL,
                    synced_at       INTEGER NOT NULL,
                    co2             INTEGER NOT NULL DEFAULT 0,
                    temperature     REAL    NOT NULL DEFAULT 0,
                    pressure        REAL    NOT NULL DEFAULT 0,
                    humidity        INTEGER NOT NULL DEFAULT 0,
                    radon           INTEGER,
                    radiation_rate  REAL,
                    radiation_total REAL,
                    UNIQUE(device_id, timestamp),
                    FOREIGN KEY(device_id) REFERENCES devices(id)
                        ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_history_device_time
                    ON history(device_id, timestamp);

                CREATE TABLE IF NOT EXISTS sync_state (
                    device_id          TEXT PRIMARY KEY,
                    last_history_index INTEGER,
                    total_readings     INTEGER,
                    last_sync_at       INTEGER,
                    FOREIGN KEY(device_id) REFERENCES devices(id)
                        ON DELETE CASCADE
                );
                """
            )
            self.conn.execute(
                "INSERT OR IGNORE INTO schema_version (id, version) VALUES (1, ?);",
                (SCHEMA_VERSION,),
            )
            self.conn.commit()

    # --------------------------------------------------------------
    # Helpers
    # --------------------------------------------------------------
    @contextmanager
    def _errors(self, what: str):
        """Turn ``sqlite3.Error`` into ``StoreError``, rolling back any open transaction."""
        try:
            yield
        except sqlite3.Error as exc:
            with suppress(sqlite3.Error):
                self.conn.rollback()
            raise StoreError(f"{what} failed: {exc}") from exc

    @staticmethod
    def _row_to_device(row: sqlite3.Row) -> StoredDevice:
        values = {k: row[k] for k in row.keys()}
        values["first_seen"] = from_epoch(values["first_seen"])
        values["last_seen"] = from_epoch(values["last_seen"])
        return StoredDevice(**values)

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> StoredHistoryRecord:
        values = {k: row[k] for k in row.keys()}
        values["timestamp"] = from_epoch(values["timestamp"])
        values["synced_at"] = from_epoch(values["synced_at"])
        return StoredHistoryRecord(**values)

    @staticmethod
    def _history_filter(device_id: Optional[str], since: Optional[datetime],
                        until: Optional[datetime]):
        clauses, params = [], []
        if device_id is not None:
            clauses.append("device_id = ?")
            params.append(device_id)
        if since is not None:
            clauses.append("timestamp >= ?")
            params.append(to_epoch(since))
        if until is not None:
            clauses.append("timestamp <= ?")
            params.append(to_epoch(until))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    # ==============================================================
    #                     DEVICES
    # ==============================================================

    def _upsert_device(self, device_id: str, name: Optional[str], now: int) -> None:
        # caller holds the write lock and commits
        self.conn.execute(
            """
            INSERT INTO devices (id, name, first_seen, last_seen)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = COALESCE(excluded.name, devices.name),
                last_seen = excluded.last_seen;
            """,
            (device_id, name, now, now),
        )

    def upsert_device(self, device_id: str, name: Optional[str] = None,
                      now: Optional[datetime] = None) -> None:
        seen = to_epoch(now or datetime.now(timezone.utc))
        with self._write_lock, self._errors("device upsert"):
            self._upsert_device(device_id, name, seen)
            self.conn.commit()

    def update_device_metadata(self, device_id: str, name: Optional[str] = None,
                               device_type: Optional[str] = None,
                               serial: Optional[str] = None,
                               firmware: Optional[str] = None,
                               hardware: Optional[str] = None) -> None:
        """Fill in descriptive columns; ``None`` keeps the stored value."""
        now = to_epoch(datetime.now(timezone.utc))
        with self._write_lock, self._errors("device metadata update"):
            self._upsert_device(device_id, name, now)
            self.conn.execute(
                """
                UPDATE devices SET
                    device_type = COALESCE(?, device_type),
                    serial      = COALESCE(?, serial),
                    firmware    = COALESCE(?, firmware),
                    hardware    = COALESCE(?, hardware)
                WHERE id = ?;
                """,
                (device_type, serial, firmware, hardware, device_id),
            )
            self.conn.commit()

    def get_device(self, device_id: str) -> Optional[StoredDevice]:
        with self._errors("device lookup"):
            row = self.conn.execute(
                "SELECT * FROM devices WHERE id = ?;", (device_id,)
            ).fetchone()
        return self._row_to_device(row) if row else None

    def list_devices(self) -> List[StoredDevice]:
        with self._errors("device listing"):
            rows = self.conn.execute("SELECT * FROM devices ORDER BY id;").fetchall()
        return [self._row_to_device(r) for r in rows]

    def delete_device(self, device_id: str) -> int:
        """Remove a device together with its history and sync state."""
        with self._write_lock, self._errors("device delete"):
            cur = self.conn.execute("DELETE FROM devices WHERE id = ?;", (device_id,))
            self.conn.commit()
        return cur.rowcount

    # ==============================================================
    #                     HISTORY
    # ==============================================================

    def insert_history(self, device_id: str, records: Sequence[HistoryRecord],
                       synced_at: Optional[datetime] = None) -> int:
        """
        Insert records that are not stored yet.

        Parameters
        ----------
        device_id : str
            Owner of the records; the device row is upserted first.
        records : sequence of HistoryRecord
            Each one is independently idempotent on ``(device_id, timestamp)``.

        Returns
        -------
        int
            Rows actually added (0 when everything was already present).
        """
        now = to_epoch(synced_at or datetime.now(timezone.utc))
        inserted = 0
        with self._write_lock, self._errors("history insert"):
            self._upsert_device(device_id, None, now)
            for rec in records:
                cur = self.conn.execute(
                    """
                    INSERT OR IGNORE INTO history
                        (device_id, timestamp, synced_at, co2, temperature, pressure,
                         humidity, radon, radiation_rate, radiation_total)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        device_id,
                        to_epoch(rec.timestamp),
                        now,
                        rec.co2,
                        rec.temperature,
                        rec.pressure,
                        rec.humidity,
                        rec.radon,
                        rec.radiation_rate,
                        rec.radiation_total,
                    ),
                )
                inserted += cur.rowcount
            self.conn.commit()
        return inserted

    def query_history(self, device_id: Optional[str] = None,
                      since: Optional[datetime] = None,
                      until: Optional[datetime] = None,
                      limit: Optional[int] = None,
                      offset: Optional[int] = None,
                      newest_first: bool = True) -> List[StoredHistoryRecord]:
        where, params = self._history_filter(device_id, since, until)
        order = "DESC" if newest_first else "ASC"
        sql = f"SELECT * FROM history {where} ORDER BY timestamp {order}, id {order}"
        if limit is not None or offset is not None:
            sql += " LIMIT ? OFFSET ?"
            params += [-1 if limit is None else limit, offset or 0]
        with self._errors("history query"):
            rows = self.conn.execute(sql + ";", params).fetchall()
        return [self._row_to_record(r) for r in rows]

    def count_history(self, device_id: Optional[str] = None) -> int:
        where, params = self._history_filter(device_id, None, None)
        with self._errors("history count"):
            return self.conn.execute(f"SELECT COUNT(*) FROM history {where};", params).fetchone()[0]

    def newest_history_timestamp(self, device_id: str) -> Optional[datetime]:
        with self._errors("newest history lookup"):
            row = self.conn.execute(
                "SELECT MAX(timestamp) FROM history WHERE device_id = ?;", (device_id,)
            ).fetchone()
        return from_epoch(row[0])

    def history_stats(self, device_id: Optional[str] = None,
                      since: Optional[datetime] = None,
                      until: Optional[datetime] = None) -> HistoryStats:
        where, params = self._history_filter(device_id, since, until)
        co2_where = f"{where} AND co2 > 0" if where else "WHERE co2 > 0"
        with self._errors("history stats"):
            row = tuple(self.conn.execute(
                f"""
                SELECT COUNT(*) AS n, MIN(timestamp) AS oldest, MAX(timestamp) AS newest,
                       MIN(temperature), MAX(temperature), AVG(temperature),
                       MIN(pressure), MAX(pressure), AVG(pressure),
                       MIN(humidity), MAX(humidity), AVG(humidity),
                       MIN(radon), MAX(radon), AVG(radon)
                FROM history {where};
                """,
                params,
            ).fetchone())
            co2 = self.conn.execute(
                f"SELECT MIN(co2), MAX(co2), AVG(co2) FROM history {co2_where};", params
            ).fetchone()

        def triple(values) -> Optional[tuple]:
            return None if values[0] is None else tuple(values)

        return HistoryStats(
            count=row[0],
            oldest=from_epoch(row[1]),
            newest=from_epoch(row[2]),
            co2=triple(co2),
            temperature=triple(row[3:6]),
            pressure=triple(row[6:9]),
            humidity=triple(row[9:12]),
            radon=triple(row[12:15]),
        )

    # ==============================================================
    #                     SYNC STATE
    # ==============================================================

    def get_sync_state(self, device_id: str) -> Optional[SyncState]:
        with self._errors("sync state lookup"):
            row = self.conn.execute(
                "SELECT * FROM sync_state WHERE device_id = ?;", (device_id,)
            ).fetchone()
        if row is None:
            return None
        return SyncState(
            device_id=row["device_id"],
            last_history_index=row["last_history_index"],
            total_readings=row["total_readings"],
            last_sync_at=from_epoch(row["last_sync_at"]),
        )

    def update_sync_state(self, device_id: str, last_index: int, total: int,
                          synced_at: Optional[datetime] = None) -> None:
        now = to_epoch(synced_at or datetime.now(timezone.utc))
        with self._write_lock, self._errors("sync state update"):
            self._upsert_device(device_id, None, now)
            self.conn.execute(
                """
                INSERT INTO sync_state (device_id, last_history_index, total_readings, last_sync_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(device_id) DO UPDATE SET
                    last_history_index = excluded.last_history_index,
                    total_readings = excluded.total_readings,
                    last_sync_at = excluded.last_sync_at;
                """,
                (device_id, last_index, total, now),
            )
            self.conn.commit()

    # ------------------------------------------------------------------
    # Clean shutdown
    # ------------------------------------------------------------------
    def close(self) -> None:
        self.conn.close()
        logger.debug("closed history database %s", self.db_path)
