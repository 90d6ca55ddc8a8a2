# models.py
"""
Dataclasses and enums shared by the protocol client, the assembler and
the store. Stored dataclasses map 1‑to‑1 to the SQLite tables.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional

from aranet_errors import InvalidConfig


# ----------------------------------------------------------------------
# Enums
# ----------------------------------------------------------------------
class DeviceType(IntEnum):
    """Product family, valued by the type byte the devices report."""
    ARANET4 = 0xF1
    ARANET2 = 0xF2
    RADON = 0xF3
    RADIATION = 0xF4

    @classmethod
    def from_name(cls, name: Optional[str]) -> Optional["DeviceType"]:
        """Guess the family from an advertised name, ``None`` if unknown."""
        if not name:
            return None
        lowered = name.lower()
        if "aranet4" in lowered:
            return cls.ARANET4
        if "aranet2" in lowered:
            return cls.ARANET2
        if "rn+" in lowered or "radon" in lowered:
            return cls.RADON
        if "radiation" in lowered:
            return cls.RADIATION
        return None

    @property
    def label(self) -> str:
        return {
            DeviceType.ARANET4: "Aranet4",
            DeviceType.ARANET2: "Aranet2",
            DeviceType.RADON: "AranetRn+",
            DeviceType.RADIATION: "Aranet Radiation",
        }[self]


class Status(IntEnum):
    """Colour indicator reported with a current reading."""
    ERROR = 0
    GREEN = 1
    YELLOW = 2
    RED = 3

    @classmethod
    def from_raw(cls, value: int) -> "Status":
        try:
            return cls(value)
        except ValueError:
            return cls.ERROR


class MeasurementInterval(Enum):
    ONE_MINUTE = 60
    TWO_MINUTES = 120
    FIVE_MINUTES = 300
    TEN_MINUTES = 600

    @property
    def seconds(self) -> int:
        return self.value

    @property
    def minutes(self) -> int:
        return self.value // 60

    @classmethod
    def from_seconds(cls, seconds: int) -> "MeasurementInterval":
        try:
            return cls(seconds)
        except ValueError:
            raise InvalidConfig(
                f"unsupported measurement interval {seconds} s "
                f"(expected one of {[m.value for m in cls]})"
            ) from None

    @classmethod
    def from_minutes(cls, minutes: int) -> "MeasurementInterval":
        return cls.from_seconds(minutes * 60)


# ----------------------------------------------------------------------
# Device side (transient)
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class HistoryInfo:
    """Device counters, read fresh on every sync attempt."""
    total_readings: int             # u16, index of the newest record
    interval_seconds: int           # u16
    seconds_since_update: int       # u16, age of the newest record


@dataclass(frozen=True)
class HistoryRecord:
    timestamp: datetime             # reconstructed, UTC
    co2: int = 0                    # ppm, 0 on devices without CO2
    temperature: float = 0.0        # °C
    pressure: float = 0.0           # hPa
    humidity: int = 0               # %
    radon: Optional[int] = None     # Bq/m³
    radiation_rate: Optional[float] = None    # µSv/h
    radiation_total: Optional[float] = None   # mSv


@dataclass
class CurrentReading:
    co2: int = 0
    temperature: float = 0.0
    pressure: float = 0.0
    humidity: int = 0
    battery: int = 0                # %
    status: Status = Status.ERROR
    interval: int = 0               # seconds
    age: int = 0                    # seconds since the reading was taken
    radon: Optional[int] = None
    radiation_rate: Optional[float] = None
    radiation_total: Optional[float] = None
    radiation_duration: Optional[int] = None   # seconds


@dataclass
class DeviceInfo:
    name: str = ""
    model: str = ""
    serial: str = ""
    firmware: str = ""
    hardware: str = ""
    software: str = ""
    manufacturer: str = ""


@dataclass(frozen=True)
class HistoryProgress:
    current_param: str
    param_index: int                # 1‑based
    total_params: int
    values_downloaded: int
    total_values: int
    overall_progress: float = 0.0   # 0.0 – 1.0

    @classmethod
    def build(cls, current_param: str, param_index: int, total_params: int,
              values_downloaded: int, total_values: int) -> "HistoryProgress":
        param_share = values_downloaded / total_values if total_values else 1.0
        overall = ((param_index - 1) + min(param_share, 1.0)) / total_params
        return cls(current_param, param_index, total_params, values_downloaded,
                   total_values, max(0.0, min(overall, 1.0)))


# ----------------------------------------------------------------------
# Store side
# ----------------------------------------------------------------------
@dataclass
class StoredDevice:
    id: str                                 # address or platform identifier
    name: Optional[str] = None
    device_type: Optional[str] = None
    serial: Optional[str] = None
    firmware: Optional[str] = None
    hardware: Optional[str] = None
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None


@dataclass
class StoredHistoryRecord:
    id: int
    device_id: str
    timestamp: datetime
    synced_at: datetime
    co2: int = 0
    temperature: float = 0.0
    pressure: float = 0.0
    humidity: int = 0
    radon: Optional[int] = None
    radiation_rate: Optional[float] = None
    radiation_total: Optional[float] = None

    def to_history_record(self) -> HistoryRecord:
        return HistoryRecord(
            timestamp=self.timestamp,
            co2=self.co2,
            temperature=self.temperature,
            pressure=self.pressure,
            humidity=self.humidity,
            radon=self.radon,
            radiation_rate=self.radiation_rate,
            radiation_total=self.radiation_total,
        )


@dataclass
class SyncState:
    device_id: str
    last_history_index: Optional[int] = None   # 1‑based, highest stored index
    total_readings: Optional[int] = None
    last_sync_at: Optional[datetime] = None


@dataclass
class HistoryStats:
    count: int = 0
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None
    # (min, max, avg) per column, None when no values
    co2: Optional[tuple] = None
    temperature: Optional[tuple] = None
    pressure: Optional[tuple] = None
    humidity: Optional[tuple] = None
    radon: Optional[tuple] = None


@dataclass
class ImportResult:
    total: int = 0
    imported: int = 0
    skipped: int = 0
    errors: list = field(default_factory=list)
