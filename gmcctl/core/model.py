"""Core data models used across the session, decoders, profiles and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Generic, TypeVar, Union

from gmcctl.core.errors import ErrorKind

T = TypeVar("T")


@dataclass(frozen=True)
class CommandResult(Generic[T]):
    value: T
    error: ErrorKind = ErrorKind.NO_PROBLEM

    @property
    def ok(self) -> bool:
        return self.error is ErrorKind.NO_PROBLEM


class SaveDataType(IntEnum):
    """Logging mode stored in the configuration block and history timestamps."""

    OFF = 0
    CPS = 1
    CPM = 2
    CPH = 3

    @property
    def interval(self) -> timedelta | None:
        return _SAVE_INTERVALS[self]


_SAVE_INTERVALS: dict[SaveDataType, timedelta | None] = {
    SaveDataType.OFF: None,
    SaveDataType.CPS: timedelta(seconds=1),
    SaveDataType.CPM: timedelta(minutes=1),
    SaveDataType.CPH: timedelta(hours=1),
}


class SoftKey(Enum):
    # The user manual numbers the keys 1 through 4, the wire values are ASCII 0 through 3.
    KEY1 = "0"
    KEY2 = "1"
    KEY3 = "2"
    KEY4 = "3"
    LEFT = "0"
    UP = "1"
    DOWN = "2"
    ENTER = "3"


class ConfigField(Enum):
    """Offset and byte count of each known field in the 256-byte NVM block."""

    POWER_ON_OFF = (0, 1)
    ALARM_ON_OFF = (1, 1)
    SPEAKER_ON_OFF = (2, 1)
    GRAPHIC_MODE_ON_OFF = (3, 1)
    BACKLIGHT_TIMEOUT_SECONDS = (4, 1)
    IDLE_TITLE_DISPLAY_MODE = (5, 1)
    ALARM_CPM_VALUE = (6, 2)
    CALIBRATION_CPM_0 = (8, 2)
    CALIBRATION_SV_UC_0 = (10, 4)
    CALIBRATION_CPM_1 = (14, 2)
    CALIBRATION_SV_UC_1 = (16, 4)
    CALIBRATION_CPM_2 = (20, 2)
    CALIBRATION_SV_UC_2 = (22, 4)
    IDLE_DISPLAY_MODE = (26, 1)
    ALARM_VALUE_USV_UC = (27, 4)
    ALARM_TYPE = (31, 1)
    SAVE_DATA_TYPE = (32, 1)
    SWIVEL_DISPLAY = (33, 1)
    ZOOM = (34, 4)
    DATA_SAVE_ADDRESS = (38, 3)
    DATA_READ_ADDRESS = (41, 3)
    POWER_SAVING_MODE = (44, 1)
    SENSITIVITY_MODE = (45, 1)
    COUNTER_DELAY = (46, 2)
    VOLTAGE_OFFSET = (48, 1)
    MAX_CPM = (49, 2)
    SENSITIVITY_AUTO_MODE_THRESHOLD = (51, 1)
    SAVE_DATE = (52, 3)
    SAVE_TIME = (55, 3)
    MAX_BYTES = (58, 1)

    @property
    def offset(self) -> int:
        return self.value[0]

    @property
    def size(self) -> int:
        return self.value[1]


@dataclass(frozen=True)
class CountSample:
    offset: int
    value: int
    mode: SaveDataType | None = None
    time: datetime | None = None
    wide: bool = False
    fill: bool = False


@dataclass(frozen=True)
class TimestampMarker:
    offset: int
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int
    mode: SaveDataType | None

    @property
    def when(self) -> datetime | None:
        # Two-digit year as stored by the device.
        try:
            return datetime(2000 + self.year, self.month, self.day, self.hour, self.minute, self.second)
        except ValueError:
            return None


@dataclass(frozen=True)
class LabelMarker:
    offset: int
    text: str


HistoryEntry = Union[CountSample, TimestampMarker, LabelMarker]


@dataclass(frozen=True)
class DeviceProfile:
    id: str
    name: str
    baudrate: int = 57600
    read_timeout_s: float = 0.5
    write_timeout_s: float = 1.0
    flush_max_bytes: int = 10
    legacy_firmware_below: float = 2.23
