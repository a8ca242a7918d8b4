"""History request validation and decoding of the tagged history log.

The on-device history buffer is a flat byte log. Plain bytes are counts for
the logging mode in force; a ``55 AA`` tag introduces one of three records:

``55 AA 00 YY MM DD HH MI SS 55 AA DT``
    date/timestamp, ``DT`` being the logging mode for following samples
``55 AA 01 HI LO``
    a count too large for one byte
``55 AA 02 LEN <LEN ascii bytes>``
    a text label

Unwritten flash reads back as ``0xFF``.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from gmcctl.core.errors import ErrorKind, HISTORY_ADDR_MAXSIZE, HISTORY_DATA_MAXSIZE
from gmcctl.core.model import CountSample, HistoryEntry, LabelMarker, SaveDataType, TimestampMarker

TAG = b"\x55\xaa"
CODE_TIMESTAMP = 0x00
CODE_WIDE_SAMPLE = 0x01
CODE_LABEL = 0x02
FILL_BYTE = 0xFF

_TIMESTAMP_SPAN = 12
_WIDE_SAMPLE_SPAN = 5


def validate_request(address: int, length: int) -> tuple[ErrorKind, ...]:
    """Return every bound the request violates, in check order."""
    if address < 0 or length < 0:
        raise ValueError("history address and length must be non-negative")
    errors: list[ErrorKind] = []
    if length > HISTORY_DATA_MAXSIZE:
        errors.append(ErrorKind.GET_HISTORY_DATA_LENGTH)
    if address > HISTORY_ADDR_MAXSIZE:
        errors.append(ErrorKind.GET_HISTORY_DATA_ADDRESS)
    if address + length > HISTORY_ADDR_MAXSIZE:
        errors.append(ErrorKind.GET_HISTORY_DATA_OVERRUN)
    return tuple(errors)


def _fill_start(buffer: bytes) -> int:
    end = len(buffer)
    while end > 0 and buffer[end - 1] == FILL_BYTE:
        end -= 1
    return end


def _mode_of(value: int) -> SaveDataType | None:
    try:
        return SaveDataType(value)
    except ValueError:
        return None


class _Clock:
    """Tracks the logging mode and the time of the next plain sample."""

    def __init__(self) -> None:
        self.mode: SaveDataType | None = None
        self._next: datetime | None = None

    def reset(self, marker: TimestampMarker) -> None:
        self.mode = marker.mode
        self._next = marker.when if marker.mode is not None and marker.mode.interval else None

    def tick(self) -> datetime | None:
        current = self._next
        if current is not None and self.mode is not None and self.mode.interval is not None:
            self._next = current + self.mode.interval
        return current


def decode_history(buffer: bytes | bytearray, start_address: int = 0) -> list[HistoryEntry]:
    """Decode a raw history buffer into entries in buffer order.

    Offsets in the returned entries are absolute history addresses, i.e.
    ``start_address`` plus the position within ``buffer``. Before the first
    timestamp the logging mode is undetermined, so samples carry ``mode=None``.
    """
    data = bytes(buffer)
    entries: list[HistoryEntry] = []
    clock = _Clock()
    fill_from = _fill_start(data)
    pos = 0

    while pos < len(data):
        offset = start_address + pos
        if pos >= fill_from:
            entries.append(CountSample(offset=offset, value=data[pos], mode=clock.mode, fill=True))
            pos += 1
            continue

        if data.startswith(TAG, pos) and pos + 2 < len(data):
            code = data[pos + 2]
            if code == CODE_TIMESTAMP and pos + _TIMESTAMP_SPAN <= len(data) and data.startswith(TAG, pos + 9):
                yy, mm, dd, hh, mi, ss = data[pos + 3 : pos + 9]
                marker = TimestampMarker(
                    offset=offset,
                    year=yy,
                    month=mm,
                    day=dd,
                    hour=hh,
                    minute=mi,
                    second=ss,
                    mode=_mode_of(data[pos + 11]),
                )
                entries.append(marker)
                clock.reset(marker)
                pos += _TIMESTAMP_SPAN
                continue
            if code == CODE_WIDE_SAMPLE and pos + _WIDE_SAMPLE_SPAN <= len(data):
                value = (data[pos + 3] << 8) | data[pos + 4]
                entries.append(
                    CountSample(offset=offset, value=value, mode=clock.mode, time=clock.tick(), wide=True)
                )
                pos += _WIDE_SAMPLE_SPAN
                continue
            if code == CODE_LABEL and pos + 3 < len(data):
                size = data[pos + 3]
                end = pos + 4 + size
                if end <= len(data):
                    text = data[pos + 4 : end].decode("ascii", errors="replace")
                    entries.append(LabelMarker(offset=offset, text=text))
                    pos = end
                    continue

        # Plain sample, including a 0x55 that does not start a complete record.
        entries.append(CountSample(offset=offset, value=data[pos], mode=clock.mode, time=clock.tick()))
        pos += 1

    return entries


def samples(entries: Iterable[HistoryEntry]) -> list[CountSample]:
    return [entry for entry in entries if isinstance(entry, CountSample)]
