from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from gmcctl.core.errors import ErrorKind
from gmcctl.core.history import decode_history, samples, validate_request
from gmcctl.core.model import CountSample, LabelMarker, SaveDataType, TimestampMarker


def _timestamp(yy: int, mm: int, dd: int, hh: int, mi: int, ss: int, mode: int) -> bytes:
    return b"\x55\xaa\x00" + bytes([yy, mm, dd, hh, mi, ss]) + b"\x55\xaa" + bytes([mode])


def test_timestamp_tags_following_samples() -> None:
    buffer = _timestamp(13, 3, 5, 17, 17, 30, SaveDataType.CPS) + bytes([4, 7, 0, 12])

    entries = decode_history(buffer)

    assert len(entries) == 5
    marker = entries[0]
    assert isinstance(marker, TimestampMarker)
    assert marker.when == datetime(2013, 3, 5, 17, 17, 30)
    assert marker.mode is SaveDataType.CPS
    counts = entries[1:]
    assert [sample.value for sample in counts] == [4, 7, 0, 12]
    assert all(sample.mode is SaveDataType.CPS for sample in counts)
    assert [sample.time for sample in counts] == [
        datetime(2013, 3, 5, 17, 17, 30) + timedelta(seconds=n) for n in range(4)
    ]


def test_cpm_samples_advance_by_minutes() -> None:
    buffer = _timestamp(20, 1, 1, 0, 0, 0, SaveDataType.CPM) + bytes([20, 21])

    counts = samples(decode_history(buffer))

    assert counts[1].time - counts[0].time == timedelta(minutes=1)


def test_logging_off_leaves_sample_time_undefined() -> None:
    buffer = _timestamp(20, 1, 1, 0, 0, 0, SaveDataType.OFF) + bytes([9])
    (sample,) = samples(decode_history(buffer))
    assert sample.mode is SaveDataType.OFF
    assert sample.time is None


def test_decoding_is_repeatable() -> None:
    buffer = (
        bytes([1, 2])
        + _timestamp(14, 2, 28, 23, 59, 59, SaveDataType.CPH)
        + b"\x55\xaa\x01\x01\x2c"
        + b"\x55\xaa\x02\x03abc"
        + bytes([5, 0xFF, 0xFF])
    )
    assert decode_history(buffer) == decode_history(buffer)


def test_samples_before_any_timestamp_have_no_mode() -> None:
    entries = decode_history(bytes([3, 1, 4]))
    assert entries == [
        CountSample(offset=0, value=3),
        CountSample(offset=1, value=1),
        CountSample(offset=2, value=4),
    ]


def test_wide_sample_and_label() -> None:
    entries = decode_history(b"\x55\xaa\x01\x01\x2c" + b"\x55\xaa\x02\x05hello" + b"\x02")

    wide, label, plain = entries
    assert isinstance(wide, CountSample) and wide.wide and wide.value == 300
    assert label == LabelMarker(offset=5, text="hello")
    assert isinstance(plain, CountSample) and plain.offset == 14 and plain.value == 2


def test_trailing_fill_is_passed_through() -> None:
    buffer = _timestamp(15, 6, 1, 8, 0, 0, SaveDataType.CPS) + bytes([1, 2, 0xFF, 0xFF, 0xFF])

    counts = samples(decode_history(buffer))

    assert [c.fill for c in counts] == [False, False, True, True, True]
    assert all(c.time is None for c in counts if c.fill)
    assert counts[-1].value == 0xFF


def test_interior_ff_is_a_sample() -> None:
    counts = samples(decode_history(bytes([0xFF, 1])))
    assert [c.fill for c in counts] == [False, False]


def test_unknown_tag_code_falls_back_to_plain_bytes() -> None:
    counts = samples(decode_history(b"\x55\xaa\x07"))
    assert [c.value for c in counts] == [0x55, 0xAA, 0x07]


def test_truncated_timestamp_is_not_a_marker() -> None:
    entries = decode_history(b"\x55\xaa\x00\x0d\x03")
    assert all(isinstance(entry, CountSample) for entry in entries)
    assert len(entries) == 5


def test_invalid_timestamp_has_no_datetime() -> None:
    (marker,) = decode_history(_timestamp(13, 13, 40, 0, 0, 0, SaveDataType.CPS))
    assert isinstance(marker, TimestampMarker)
    assert marker.when is None


def test_offsets_are_absolute_addresses() -> None:
    entries = decode_history(bytes([1, 2]), start_address=0x10)
    assert [entry.offset for entry in entries] == [0x10, 0x11]


@pytest.mark.parametrize(
    ("address", "length", "expected"),
    [
        (0, 4096, ()),
        (61440, 4096, ()),
        (65535, 1, ()),
        (0, 4097, (ErrorKind.GET_HISTORY_DATA_LENGTH,)),
        (65536, 1, (ErrorKind.GET_HISTORY_DATA_OVERRUN,)),
        (
            65537,
            4097,
            (
                ErrorKind.GET_HISTORY_DATA_LENGTH,
                ErrorKind.GET_HISTORY_DATA_ADDRESS,
                ErrorKind.GET_HISTORY_DATA_OVERRUN,
            ),
        ),
    ],
)
def test_validate_request(address: int, length: int, expected: tuple[ErrorKind, ...]) -> None:
    assert validate_request(address, length) == expected


def test_validate_request_rejects_negative_values() -> None:
    with pytest.raises(ValueError):
        validate_request(-1, 10)
