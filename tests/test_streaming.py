from __future__ import annotations

import threading

import pytest

from gmcctl.core.errors import ErrorKind, StreamingActiveError, StreamingInactiveError
from gmcctl.core.session import GMCSession

from conftest import FakeDevice


def test_streaming_blocks_other_commands(session: GMCSession, device: FakeDevice) -> None:
    started = session.turn_on_cps()

    assert started.ok
    assert session.streaming
    assert device.writes == [b"<HEARTBEAT1>>"]
    with pytest.raises(StreamingActiveError):
        session.get_cps()
    with pytest.raises(StreamingActiveError):
        session.commit_configuration()


def test_auto_cps_reads_pushed_samples_without_commands(session: GMCSession, device: FakeDevice) -> None:
    session.turn_on_cps()
    device.push(b"\x00\x05\xc0\x10")

    assert session.get_auto_cps().value == 5
    assert session.get_auto_cps().value == 0x0010
    assert device.writes == [b"<HEARTBEAT1>>"]


def test_auto_cps_short_read(session: GMCSession, device: FakeDevice) -> None:
    session.turn_on_cps()
    device.push(b"\x01")

    result = session.get_auto_cps()

    assert result.value == 0
    assert result.error is ErrorKind.GET_AUTO_CPS
    assert session.last_error is ErrorKind.GET_AUTO_CPS


def test_turn_off_discards_in_flight_sample(session: GMCSession, device: FakeDevice) -> None:
    session.turn_on_cps()
    device.push(b"\x00\x09")

    assert session.turn_off_cps().ok

    assert not session.streaming
    assert device.writes[-1] == b"<HEARTBEAT0>>"
    assert not device.inbound
    device.replies[b"<GETCPS>>"] = b"\x00\x02"
    assert session.get_cps().value == 2


def test_turn_off_reports_flush_overrun(session: GMCSession, device: FakeDevice) -> None:
    stream = session.turn_on_cps().value
    device.push(bytes(30))

    result = stream.stop()

    assert result.error is ErrorKind.CLEAR_USB
    assert not stream.active
    assert not session.streaming


def test_stream_context_and_iteration(session: GMCSession, device: FakeDevice) -> None:
    stream = session.turn_on_cps().value
    device.push(b"\x00\x01\x00\x02\x00\x03")
    collected = []
    with stream:
        for sample in stream:
            collected.append(sample.value)
            if len(collected) == 3:
                break

    assert collected == [1, 2, 3]
    assert not session.streaming
    assert device.writes == [b"<HEARTBEAT1>>", b"<HEARTBEAT0>>"]


def test_auto_cps_requires_stream(session: GMCSession) -> None:
    with pytest.raises(StreamingInactiveError):
        session.get_auto_cps()


def test_stopped_stream_cannot_be_read(session: GMCSession) -> None:
    stream = session.turn_on_cps().value
    stream.stop()
    assert stream.stop().ok
    with pytest.raises(StreamingInactiveError):
        stream.read()


def test_turn_off_without_stream_still_stops_device(session: GMCSession, device: FakeDevice) -> None:
    assert session.turn_off_cps().ok
    assert device.writes == [b"<HEARTBEAT0>>"]


def test_close_stops_stream(session: GMCSession, device: FakeDevice) -> None:
    session.turn_on_cps()
    session.close()
    assert device.writes[-1] == b"<HEARTBEAT0>>"
    assert device.closed


def test_auto_cps_read_waits_for_concurrent_turn_off(session: GMCSession, device: FakeDevice) -> None:
    session.turn_on_cps()
    outcome: dict = {}

    def _read() -> None:
        try:
            outcome["result"] = session.get_auto_cps()
        except StreamingInactiveError as exc:
            outcome["error"] = exc

    with session._lock:
        reader = threading.Thread(target=_read)
        reader.start()
        reader.join(0.2)
        assert reader.is_alive()
        assert session.turn_off_cps().ok
    reader.join(5)

    assert isinstance(outcome.get("error"), StreamingInactiveError)
