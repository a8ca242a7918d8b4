from __future__ import annotations

import pytest

from gmcctl.core.errors import ShortReadError
from gmcctl.core.session import GMCSession

VERSION = b"GMC-300Re 4.20"
ACK = b"\xaa"


def default_nvm() -> bytearray:
    block = bytearray(256)
    block[6:8] = (100).to_bytes(2, "big")  # alarm CPM
    block[32] = 1  # logging CPS
    block[38:41] = (0x000123).to_bytes(3, "big")  # data save address
    block[58] = 0xFF
    return block


class FakeDevice:
    """Scripted counter on the far side of the transport.

    Replies are queued on the inbound side when a frame is written. The NVM is
    simulated: erase clears a staging copy, byte writes fill it and update
    applies it.
    """

    def __init__(self, *, version: bytes = VERSION, stale: bytes = b"") -> None:
        self.replies: dict[bytes, bytes] = {b"<GETVER>>": version}
        self.inbound = bytearray(stale)
        self.writes: list[bytes] = []
        self.closed = False
        self.nvm = default_nvm()
        self._staged = bytearray(self.nvm)

    def push(self, data: bytes) -> None:
        self.inbound += data

    def respond(self, frame: bytes) -> bytes:
        if frame in self.replies:
            return self.replies[frame]
        if frame == b"<GETCFG>>":
            return bytes(self.nvm)
        if frame == b"<ECFG>>":
            self._staged = bytearray(256)
            return ACK
        if frame.startswith(b"<WCFG") and len(frame) == 9:
            self._staged[frame[5]] = frame[6]
            return ACK
        if frame == b"<CFGUPDATE>>":
            self.nvm = bytearray(self._staged)
            return ACK
        if frame.startswith((b"<SETDATE", b"<SETTIME")):
            return ACK
        return b""

    def write(self, payload: bytes) -> None:
        self.writes.append(payload)
        self.inbound += self.respond(payload)

    def read_byte(self) -> bytes:
        if not self.inbound:
            return b""
        data = bytes(self.inbound[:1])
        del self.inbound[:1]
        return data

    def read_exact(self, size: int) -> bytes:
        data = bytes(self.inbound[:size])
        del self.inbound[:size]
        if len(data) < size:
            raise ShortReadError(size, data)
        return data

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def session(device: FakeDevice) -> GMCSession:
    gmc = GMCSession("/dev/fake", transport=device)
    assert gmc.open().ok
    device.writes.clear()
    return gmc
