"""Command framing and the flush-write-read exchange.

Replies from the GQ GMC carry no length prefix, checksum or terminator, so the
only correctness signal is receiving the expected number of bytes within the
per-byte timeout. Stray bytes from an earlier partial exchange would shift
every following reply, which is why each exchange drains the inbound side
before transmitting.
"""

from __future__ import annotations

import logging

from gmcctl.core.errors import FlushError, HISTORY_ADDR_MAXSIZE, HISTORY_DATA_MAXSIZE
from gmcctl.core.model import SoftKey
from gmcctl.transports.base import Transport

FRAME_START = b"<"
FRAME_END = b">>"
DEFAULT_FLUSH_MAX_BYTES = 10
LOGGER = logging.getLogger(__name__)


def command_frame(name: str, params: bytes = b"") -> bytes:
    return FRAME_START + name.encode("ascii") + params + FRAME_END


def history_frame(address: int, length: int) -> bytes:
    """Pack a history read: 3-byte big-endian address, 2-byte length."""
    if not 0 <= address <= HISTORY_ADDR_MAXSIZE:
        raise ValueError(f"history address {address} out of range")
    if not 0 <= length <= HISTORY_DATA_MAXSIZE:
        raise ValueError(f"history length {length} out of range")
    return command_frame("SPIR", address.to_bytes(3, "big") + length.to_bytes(2, "big"))


def unpack_history_frame(frame: bytes) -> tuple[int, int]:
    prefix = FRAME_START + b"SPIR"
    if not frame.startswith(prefix) or not frame.endswith(FRAME_END) or len(frame) != len(prefix) + 7:
        raise ValueError(f"not a history frame: {frame!r}")
    params = frame[len(prefix) : len(prefix) + 5]
    return int.from_bytes(params[:3], "big"), int.from_bytes(params[3:], "big")


def write_config_frame(offset: int, value: int) -> bytes:
    return command_frame("WCFG", bytes([offset, value]))


def key_frame(key: SoftKey) -> bytes:
    return command_frame("KEY", key.value.encode("ascii"))


def date_time_frame(name: str, value: int) -> bytes:
    return command_frame(name, bytes([value]))


class Framer:
    def __init__(self, transport: Transport, *, flush_max_bytes: int = DEFAULT_FLUSH_MAX_BYTES) -> None:
        self.transport = transport
        self.flush_max_bytes = flush_max_bytes

    def flush_inbound(self) -> int:
        """Discard stale inbound bytes; return how many were dropped."""
        dropped = 0
        for _ in range(self.flush_max_bytes):
            if not self.transport.read_byte():
                return dropped
            dropped += 1
        # Every allowed read returned a byte, so more may still be pending.
        LOGGER.warning("Inbound data still pending after %d bytes discarded", dropped)
        raise FlushError(
            f"Inbound data still pending after discarding {dropped} bytes; power cycle the device"
        )

    def send(self, frame: bytes) -> None:
        if frame:
            LOGGER.debug("-> %s", frame.hex())
            self.transport.write(frame)

    def receive(self, reply_size: int) -> bytes:
        if reply_size <= 0:
            return b""
        reply = self.transport.read_exact(reply_size)
        LOGGER.debug("<- %s", reply.hex())
        return reply

    def exchange(self, frame: bytes, reply_size: int) -> bytes:
        self.flush_inbound()
        self.send(frame)
        return self.receive(reply_size)
