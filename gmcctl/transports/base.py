"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol


class Transport(Protocol):
    def write(self, payload: bytes) -> None:
        """Transmit payload verbatim."""

    def read_byte(self) -> bytes:
        """Return one byte, or b"" when the per-byte timeout expires."""

    def read_exact(self, size: int) -> bytes:
        """Return exactly size bytes or raise ShortReadError."""

    def close(self) -> None:
        """Release the underlying handle."""
