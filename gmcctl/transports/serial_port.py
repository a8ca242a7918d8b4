"""Serial transport implementation using pyserial."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import serial

from gmcctl.core.errors import (
    ShortReadError,
    TransportConnectError,
    TransportSendError,
)
from gmcctl.core.model import DeviceProfile

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineSettings:
    """Raw 8N1 line discipline, built fresh for every open call."""

    baudrate: int = 57600
    bytesize: int = serial.EIGHTBITS
    parity: str = serial.PARITY_NONE
    stopbits: float = serial.STOPBITS_ONE
    xonxoff: bool = False
    rtscts: bool = False
    dsrdtr: bool = False
    timeout: float = 0.5
    write_timeout: float = 1.0

    @classmethod
    def from_profile(cls, profile: DeviceProfile) -> LineSettings:
        return cls(
            baudrate=profile.baudrate,
            timeout=profile.read_timeout_s,
            write_timeout=profile.write_timeout_s,
        )


class SerialTransport:
    def __init__(self, port: serial.Serial) -> None:
        self._port = port

    @classmethod
    def open(cls, device: str, settings: LineSettings | None = None) -> SerialTransport:
        settings = settings or LineSettings()
        try:
            port = serial.Serial(
                device,
                baudrate=settings.baudrate,
                bytesize=settings.bytesize,
                parity=settings.parity,
                stopbits=settings.stopbits,
                xonxoff=settings.xonxoff,
                rtscts=settings.rtscts,
                dsrdtr=settings.dsrdtr,
                timeout=settings.timeout,
                write_timeout=settings.write_timeout,
            )
        except (serial.SerialException, ValueError) as exc:
            raise TransportConnectError(f"Could not open serial port {device}: {exc}") from exc
        LOGGER.info("Opened %s at %d baud", device, settings.baudrate)
        return cls(port)

    def write(self, payload: bytes) -> None:
        try:
            self._port.write(payload)
        except serial.SerialException as exc:
            raise TransportSendError(f"Serial write failed: {exc}") from exc

    def read_byte(self) -> bytes:
        try:
            return self._port.read(1)
        except serial.SerialException as exc:
            raise TransportSendError(f"Serial read failed: {exc}") from exc

    def read_exact(self, size: int) -> bytes:
        # One attempt per expected byte, each bounded by the port timeout.
        received = bytearray()
        for _ in range(size):
            received += self.read_byte()
            if len(received) >= size:
                break
        if len(received) < size:
            raise ShortReadError(size, bytes(received))
        return bytes(received)

    def close(self) -> None:
        if self._port.is_open:
            self._port.close()
            LOGGER.info("Closed %s", self._port.port)
