"""Device session used by the CLI and third-party tooling."""

from __future__ import annotations

import logging
import re
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from gmcctl.core.config_store import ConfigurationStore
from gmcctl.core.errors import (
    ErrorKind,
    SessionNotOpenError,
    StreamingActiveError,
    StreamingInactiveError,
    TransportConnectError,
    TransportError,
    failure_kind,
)
from gmcctl.core.framer import Framer, command_frame, date_time_frame, history_frame, key_frame
from gmcctl.core.history import validate_request
from gmcctl.core.model import CommandResult, DeviceProfile, SoftKey
from gmcctl.core.streaming import TURN_ON_CPS, AutoCPSStream, decode_counts, halt
from gmcctl.transports.base import Transport
from gmcctl.transports.serial_port import LineSettings, SerialTransport

GET_VERSION = command_frame("GETVER")
GET_SERIAL = command_frame("GETSERIAL")
GET_CPM = command_frame("GETCPM")
GET_CPS = command_frame("GETCPS")
GET_VOLTAGE = command_frame("GETVOLT")
TURN_OFF_POWER = command_frame("POWEROFF")

VERSION_SIZE = 14
VERSION_FALLBACK = "invalidinvalid"
SERIAL_SIZE = 7
DEFAULT_PROFILE = DeviceProfile(id="gmc300", name="GQ GMC-300")

_SIX_DIGITS_RE = re.compile(r"^\d{6}$")
_DATE_COMMANDS = (
    ("SETDATEMM", ErrorKind.SET_MONTH),
    ("SETDATEDD", ErrorKind.SET_DAY),
    ("SETDATEYY", ErrorKind.SET_YEAR),
)
_TIME_COMMANDS = (
    ("SETTIMEHH", ErrorKind.SET_HOUR),
    ("SETTIMEMM", ErrorKind.SET_MINUTE),
    ("SETTIMESS", ErrorKind.SET_SECOND),
)
LOGGER = logging.getLogger(__name__)


def parse_firmware_revision(version: str) -> float | None:
    """Firmware revision is the four characters at offset 10, e.g. 'GMC-300Re 2.23'."""
    try:
        return float(version[10:14])
    except ValueError:
        return None


class GMCSession:
    """One open serial connection to a GQ GMC counter.

    Every public command blocks until its exchange completes or times out and
    returns a `CommandResult`. Device and transport failures never raise; the
    result carries a fallback value and the `ErrorKind`, which is also kept
    as `last_error` until the next command starts.
    """

    def __init__(
        self,
        port: str,
        *,
        profile: DeviceProfile | None = None,
        transport: Transport | None = None,
    ) -> None:
        self.port = port
        self.profile = profile or DEFAULT_PROFILE
        self.host_byte_order = sys.byteorder
        self.firmware_revision: float | None = None
        self.last_error = ErrorKind.NO_PROBLEM
        self.read_status = True
        self._transport = transport
        self._framer: Framer | None = None
        self._config: ConfigurationStore | None = None
        self._stream: AutoCPSStream | None = None
        self._lock = threading.RLock()

    def __enter__(self) -> GMCSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._framer is not None

    @property
    def streaming(self) -> bool:
        return self._stream is not None

    @property
    def legacy_firmware(self) -> bool:
        return self.firmware_revision is not None and self.firmware_revision < self.profile.legacy_firmware_below

    @property
    def config(self) -> ConfigurationStore:
        if self._config is None:
            raise SessionNotOpenError("Open the session before using the configuration mirror")
        return self._config

    def error_text(self, kind: ErrorKind | None = None) -> str:
        return (kind or self.last_error).text

    def _record(self, result: CommandResult) -> CommandResult:
        self.last_error = result.error
        self.read_status = result.error in (ErrorKind.NO_PROBLEM, ErrorKind.OLDER_FIRMWARE)
        return result

    @contextmanager
    def _command(self) -> Iterator[Framer]:
        with self._lock:
            if self._framer is None:
                raise SessionNotOpenError(f"Session for {self.port} is not open")
            if self._stream is not None:
                raise StreamingActiveError("Stop auto-CPS streaming before issuing other commands")
            self.last_error = ErrorKind.NO_PROBLEM
            self.read_status = True
            yield self._framer

    def _query(self, framer: Framer, frame: bytes, size: int, kind: ErrorKind) -> CommandResult[bytes]:
        try:
            return CommandResult(framer.exchange(frame, size))
        except TransportError as exc:
            LOGGER.warning("%s: %s", kind.text, exc)
            return CommandResult(getattr(exc, "received", b""), failure_kind(exc, kind))

    def open(self) -> CommandResult[str]:
        """Open the port, learn the firmware revision and read the configuration."""
        with self._lock:
            if self._transport is None:
                try:
                    self._transport = SerialTransport.open(self.port, LineSettings.from_profile(self.profile))
                except TransportConnectError as exc:
                    LOGGER.error("%s", exc)
                    return self._record(CommandResult("", ErrorKind.USB_OPEN_FAILED))
            self._framer = Framer(self._transport, flush_max_bytes=self.profile.flush_max_bytes)
            self._config = ConfigurationStore(self._framer)

            version = self.get_version()
            if not version.ok:
                return version
            self.firmware_revision = parse_firmware_revision(version.value)
            LOGGER.info("Connected to %s, firmware %s", version.value.strip(), self.firmware_revision)

            cfg = self.read_configuration()
            if not cfg.ok:
                return self._record(CommandResult(version.value, cfg.error))
            if self.legacy_firmware:
                LOGGER.warning("Firmware %s predates %s", self.firmware_revision, self.profile.legacy_firmware_below)
                return self._record(CommandResult(version.value, ErrorKind.OLDER_FIRMWARE))
            return self._record(CommandResult(version.value))

    def close(self) -> None:
        with self._lock:
            if self._stream is not None:
                self._stream.stop()
            if self._transport is not None:
                self._transport.close()
            self._transport = None
            self._framer = None

    def get_version(self) -> CommandResult[str]:
        with self._command() as framer:
            reply = self._query(framer, GET_VERSION, VERSION_SIZE, ErrorKind.GET_VERSION)
            if not reply.ok:
                return self._record(CommandResult(VERSION_FALLBACK, reply.error))
            return self._record(CommandResult(reply.value.decode("ascii", errors="replace")))

    def get_serial_number(self) -> CommandResult[str]:
        with self._command() as framer:
            reply = self._query(framer, GET_SERIAL, SERIAL_SIZE, ErrorKind.GET_SERIAL_NUMBER)
            if not reply.ok:
                return self._record(CommandResult("", reply.error))
            # Each nibble is one serial number digit.
            return self._record(CommandResult(reply.value.hex()))

    def get_cpm(self) -> CommandResult[int]:
        with self._command() as framer:
            reply = self._query(framer, GET_CPM, 2, ErrorKind.GET_CPM)
            if not reply.ok:
                return self._record(CommandResult(0, reply.error))
            return self._record(CommandResult(decode_counts(reply.value)))

    def get_cps(self) -> CommandResult[int]:
        with self._command() as framer:
            reply = self._query(framer, GET_CPS, 2, ErrorKind.GET_CPS)
            if not reply.ok:
                return self._record(CommandResult(0, reply.error))
            return self._record(CommandResult(decode_counts(reply.value)))

    def get_battery_voltage(self) -> CommandResult[float]:
        with self._command() as framer:
            reply = self._query(framer, GET_VOLTAGE, 1, ErrorKind.GET_BATTERY_VOLTAGE)
            if not reply.ok:
                return self._record(CommandResult(0.0, reply.error))
            return self._record(CommandResult(int.from_bytes(reply.value, "big", signed=True) / 10.0))

    def get_history_data(self, address: int, length: int) -> CommandResult[bytes]:
        """Read ``length`` raw history bytes starting at ``address``.

        Out-of-bounds requests are rejected before any I/O with the last
        violated bound as the error. A short read returns the bytes that did
        arrive, zero-padded to ``length``. A zero-length request does no I/O.
        """
        with self._command() as framer:
            violations = validate_request(address, length)
            if violations:
                for violation in violations:
                    LOGGER.warning("%s", violation.text)
                return self._record(CommandResult(b"", violations[-1]))
            if length == 0:
                return self._record(CommandResult(b""))
            reply = self._query(framer, history_frame(address, length), length, ErrorKind.GET_HISTORY_DATA)
            return self._record(CommandResult(reply.value.ljust(length, b"\x00"), reply.error))

    def read_configuration(self) -> CommandResult[bytes]:
        with self._command():
            return self._record(self.config.read())

    def commit_configuration(self, *, verify: bool = False) -> CommandResult[None]:
        """Push the whole mirror to the device: erase, write 256 bytes, update.

        Interrupting this sequence can leave the device erased.
        """
        with self._command():
            LOGGER.info("Committing configuration to %s", self.port)
            return self._record(self.config.commit(verify=verify))

    def send_key(self, key: SoftKey | str) -> CommandResult[None]:
        key = key if isinstance(key, SoftKey) else SoftKey(key)
        return self._one_way(key_frame(key))

    def turn_off_power(self) -> CommandResult[None]:
        return self._one_way(TURN_OFF_POWER)

    def _one_way(self, frame: bytes) -> CommandResult[None]:
        with self._command() as framer:
            reply = self._query(framer, frame, 0, ErrorKind.SEND_CMD)
            return self._record(CommandResult(None, reply.error))

    def set_date(self, date: str) -> CommandResult[None]:
        """Set the date from 'MMDDYY' text, e.g. '013113' for January 31, 2013."""
        return self._set_fields(date, _DATE_COMMANDS)

    def set_time(self, time: str) -> CommandResult[None]:
        """Set the time of day from 'HHMMSS' text, e.g. '133000'."""
        return self._set_fields(time, _TIME_COMMANDS)

    def sync_clock(self, when: datetime | None = None) -> CommandResult[None]:
        when = when or datetime.now()
        date = self.set_date(when.strftime("%m%d%y"))
        clock = self.set_time(when.strftime("%H%M%S"))
        return self._record(CommandResult(None, clock.error if not clock.ok else date.error))

    def _set_fields(self, text: str, commands: tuple[tuple[str, ErrorKind], ...]) -> CommandResult[None]:
        if not _SIX_DIGITS_RE.match(text):
            raise ValueError(f"expected six digits, got {text!r}")
        with self._command() as framer:
            error = ErrorKind.NO_PROBLEM
            # Each sub-command stands alone; a failed one does not stop the rest.
            for index, (name, kind) in enumerate(commands):
                value = int(text[index * 2 : index * 2 + 2])
                reply = self._query(framer, date_time_frame(name, value), 1, kind)
                if not reply.ok:
                    error = reply.error
            return self._record(CommandResult(None, error))

    def turn_on_cps(self) -> CommandResult[AutoCPSStream | None]:
        with self._command() as framer:
            reply = self._query(framer, TURN_ON_CPS, 0, ErrorKind.SEND_CMD)
            if not reply.ok:
                return self._record(CommandResult(None, reply.error))
            self._stream = AutoCPSStream(self)
            LOGGER.info("Auto-CPS streaming started")
            return self._record(CommandResult(self._stream))

    def get_auto_cps(self) -> CommandResult[int]:
        with self._lock:
            if self._stream is None:
                raise StreamingInactiveError("Call turn_on_cps() before reading auto-CPS samples")
            return self._stream.read()

    def turn_off_cps(self) -> CommandResult[None]:
        with self._lock:
            if self._stream is not None:
                return self._stream.stop()
        # No stream of ours, but the device may still be pushing from an earlier run.
        with self._command() as framer:
            try:
                halt(framer)
            except TransportError as exc:
                LOGGER.warning("Stopping auto-CPS left the line dirty: %s", exc)
                return self._record(CommandResult(None, failure_kind(exc, ErrorKind.SEND_CMD)))
            return self._record(CommandResult(None))
