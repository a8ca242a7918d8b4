"""Auto-CPS streaming mode.

After ``<HEARTBEAT1>>`` the device pushes an unframed 2-byte CPS sample every
second until ``<HEARTBEAT0>>``. Reply bytes of any other command would be
indistinguishable from pushed samples, so a session refuses discrete commands
while a stream is active.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING

from gmcctl.core.errors import ErrorKind, StreamingInactiveError, TransportError, failure_kind
from gmcctl.core.framer import Framer, command_frame
from gmcctl.core.model import CommandResult

if TYPE_CHECKING:
    from gmcctl.core.session import GMCSession

TURN_ON_CPS = command_frame("HEARTBEAT1")
TURN_OFF_CPS = command_frame("HEARTBEAT0")
LOGGER = logging.getLogger(__name__)


def halt(framer: Framer) -> None:
    """Send the stop command and drop any sample already on its way."""
    framer.send(TURN_OFF_CPS)
    framer.flush_inbound()


def decode_counts(raw: bytes) -> int:
    # The two top bits of the high byte are reserved.
    return ((raw[0] << 8) & 0x3F00) | raw[1]


class AutoCPSStream:
    def __init__(self, session: GMCSession) -> None:
        self._session = session
        self.active = True

    def __enter__(self) -> AutoCPSStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def __iter__(self) -> Iterator[CommandResult[int]]:
        while self.active:
            yield self.read()

    def read(self) -> CommandResult[int]:
        """Read the next pushed sample without flushing or sending a command."""
        if not self.active:
            raise StreamingInactiveError("Auto-CPS streaming is not active")
        session = self._session
        with session._lock:
            try:
                raw = session._framer.receive(2)
            except TransportError as exc:
                LOGGER.warning("Auto-CPS read failed: %s", exc)
                return session._record(CommandResult(0, ErrorKind.GET_AUTO_CPS))
            return session._record(CommandResult(decode_counts(raw)))

    def stop(self) -> CommandResult[None]:
        if not self.active:
            return CommandResult(None)
        session = self._session
        with session._lock:
            self.active = False
            session._stream = None
            try:
                halt(session._framer)
            except TransportError as exc:
                LOGGER.warning("Stopping auto-CPS left the line dirty: %s", exc)
                return session._record(CommandResult(None, failure_kind(exc, ErrorKind.SEND_CMD)))
            LOGGER.info("Auto-CPS streaming stopped")
            return session._record(CommandResult(None))
