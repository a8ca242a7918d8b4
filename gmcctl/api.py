"""Stable public API for building tooling on top of gmcctl.

This module is the supported integration surface for third-party callers such
as chart displays or logging daemons. Avoid importing from internal modules
unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

from gmcctl.core.config_store import NVM_SIZE, ConfigurationStore
from gmcctl.core.errors import (
    HISTORY_ADDR_MAXSIZE,
    HISTORY_DATA_MAXSIZE,
    ErrorKind,
    FlushError,
    GmcError,
    ProfileLoadError,
    ProfileSelectionError,
    ProfileValidationError,
    SessionNotOpenError,
    ShortReadError,
    StreamingActiveError,
    StreamingInactiveError,
    TransportConnectError,
    TransportError,
    TransportSendError,
)
from gmcctl.core.history import decode_history, samples, validate_request
from gmcctl.core.model import (
    CommandResult,
    ConfigField,
    CountSample,
    DeviceProfile,
    HistoryEntry,
    LabelMarker,
    SaveDataType,
    SoftKey,
    TimestampMarker,
)
from gmcctl.core.profiles import LoadedProfiles, load_profiles
from gmcctl.core.session import GMCSession
from gmcctl.core.streaming import AutoCPSStream
from gmcctl.transports.base import Transport
from gmcctl.transports.serial_port import LineSettings, SerialTransport

__all__ = [
    "HISTORY_ADDR_MAXSIZE",
    "HISTORY_DATA_MAXSIZE",
    "NVM_SIZE",
    "ErrorKind",
    "GmcError",
    "FlushError",
    "ProfileLoadError",
    "ProfileSelectionError",
    "ProfileValidationError",
    "SessionNotOpenError",
    "ShortReadError",
    "StreamingActiveError",
    "StreamingInactiveError",
    "TransportConnectError",
    "TransportError",
    "TransportSendError",
    "AutoCPSStream",
    "CommandResult",
    "ConfigField",
    "ConfigurationStore",
    "CountSample",
    "DeviceProfile",
    "GMCSession",
    "HistoryEntry",
    "LabelMarker",
    "LineSettings",
    "LoadedProfiles",
    "SaveDataType",
    "SerialTransport",
    "SoftKey",
    "TimestampMarker",
    "Transport",
    "decode_history",
    "load_profiles",
    "open_session",
    "samples",
    "validate_request",
]


def open_session(
    port: str,
    *,
    profile_id: str | None = None,
    transport: Transport | None = None,
) -> tuple[GMCSession, CommandResult[str]]:
    """Resolve a device profile, open a session and return it with the open result.

    The session is returned even when opening failed so callers can inspect
    `last_error` and close it uniformly.
    """
    profile = load_profiles().get(profile_id)
    session = GMCSession(port, profile=profile, transport=transport)
    return session, session.open()
