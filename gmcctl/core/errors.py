"""Domain-specific errors and device error kinds for gmcctl."""

from __future__ import annotations

from enum import Enum

HISTORY_DATA_MAXSIZE = 0x1000
HISTORY_ADDR_MAXSIZE = 0x10000


class ErrorKind(Enum):
    """Outcome of a device command, one active kind at a time."""

    NO_PROBLEM = "no_problem"
    USB_OPEN_FAILED = "usb_open_failed"
    OLDER_FIRMWARE = "older_firmware"
    GET_VERSION = "get_version"
    GET_SERIAL_NUMBER = "get_serial_number"
    GET_CPM = "get_cpm"
    GET_CPS = "get_cps"
    GET_AUTO_CPS = "get_auto_cps"
    GET_CFG = "get_cfg"
    ERASE_CFG = "erase_cfg"
    UPDATE_CFG = "update_cfg"
    WRITE_CFG = "write_cfg"
    VERIFY_CFG = "verify_cfg"
    CLEAR_USB = "clear_usb"
    SEND_CMD = "send_cmd"
    GET_BATTERY_VOLTAGE = "get_battery_voltage"
    GET_HISTORY_DATA = "get_history_data"
    GET_HISTORY_DATA_LENGTH = "get_history_data_length"
    GET_HISTORY_DATA_ADDRESS = "get_history_data_address"
    GET_HISTORY_DATA_OVERRUN = "get_history_data_overrun"
    SET_YEAR = "set_year"
    SET_MONTH = "set_month"
    SET_DAY = "set_day"
    SET_HOUR = "set_hour"
    SET_MINUTE = "set_minute"
    SET_SECOND = "set_second"

    @property
    def text(self) -> str:
        return _ERROR_TEXT[self]


_ERROR_TEXT: dict[ErrorKind, str] = {
    ErrorKind.NO_PROBLEM: "",
    ErrorKind.USB_OPEN_FAILED: "The USB port did not open successfully.",
    ErrorKind.OLDER_FIRMWARE: "Your GQ GMC has older firmware. Some commands may not work.",
    ErrorKind.GET_VERSION: "The command to read the version number of the firmware failed.",
    ErrorKind.GET_SERIAL_NUMBER: "The command to read the serial number failed.",
    ErrorKind.GET_CPM: "The command to read the counts per minute failed.",
    ErrorKind.GET_CPS: "The command to read the counts per second failed.",
    ErrorKind.GET_AUTO_CPS: "The command to read auto counts per second failed.",
    ErrorKind.GET_CFG: "The command to get configuration data failed.",
    ErrorKind.ERASE_CFG: "The command to erase configuration data failed.",
    ErrorKind.UPDATE_CFG: "The command to update configuration data failed.",
    ErrorKind.WRITE_CFG: "The command to write configuration data failed.",
    ErrorKind.VERIFY_CFG: "The configuration read back from the GQ GMC does not match the host copy.",
    ErrorKind.CLEAR_USB: "Failed to clear USB input buffer. You should power cycle GQ GMC.",
    ErrorKind.SEND_CMD: "The command could not be transmitted to the GQ GMC.",
    ErrorKind.GET_BATTERY_VOLTAGE: "The command to read the battery voltage failed.",
    ErrorKind.GET_HISTORY_DATA: "The command to read the history data failed.",
    ErrorKind.GET_HISTORY_DATA_LENGTH: (
        f"The requested data length of the history command cannot exceed {HISTORY_DATA_MAXSIZE} bytes."
    ),
    ErrorKind.GET_HISTORY_DATA_ADDRESS: (
        f"The address of the history command cannot exceed {HISTORY_ADDR_MAXSIZE} bytes."
    ),
    ErrorKind.GET_HISTORY_DATA_OVERRUN: (
        f"The history data length added to the address cannot exceed {HISTORY_ADDR_MAXSIZE} bytes."
    ),
    ErrorKind.SET_YEAR: "The set year command failed.",
    ErrorKind.SET_MONTH: "The set month command failed.",
    ErrorKind.SET_DAY: "The set day command failed.",
    ErrorKind.SET_HOUR: "The set hour command failed.",
    ErrorKind.SET_MINUTE: "The set minute command failed.",
    ErrorKind.SET_SECOND: "The set second command failed.",
}


class GmcError(Exception):
    """Base error for gmcctl."""


class ProfileLoadError(GmcError):
    """Raised when reading device profile sources fails."""


class ProfileValidationError(GmcError):
    """Raised when a profile file does not conform to schema or semantics."""


class ProfileSelectionError(GmcError):
    """Raised when a requested device profile does not exist."""


class SessionNotOpenError(GmcError):
    """Raised when a device command is issued before the session is opened."""


class StreamingActiveError(GmcError):
    """Raised when a discrete command is issued while auto-CPS streaming is on."""


class StreamingInactiveError(GmcError):
    """Raised when a streaming read is issued without an active stream."""


class TransportError(GmcError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when the serial port cannot be opened or configured."""


class TransportSendError(TransportError):
    """Raised when writing a command frame fails."""


class ShortReadError(TransportError):
    """Raised when fewer reply bytes arrive than the command expects."""

    def __init__(self, expected: int, received: bytes) -> None:
        super().__init__(f"Expected {expected} reply bytes, received {len(received)}")
        self.expected = expected
        self.received = received


class FlushError(TransportError):
    """Raised when stale inbound bytes keep arriving past the flush bound."""


def failure_kind(exc: TransportError, kind: ErrorKind) -> ErrorKind:
    """Map a transport failure to the error kind reported for a command."""
    if isinstance(exc, FlushError):
        return ErrorKind.CLEAR_USB
    return kind
