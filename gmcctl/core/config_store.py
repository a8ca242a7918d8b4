"""Host-side mirror of the GQ GMC 256-byte NVM configuration block.

The device EEPROM can only be rewritten as a whole: erase, then write every
one of the 256 bytes, then ask the device to apply them. Field writes only
touch the host mirror, so callers batch all their changes and commit once.
Multi-byte fields are big-endian on the wire and in the mirror.
"""

from __future__ import annotations

import logging

from gmcctl.core.errors import ErrorKind, TransportError, failure_kind
from gmcctl.core.framer import Framer, command_frame, write_config_frame
from gmcctl.core.model import CommandResult, ConfigField, SaveDataType

NVM_SIZE = 256
DATA_SAVE_ADDRESS_RESET = 0x10
LOGGER = logging.getLogger(__name__)

GET_CFG = command_frame("GETCFG")
ERASE_CFG = command_frame("ECFG")
UPDATE_CFG = command_frame("CFGUPDATE")


def _resolve(field: ConfigField | int, size: int | None) -> tuple[int, int]:
    if isinstance(field, ConfigField):
        offset, field_size = field.offset, field.size
        if size is not None and size != field_size:
            raise ValueError(f"{field.name} occupies {field_size} bytes, not {size}")
        size = field_size
    else:
        offset = field
        if size is None:
            raise ValueError("size is required when addressing a field by offset")
    if offset < 0 or size <= 0 or offset + size > NVM_SIZE:
        raise ValueError(f"field at offset {offset} with {size} bytes is outside the {NVM_SIZE}-byte block")
    return offset, size


class ConfigurationStore:
    def __init__(self, framer: Framer) -> None:
        self._framer = framer
        self._data = bytearray(NVM_SIZE)

    def snapshot(self) -> bytes:
        return bytes(self._data)

    def load(self, block: bytes) -> None:
        if len(block) != NVM_SIZE:
            raise ValueError(f"configuration block must be {NVM_SIZE} bytes, got {len(block)}")
        self._data[:] = block

    def read(self) -> CommandResult[bytes]:
        """Replace the mirror with the device's current block."""
        try:
            block = self._framer.exchange(GET_CFG, NVM_SIZE)
        except TransportError as exc:
            LOGGER.warning("Configuration read failed: %s", exc)
            return CommandResult(self.snapshot(), failure_kind(exc, ErrorKind.GET_CFG))
        self.load(block)
        return CommandResult(self.snapshot())

    def read_field_bytes(self, field: ConfigField | int, size: int | None = None) -> bytes:
        offset, size = _resolve(field, size)
        return bytes(self._data[offset : offset + size])

    def read_field(self, field: ConfigField | int, size: int | None = None) -> int:
        return int.from_bytes(self.read_field_bytes(field, size), "big")

    def write_field(self, field: ConfigField | int, value: int | bytes, size: int | None = None) -> None:
        """Write a field into the mirror only.

        Integers are serialized big-endian to the field width; bytes are
        taken as already being in device order.
        """
        offset, size = _resolve(field, size)
        if isinstance(value, int):
            try:
                raw = value.to_bytes(size, "big")
            except OverflowError as exc:
                raise ValueError(f"value {value} does not fit in {size} bytes") from exc
        else:
            raw = bytes(value)
            if len(raw) != size:
                raise ValueError(f"expected {size} bytes for field at offset {offset}, got {len(raw)}")
        self._data[offset : offset + size] = raw

    @property
    def save_data_type(self) -> SaveDataType | None:
        try:
            return SaveDataType(self.read_field(ConfigField.SAVE_DATA_TYPE))
        except ValueError:
            return None

    def set_save_data_type(self, mode: SaveDataType) -> None:
        self.write_field(ConfigField.SAVE_DATA_TYPE, int(mode))

    @property
    def data_save_address(self) -> int:
        return self.read_field(ConfigField.DATA_SAVE_ADDRESS)

    def reset_data_save_address(self) -> None:
        # Leaves room at the start of the log for a date/timestamp record.
        self.write_field(ConfigField.DATA_SAVE_ADDRESS, DATA_SAVE_ADDRESS_RESET)

    def dump(self) -> dict[str, int]:
        return {field.name.lower(): self.read_field(field) for field in ConfigField}

    def commit(self, *, verify: bool = False) -> CommandResult[None]:
        """Erase, write all 256 bytes, then apply them on the device."""
        try:
            self._framer.exchange(ERASE_CFG, 1)
        except TransportError as exc:
            LOGGER.warning("Configuration erase failed: %s", exc)
            return CommandResult(None, failure_kind(exc, ErrorKind.ERASE_CFG))

        for offset, value in enumerate(self.snapshot()):
            try:
                self._framer.exchange(write_config_frame(offset, value), 1)
            except TransportError as exc:
                LOGGER.warning("Configuration write stopped at offset %d: %s", offset, exc)
                return CommandResult(None, failure_kind(exc, ErrorKind.WRITE_CFG))
        LOGGER.info("Wrote %d configuration bytes", NVM_SIZE)

        try:
            self._framer.exchange(UPDATE_CFG, 1)
        except TransportError as exc:
            LOGGER.warning("Configuration update failed: %s", exc)
            return CommandResult(None, failure_kind(exc, ErrorKind.UPDATE_CFG))

        if verify:
            return self._verify()
        return CommandResult(None)

    def _verify(self) -> CommandResult[None]:
        expected = self.snapshot()
        try:
            actual = self._framer.exchange(GET_CFG, NVM_SIZE)
        except TransportError as exc:
            LOGGER.warning("Configuration read-back failed: %s", exc)
            return CommandResult(None, failure_kind(exc, ErrorKind.GET_CFG))
        mismatched = [offset for offset in range(NVM_SIZE) if actual[offset] != expected[offset]]
        if mismatched:
            LOGGER.warning("Configuration read-back differs at offsets %s", mismatched[:8])
            return CommandResult(None, ErrorKind.VERIFY_CFG)
        return CommandResult(None)
