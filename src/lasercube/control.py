"""
Control channel: the LaserCube's synchronous command/response protocol.

Every command is one bulk write to the control OUT endpoint followed by one
64-byte bulk read from the control IN endpoint::

    request   [command, payload...]         payload: u8 or u32 LE (set only)
    response  [echo, status, value..., pad] status 0 = OK
                                            value: byte[2] (u8) or
                                                   bytes[2:6] (u32 LE)

Command bytes are part of the wire contract and must not change.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .constants import RESPONSE_SIZE, STATUS_OFFSET, STATUS_OK, TIMEOUT_MS, VALUE_OFFSET
from .errors import IncompleteResponse, IncompleteWrite, UnexpectedContent
from .usb_transport import Endpoints, UsbTransport

log = logging.getLogger(__name__)

SET = "set"
GET = "get"

_U32 = struct.Struct("<I")


class Command(Enum):
    """Every command the device understands."""
    # Set
    CLEAR_RING_BUFFER = "clear_ring_buffer"
    ENABLE_OUTPUT = "enable_output"
    SET_DAC_RATE = "set_dac_rate"
    # Get
    OUTPUT_ENABLED = "output_enabled"
    DAC_RATE = "dac_rate"
    MAX_DAC_RATE = "max_dac_rate"
    MIN_DAC_RATE = "min_dac_rate"
    MAX_DAC_VALUE = "max_dac_value"
    VERSION_MAJOR = "version_major"
    VERSION_MINOR = "version_minor"


@dataclass(frozen=True)
class CommandSpec:
    code: int
    kind: str   # SET or GET
    width: int  # payload bytes (set) or response value bytes (get)


COMMANDS: dict[Command, CommandSpec] = {
    Command.CLEAR_RING_BUFFER: CommandSpec(0x8D, SET, 1),
    Command.ENABLE_OUTPUT:     CommandSpec(0x80, SET, 1),
    Command.SET_DAC_RATE:      CommandSpec(0x82, SET, 4),
    Command.OUTPUT_ENABLED:    CommandSpec(0x81, GET, 1),
    Command.DAC_RATE:          CommandSpec(0x83, GET, 4),
    Command.MAX_DAC_RATE:      CommandSpec(0x84, GET, 4),
    Command.MIN_DAC_RATE:      CommandSpec(0x87, GET, 4),
    Command.MAX_DAC_VALUE:     CommandSpec(0x88, GET, 4),
    Command.VERSION_MAJOR:     CommandSpec(0x8B, GET, 4),
    Command.VERSION_MINOR:     CommandSpec(0x8C, GET, 4),
}


def _encode_value(width: int, value: int) -> bytes:
    if width == 1:
        if not 0 <= value <= 0xFF:
            raise ValueError(f"u8 payload out of range: {value}")
        return bytes([value])
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"u32 payload out of range: {value}")
    return _U32.pack(value)


def _decode_value(width: int, resp: bytes) -> int:
    if width == 1:
        return resp[VALUE_OFFSET]
    return _U32.unpack_from(resp, VALUE_OFFSET)[0]


def build_request(command: Command, value: Optional[int] = None) -> bytes:
    """Frame a request for *command*.

    Set commands require *value*; get commands must not carry one.
    """
    spec = COMMANDS[command]
    if spec.kind == SET:
        if value is None:
            raise ValueError(f"{command.name} requires a value")
        return bytes([spec.code]) + _encode_value(spec.width, value)
    if value is not None:
        raise ValueError(f"{command.name} is a query and takes no value")
    return bytes([spec.code])


class ControlChannel:
    """Command/response protocol over the control endpoint pair."""

    def __init__(self, transport: UsbTransport, endpoints: Endpoints):
        self.transport = transport
        self._read_ep = endpoints.control_read.address
        self._write_ep = endpoints.control_write.address

    # -- Transport primitive -----------------------------------------------

    def exchange(self, request: bytes) -> bytes:
        """Write *request*, read one 64-byte response and validate it.

        Raises:
            IncompleteWrite: fewer bytes written than requested.
            IncompleteResponse: response shorter than RESPONSE_SIZE.
            UnexpectedContent: non-zero status byte.
        """
        written = self.transport.write(self._write_ep, request, TIMEOUT_MS)
        if written != len(request):
            raise IncompleteWrite(written, len(request))

        resp = self.transport.read(self._read_ep, RESPONSE_SIZE, TIMEOUT_MS)
        if len(resp) != RESPONSE_SIZE:
            raise IncompleteResponse(len(resp), RESPONSE_SIZE)

        status = resp[STATUS_OFFSET]
        if status != STATUS_OK:
            raise UnexpectedContent(status, STATUS_OK)
        return resp

    def _transact(self, command: Command, kind: str, value: Optional[int] = None) -> int:
        spec = COMMANDS[command]
        if spec.kind != kind:
            raise ValueError(f"{command.name} is a {spec.kind} command")
        request = build_request(command, value)
        log.debug("%s 0x%02x (%d bytes)", command.name, spec.code, len(request))
        resp = self.exchange(request)
        return _decode_value(spec.width, resp)

    def get(self, command: Command) -> int:
        return self._transact(command, GET)

    def set(self, command: Command, value: int) -> None:
        self._transact(command, SET, value)

    # -- Derived operations ------------------------------------------------

    def clear_ring_buffer(self) -> None:
        log.debug("clearing ring buffer")
        self.set(Command.CLEAR_RING_BUFFER, 0)

    def enable_output(self) -> None:
        log.debug("enabling output")
        self.set(Command.ENABLE_OUTPUT, 1)

    def disable_output(self) -> None:
        log.debug("disabling output")
        self.set(Command.ENABLE_OUTPUT, 0)

    def output_enabled(self) -> bool:
        return self.get(Command.OUTPUT_ENABLED) != 0

    def dac_rate(self) -> int:
        return self.get(Command.DAC_RATE)

    def min_dac_rate(self) -> int:
        return self.get(Command.MIN_DAC_RATE)

    def max_dac_rate(self) -> int:
        return self.get(Command.MAX_DAC_RATE)

    def max_dac_value(self) -> int:
        return self.get(Command.MAX_DAC_VALUE)

    def firmware_version(self) -> tuple[int, int]:
        return (self.get(Command.VERSION_MAJOR), self.get(Command.VERSION_MINOR))

    def set_dac_rate(self, requested: int) -> int:
        """Clamp *requested* into the device's [min, max] and write it.

        Returns the rate actually sent.
        """
        lo = self.min_dac_rate()
        hi = self.max_dac_rate()
        rate = max(lo, min(hi, requested))
        if rate != requested:
            log.debug("DAC rate %d clamped to %d (range %d..%d)", requested, rate, lo, hi)
        self.set(Command.SET_DAC_RATE, rate)
        return rate
