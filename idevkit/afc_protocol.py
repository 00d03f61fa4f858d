"""Wire format of the Apple File Conduit (AFC) protocol."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Protocol

AFC_MAGIC = 0x4141504C36414643
AFC_HEADER_SIZE = 40

_HEADER = struct.Struct("<5Q")


class _Reader(Protocol):
    def read(self, size: int) -> bytes: ...


class _Writer(Protocol):
    def write(self, data: bytes) -> object: ...


class AfcOperation(enum.IntEnum):
    """Operation codes carried in the packet header."""

    STATUS = 0x01
    DATA = 0x02
    READ_DIR = 0x03
    REMOVE_PATH = 0x08
    MAKE_DIR = 0x09
    FILE_INFO = 0x0A
    DEVICE_INFO = 0x0B
    FILE_OPEN = 0x0D
    FILE_OPEN_RESULT = 0x0E
    FILE_READ = 0x0F
    FILE_WRITE = 0x10
    FILE_CLOSE = 0x14
    REMOVE_PATH_AND_CONTENTS = 0x22


class AfcMode(enum.IntEnum):
    """File open modes."""

    RDONLY = 0x01
    RW = 0x02
    WRONLY = 0x03
    WR = 0x04
    APPEND = 0x05
    RDAPPEND = 0x06


_ERROR_NAMES = {
    1: "UnknownError",
    2: "OperationHeaderInvalid",
    3: "NoResources",
    4: "ReadError",
    5: "WriteError",
    6: "UnknownPacketType",
    7: "InvalidArgument",
    8: "ObjectNotFound",
    9: "ObjectIsDir",
    10: "PermDenied",
    11: "ServiceNotConnected",
    12: "OperationTimeout",
    13: "TooMuchData",
    14: "EndOfData",
    15: "OperationNotSupported",
    16: "ObjectExists",
    17: "ObjectBusy",
    18: "NoSpaceLeft",
    19: "OperationWouldBlock",
    20: "IoError",
    21: "OperationInterrupted",
    22: "OperationInProgress",
    23: "InternalError",
    30: "MuxError",
    31: "NoMemory",
    32: "NotEnoughData",
    33: "DirNotEmpty",
}


class AfcError(Exception):
    """An error status reported by the device."""

    def __init__(self, code: int, message: str | None = None) -> None:
        self.code = code
        self.name = _ERROR_NAMES.get(code, f"Error{code}")
        super().__init__(message or self.name)


def error_for_code(code: int) -> AfcError | None:
    """Return the error for a status code, or None for success and unknown codes."""
    if code in _ERROR_NAMES:
        return AfcError(code)
    return None


@dataclass
class AfcPacketHeader:
    magic: int
    entire_length: int
    this_length: int
    packet_num: int
    operation: int


@dataclass
class AfcPacket:
    header: AfcPacketHeader
    header_payload: bytes = b""
    payload: bytes = b""

    def to_bytes(self) -> bytes:
        """Serialise the packet exactly as its header describes it."""
        h = self.header
        head = _HEADER.pack(h.magic, h.entire_length, h.this_length, h.packet_num, h.operation)
        return head + bytes(self.header_payload or b"") + bytes(self.payload or b"")


def _read_exact(reader: _Reader, size: int) -> bytes:
    buffer = bytearray()
    while len(buffer) < size:
        chunk = reader.read(size - len(buffer))
        if not chunk:
            raise EOFError(f"stream ended after {len(buffer)} of {size} bytes")
        buffer.extend(chunk)
    return bytes(buffer)


def decode_packet(reader: _Reader) -> AfcPacket:
    """Read one packet from a binary stream."""
    header = AfcPacketHeader(*_HEADER.unpack(_read_exact(reader, AFC_HEADER_SIZE)))
    if header.magic != AFC_MAGIC:
        raise ValueError(f"Wrong magic:{header.magic:x} expected: {AFC_MAGIC:x}")
    if header.this_length < AFC_HEADER_SIZE or header.entire_length < header.this_length:
        raise ValueError(
            f"inconsistent packet lengths: this_length={header.this_length} "
            f"entire_length={header.entire_length}"
        )
    header_payload = _read_exact(reader, header.this_length - AFC_HEADER_SIZE)
    payload = _read_exact(reader, header.entire_length - header.this_length)
    return AfcPacket(header, header_payload, payload)


def encode_packet(packet: AfcPacket, writer: _Writer) -> None:
    """Write one packet to a binary stream."""
    writer.write(packet.to_bytes())