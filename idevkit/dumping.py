"""Dumping the bytes that pass through a proxied connection."""

from __future__ import annotations

import logging
from dataclasses import dataclass

log = logging.getLogger(__name__)

_LINE_WIDTH = 16


def _printable(byte: int) -> str:
    return chr(byte) if 32 <= byte <= 126 else "."


def hex_dump(data: bytes) -> str:
    """Offset, hex and ASCII columns, sixteen bytes to a line."""
    lines = []
    for offset in range(0, len(data), _LINE_WIDTH):
        chunk = data[offset : offset + _LINE_WIDTH]
        cells = [f"{b:02x}" for b in chunk] + ["  "] * (_LINE_WIDTH - len(chunk))
        left = " ".join(cells[:8])
        right = " ".join(cells[8:])
        text = "".join(_printable(b) for b in chunk)
        lines.append(f"{offset:08x}  {left}  {right}  |{text}|\n")
    return "".join(lines)


def write_bytes(path: str, data: bytes) -> None:
    """Append raw bytes to a file, creating it when needed."""
    with open(path, "ab") as fh:
        fh.write(data)


class DumpingConnection:
    """Wraps a connection and logs a hex dump of every read and write to a file.

    The connection needs ``read(size)``, ``close()`` and ``write(data)`` or ``send(data)``.
    """

    def __init__(self, conn, path: str) -> None:
        self._conn = conn
        self._write = getattr(conn, "write", None) or conn.send
        self._file = open(path, "a", encoding="utf-8")

    def __enter__(self) -> DumpingConnection:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def read(self, size: int) -> bytes:
        try:
            data = self._conn.read(size)
        except OSError as exc:
            self._file.write("\n\nError Reading" + str(exc))
            self._file.flush()
            raise
        self._file.write("\n\nReading------------->\n")
        self._file.write(hex_dump(data))
        self._file.flush()
        return data

    def write(self, data: bytes) -> int:
        try:
            written = self._write(data)
        except OSError as exc:
            self._file.write("\n\nError Sending" + str(exc))
            self._file.flush()
            raise
        self._file.write("\n\nSending------------->\n")
        self._file.write(hex_dump(data))
        self._file.flush()
        return len(data) if written is None else written

    send = write

    def close(self) -> None:
        try:
            self._file.close()
        except OSError as exc:
            log.warning("failed closing bin file handle %s", exc)
        self._conn.close()


@dataclass
class BinaryDumper:
    """Appends everything it is given to one file."""

    path: str

    def decode(self, data: bytes) -> None:
        write_bytes(self.path, data)