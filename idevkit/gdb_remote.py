"""Wire level framing of the GDB remote serial protocol."""

from __future__ import annotations

_PACKET_SUFFIX_LEN = 3  # len("#00")
_READ_SIZE = 4096


class InvalidPayloadError(ValueError):
    """The stream holds a packet end marker before its start marker."""

    def __init__(self, message: str = "invalid payload") -> None:
        super().__init__(message)


def checksum(packet: str) -> str:
    """Two lowercase hex digits: the sum of the characters modulo 256."""
    return f"{sum(map(ord, packet)) % 256:02x}"


def format_packet(packet: str) -> str:
    """Frame a request as an acknowledged packet with its checksum."""
    return f"+${packet}#{checksum(packet)}"


class GdbRemote:
    """Send and receive GDB remote packets over a binary stream.

    The stream needs ``read(size)`` and either ``write(data)`` or ``send(data)``.
    """

    def __init__(self, stream) -> None:
        self._stream = stream
        self._write = getattr(stream, "write", None) or stream.send
        self._buffer = bytearray()

    def _next_packet(self) -> bytes | None:
        start = self._buffer.find(b"$")
        end = self._buffer.find(b"#")
        if start < 0 or end < 0 or len(self._buffer) < end + _PACKET_SUFFIX_LEN:
            return None
        if end < start:
            raise InvalidPayloadError()
        token = bytes(self._buffer[start + 1 : end])
        del self._buffer[: end + _PACKET_SUFFIX_LEN]
        return token

    def recv(self) -> str:
        """The body of the next packet, or "" once the stream has ended."""
        while True:
            token = self._next_packet()
            if token is not None:
                return token.decode("utf-8", errors="replace")
            chunk = self._stream.read(_READ_SIZE)
            if not chunk:
                return ""
            self._buffer.extend(chunk)

    def send(self, request: str) -> None:
        self._write(format_packet(request).encode("utf-8"))

    def request(self, request: str) -> str:
        """Send a request and return the body of the reply."""
        self.send(request)
        return self.recv()