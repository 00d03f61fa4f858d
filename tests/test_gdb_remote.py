import io

import pytest

from idevkit.gdb_remote import (
    GdbRemote,
    InvalidPayloadError,
    checksum,
    format_packet,
)


class FakeStream:
    def __init__(self, incoming: bytes = b"", chunk: int | None = None) -> None:
        self._incoming = io.BytesIO(incoming)
        self._chunk = chunk
        self.written = bytearray()

    def read(self, size: int) -> bytes:
        if self._chunk is not None:
            size = min(size, self._chunk)
        return self._incoming.read(size)

    def write(self, data: bytes) -> int:
        self.written.extend(data)
        return len(data)


class SendOnlyStream:
    def __init__(self) -> None:
        self.sent = bytearray()

    def read(self, size: int) -> bytes:
        return b""

    def send(self, data: bytes) -> None:
        self.sent.extend(data)


def test_checksum_of_ok_packet():
    assert checksum("OK") == "9a"


def test_checksum_of_empty_packet_is_two_digits():
    assert checksum("") == "00"


def test_format_packet_structure():
    formatted = format_packet("qSupported")
    assert formatted.startswith("+$qSupported#")
    assert formatted[-2:] == checksum("qSupported")


def test_send_writes_formatted_packet():
    stream = FakeStream()
    GdbRemote(stream).send("OK")
    assert bytes(stream.written) == b"+$OK#9a"


def test_send_uses_send_method_without_write():
    stream = SendOnlyStream()
    GdbRemote(stream).send("g")
    assert bytes(stream.sent) == format_packet("g").encode()


def test_recv_strips_framing():
    remote = GdbRemote(FakeStream(b"+$OK#9a"))
    assert remote.recv() == "OK"


def test_recv_returns_packets_in_order():
    data = format_packet("first").encode() + format_packet("second").encode()
    remote = GdbRemote(FakeStream(data))
    assert remote.recv() == "first"
    assert remote.recv() == "second"
    assert remote.recv() == ""


def test_recv_assembles_packet_from_single_bytes():
    data = format_packet("T05thread:01;").encode()
    remote = GdbRemote(FakeStream(data, chunk=1))
    assert remote.recv() == "T05thread:01;"


def test_recv_incomplete_packet_at_end_of_stream():
    remote = GdbRemote(FakeStream(b"$OK#9"))
    assert remote.recv() == ""


def test_recv_end_marker_before_start_is_invalid():
    remote = GdbRemote(FakeStream(b"#00$OK#9a"))
    with pytest.raises(InvalidPayloadError):
        remote.recv()


def test_request_round_trip():
    stream = FakeStream(format_packet("E01").encode())
    reply = GdbRemote(stream).request("m0,4")
    assert reply == "E01"
    assert bytes(stream.written) == format_packet("m0,4").encode()