import socket
import ssl

import pytest

from idevkit.device_connection import DeviceConnection


@pytest.fixture
def pair():
    left, right = socket.socketpair()
    conn = DeviceConnection(left)
    yield conn, right
    right.close()
    left.close()


def test_send_reaches_peer(pair):
    conn, peer = pair
    conn.send(b"hello device")
    assert peer.recv(100) == b"hello device"


def test_read_returns_peer_data(pair):
    conn, peer = pair
    peer.sendall(b"abc")
    assert conn.read(10) == b"abc"


def test_read_exact_joins_chunks(pair):
    conn, peer = pair
    peer.sendall(b"12")
    peer.sendall(b"3456")
    assert conn.read_exact(6) == b"123456"


def test_read_exact_raises_on_eof(pair):
    conn, peer = pair
    peer.sendall(b"12")
    peer.close()
    with pytest.raises(EOFError):
        conn.read_exact(4)


def test_read_at_eof_is_empty(pair):
    conn, peer = pair
    peer.close()
    assert conn.read(4) == b""


def test_send_after_close_raises(pair):
    conn, _ = pair
    conn.close()
    with pytest.raises(OSError):
        conn.send(b"x")


def test_context_manager_closes(pair):
    conn, _ = pair
    with conn as entered:
        assert entered is conn
    with pytest.raises(OSError):
        conn.send(b"x")


def test_disable_without_ssl_raises(pair):
    conn, _ = pair
    with pytest.raises(RuntimeError):
        conn.disable_session_ssl()


@pytest.mark.parametrize(
    "method",
    [
        "enable_session_ssl",
        "enable_session_ssl_server_mode",
        "enable_session_ssl_handshake_only",
        "enable_session_ssl_server_mode_handshake_only",
    ],
)
def test_invalid_host_certificate_rejected(pair, method):
    conn, peer = pair
    with pytest.raises(ssl.SSLError):
        getattr(conn, method)(b"placeholder", b"placeholder")
    conn.send(b"plain")
    assert peer.recv(10) == b"plain"


def test_open_unix_missing_socket(tmp_path):
    with pytest.raises(OSError):
        DeviceConnection.open_unix(str(tmp_path / "nope"))