"""A socket to the device multiplexer that can switch TLS on and off."""

from __future__ import annotations

import contextlib
import logging
import os
import socket
import ssl
import tempfile

log = logging.getLogger(__name__)

_TLS_HEADER_SIZE = 5


def _recv_up_to(sock: socket.socket, size: int) -> bytes:
    buffer = bytearray()
    while len(buffer) < size:
        chunk = sock.recv(size - len(buffer))
        if not chunk:
            break
        buffer.extend(chunk)
    return bytes(buffer)


def _read_tls_record(sock: socket.socket) -> bytes | None:
    """Read one whole TLS record; None when the peer closed before it began."""
    header = _recv_up_to(sock, _TLS_HEADER_SIZE)
    if not header:
        return None
    if len(header) < _TLS_HEADER_SIZE:
        raise EOFError("connection closed inside a TLS record header")
    length = int.from_bytes(header[3:5], "big")
    payload = _recv_up_to(sock, length)
    if len(payload) < length:
        raise EOFError("connection closed inside a TLS record")
    return header + payload


def _context(server_side: bool, host_certificate: bytes, host_private_key: bytes) -> ssl.SSLContext:
    if server_side:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    else:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
    # The device's certificate is trusted as it is.
    context.verify_mode = ssl.CERT_NONE
    with contextlib.suppress(ValueError, ssl.SSLError):
        context.minimum_version = ssl.TLSVersion.TLSv1
    with tempfile.TemporaryDirectory() as directory:
        cert_path = os.path.join(directory, "host.crt")
        key_path = os.path.join(directory, "host.key")
        with open(cert_path, "wb") as fh:
            fh.write(host_certificate)
        with open(key_path, "wb") as fh:
            fh.write(host_private_key)
        try:
            context.load_cert_chain(cert_path, key_path)
        except ssl.SSLError:
            log.error("Error SSL: could not load host certificate and key")
            raise
    return context


class _TlsSession:
    """TLS driven through memory buffers so the plain socket stays usable."""

    def __init__(self, sock: socket.socket, context: ssl.SSLContext, server_side: bool) -> None:
        self._sock = sock
        self._incoming = ssl.MemoryBIO()
        self._outgoing = ssl.MemoryBIO()
        self._obj = context.wrap_bio(self._incoming, self._outgoing, server_side=server_side)

    def _flush(self) -> None:
        data = self._outgoing.read()
        if data:
            self._sock.sendall(data)

    def _pump(self) -> None:
        self._flush()
        record = _read_tls_record(self._sock)
        if record is None:
            self._incoming.write_eof()
        else:
            self._incoming.write(record)

    def handshake(self) -> None:
        while True:
            try:
                self._obj.do_handshake()
                break
            except ssl.SSLWantReadError:
                self._pump()
        self._flush()

    def send(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            try:
                written = self._obj.write(view)
            except ssl.SSLWantReadError:
                self._pump()
                continue
            view = view[written:]
            self._flush()

    def recv(self, size: int) -> bytes:
        while True:
            try:
                return self._obj.read(size)
            except ssl.SSLWantReadError:
                self._pump()
            except (ssl.SSLZeroReturnError, ssl.SSLEOFError):
                return b""

    def close_write(self) -> None:
        try:
            self._obj.unwrap()
        except ssl.SSLWantReadError:
            pass
        self._flush()


class DeviceConnection:
    """A connected socket with optional session TLS."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._tls: _TlsSession | None = None

    @classmethod
    def open_unix(cls, path: str) -> DeviceConnection:
        """Connect to a unix domain socket such as the usbmuxd socket."""
        if path.startswith("unix://"):
            path = path[len("unix://"):]
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(path)
        except OSError:
            sock.close()
            raise
        log.debug("Opening connection: %s", path)
        return cls(sock)

    def __enter__(self) -> DeviceConnection:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def send(self, data: bytes) -> None:
        """Send all of ``data``; the connection is closed if that fails."""
        try:
            if self._tls is not None:
                self._tls.send(bytes(data))
            else:
                self._sock.sendall(data)
        except OSError as exc:
            log.error("Failed sending: %s", exc)
            self.close()
            raise

    def read(self, size: int) -> bytes:
        """Read at most ``size`` bytes; b"" at end of stream."""
        if self._tls is not None:
            return self._tls.recv(size)
        return self._sock.recv(size)

    def read_exact(self, size: int) -> bytes:
        buffer = bytearray()
        while len(buffer) < size:
            chunk = self.read(size - len(buffer))
            if not chunk:
                raise EOFError(f"connection closed after {len(buffer)} of {size} bytes")
            buffer.extend(chunk)
        return bytes(buffer)

    def close(self) -> None:
        log.debug("Closing connection")
        self._tls = None
        self._sock.close()

    def _start_tls(self, server_side: bool, host_certificate: bytes, host_private_key: bytes) -> _TlsSession:
        context = _context(server_side, host_certificate, host_private_key)
        session = _TlsSession(self._sock, context, server_side)
        try:
            session.handshake()
        except (ssl.SSLError, OSError, EOFError) as exc:
            log.info("Handshake error: %s", exc)
            raise
        return session

    def enable_session_ssl(self, host_certificate: bytes, host_private_key: bytes) -> None:
        """Switch to TLS as a client, using the host certificate of the pair record."""
        self._tls = self._start_tls(False, host_certificate, host_private_key)

    def enable_session_ssl_server_mode(self, host_certificate: bytes, host_private_key: bytes) -> None:
        """Switch to TLS acting as the server, as a proxy in front of a host tool does."""
        self._tls = self._start_tls(True, host_certificate, host_private_key)

    def enable_session_ssl_handshake_only(self, host_certificate: bytes, host_private_key: bytes) -> None:
        """Run a client TLS handshake, then keep talking in plain text."""
        self._start_tls(False, host_certificate, host_private_key)

    def enable_session_ssl_server_mode_handshake_only(self, host_certificate: bytes, host_private_key: bytes) -> None:
        """Run a server TLS handshake, then keep talking in plain text."""
        self._start_tls(True, host_certificate, host_private_key)

    def disable_session_ssl(self) -> None:
        """Leave TLS without closing the socket.

        Sends close_notify, then reads and drops the peer's encrypted close record.
        """
        if self._tls is None:
            raise RuntimeError("session SSL is not enabled")
        session, self._tls = self._tls, None
        try:
            session.close_write()
        except (ssl.SSLError, OSError) as exc:
            log.error("failed closewrite %s", exc)
        try:
            record = _read_tls_record(self._sock)
        except (OSError, EOFError) as exc:
            log.error("failed reading tls close record %s", exc)
            return
        if record is not None:
            log.debug("rcv tls record: %s", record.hex())