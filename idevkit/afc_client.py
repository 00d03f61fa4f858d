"""File system access on a device through the AFC service."""

from __future__ import annotations

import contextlib
import fnmatch
import os
import posixpath
import re
import struct
from dataclasses import dataclass
from typing import BinaryIO, Iterator

from .afc_protocol import (
    AFC_HEADER_SIZE,
    AFC_MAGIC,
    AfcError,
    AfcMode,
    AfcOperation,
    AfcPacket,
    AfcPacketHeader,
    decode_packet,
    error_for_code,
)

_CHUNK_SIZE = 64 * 1024
_U64 = struct.Struct("<Q")
_SIGNED = re.compile(r"[+-]?[0-9]+")
_UNSIGNED = re.compile(r"[0-9]+")


@dataclass
class StatInfo:
    size: int = 0
    blocks: int = 0
    ctime: int = 0
    mtime: int = 0
    nlink: str = ""
    ifmt: str = ""
    link_target: str = ""

    def is_dir(self) -> bool:
        return self.ifmt == "S_IFDIR"

    def is_link(self) -> bool:
        return self.ifmt == "S_IFLNK"


@dataclass
class DeviceInfo:
    model: str
    total_bytes: int
    free_bytes: int
    block_size: int


def _parse_int(text: str) -> int:
    return int(text) if _SIGNED.fullmatch(text) else 0


def _parse_uint(key: str, text: str) -> int:
    if not _UNSIGNED.fullmatch(text):
        raise ValueError(f"invalid value for {key}: {text!r}")
    return int(text)


def _split_fields(payload: bytes) -> list[str]:
    return [part.decode("utf-8", errors="replace") for part in payload.split(b"\0")]


def _pairs(fields: list[str]) -> dict[str, str]:
    return dict(zip(fields[0::2], fields[1::2]))


def _base(path: str) -> str:
    if not path:
        return "."
    stripped = path.rstrip("/")
    if not stripped:
        return "/"
    return stripped.rsplit("/", 1)[-1]


def _join(directory: str, name: str) -> str:
    return posixpath.normpath(posixpath.join(directory, name))


class AfcClient:
    """Client for the AFC service over an already connected binary stream.

    The stream needs ``read(size)`` and either ``write(data)`` or ``send(data)``.
    """

    def __init__(self, stream) -> None:
        self._stream = stream
        self._write = getattr(stream, "write", None) or stream.send
        self._packet_number = 0

    def __enter__(self) -> AfcClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, operation: AfcOperation, header_payload: bytes = b"", payload: bytes = b"") -> AfcPacket:
        this_length = AFC_HEADER_SIZE + len(header_payload)
        header = AfcPacketHeader(
            magic=AFC_MAGIC,
            entire_length=this_length + len(payload),
            this_length=this_length,
            packet_num=self._packet_number,
            operation=operation,
        )
        self._packet_number += 1
        self._write(AfcPacket(header, header_payload, payload).to_bytes())
        return decode_packet(self._stream)

    @staticmethod
    def _check_status(response: AfcPacket, action: str) -> None:
        if response.header.operation != AfcOperation.STATUS:
            return
        if len(response.header_payload) < _U64.size:
            raise ValueError(f"{action}: status packet too short")
        (code,) = _U64.unpack_from(response.header_payload)
        if code == 0:
            return
        error = error_for_code(code)
        if error is not None:
            raise AfcError(code, f"{action}: unexpected afc status: {error.name}")

    def _path_request(self, operation: AfcOperation, path: str, action: str, terminate: bool) -> AfcPacket:
        header_payload = path.encode("utf-8") + (b"\0" if terminate else b"")
        response = self._request(operation, header_payload)
        self._check_status(response, action)
        return response

    def remove(self, path: str) -> None:
        """Remove a file or an empty directory."""
        self._path_request(AfcOperation.REMOVE_PATH, path, "remove", terminate=False)

    def remove_path_and_contents(self, path: str) -> None:
        """Remove a path and everything below it in a single request."""
        self._path_request(AfcOperation.REMOVE_PATH_AND_CONTENTS, path, "remove", terminate=True)

    def remove_all(self, path: str) -> None:
        """Remove a path recursively, one entry at a time."""
        if self.stat(path).is_dir():
            for name in self.list_dir(path):
                self.remove_all(_join(path, name))
        self.remove(path)

    def mkdir(self, path: str) -> None:
        self._path_request(AfcOperation.MAKE_DIR, path, "mkdir", terminate=True)

    def stat(self, path: str) -> StatInfo:
        response = self._path_request(AfcOperation.FILE_INFO, path, "stat", terminate=False)
        values = _pairs(_split_fields(response.payload))
        return StatInfo(
            size=_parse_int(values.get("st_size", "")),
            blocks=_parse_int(values.get("st_blocks", "")),
            ctime=_parse_int(values.get("st_birthtime", "")),
            mtime=_parse_int(values.get("st_mtime", "")),
            nlink=values.get("st_nlink", ""),
            ifmt=values.get("st_ifmt", ""),
            link_target=values.get("st_linktarget", ""),
        )

    def list_dir(self, path: str) -> list[str]:
        """Directory entries without '.', '..' and empty names."""
        response = self._path_request(AfcOperation.READ_DIR, path, "list dir", terminate=False)
        return [name for name in _split_fields(response.payload) if name not in (".", "..", "")]

    def space_info(self) -> DeviceInfo:
        response = self._request(AfcOperation.DEVICE_INFO)
        self._check_status(response, "device info")
        values = _pairs(_split_fields(response.payload)[:-1])
        return DeviceInfo(
            model=values.get("Model", ""),
            total_bytes=_parse_uint("FSTotalBytes", values.get("FSTotalBytes", "")),
            free_bytes=_parse_uint("FSFreeBytes", values.get("FSFreeBytes", "")),
            block_size=_parse_uint("FSBlockSize", values.get("FSBlockSize", "")),
        )

    def list_files(self, cwd: str, pattern: str) -> list[str]:
        """Entries of ``cwd`` whose names match a shell pattern, '.' and '..' included."""
        response = self._request(AfcOperation.READ_DIR, cwd.encode("utf-8"))
        return [
            name
            for name in _split_fields(response.payload)
            if name and fnmatch.fnmatchcase(name, pattern)
        ]

    def tree_lines(self, path: str, prefix: str = "", last: bool = True) -> list[str]:
        """Render the tree below ``path`` as text lines."""
        info = self.stat(path)
        head = prefix + ("`--" if last else "|--")
        if not info.is_dir():
            return [f"{head} {_base(path)}"]
        lines = [f"{head} {_base(path)}/"]
        children = self.list_dir(path)
        child_prefix = prefix + ("    " if last else "|   ")
        for index, name in enumerate(children):
            lines.extend(self.tree_lines(_join(path, name), child_prefix, index == len(children) - 1))
        return lines

    def open_file(self, path: str, mode: int) -> int:
        """Open a file on the device and return its descriptor."""
        header_payload = _U64.pack(mode) + path.encode("utf-8") + b"\0"
        response = self._request(AfcOperation.FILE_OPEN, header_payload)
        self._check_status(response, "open file")
        if len(response.header_payload) < _U64.size:
            raise ValueError("open file: response carries no file descriptor")
        (fd,) = _U64.unpack_from(response.header_payload)
        if fd == 0:
            raise ValueError("file descriptor should not be zero")
        return fd

    def close_file(self, fd: int) -> None:
        response = self._request(AfcOperation.FILE_CLOSE, _U64.pack(fd))
        self._check_status(response, "close file")

    @contextlib.contextmanager
    def _opened(self, path: str, mode: int) -> Iterator[int]:
        fd = self.open_file(path, mode)
        try:
            yield fd
        finally:
            with contextlib.suppress(AfcError, OSError, EOFError, ValueError):
                self.close_file(fd)

    def pull_single_file(self, src_path: str, dst_path: str) -> None:
        """Copy one device file to a local path, following a symbolic link."""
        info = self.stat(src_path)
        if info.is_link():
            src_path = info.link_target
        with self._opened(src_path, AfcMode.RDONLY) as fd, open(dst_path, "wb") as target:
            remaining = info.size
            while remaining > 0:
                response = self._request(AfcOperation.FILE_READ, _U64.pack(fd) + _U64.pack(_CHUNK_SIZE))
                self._check_status(response, "read file")
                if not response.payload:
                    break
                remaining -= len(response.payload)
                target.write(response.payload)

    def pull(self, src_path: str, dst_path: str) -> None:
        """Copy a device file or directory tree to a local path."""
        if not self.stat(src_path).is_dir():
            self.pull_single_file(src_path, dst_path)
            return
        os.makedirs(dst_path, exist_ok=True)
        for name in self.list_dir(src_path):
            self.pull(_join(src_path, name), os.path.join(dst_path, name))

    def _stat_or_none(self, path: str) -> StatInfo | None:
        try:
            return self.stat(path)
        except AfcError:
            return None

    def push(self, src_path: str, dst_path: str) -> None:
        """Copy a local file to the device; a directory target receives the file by name."""
        if not os.path.exists(src_path):
            raise FileNotFoundError(f"{src_path}: no such file.")
        with open(src_path, "rb") as source:
            info = self._stat_or_none(dst_path)
            if info is not None and info.is_dir():
                dst_path = _join(dst_path, os.path.basename(src_path))
            self.write_to_file(source, dst_path)

    def write_to_file(self, reader: BinaryIO, dst_path: str) -> None:
        """Write everything read from ``reader`` to a device file, replacing it."""
        info = self._stat_or_none(dst_path)
        if info is not None and info.is_dir():
            raise IsADirectoryError(f"{dst_path} is a directory, cannot write to it as file")
        with self._opened(dst_path, AfcMode.WR) as fd:
            while chunk := reader.read(_CHUNK_SIZE):
                response = self._request(AfcOperation.FILE_WRITE, _U64.pack(fd), bytes(chunk))
                self._check_status(response, "write file")

    def close(self) -> None:
        self._stream.close()