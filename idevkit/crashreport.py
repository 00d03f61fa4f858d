"""Listing, downloading and deleting crash reports stored on a device."""

from __future__ import annotations

import logging
import os
import posixpath
import stat as stat_module

from .afc_client import AfcClient
from .afc_protocol import AfcError

CRASH_REPORT_MOVER_SERVICE = "com.apple.crashreportmover"
CRASH_REPORT_COPY_MOBILE_SERVICE = "com.apple.crashreportcopymobile"

_PING = b"ping"

log = logging.getLogger(__name__)


def _device_join(directory: str, name: str) -> str:
    return posixpath.normpath(posixpath.join(directory, name))


def _require_pattern(pattern: str) -> None:
    if not pattern:
        raise ValueError("empty pattern not ok, just use *")


def await_mover_ping(stream) -> None:
    """Wait for the mover service to report that reports were moved."""
    log.debug("connected to mover, awaiting ping")
    received = bytearray()
    while len(received) < len(_PING):
        chunk = stream.read(len(_PING) - len(received))
        if not chunk:
            break
        received.extend(chunk)
    if bytes(received) != _PING:
        raise ValueError(f"did not receive ping from crashreport mover: {bytes(received).hex()}")
    log.debug("ping received")


def copy_reports(afc: AfcClient, cwd: str, pattern: str, target_dir: str) -> None:
    """Download reports in ``cwd`` matching ``pattern`` into ``target_dir``.

    Directories are copied whole; the pattern only applies at the top level.
    """
    _require_pattern(pattern)
    log.info("downloading dir=%s pattern=%s to=%s", cwd, pattern, target_dir)
    target_mode = stat_module.S_IMODE(os.stat(target_dir).st_mode)
    files = afc.list_files(cwd, pattern)
    log.debug("files: %s", files)
    for name in files:
        if name in (".", ".."):
            continue
        device_path = _device_join(cwd, name)
        target_path = os.path.join(target_dir, name)
        log.info("downloading from=%s to=%s", device_path, target_path)
        try:
            info = afc.stat(device_path)
        except AfcError:
            log.warning("failed getting info for file: %s, skipping", name)
            continue
        if info.is_dir():
            os.mkdir(target_path, target_mode)
            copy_reports(afc, device_path, "*", target_path)
            continue
        afc.pull_single_file(device_path, target_path)
        log.info("done from=%s to=%s", device_path, target_path)


def remove_reports(afc: AfcClient, cwd: str, pattern: str) -> None:
    """Delete the reports in ``cwd`` matching ``pattern``."""
    _require_pattern(pattern)
    log.info("deleting cwd=%s pattern=%s", cwd, pattern)
    for name in afc.list_files(cwd, pattern):
        if name in (".", ".."):
            continue
        device_path = _device_join(cwd, name)
        log.info("delete path=%s", device_path)
        afc.remove(device_path)
    log.info("done deleting cwd=%s pattern=%s", cwd, pattern)


def list_reports(afc: AfcClient, pattern: str) -> list[str]:
    """Names of the top-level reports matching ``pattern``."""
    return afc.list_files(".", pattern)