"""Moving the usbmuxd socket aside so a proxy can listen in its place."""

from __future__ import annotations

import logging
import os
import uuid

log = logging.getLogger(__name__)

_REAL_SOCKET_SUFFIX = f".{uuid.uuid4()}.real_socket"


def _file_exists(path: str) -> bool:
    return os.path.exists(path) and not os.path.isdir(path)


def real_socket_path(socket_path: str) -> str:
    """Where the original socket is kept while the proxy runs."""
    return socket_path + _REAL_SOCKET_SUFFIX


def move_socket(socket_path: str) -> str:
    """Move the socket aside and return its new location."""
    new_location = real_socket_path(socket_path)
    if _file_exists(new_location):
        raise FileExistsError(
            f"there is already a file named: {new_location} please remove it "
            "or restore original usbmuxd before starting the proxy"
        )
    log.info("Moving socket %s to %s", socket_path, new_location)
    os.rename(socket_path, new_location)
    return new_location


def move_back(socket_path: str) -> None:
    """Replace the proxy's socket with the original one, if it was moved."""
    new_location = real_socket_path(socket_path)
    log.info("checking if '%s' exists", new_location)
    if not _file_exists(new_location):
        log.info("'%s' does not exist, doing nothing", new_location)
        return
    log.info("Deleting fake socket %s", socket_path)
    try:
        os.remove(socket_path)
    except OSError as exc:
        log.warning("Failed deleting %s with error %s", socket_path, exc)
    log.info("Moving back socket %s to %s", new_location, socket_path)
    os.rename(new_location, socket_path)