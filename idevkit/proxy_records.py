"""Bookkeeping of a debugging proxy: service codecs, started services and JSON logs."""

from __future__ import annotations

import base64
import dataclasses
import enum
import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

log = logging.getLogger(__name__)

CONNECTION_JSON_FILE_NAME = "connections.json"
JSON_DUMP_FILE_NAME = "jsondump.json"


class CodecKind(enum.Enum):
    """How the traffic of a service is decoded while it is dumped."""

    DTX = "dtx"
    BINARY_DUMP = "bindump"


@dataclass(frozen=True)
class ServiceConfig:
    codec: CodecKind
    handshake_only_ssl: bool


_SERVICE_CONFIGURATIONS = {
    "com.apple.instruments.remoteserver": ServiceConfig(CodecKind.DTX, True),
    "com.apple.accessibility.axAuditDaemon.remoteserver": ServiceConfig(CodecKind.DTX, True),
    "com.apple.testmanagerd.lockdown": ServiceConfig(CodecKind.DTX, True),
    "com.apple.debugserver": ServiceConfig(CodecKind.BINARY_DUMP, True),
    "com.apple.instruments.remoteserver.DVTSecureSocketProxy": ServiceConfig(CodecKind.DTX, False),
    "com.apple.testmanagerd.lockdown.secure": ServiceConfig(CodecKind.DTX, False),
    "bindumper": ServiceConfig(CodecKind.BINARY_DUMP, False),
}


def service_config_for(service_name: str) -> ServiceConfig:
    """The codec and SSL behaviour of a service; unknown services are dumped raw."""
    return _SERVICE_CONFIGURATIONS.get(service_name, _SERVICE_CONFIGURATIONS["bindumper"])


@dataclass(frozen=True)
class PhoneServiceInformation:
    """A service started on the device through lockdown."""

    service_port: int
    service_name: str
    use_ssl: bool


@dataclass(frozen=True)
class ConnectionInfo:
    connection_path: str
    created_at: datetime
    id: str


class ServiceRegistry:
    """Thread-safe list of services started on the device."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._services: list[PhoneServiceInformation] = []

    def store(self, info: PhoneServiceInformation) -> None:
        with self._lock:
            self._services.append(info)

    def find_by_port(self, port: int) -> PhoneServiceInformation:
        """The first service stored for ``port``."""
        with self._lock:
            for info in self._services:
                if info.service_port == port:
                    return info
        raise LookupError(f"No Service found for port {port}")


def _format_timestamp(moment: datetime) -> str:
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y.%m.%d-%H.%M.%S") + f".{utc.microsecond // 1000:03d}"


def connection_directory(working_dir: str, connection_id: str, now: datetime) -> str:
    """The directory holding the dumps of one proxied connection."""
    name = f"connection-{connection_id}-{_format_timestamp(now)}"
    return os.path.normpath(os.path.join(".", working_dir, name))


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"cannot encode {type(value).__name__} as JSON")


def write_json(path: str, obj: Any) -> None:
    """Append ``obj`` as one line of JSON; an unencodable object leaves an empty line."""
    try:
        text = json.dumps(obj, default=_json_default, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        log.warning("Error encoding '%r' to json: %s", obj, exc)
        text = ""
    with open(path, "a", encoding="utf-8") as fh:
        fh.write(text + "\n")


def append_connection_info(working_dir: str, info: ConnectionInfo) -> None:
    """Record a new connection in the proxy's connection list."""
    record = {
        "ConnectionPath": info.connection_path,
        "CreatedAt": info.created_at,
        "ID": info.id,
    }
    write_json(os.path.join(working_dir, CONNECTION_JSON_FILE_NAME), record)


def log_json_message(connection_path: str, message: dict, direction: str) -> None:
    """Append a decoded message, tagged with its direction, to the connection's dump."""
    write_json(os.path.join(connection_path, JSON_DUMP_FILE_NAME), {**message, "direction": direction})