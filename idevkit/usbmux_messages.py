"""Request payloads sent to usbmuxd and parsing of its replies."""

from __future__ import annotations

import plistlib
from xml.parsers.expat import ExpatError

_BUNDLE_ID = "go.ios.control"
_CLIENT_VERSION = "go-usbmux-0.0.1"
_PROG_NAME = "go-usbmux"
_LIB_USBMUX_VERSION = 3

# Services that only run the TLS handshake and then continue unencrypted.
_HANDSHAKE_ONLY_SERVICES = frozenset(
    {
        "com.apple.instruments.remoteserver",
        "com.apple.accessibility.axAuditDaemon.remoteserver",
        "com.apple.testmanagerd.lockdown",
        "com.apple.debugserver",
    }
)


def _base_message(message_type: str) -> dict:
    return {
        "BundleID": _BUNDLE_ID,
        "ClientVersionString": _CLIENT_VERSION,
        "MessageType": message_type,
        "ProgName": _PROG_NAME,
        "kLibUSBMuxVersion": _LIB_USBMUX_VERSION,
    }


def connect_message(device_id: int, port_number: int) -> dict:
    """A Connect request; ``port_number`` is given in network byte order."""
    if not 0 <= device_id <= 0xFFFFFFFF:
        raise ValueError(f"device id out of range: {device_id}")
    if not 0 <= port_number <= 0xFFFF:
        raise ValueError(f"port number out of range: {port_number}")
    message = _base_message("Connect")
    message["DeviceID"] = device_id
    message["PortNumber"] = port_number
    return message


def read_buid_message() -> dict:
    """A ReadBUID request asking for the host's BUID."""
    return _base_message("ReadBUID")


def parse_read_buid_response(data: bytes) -> str:
    """The BUID in a ReadBUID reply, or "" when the reply holds none."""
    try:
        decoded = plistlib.loads(data)
    except (ValueError, ExpatError):
        return ""
    if isinstance(decoded, dict):
        buid = decoded.get("BUID", "")
        if isinstance(buid, str):
            return buid
    return ""


def is_handshake_only_service(service_name: str) -> bool:
    return service_name in _HANDSHAKE_ONLY_SERVICES