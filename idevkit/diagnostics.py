"""Requests and replies of the diagnostics relay service."""

from __future__ import annotations

import plistlib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any
from xml.parsers.expat import ExpatError

SERVICE_NAME = "com.apple.mobile.diagnostics_relay"


class DiagnosticsError(Exception):
    """The diagnostics service refused or failed a request."""


def reboot_request() -> dict:
    return {
        "Request": "Restart",
        "WaitForDisconnect": True,
        "DisplayPass": True,
        "DisplayFail": True,
    }


def all_values_request() -> dict:
    return {"Request": "All"}


def goodbye_request() -> dict:
    return {"Request": "Goodbye"}


def ioregistry_request(key: str) -> dict:
    return {"Request": "IORegistry", "EntryName": key}


def mobile_gestalt_request(keys: Iterable[str]) -> dict:
    return {"Request": "MobileGestalt", "MobileGestaltKeys": list(keys)}


def _as_mapping(data: Any) -> Mapping:
    if isinstance(data, (bytes, bytearray)):
        try:
            data = plistlib.loads(bytes(data))
        except (ValueError, ExpatError):
            return {}
    return data if isinstance(data, Mapping) else {}


def check_reboot_response(response: Any) -> None:
    """Raise unless the reply to a reboot request reports success."""
    decoded = _as_mapping(response)
    if decoded.get("Status") == "Success":
        return
    raise DiagnosticsError(f"could not reboot, response: {dict(decoded)}")


def _text(data: Mapping, key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


def _uint(data: Mapping, key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


def _section(data: Mapping, key: str) -> Mapping:
    value = data.get(key)
    return value if isinstance(value, Mapping) else {}


@dataclass
class WiFi:
    active: str = ""
    status: str = ""


@dataclass
class NAND:
    status: str = ""


@dataclass
class HDMI:
    connection: str = ""
    status: str = ""


@dataclass
class GasGauge:
    cycle_count: int = 0
    design_capacity: int = 0
    full_charge_capacity: int = 0
    status: str = ""


@dataclass
class Diagnostics:
    gas_gauge: GasGauge = field(default_factory=GasGauge)
    hdmi: HDMI = field(default_factory=HDMI)
    nand: NAND = field(default_factory=NAND)
    wifi: WiFi = field(default_factory=WiFi)


@dataclass
class AllDiagnosticsResponse:
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    status: str = ""

    @classmethod
    def from_plist(cls, data: Any) -> AllDiagnosticsResponse:
        """Build from plist bytes or a decoded mapping; missing or malformed parts stay empty."""
        top = _as_mapping(data)
        diag = _section(top, "Diagnostics")
        gas = _section(diag, "GasGauge")
        hdmi = _section(diag, "HDMI")
        nand = _section(diag, "NAND")
        wifi = _section(diag, "WiFi")
        return cls(
            diagnostics=Diagnostics(
                gas_gauge=GasGauge(
                    cycle_count=_uint(gas, "CycleCount"),
                    design_capacity=_uint(gas, "DesignCapacity"),
                    full_charge_capacity=_uint(gas, "FullChargeCapacity"),
                    status=_text(gas, "Status"),
                ),
                hdmi=HDMI(connection=_text(hdmi, "Connection"), status=_text(hdmi, "Status")),
                nand=NAND(status=_text(nand, "Status")),
                wifi=WiFi(active=_text(wifi, "Active"), status=_text(wifi, "Status")),
            ),
            status=_text(top, "Status"),
        )