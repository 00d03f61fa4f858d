"""Battery state read from the lockdown battery domain."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

BATTERY_DOMAIN = "com.apple.mobile.battery"

_BOOL_KEYS = (
    ("BatteryIsCharging", "battery_is_charging"),
    ("ExternalChargeCapable", "external_charge_capable"),
    ("ExternalConnected", "external_connected"),
    ("FullyCharged", "fully_charged"),
    ("GasGaugeCapability", "gas_gauge_capability"),
    ("HasBattery", "has_battery"),
)


@dataclass(frozen=True)
class BatteryInfo:
    battery_current_capacity: int
    battery_is_charging: bool
    external_charge_capable: bool
    external_connected: bool
    fully_charged: bool
    gas_gauge_capability: bool
    has_battery: bool


def read_battery_info(get_value: Callable[[str, str], Any]) -> BatteryInfo:
    """Query each battery value with ``get_value(key, domain)``."""
    capacity = get_value("BatteryCurrentCapacity", BATTERY_DOMAIN)
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 0:
        raise TypeError(f"BatteryCurrentCapacity is not an unsigned integer: {capacity!r}")
    flags = {}
    for key, field_name in _BOOL_KEYS:
        value = get_value(key, BATTERY_DOMAIN)
        if not isinstance(value, bool):
            raise TypeError(f"{key} is not a boolean: {value!r}")
        flags[field_name] = value
    return BatteryInfo(battery_current_capacity=capacity, **flags)