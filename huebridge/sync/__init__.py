"""
State synchronization between the hub and a host.
"""

from .engine import SyncEngine, normalize_light, status_for_error
from .host import (
    Attributes,
    DeviceState,
    HostIntegration,
    LightAttribute,
    LightCommand,
    LightState,
    StatusCode,
)
from .session import Session

__all__ = [
    "SyncEngine",
    "Session",
    "normalize_light",
    "status_for_error",
    "HostIntegration",
    "Attributes",
    "DeviceState",
    "LightAttribute",
    "LightCommand",
    "LightState",
    "StatusCode",
]
