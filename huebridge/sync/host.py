"""
Host integration boundary.

The sync engine publishes light entities and their attributes through a
HostIntegration. Implementations adapt these calls to whatever runtime
hosts the bridge (the CLI uses a console host that prints updates).
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Iterable, List

from ..registry.devices import LightFeature


class LightState(str, Enum):
    ON = "on"
    OFF = "off"
    UNKNOWN = "unknown"
    UNAVAILABLE = "unavailable"


class LightAttribute(str, Enum):
    STATE = "state"
    BRIGHTNESS = "brightness"
    HUE = "hue"
    SATURATION = "saturation"
    COLOR_TEMPERATURE = "color_temperature"


class LightCommand(str, Enum):
    ON = "on"
    OFF = "off"
    TOGGLE = "toggle"


class StatusCode(str, Enum):
    OK = "ok"
    BAD_REQUEST = "bad_request"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"


class DeviceState(str, Enum):
    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"
    ERROR = "error"


Attributes = Dict[LightAttribute, Any]


class HostIntegration(ABC):
    """What the sync engine needs from its host."""

    @abstractmethod
    def add_available_light(self, light_id: str, name: str, features: List[LightFeature]) -> None:
        """Offer a light entity to the host."""
        pass

    @abstractmethod
    def clear_available_lights(self) -> None:
        pass

    @abstractmethod
    def update_light_attributes(self, light_id: str, attributes: Attributes) -> None:
        """Publish changed attributes of one light."""
        pass

    @abstractmethod
    def set_device_state(self, state: DeviceState) -> None:
        pass

    @abstractmethod
    def configured_light_ids(self) -> Iterable[str]:
        """Lights the host has configured (subscribed to)."""
        pass
