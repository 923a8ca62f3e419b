"""Device registry module."""
from .devices import (
    DeviceRegistry,
    HubInfo,
    LightConfig,
    LightFeature,
    RegistryEvent,
    RegistryEventType,
    get_light_features,
)

__all__ = [
    "DeviceRegistry",
    "HubInfo",
    "LightConfig",
    "LightFeature",
    "RegistryEvent",
    "RegistryEventType",
    "get_light_features",
]
