"""
Device Registry - the paired hub and the lights it exposes.

Persists:
- Hub address, credentials, display name and normalized id
- Each light's name and capability set

Stored in <data_dir>/philips_hue_config.json. At most one hub is kept;
removing or replacing it drops every light with it.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..hub.models import LightResource

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "philips_hue_config.json"


class LightFeature(str, Enum):
    ON_OFF = "on_off"
    TOGGLE = "toggle"
    DIM = "dim"
    COLOR = "color"
    COLOR_TEMPERATURE = "color_temperature"


@dataclass
class HubInfo:
    """The paired hub."""
    name: str
    ip: str
    username: str
    bridge_id: str
    clientkey: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "ip": self.ip,
            "username": self.username,
            "clientkey": self.clientkey,
            "bridge_id": self.bridge_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HubInfo":
        return cls(
            name=data.get("name", ""),
            ip=data["ip"],
            username=data["username"],
            bridge_id=data.get("bridge_id", data.get("bridgeId", "")),
            clientkey=data.get("clientkey"),
        )


@dataclass
class LightConfig:
    """A light known to the registry."""
    name: str
    features: List[LightFeature] = field(default_factory=list)

    def has(self, feature: LightFeature) -> bool:
        return feature in self.features

    def to_dict(self) -> dict:
        return {"name": self.name, "features": [f.value for f in self.features]}

    @classmethod
    def from_dict(cls, data: dict) -> "LightConfig":
        features = []
        for value in data.get("features", []):
            try:
                features.append(LightFeature(value))
            except ValueError:
                logger.warning(f"Ignoring unknown light feature: {value}")
        return cls(name=data.get("name", ""), features=features)


class RegistryEventType(str, Enum):
    LIGHT_ADDED = "light_added"
    LIGHT_UPDATED = "light_updated"
    HUB_CHANGED = "hub_changed"
    REMOVED = "removed"


@dataclass
class RegistryEvent:
    type: RegistryEventType
    light_id: Optional[str] = None
    light: Optional[LightConfig] = None
    bridge_id: Optional[str] = None


RegistryListener = Callable[[RegistryEvent], None]


def get_light_features(light: LightResource) -> List[LightFeature]:
    """Derive a light's capability set from its hub resource."""
    features = [LightFeature.ON_OFF, LightFeature.TOGGLE]
    if light.dimming is not None:
        features.append(LightFeature.DIM)
    if light.color_temperature is not None and light.color_temperature.mirek_schema is not None:
        features.append(LightFeature.COLOR_TEMPERATURE)
    if light.color is not None and light.color.xy is not None:
        features.append(LightFeature.COLOR)
    return features


class DeviceRegistry:
    """
    Persistent registry of the paired hub and its lights.

    Every mutation is written to disk before the method returns.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.registry_file = self.data_dir / REGISTRY_FILENAME

        self._hub: Optional[HubInfo] = None
        self._lights: Dict[str, LightConfig] = {}
        self._listeners: List[RegistryListener] = []
        self._load()

    def _load(self) -> None:
        """Load registry from disk. Missing or broken files start empty."""
        if not self.registry_file.exists():
            self._save()
            return

        try:
            with open(self.registry_file) as f:
                data = json.load(f)
            hub = data.get("hub")
            self._hub = HubInfo.from_dict(hub) if hub else None
            self._lights = {
                light_id: LightConfig.from_dict(light)
                for light_id, light in data.get("lights", {}).items()
            }
            logger.info(f"Loaded {len(self._lights)} lights from registry")
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Failed to load registry from {self.registry_file}: {e}")
            self._hub = None
            self._lights = {}
            self._save()

    def _save(self) -> None:
        """Save registry to disk."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            data = {
                "hub": self._hub.to_dict() if self._hub else None,
                "lights": {light_id: light.to_dict() for light_id, light in self._lights.items()},
            }
            with open(self.registry_file, "w") as f:
                json.dump(data, f, indent=2)
            logger.debug(f"Saved registry with {len(self._lights)} lights")
        except OSError as e:
            logger.error(f"Failed to save registry to {self.registry_file}: {e}")

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: RegistryEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    @property
    def hub(self) -> Optional[HubInfo]:
        return self._hub

    @property
    def is_paired(self) -> bool:
        return self._hub is not None

    def update_hub(
        self,
        name: Optional[str] = None,
        ip: Optional[str] = None,
        username: Optional[str] = None,
        bridge_id: Optional[str] = None,
        clientkey: Optional[str] = None,
    ) -> Optional[HubInfo]:
        """
        Create or update the hub entry.

        A hub is only created when ip, username and bridge id are all
        known. Pairing a different hub drops the previous hub's lights.
        """
        if self._hub is None:
            if ip and username and bridge_id:
                self._hub = HubInfo(
                    name=name or "",
                    ip=ip,
                    username=username,
                    bridge_id=bridge_id,
                    clientkey=clientkey,
                )
        else:
            if bridge_id and bridge_id != self._hub.bridge_id and self._lights:
                logger.info(f"Hub changed to {bridge_id}, dropping {len(self._lights)} lights")
                self._lights = {}
            self._hub = HubInfo(
                name=name if name is not None else self._hub.name,
                ip=ip or self._hub.ip,
                username=username or self._hub.username,
                bridge_id=bridge_id or self._hub.bridge_id,
                clientkey=clientkey if clientkey is not None else self._hub.clientkey,
            )

        self._save()
        if self._hub:
            self._notify(RegistryEvent(RegistryEventType.HUB_CHANGED, bridge_id=self._hub.bridge_id))
        return self._hub

    def add_light(self, light_id: str, light: LightConfig) -> None:
        self._lights[light_id] = light
        self._save()
        self._notify(RegistryEvent(RegistryEventType.LIGHT_ADDED, light_id=light_id, light=light))

    def update_light(self, light_id: str, light: LightConfig) -> LightConfig:
        """
        Refresh a light's name.

        The capability set of a known light is never replaced.
        """
        existing = self._lights.get(light_id)
        if existing is not None:
            light = LightConfig(name=light.name or existing.name, features=existing.features)
        self._lights[light_id] = light
        self._save()
        self._notify(RegistryEvent(RegistryEventType.LIGHT_UPDATED, light_id=light_id, light=light))
        return light

    def get_light(self, light_id: str) -> Optional[LightConfig]:
        return self._lights.get(light_id)

    @property
    def lights(self) -> Dict[str, LightConfig]:
        return dict(self._lights)

    def remove_hub(self) -> None:
        """Forget the hub and all of its lights."""
        bridge_id = self._hub.bridge_id if self._hub else None
        self._hub = None
        self._lights = {}
        self._save()
        if bridge_id:
            self._notify(RegistryEvent(RegistryEventType.REMOVED, bridge_id=bridge_id))

    def clear(self) -> None:
        """Reset the registry unconditionally."""
        self._hub = None
        self._lights = {}
        self._save()
        self._notify(RegistryEvent(RegistryEventType.REMOVED))
