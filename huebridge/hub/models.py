"""
Wire models for hub payloads.

Only the fields the bridge reads are declared; everything else the hub
sends is kept as extra data.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class HubModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class HubConfig(HubModel):
    """Unauthenticated /api/config response."""
    name: str = ""
    bridgeid: Optional[str] = None
    mac: Optional[str] = None
    apiversion: Optional[str] = None
    swversion: Optional[str] = None
    modelid: Optional[str] = None
    datastoreversion: Optional[str] = None


class Credentials(HubModel):
    """Result of application key creation."""
    username: str
    clientkey: Optional[str] = None


class On(HubModel):
    on: bool


class Dimming(HubModel):
    brightness: float
    min_dim_level: Optional[float] = None


class MirekSchema(HubModel):
    mirek_minimum: int = 153
    mirek_maximum: int = 500


class ColorTemperature(HubModel):
    mirek: Optional[int] = None
    mirek_valid: bool = False
    mirek_schema: Optional[MirekSchema] = None


class XYPoint(HubModel):
    x: float
    y: float


class Color(HubModel):
    xy: Optional[XYPoint] = None
    gamut_type: Optional[str] = None


class LightMetadata(HubModel):
    name: str = ""
    archetype: Optional[str] = None


class LightResource(HubModel):
    """
    A light resource, either complete (GET) or a partial event fragment.

    Absent blocks stay None so a fragment never implies a value it did
    not carry.
    """
    id: str
    type: str = "light"
    metadata: Optional[LightMetadata] = None
    on: Optional[On] = None
    dimming: Optional[Dimming] = None
    color_temperature: Optional[ColorTemperature] = None
    color: Optional[Color] = None


class ResourceError(HubModel):
    description: str = ""


class ResourceResponse(HubModel):
    """Envelope of every v2 resource response."""
    errors: List[ResourceError] = Field(default_factory=list)
    data: List[Dict[str, Any]] = Field(default_factory=list)


class LightStateParams(HubModel):
    """Body of a light PUT. Unset blocks are omitted from the request."""
    on: Optional[On] = None
    dimming: Optional[Dimming] = None
    color_temperature: Optional[ColorTemperature] = None
    color: Optional[Color] = None

    def to_body(self) -> Dict[str, Any]:
        # Read-only members (mirek_valid, schemas, gamut) must not be sent
        body: Dict[str, Any] = {}
        if self.on is not None:
            body["on"] = {"on": self.on.on}
        if self.dimming is not None:
            body["dimming"] = {"brightness": self.dimming.brightness}
        if self.color_temperature is not None and self.color_temperature.mirek is not None:
            body["color_temperature"] = {"mirek": self.color_temperature.mirek}
        if self.color is not None and self.color.xy is not None:
            body["color"] = {"xy": {"x": self.color.xy.x, "y": self.color.xy.y}}
        return body

    @property
    def is_empty(self) -> bool:
        return not self.to_body()
