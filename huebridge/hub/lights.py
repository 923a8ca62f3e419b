"""
Light resource operations.
"""

from typing import TYPE_CHECKING, List

from ..convert import MIREK_MAX, MIREK_MIN, clamp
from .errors import NotFound
from .models import (
    Color,
    ColorTemperature,
    Dimming,
    LightResource,
    LightStateParams,
    On,
    ResourceResponse,
    XYPoint,
)

if TYPE_CHECKING:
    from .api import HueApi

LIGHT_PATH = "/clip/v2/resource/light"


class Lights:
    """Access to /clip/v2/resource/light."""

    def __init__(self, api: "HueApi"):
        self._api = api

    async def get_lights(self) -> List[LightResource]:
        data = await self._api.request("GET", LIGHT_PATH)
        response = ResourceResponse.model_validate(data or {})
        return [LightResource.model_validate(item) for item in response.data]

    async def get_light(self, light_id: str) -> LightResource:
        data = await self._api.request("GET", f"{LIGHT_PATH}/{light_id}")
        response = ResourceResponse.model_validate(data or {})
        if not response.data:
            raise NotFound(f"Light {light_id} not found")
        return LightResource.model_validate(response.data[0])

    async def set_on(self, light_id: str, on: bool) -> ResourceResponse:
        return await self.update_light_state(light_id, LightStateParams(on=On(on=on)))

    async def set_brightness(self, light_id: str, brightness: float) -> ResourceResponse:
        return await self.update_light_state(
            light_id,
            LightStateParams(dimming=Dimming(brightness=clamp(brightness, 1, 100))),
        )

    async def set_color_temperature(self, light_id: str, mirek: int) -> ResourceResponse:
        return await self.update_light_state(
            light_id,
            LightStateParams(
                color_temperature=ColorTemperature(mirek=int(clamp(mirek, MIREK_MIN, MIREK_MAX)))
            ),
        )

    async def set_color(self, light_id: str, x: float, y: float) -> ResourceResponse:
        xy = XYPoint(x=clamp(x, 0.0, 1.0), y=clamp(y, 0.0, 1.0))
        return await self.update_light_state(light_id, LightStateParams(color=Color(xy=xy)))

    async def update_light_state(self, light_id: str, params: LightStateParams) -> ResourceResponse:
        data = await self._api.request("PUT", f"{LIGHT_PATH}/{light_id}", params.to_body())
        return ResourceResponse.model_validate(data or {})
