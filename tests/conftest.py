"""
Shared fixtures: an in-process fake hub served over aiohttp.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

APP_KEY = "test-app-key"
CLIENT_KEY = "0123456789ABCDEF0123456789ABCDEF"


class FakeHub:
    """
    Minimal hub: config, pairing, light resources and the event stream.

    Each connection to the event stream plays the next script, a list of
    raw chunks. A None entry holds the connection open until the server
    shuts down; running out of chunks closes it.
    """

    def __init__(self, name: str = "Bridge", bridge_id: str = "ECB5FAFFFE123456"):
        self.name = name
        self.bridge_id = bridge_id
        self.app_key = APP_KEY
        self.v2 = True
        self.link_button_pressed = True
        self.busy = 0
        self.delay = 0.0
        self.lights: Dict[str, Dict[str, Any]] = {}
        self.put_errors: Dict[str, str] = {}
        self.requests: List[Dict[str, Any]] = []
        self.stream_scripts: List[List[Optional[str]]] = []
        self.stream_connections = 0
        self._release: Optional[asyncio.Event] = None

        self.app = web.Application(middlewares=[self._middleware])
        self.app.router.add_get("/api/config", self._config)
        self.app.router.add_post("/api", self._create_user)
        self.app.router.add_get("/clip/v2/resource", self._resource_root)
        self.app.router.add_get("/clip/v2/resource/light", self._get_lights)
        self.app.router.add_get("/clip/v2/resource/light/{light_id}", self._get_light)
        self.app.router.add_put("/clip/v2/resource/light/{light_id}", self._put_light)
        self.app.router.add_get("/eventstream/clip/v2", self._event_stream)

    # ------------------------------------------------------------------
    # Helpers for tests
    # ------------------------------------------------------------------

    def add_light(
        self,
        light_id: str,
        name: str,
        on: bool = True,
        brightness: Optional[float] = 80.0,
        mirek: Optional[int] = 300,
        xy: Optional[tuple] = (0.4, 0.35),
    ) -> Dict[str, Any]:
        light: Dict[str, Any] = {
            "id": light_id,
            "type": "light",
            "metadata": {"name": name, "archetype": "sultan_bulb"},
            "on": {"on": on},
        }
        if brightness is not None:
            light["dimming"] = {"brightness": brightness, "min_dim_level": 0.2}
        if mirek is not None:
            light["color_temperature"] = {
                "mirek": mirek,
                "mirek_valid": True,
                "mirek_schema": {"mirek_minimum": 153, "mirek_maximum": 500},
            }
        if xy is not None:
            light["color"] = {"xy": {"x": xy[0], "y": xy[1]}, "gamut_type": "C"}
        self.lights[light_id] = light
        return light

    @staticmethod
    def sse(messages: Any) -> str:
        return f"id: {int(time.time())}:0\ndata: {json.dumps(messages)}\n\n"

    @classmethod
    def update_event(cls, fragments: List[Dict[str, Any]]) -> str:
        return cls.sse([{
            "id": "9de116fc-5fd2-4b74-8414-0f30cb2cbe04",
            "creationtime": "2024-01-01T00:00:00Z",
            "type": "update",
            "data": fragments,
        }])

    def requests_to(self, method: str, path: str) -> List[Dict[str, Any]]:
        return [r for r in self.requests if r["method"] == method and r["path"] == path]

    @asynccontextmanager
    async def serve(self):
        """Run the hub; yields its base URL."""
        self._release = asyncio.Event()
        server = TestServer(self.app)
        await server.start_server()
        try:
            yield f"http://{server.host}:{server.port}"
        finally:
            self._release.set()
            await server.close()

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    @web.middleware
    async def _middleware(self, request: web.Request, handler):
        body = None
        if request.can_read_body:
            body = await request.json()
        self.requests.append({
            "method": request.method,
            "path": request.path,
            "key": request.headers.get("hue-application-key"),
            "body": body,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.busy > 0:
            self.busy -= 1
            return web.json_response({"errors": [{"description": "busy"}]}, status=429)
        return await handler(request)

    def _authorized(self, request: web.Request) -> bool:
        return request.headers.get("hue-application-key") == self.app_key

    def _forbidden(self) -> web.Response:
        return web.json_response(
            {"errors": [{"description": "unauthorized user"}], "data": []},
            status=403,
        )

    async def _config(self, request: web.Request) -> web.Response:
        return web.json_response({
            "name": self.name,
            "datastoreversion": "163",
            "swversion": "1962097030",
            "apiversion": "1.62.0",
            "mac": "ec:b5:fa:12:34:56",
            "bridgeid": self.bridge_id,
            "modelid": "BSB002",
        })

    async def _create_user(self, request: web.Request) -> web.Response:
        if not self.link_button_pressed:
            return web.json_response([{
                "error": {"type": 101, "address": "", "description": "link button not pressed"},
            }])
        return web.json_response([{"success": {"username": self.app_key, "clientkey": CLIENT_KEY}}])

    async def _resource_root(self, request: web.Request) -> web.Response:
        if not self.v2:
            return web.Response(status=404, text="Not Found")
        if not self._authorized(request):
            return self._forbidden()
        return web.json_response({"errors": [], "data": []})

    async def _get_lights(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._forbidden()
        return web.json_response({"errors": [], "data": list(self.lights.values())})

    async def _get_light(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._forbidden()
        light = self.lights.get(request.match_info["light_id"])
        if light is None:
            return web.json_response({"errors": [{"description": "Not Found"}], "data": []}, status=404)
        return web.json_response({"errors": [], "data": [light]})

    async def _put_light(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return self._forbidden()
        light_id = request.match_info["light_id"]
        if light_id in self.put_errors:
            return web.json_response({"errors": [{"description": self.put_errors[light_id]}], "data": []})
        if light_id not in self.lights:
            return web.json_response({"errors": [{"description": "Not Found"}], "data": []}, status=404)
        return web.json_response({"errors": [], "data": [{"rid": light_id, "rtype": "light"}]})

    async def _event_stream(self, request: web.Request) -> web.StreamResponse:
        if not self._authorized(request):
            return self._forbidden()

        self.stream_connections += 1
        script = self.stream_scripts.pop(0) if self.stream_scripts else [None]

        resp = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await resp.prepare(request)
        for chunk in script:
            if chunk is None:
                await self._release.wait()
                break
            await resp.write(chunk.encode())
        return resp


async def _wait_until(predicate, timeout: float = 3.0, interval: float = 0.01) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)


@pytest.fixture
def fake_hub() -> FakeHub:
    return FakeHub()


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds."""
    return _wait_until
