"""
State synchronization engine.

Keeps the host's view of every registered light in step with the hub:

- Full refresh over REST when the host connects (and optionally on a timer)
- Incremental updates from the event stream while the host is subscribed
- Degrades lights to "unknown" when the stream drops and reconnects
  after a fixed delay
- Translates host commands into light state changes
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from ..convert import (
    brightness_to_percent,
    clamp,
    hsv_to_xy,
    mirek_to_percent,
    percent_to_mirek,
    xy_to_hsv,
)
from ..hub.errors import (
    BadRequest,
    HueError,
    NotFound,
    ServiceUnavailable,
    Timeout,
    Unauthorized,
)
from ..hub.events import (
    StreamConnected,
    StreamDisconnected,
    StreamError,
    StreamEvent,
    StreamUpdate,
)
from ..hub.models import (
    Color,
    ColorTemperature,
    Dimming,
    LightResource,
    LightStateParams,
    On,
    XYPoint,
)
from ..registry.devices import (
    DeviceRegistry,
    HubInfo,
    LightConfig,
    LightFeature,
    RegistryEvent,
    RegistryEventType,
)
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

logger = logging.getLogger(__name__)

# Fragment types carrying light state
LIGHT_FRAGMENT_TYPES = ("light", "grouped_light")

DEFAULT_RECONNECT_DELAY = 2.0


def normalize_light(light: Union[LightResource, Dict[str, Any]]) -> Attributes:
    """
    Translate a light resource or event fragment into host attributes.

    Only blocks present in the input produce attributes.
    """
    if not isinstance(light, LightResource):
        light = LightResource.model_validate(light)

    attributes: Attributes = {}

    if light.on is not None:
        attributes[LightAttribute.STATE] = LightState.ON if light.on.on else LightState.OFF

    if light.dimming is not None:
        attributes[LightAttribute.BRIGHTNESS] = int(round(clamp(light.dimming.brightness, 1, 100)))

    ct = light.color_temperature
    if ct is not None and ct.mirek_valid and ct.mirek is not None:
        attributes[LightAttribute.COLOR_TEMPERATURE] = int(round(mirek_to_percent(ct.mirek)))

    if light.color is not None and light.color.xy is not None:
        brightness = light.dimming.brightness if light.dimming is not None else 100.0
        hsv = xy_to_hsv(light.color.xy.x, light.color.xy.y, brightness)
        attributes[LightAttribute.HUE] = hsv.hue
        attributes[LightAttribute.SATURATION] = hsv.saturation

    return attributes


def status_for_error(error: HueError) -> StatusCode:
    if isinstance(error, BadRequest):
        return StatusCode.BAD_REQUEST
    if isinstance(error, Unauthorized):
        return StatusCode.UNAUTHORIZED
    if isinstance(error, NotFound):
        return StatusCode.NOT_FOUND
    if isinstance(error, Timeout):
        return StatusCode.TIMEOUT
    if isinstance(error, ServiceUnavailable):
        return StatusCode.SERVICE_UNAVAILABLE
    return StatusCode.SERVER_ERROR


async def _cancel(task: Optional[asyncio.Task]) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


class SyncEngine:
    """
    Mirrors hub light state onto a host.

    Usage:
        engine = SyncEngine(registry, host)
        await engine.start()
        await engine.on_connect()
        await engine.on_subscribe()
        ...
        await engine.stop()
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        host: HostIntegration,
        session_factory: Optional[Callable[[HubInfo], Session]] = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        refresh_interval: float = 0.0,
    ):
        self.registry = registry
        self.host = host
        self._session_factory = session_factory or Session
        self.reconnect_delay = reconnect_delay
        self.refresh_interval = refresh_interval

        self._session: Optional[Session] = None
        self._last_state: Dict[str, LightState] = {}
        self._subscribed = False
        self._running = False

        self._dispatch_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._rebuild_task: Optional[asyncio.Task] = None
        self._unsubscribe_registry: Optional[Callable[[], None]] = None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def light_state(self, light_id: str) -> Optional[LightState]:
        """Last state published for a light."""
        return self._last_state.get(light_id)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        if self._running:
            return
        self._running = True

        self._unsubscribe_registry = self.registry.subscribe(self._on_registry_event)
        for light_id, light in self.registry.lights.items():
            self.host.add_available_light(light_id, light.name, light.features)

        self._build_session()

        if self.refresh_interval > 0:
            self._refresh_task = asyncio.create_task(self._refresh_loop())

        logger.info(f"Sync engine started with {len(self.registry.lights)} lights")

    async def stop(self) -> None:
        self._running = False
        self._subscribed = False

        if self._unsubscribe_registry:
            self._unsubscribe_registry()
            self._unsubscribe_registry = None

        await _cancel(self._refresh_task)
        await _cancel(self._rebuild_task)
        self._refresh_task = None
        self._rebuild_task = None
        await self._teardown_session()
        logger.info("Sync engine stopped")

    def _build_session(self) -> None:
        hub = self.registry.hub
        if hub is None:
            logger.warning("No hub paired, sync engine idle")
            return
        self._session = self._session_factory(hub)
        self._dispatch_task = asyncio.create_task(self._dispatch(self._session))

    async def _teardown_session(self) -> None:
        self._cancel_reconnect()
        await _cancel(self._dispatch_task)
        self._dispatch_task = None
        if self._session:
            await self._session.close()
            self._session = None

    async def _rebuild(self) -> None:
        logger.info("Paired hub changed, rebuilding session")
        await self._teardown_session()
        self._last_state.clear()
        self._build_session()
        if self._subscribed:
            self._connect_stream()

    def _on_registry_event(self, event: RegistryEvent) -> None:
        if event.type == RegistryEventType.LIGHT_ADDED and event.light is not None:
            self.host.add_available_light(event.light_id, event.light.name, event.light.features)
            return

        if event.type == RegistryEventType.REMOVED:
            self.host.clear_available_lights()
            self._schedule_rebuild()
            return

        if event.type == RegistryEventType.HUB_CHANGED:
            hub = self.registry.hub
            current = self._session.hub if self._session else None
            if hub is not None and (
                current is None
                or (hub.ip, hub.username, hub.bridge_id) != (current.ip, current.username, current.bridge_id)
            ):
                self._schedule_rebuild()

    def _schedule_rebuild(self) -> None:
        if not self._running:
            return
        if self._rebuild_task and not self._rebuild_task.done():
            self._rebuild_task.cancel()
        self._rebuild_task = asyncio.create_task(self._rebuild())

    # ========================================================================
    # Host signals
    # ========================================================================

    async def on_connect(self) -> None:
        """Host connected: refresh every configured light."""
        if self._session is None:
            self.host.set_device_state(DeviceState.ERROR)
            return
        await self.refresh_lights()
        self.host.set_device_state(DeviceState.CONNECTED)

    async def on_disconnect(self) -> None:
        await self._stop_stream()
        self.host.set_device_state(DeviceState.DISCONNECTED)

    async def on_subscribe(self) -> None:
        self._subscribed = True
        self._connect_stream()

    async def on_unsubscribe(self) -> None:
        await self._stop_stream()

    async def on_enter_standby(self) -> None:
        await self._stop_stream()

    async def on_exit_standby(self) -> None:
        self._subscribed = True
        self._connect_stream()

    def _connect_stream(self) -> None:
        if self._session is None:
            logger.warning("Cannot connect event stream: no hub paired")
            return
        self._cancel_reconnect()
        self.host.set_device_state(DeviceState.CONNECTING)
        self._session.connect_stream()

    async def _stop_stream(self) -> None:
        self._subscribed = False
        self._cancel_reconnect()
        if self._session:
            await self._session.disconnect_stream()

    # ========================================================================
    # Refresh
    # ========================================================================

    async def refresh_lights(self) -> None:
        for light_id in list(self.host.configured_light_ids()):
            if self.registry.get_light(light_id) is None:
                logger.debug(f"Skipping unregistered light {light_id}")
                continue
            await self.refresh_light(light_id)

    async def refresh_light(self, light_id: str) -> None:
        """GET one light and publish its full attribute set."""
        if self._session is None:
            return
        try:
            light = await self._session.api.lights.get_light(light_id)
        except HueError as e:
            logger.warning(f"Failed to refresh light {light_id}: {e}")
            self._publish(light_id, {LightAttribute.STATE: LightState.UNAVAILABLE})
            return

        if light.metadata and light.metadata.name:
            self.registry.update_light(light_id, LightConfig(name=light.metadata.name))
        self._publish(light_id, normalize_light(light))

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            if self._session is not None:
                await self.refresh_lights()

    # ========================================================================
    # Event stream
    # ========================================================================

    async def _dispatch(self, session: Session) -> None:
        async for event in session.events.events():
            try:
                self._handle_stream_event(event)
            except Exception as e:
                logger.error(f"Stream event handler error: {e}", exc_info=True)

    def _handle_stream_event(self, event: StreamEvent) -> None:
        if isinstance(event, StreamConnected):
            logger.info("Event stream connected")
            self.host.set_device_state(DeviceState.CONNECTED)

        elif isinstance(event, StreamDisconnected):
            if event.requested:
                return
            logger.warning(f"Event stream disconnected: {event.reason}")
            self._mark_unknown()
            if self._subscribed:
                self.host.set_device_state(DeviceState.CONNECTING)
                self._schedule_reconnect()

        elif isinstance(event, StreamUpdate):
            if event.kind == "update":
                for fragment in event.data:
                    self._apply_fragment(fragment)

        elif isinstance(event, StreamError):
            logger.debug(f"Ignoring undecodable stream message: {event.error}")

    def _apply_fragment(self, fragment: Dict[str, Any]) -> None:
        if fragment.get("type") not in LIGHT_FRAGMENT_TYPES:
            return
        light_id = fragment.get("id")
        if not isinstance(light_id, str) or self.registry.get_light(light_id) is None:
            return
        try:
            attributes = normalize_light(fragment)
        except ValidationError as e:
            logger.debug(f"Invalid light fragment for {light_id}: {e}")
            return
        if attributes:
            self._publish(light_id, attributes)

    def _mark_unknown(self) -> None:
        for light_id in self.registry.lights:
            if self._last_state.get(light_id) != LightState.UNKNOWN:
                self._publish(light_id, {LightAttribute.STATE: LightState.UNKNOWN})

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        self._reconnect_task = asyncio.create_task(self._reconnect_after(self.reconnect_delay))

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._subscribed and self._session is not None:
            logger.info("Reconnecting event stream")
            self._connect_stream()

    def _publish(self, light_id: str, attributes: Attributes) -> None:
        state = attributes.get(LightAttribute.STATE)
        if state is not None:
            self._last_state[light_id] = state
        self.host.update_light_attributes(light_id, attributes)

    # ========================================================================
    # Commands
    # ========================================================================

    async def handle_command(
        self,
        light_id: str,
        command: Union[LightCommand, str],
        params: Optional[Dict[str, Any]] = None,
    ) -> StatusCode:
        """
        Execute a host command against a light.

        Args:
            light_id: Registered light id
            command: on, off or toggle
            params: For "on": brightness (0-255, 0 turns the light off),
                color_temperature (0-100), hue (0-359) with saturation (0-100)

        Returns:
            Status of the operation
        """
        light = self.registry.get_light(light_id)
        if light is None:
            return StatusCode.NOT_FOUND
        if self._session is None:
            return StatusCode.SERVICE_UNAVAILABLE

        try:
            command = LightCommand(command)
        except ValueError:
            logger.warning(f"Unsupported command {command} for light {light_id}")
            return StatusCode.BAD_REQUEST

        lights = self._session.api.lights
        try:
            if command == LightCommand.TOGGLE:
                await lights.set_on(light_id, self._last_state.get(light_id) != LightState.ON)
            elif command == LightCommand.OFF:
                await lights.set_on(light_id, False)
            else:
                await lights.update_light_state(light_id, self._on_params(light, params or {}))
        except HueError as e:
            logger.error(f"Command {command.value} on {light_id} failed: {e}")
            return status_for_error(e)
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid parameters for {light_id}: {e}")
            return StatusCode.BAD_REQUEST

        return StatusCode.OK

    def _on_params(self, light: LightConfig, params: Dict[str, Any]) -> LightStateParams:
        state = LightStateParams(on=On(on=True))

        if params.get("brightness") is not None:
            brightness = float(params["brightness"])
            if brightness <= 0:
                state.on = On(on=False)
            else:
                state.dimming = Dimming(brightness=brightness_to_percent(brightness))

        if params.get("color_temperature") is not None and light.has(LightFeature.COLOR_TEMPERATURE):
            mirek = percent_to_mirek(float(params["color_temperature"]))
            state.color_temperature = ColorTemperature(mirek=mirek)

        if (
            params.get("hue") is not None
            and params.get("saturation") is not None
            and light.has(LightFeature.COLOR)
        ):
            xy = hsv_to_xy(float(params["hue"]), float(params["saturation"]))
            state.color = Color(xy=XYPoint(x=xy.x, y=xy.y))

        return state
