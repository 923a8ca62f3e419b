"""
Pairing / setup state machine.

    Init -> Discover -> DeviceChoice -> AwaitingButtonPress -> Completed
                |                                  |
                +-- (no hubs: retry / abort)       +-- link button not pressed: ask again

An already paired hub can be reconfigured through ConfigurationMode
(info / remove / reset / discover). AbortSetup is accepted in every state
and always returns the flow to Init.

The flow is driven by a single coroutine, handle(message), which returns
the next action to present to the operator.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union

from ..config import default_app_name
from ..discovery.mdns import HubCandidate, HubDiscovery, default_api_factory
from ..hub.api import HueApi
from ..hub.errors import (
    HueError,
    LinkButtonNotPressed,
    NotFound,
    ServiceUnavailable,
    Timeout,
    Unauthorized,
)
from ..hub.identity import hub_url
from ..registry.devices import DeviceRegistry, HubInfo, LightConfig, get_light_features
from .messages import (
    AbortSetup,
    InputField,
    RequestUserConfirmation,
    RequestUserInput,
    SetupAction,
    SetupComplete,
    SetupError,
    SetupErrorCode,
    SetupMessage,
    SetupRequest,
    UserConfirmationResponse,
    UserDataResponse,
)

logger = logging.getLogger(__name__)

# The hub limits the application name to 40 characters
MAX_APP_NAME_LENGTH = 40


# ============================================================================
# States
# ============================================================================

@dataclass(frozen=True)
class Init:
    pass


@dataclass(frozen=True)
class Discover:
    manual_address: Optional[str] = None


@dataclass(frozen=True)
class DeviceChoice:
    hubs: Tuple[HubCandidate, ...]


@dataclass(frozen=True)
class AwaitingButtonPress:
    hubs: Tuple[HubCandidate, ...]
    selected: HubCandidate


@dataclass(frozen=True)
class ConfigurationMode:
    hub: HubInfo


@dataclass(frozen=True)
class Completed:
    pass


@dataclass(frozen=True)
class Aborted:
    reason: Optional[str] = None


@dataclass(frozen=True)
class Error:
    error: str


SetupState = Union[
    Init, Discover, DeviceChoice, AwaitingButtonPress,
    ConfigurationMode, Completed, Aborted, Error,
]


def error_code_for(error: HueError) -> SetupErrorCode:
    """Map a hub error onto a setup error code."""
    if isinstance(error, Timeout):
        return SetupErrorCode.TIMEOUT
    if isinstance(error, ServiceUnavailable):
        return SetupErrorCode.CONNECTION_REFUSED
    if isinstance(error, Unauthorized):
        return SetupErrorCode.AUTHORIZATION_ERROR
    if isinstance(error, NotFound):
        return SetupErrorCode.NOT_FOUND
    return SetupErrorCode.OTHER


CONFIGURATION_ACTIONS = [
    {"id": "info", "label": "Show hub and light information"},
    {"id": "discover", "label": "Pair a hub again"},
    {"id": "remove", "label": "Remove the hub and its lights"},
    {"id": "reset", "label": "Reset the configuration"},
]


class SetupFlow:
    """
    Drives pairing with a hub.

    Usage:
        flow = SetupFlow(registry)
        action = await flow.handle(SetupRequest())
        action = await flow.handle(UserDataResponse({"hub_id": "ecb5fa123456"}))
        action = await flow.handle(UserConfirmationResponse(confirm=True))
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        discovery: Optional[HubDiscovery] = None,
        api_factory: Optional[Callable[[str], HueApi]] = None,
        app_name: Optional[str] = None,
    ):
        self.registry = registry
        self.discovery = discovery or HubDiscovery()
        self._api_factory = api_factory or default_api_factory
        self.app_name = (app_name or default_app_name())[:MAX_APP_NAME_LENGTH]

        self.state: SetupState = Init()
        self._discovery_task: Optional[asyncio.Task] = None
        self._generation = 0

    async def handle(self, message: SetupMessage) -> SetupAction:
        """Process one message and return the next action."""
        logger.debug(f"Setup message {type(message).__name__} in state {type(self.state).__name__}")

        if isinstance(message, AbortSetup):
            return self._abort(message)
        if isinstance(message, SetupRequest):
            return await self._on_setup_request(message)
        if isinstance(message, UserDataResponse):
            return await self._on_user_data(message)
        if isinstance(message, UserConfirmationResponse):
            return await self._on_confirmation(message)

        return SetupError(f"Unsupported setup message: {type(message).__name__}")

    # ------------------------------------------------------------------
    # Message handlers
    # ------------------------------------------------------------------

    async def _on_setup_request(self, msg: SetupRequest) -> SetupAction:
        if msg.reconfigure and self.registry.is_paired:
            self.state = ConfigurationMode(hub=self.registry.hub)
            return self._configuration_menu()

        self.state = Discover(manual_address=msg.manual_address)
        return await self._discover()

    async def _on_user_data(self, msg: UserDataResponse) -> SetupAction:
        state = self.state

        if isinstance(state, Discover):
            choice = msg.values.get("choice")
            if choice == "retry":
                return await self._discover()
            if choice == "abort":
                self._cancel_discovery()
                self.state = Aborted("no hub found")
                return SetupError("Setup aborted", SetupErrorCode.USER_ABORTED)
            return SetupError("Invalid choice")

        if isinstance(state, (DeviceChoice, AwaitingButtonPress)):
            return self._select_hub(state.hubs, msg)

        if isinstance(state, ConfigurationMode):
            return await self._configuration_action(msg)

        return SetupError("Unexpected user input")

    async def _on_confirmation(self, msg: UserConfirmationResponse) -> SetupAction:
        state = self.state
        if not msg.confirm or not isinstance(state, AwaitingButtonPress):
            return SetupError("User did not confirm")
        return await self._pair(state.selected)

    def _abort(self, msg: AbortSetup) -> SetupAction:
        logger.info(f"Setup aborted in state {type(self.state).__name__}")
        self._cancel_discovery()
        self.state = Init()
        return SetupError(msg.error or "Setup aborted", SetupErrorCode.USER_ABORTED)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _cancel_discovery(self) -> None:
        self._generation += 1
        if self._discovery_task and not self._discovery_task.done():
            self._discovery_task.cancel()
        self._discovery_task = None

    async def _discover(self) -> SetupAction:
        state = self.state
        manual_address = state.manual_address if isinstance(state, Discover) else None

        generation = self._generation
        task = asyncio.create_task(self.discovery.discover(manual_address))
        self._discovery_task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._discovery_task is task:
                self._discovery_task = None

        if task.cancelled() or generation != self._generation:
            logger.debug("Discarding discovery results after abort")
            return SetupError("Setup aborted", SetupErrorCode.USER_ABORTED)

        if task.exception() is not None:
            error = task.exception()
            logger.error(f"Hub discovery failed: {error}")
            hubs: List[HubCandidate] = []
        else:
            hubs = task.result()

        if not hubs:
            logger.warning("Hub discovery: no hub found")
            self.state = Discover(manual_address=manual_address)
            return RequestUserInput("No hub found", [
                InputField(
                    id="choice",
                    label="No hub was found on the network. Make sure it is powered and connected.",
                    items=[
                        {"id": "retry", "label": "Search again"},
                        {"id": "abort", "label": "Abort setup"},
                    ],
                    value="retry",
                ),
            ])

        logger.info(f"Hub discovery: found {', '.join(h.name or h.address for h in hubs)}")
        self.state = DeviceChoice(hubs=tuple(hubs))
        return RequestUserInput("Select a hub", [
            InputField(
                id="hub_id",
                label="Discovered hubs",
                items=[
                    {"id": hub.key, "label": hub.name or hub.address, "description": f"IP: {hub.address}"}
                    for hub in hubs
                ],
                value=hubs[0].key,
            ),
        ])

    def _select_hub(self, hubs: Tuple[HubCandidate, ...], msg: UserDataResponse) -> SetupAction:
        hub_id = msg.values.get("hub_id")
        if not hub_id:
            return SetupError("No hub selected", SetupErrorCode.NOT_FOUND)

        selected = next((hub for hub in hubs if hub.key == hub_id), None)
        if selected is None:
            return SetupError("Hub not found", SetupErrorCode.NOT_FOUND)

        self.state = AwaitingButtonPress(hubs=hubs, selected=selected)
        return self._button_press_request()

    def _button_press_request(self, retry: bool = False) -> RequestUserConfirmation:
        message = "Please press the link button on the hub and continue."
        if retry:
            message = "The link button was not pressed. " + message
        return RequestUserConfirmation(
            title="Hub pairing",
            header="User action needed",
            message=message,
        )

    # ------------------------------------------------------------------
    # Pairing
    # ------------------------------------------------------------------

    async def _pair(self, hub: HubCandidate) -> SetupAction:
        api = self._api_factory(hub_url(hub.address))
        try:
            try:
                credentials = await api.create_credentials(self.app_name)
            except LinkButtonNotPressed:
                logger.info(f"Link button on {hub.address} not pressed yet")
                return self._button_press_request(retry=True)
            except HueError as e:
                logger.error(f"Pairing with {hub.address} failed: {e}")
                self.state = Error(str(e))
                return SetupError(f"Pairing failed: {e.message}", error_code_for(e))

            api.set_auth_key(credentials.username)
            self.registry.update_hub(
                name=hub.name,
                ip=hub.address,
                username=credentials.username,
                bridge_id=hub.key,
                clientkey=credentials.clientkey,
            )
            logger.info(f"Paired with hub {hub.name or hub.address}")

            try:
                lights = await api.lights.get_lights()
            except HueError as e:
                logger.error(f"Failed to get lights: {e}")
                self.state = Error(str(e))
                return SetupError(f"Failed to get lights: {e.message}", error_code_for(e))

            for light in lights:
                name = light.metadata.name if light.metadata else light.id
                config = LightConfig(name=name, features=get_light_features(light))
                if self.registry.get_light(light.id):
                    self.registry.update_light(light.id, config)
                else:
                    self.registry.add_light(light.id, config)

            logger.info(f"Setup complete: {len(lights)} lights")
            self.state = Completed()
            return SetupComplete()
        finally:
            await api.close()

    # ------------------------------------------------------------------
    # Configuration mode
    # ------------------------------------------------------------------

    def _configuration_menu(self, extra: Optional[List[InputField]] = None) -> RequestUserInput:
        fields = list(extra or [])
        fields.append(InputField(
            id="action",
            label="Action",
            items=CONFIGURATION_ACTIONS,
            value="info",
        ))
        return RequestUserInput("Hub configuration", fields)

    async def _configuration_action(self, msg: UserDataResponse) -> SetupAction:
        action = msg.values.get("action")

        if action == "info":
            return await self._hub_info()

        if action == "remove":
            self.registry.remove_hub()
            self.state = Completed()
            return SetupComplete()

        if action == "reset":
            self.registry.clear()
            self.state = Completed()
            return SetupComplete()

        if action == "discover":
            self.state = Discover()
            return await self._discover()

        return SetupError(f"Unknown action: {action}")

    async def _hub_info(self) -> SetupAction:
        """Live, read-only probe of the paired hub."""
        hub = self.registry.hub
        if hub is None:
            return SetupError("No hub configured", SetupErrorCode.NOT_FOUND)

        api = self._api_factory(hub_url(hub.ip))
        api.set_auth_key(hub.username)
        try:
            config = await api.get_hub_config()
            lights = await api.lights.get_lights()
        except HueError as e:
            logger.error(f"Hub info probe failed: {e}")
            return SetupError(f"Hub not reachable: {e.message}", error_code_for(e))
        finally:
            await api.close()

        summary = InputField(
            id="hub",
            kind="label",
            label=(
                f"{config.name or hub.name} ({hub.bridge_id}) at {hub.ip}, "
                f"API {config.apiversion or 'unknown'}, {len(lights)} lights"
            ),
        )
        light_list = InputField(
            id="lights",
            kind="label",
            label="Lights",
            items=[
                {"id": light.id, "label": light.metadata.name if light.metadata else light.id}
                for light in lights
            ],
        )
        return self._configuration_menu([summary, light_list])
