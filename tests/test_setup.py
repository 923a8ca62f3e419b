"""
Tests for the setup state machine.
"""

import asyncio
import warnings
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from huebridge.discovery.mdns import HubCandidate
from huebridge.hub.errors import LinkButtonNotPressed, ServiceUnavailable, Unauthorized
from huebridge.hub.models import Credentials, HubConfig, LightResource
from huebridge.registry.devices import DeviceRegistry, LightFeature
from huebridge.setup import flow as flow_module
from huebridge.setup import (
    Aborted,
    AbortSetup,
    AwaitingButtonPress,
    Completed,
    ConfigurationMode,
    DeviceChoice,
    Discover,
    Error,
    Init,
    RequestUserConfirmation,
    RequestUserInput,
    SetupComplete,
    SetupError,
    SetupErrorCode,
    SetupFlow,
    SetupRequest,
    UserConfirmationResponse,
    UserDataResponse,
)

HUB = HubCandidate(address="10.0.0.5", name="Bridge", hub_id="ecb5fa123456")

LIGHTS = [
    {
        "id": "l1",
        "metadata": {"name": "Desk"},
        "on": {"on": True},
        "dimming": {"brightness": 80},
        "color_temperature": {"mirek": 300, "mirek_valid": True, "mirek_schema": {}},
        "color": {"xy": {"x": 0.4, "y": 0.35}},
    },
    {"id": "l2", "metadata": {"name": "Plug"}, "on": {"on": False}},
]


class FakeLights:
    def __init__(self, api: "FakeApi"):
        self._api = api

    async def get_lights(self) -> List[LightResource]:
        if self._api.lights_error:
            raise self._api.lights_error
        return [LightResource.model_validate(light) for light in LIGHTS]


class FakeApi:
    """Stands in for HueApi in the setup flow."""

    def __init__(self, base_url: str, hub: "FakeHubState"):
        self.base_url = base_url
        self.hub = hub
        self.auth_key: Optional[str] = None
        self.closed = False
        self.lights = FakeLights(self)
        self.lights_error = hub.lights_error

    def set_auth_key(self, auth_key: Optional[str]) -> None:
        self.auth_key = auth_key

    async def create_credentials(self, app_name: str) -> Credentials:
        self.hub.pair_attempts.append(app_name)
        if self.hub.credential_errors:
            raise self.hub.credential_errors.pop(0)
        return Credentials(username="abc", clientkey="xyz")

    async def get_hub_config(self) -> HubConfig:
        return HubConfig(name="Bridge", bridgeid="ECB5FAFFFE123456", apiversion="1.62.0")

    async def close(self) -> None:
        self.closed = True


class FakeHubState:
    def __init__(self):
        self.pair_attempts: List[str] = []
        self.credential_errors: List[Exception] = []
        self.lights_error: Optional[Exception] = None
        self.apis: List[FakeApi] = []

    def factory(self, base_url: str) -> FakeApi:
        api = FakeApi(base_url, self)
        self.apis.append(api)
        return api


class FakeDiscovery:
    def __init__(self, results: Optional[List[List[HubCandidate]]] = None, block: bool = False):
        self.results = results if results is not None else [[HUB]]
        self.block = block
        self.calls: List[Optional[str]] = []
        self.cancelled = False

    async def discover(self, manual_address: Optional[str] = None) -> List[HubCandidate]:
        self.calls.append(manual_address)
        if self.block:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        return self.results.pop(0) if self.results else []


def make_flow(tmp_path, discovery: Optional[FakeDiscovery] = None, hub: Optional[FakeHubState] = None):
    registry = DeviceRegistry(tmp_path)
    hub = hub or FakeHubState()
    flow = SetupFlow(
        registry,
        discovery=discovery or FakeDiscovery(),
        api_factory=hub.factory,
        app_name="huebridge#test",
    )
    return flow, registry, hub


class TestPairing:
    """Tests for the discover -> select -> confirm path."""

    @pytest.mark.asyncio
    async def test_full_pairing(self, tmp_path):
        flow, registry, hub = make_flow(tmp_path)

        action = await flow.handle(SetupRequest())
        assert isinstance(action, RequestUserInput)
        assert isinstance(flow.state, DeviceChoice)
        field = action.fields[0]
        assert field.id == "hub_id"
        assert field.items == [{"id": "ecb5fa123456", "label": "Bridge", "description": "IP: 10.0.0.5"}]

        action = await flow.handle(UserDataResponse({"hub_id": "ecb5fa123456"}))
        assert isinstance(action, RequestUserConfirmation)
        assert isinstance(flow.state, AwaitingButtonPress)
        assert flow.state.selected == HUB

        action = await flow.handle(UserConfirmationResponse(confirm=True))
        assert isinstance(action, SetupComplete)
        assert isinstance(flow.state, Completed)

        assert registry.hub.ip == "10.0.0.5"
        assert registry.hub.name == "Bridge"
        assert registry.hub.username == "abc"
        assert registry.hub.clientkey == "xyz"
        assert registry.hub.bridge_id == "ecb5fa123456"
        assert registry.get_light("l1").name == "Desk"
        assert LightFeature.COLOR in registry.get_light("l1").features
        assert registry.get_light("l2").features == [LightFeature.ON_OFF, LightFeature.TOGGLE]

        assert hub.pair_attempts == ["huebridge#test"]
        assert hub.apis[0].base_url == "https://10.0.0.5"
        assert all(api.closed for api in hub.apis)

    @pytest.mark.asyncio
    async def test_link_button_not_pressed_asks_again(self, tmp_path):
        hub = FakeHubState()
        hub.credential_errors = [LinkButtonNotPressed()]
        flow, registry, _ = make_flow(tmp_path, hub=hub)

        await flow.handle(SetupRequest())
        await flow.handle(UserDataResponse({"hub_id": "ecb5fa123456"}))

        action = await flow.handle(UserConfirmationResponse(confirm=True))
        assert isinstance(action, RequestUserConfirmation)
        assert "not pressed" in action.message
        assert isinstance(flow.state, AwaitingButtonPress)
        assert not registry.is_paired

        action = await flow.handle(UserConfirmationResponse(confirm=True))
        assert isinstance(action, SetupComplete)
        assert registry.is_paired

    @pytest.mark.asyncio
    async def test_credential_failure(self, tmp_path):
        hub = FakeHubState()
        hub.credential_errors = [ServiceUnavailable("Hub unreachable")]
        flow, registry, _ = make_flow(tmp_path, hub=hub)

        await flow.handle(SetupRequest())
        await flow.handle(UserDataResponse({"hub_id": "ecb5fa123456"}))
        action = await flow.handle(UserConfirmationResponse(confirm=True))

        assert isinstance(action, SetupError)
        assert action.code == SetupErrorCode.CONNECTION_REFUSED
        assert isinstance(flow.state, Error)
        assert not registry.is_paired

    @pytest.mark.asyncio
    async def test_light_enumeration_failure_keeps_credentials(self, tmp_path):
        hub = FakeHubState()
        hub.lights_error = Unauthorized("unauthorized user", status=403)
        flow, registry, _ = make_flow(tmp_path, hub=hub)

        await flow.handle(SetupRequest())
        await flow.handle(UserDataResponse({"hub_id": "ecb5fa123456"}))
        action = await flow.handle(UserConfirmationResponse(confirm=True))

        assert isinstance(action, SetupError)
        assert action.code == SetupErrorCode.AUTHORIZATION_ERROR
        assert registry.hub.username == "abc"
        assert registry.lights == {}

    @pytest.mark.asyncio
    async def test_manual_address(self, tmp_path):
        discovery = FakeDiscovery()
        flow, _, _ = make_flow(tmp_path, discovery=discovery)

        await flow.handle(SetupRequest(manual_address="10.0.0.5"))
        assert discovery.calls == ["10.0.0.5"]


class TestSelectionErrors:
    """Tests for bad selections and confirmations."""

    @pytest.mark.asyncio
    async def test_no_hub_selected(self, tmp_path):
        flow, _, _ = make_flow(tmp_path)
        await flow.handle(SetupRequest())

        action = await flow.handle(UserDataResponse({}))
        assert isinstance(action, SetupError)
        assert action.error == "No hub selected"
        assert isinstance(flow.state, DeviceChoice)

    @pytest.mark.asyncio
    async def test_unknown_hub(self, tmp_path):
        flow, _, _ = make_flow(tmp_path)
        await flow.handle(SetupRequest())

        action = await flow.handle(UserDataResponse({"hub_id": "001788abcdef"}))
        assert isinstance(action, SetupError)
        assert action.error == "Hub not found"
        assert isinstance(flow.state, DeviceChoice)

    @pytest.mark.asyncio
    async def test_confirm_before_selection(self, tmp_path):
        flow, registry, hub = make_flow(tmp_path)
        await flow.handle(SetupRequest())

        action = await flow.handle(UserConfirmationResponse(confirm=True))
        assert isinstance(action, SetupError)
        assert action.error == "User did not confirm"
        assert not registry.is_paired
        assert hub.pair_attempts == []

    @pytest.mark.asyncio
    async def test_declined_confirmation(self, tmp_path):
        flow, registry, hub = make_flow(tmp_path)
        await flow.handle(SetupRequest())
        await flow.handle(UserDataResponse({"hub_id": "ecb5fa123456"}))

        action = await flow.handle(UserConfirmationResponse(confirm=False))
        assert isinstance(action, SetupError)
        assert action.error == "User did not confirm"
        assert not registry.is_paired

    @pytest.mark.asyncio
    async def test_unexpected_message(self, tmp_path):
        flow, _, _ = make_flow(tmp_path)

        action = await flow.handle(UserDataResponse({"hub_id": "ecb5fa123456"}))
        assert isinstance(action, SetupError)
        assert action.code == SetupErrorCode.OTHER
        assert isinstance(flow.state, Init)


class TestNoHubs:
    """Tests for the retry / abort choice."""

    @pytest.mark.asyncio
    async def test_retry_then_found(self, tmp_path):
        discovery = FakeDiscovery(results=[[], [HUB]])
        flow, _, _ = make_flow(tmp_path, discovery=discovery)

        action = await flow.handle(SetupRequest())
        assert isinstance(action, RequestUserInput)
        assert action.fields[0].id == "choice"
        assert isinstance(flow.state, Discover)

        action = await flow.handle(UserDataResponse({"choice": "retry"}))
        assert isinstance(flow.state, DeviceChoice)
        assert len(discovery.calls) == 2

    @pytest.mark.asyncio
    async def test_abort_choice(self, tmp_path):
        flow, _, _ = make_flow(tmp_path, discovery=FakeDiscovery(results=[[]]))
        await flow.handle(SetupRequest())

        action = await flow.handle(UserDataResponse({"choice": "abort"}))
        assert isinstance(action, SetupError)
        assert action.code == SetupErrorCode.USER_ABORTED
        assert isinstance(flow.state, Aborted)


class TestAbort:
    """Tests for AbortSetup."""

    @pytest.mark.asyncio
    async def test_abort_resets_to_init(self, tmp_path):
        flow, _, _ = make_flow(tmp_path)
        await flow.handle(SetupRequest())
        await flow.handle(UserDataResponse({"hub_id": "ecb5fa123456"}))

        action = await flow.handle(AbortSetup())
        assert isinstance(action, SetupError)
        assert action.code == SetupErrorCode.USER_ABORTED
        assert isinstance(flow.state, Init)

        action = await flow.handle(UserConfirmationResponse(confirm=True))
        assert isinstance(action, SetupError)
        assert action.error == "User did not confirm"

    @pytest.mark.asyncio
    async def test_abort_cancels_discovery(self, tmp_path):
        discovery = FakeDiscovery(block=True)
        flow, _, _ = make_flow(tmp_path, discovery=discovery)

        pending = asyncio.create_task(flow.handle(SetupRequest()))
        await asyncio.sleep(0.01)
        assert isinstance(flow.state, Discover)

        action = await flow.handle(AbortSetup())
        result = await asyncio.wait_for(pending, 1.0)

        assert action.code == SetupErrorCode.USER_ABORTED
        assert isinstance(result, SetupError)
        assert result.code == SetupErrorCode.USER_ABORTED
        assert discovery.cancelled
        assert isinstance(flow.state, Init)


class TestConfigurationMode:
    """Tests for reconfiguring a paired hub."""

    async def paired_flow(self, tmp_path):
        flow, registry, hub = make_flow(tmp_path)
        await flow.handle(SetupRequest())
        await flow.handle(UserDataResponse({"hub_id": "ecb5fa123456"}))
        await flow.handle(UserConfirmationResponse(confirm=True))
        return flow, registry, hub

    @pytest.mark.asyncio
    async def test_reconfigure_offers_actions(self, tmp_path):
        flow, registry, _ = await self.paired_flow(tmp_path)

        action = await flow.handle(SetupRequest(reconfigure=True))
        assert isinstance(action, RequestUserInput)
        assert isinstance(flow.state, ConfigurationMode)
        assert flow.state.hub == registry.hub
        ids = [item["id"] for item in action.fields[-1].items]
        assert sorted(ids) == ["discover", "info", "remove", "reset"]

    @pytest.mark.asyncio
    async def test_reconfigure_without_hub_discovers(self, tmp_path):
        flow, _, _ = make_flow(tmp_path)
        await flow.handle(SetupRequest(reconfigure=True))
        assert isinstance(flow.state, DeviceChoice)

    @pytest.mark.asyncio
    async def test_info(self, tmp_path):
        flow, _, hub = await self.paired_flow(tmp_path)
        await flow.handle(SetupRequest(reconfigure=True))

        action = await flow.handle(UserDataResponse({"action": "info"}))
        assert isinstance(action, RequestUserInput)
        summary = action.fields[0]
        assert summary.kind == "label"
        assert "10.0.0.5" in summary.label
        assert "2 lights" in summary.label
        assert [item["label"] for item in action.fields[1].items] == ["Desk", "Plug"]
        assert hub.apis[-1].auth_key == "abc"
        assert isinstance(flow.state, ConfigurationMode)

    @pytest.mark.asyncio
    async def test_remove(self, tmp_path):
        flow, registry, _ = await self.paired_flow(tmp_path)
        await flow.handle(SetupRequest(reconfigure=True))

        action = await flow.handle(UserDataResponse({"action": "remove"}))
        assert isinstance(action, SetupComplete)
        assert not registry.is_paired
        assert registry.lights == {}

    @pytest.mark.asyncio
    async def test_reset(self, tmp_path):
        flow, registry, _ = await self.paired_flow(tmp_path)
        await flow.handle(SetupRequest(reconfigure=True))

        action = await flow.handle(UserDataResponse({"action": "reset"}))
        assert isinstance(action, SetupComplete)
        assert not registry.is_paired

    @pytest.mark.asyncio
    async def test_discover_again(self, tmp_path):
        flow, _, _ = await self.paired_flow(tmp_path)
        flow.discovery.results = [[HUB]]
        await flow.handle(SetupRequest(reconfigure=True))

        action = await flow.handle(UserDataResponse({"action": "discover"}))
        assert isinstance(action, RequestUserInput)
        assert isinstance(flow.state, DeviceChoice)


class TestFlowModule:
    """Tests for the flow module source."""

    def test_source_compiles_without_warnings(self):
        path = Path(flow_module.__file__)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(path.read_text(encoding="utf-8"), str(path), "exec")
