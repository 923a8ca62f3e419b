"""
Hub session: the REST client and event stream bound to the paired hub.
"""

import logging

from ..hub.api import HueApi
from ..hub.events import HueEventStream
from ..hub.identity import hub_url
from ..registry.devices import HubInfo

logger = logging.getLogger(__name__)


class Session:
    """
    One REST client and one event stream for a hub's address and key.

    The engine replaces the whole session when the paired hub changes.
    """

    def __init__(
        self,
        hub: HubInfo,
        request_timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 0.25,
    ):
        self.hub = hub
        self.base_url = hub_url(hub.ip)
        self.api = HueApi(
            self.base_url,
            auth_key=hub.username,
            timeout=request_timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
        )
        self.events = HueEventStream(connect_timeout=request_timeout)

    def connect_stream(self) -> None:
        self.events.connect(self.base_url, self.hub.username)

    async def disconnect_stream(self) -> None:
        await self.events.disconnect()

    async def close(self) -> None:
        await self.events.disconnect()
        await self.api.close()
        logger.debug(f"Session for {self.hub.ip} closed")
