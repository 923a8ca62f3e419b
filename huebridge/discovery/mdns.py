"""
mDNS/DNS-SD discovery of hubs on the local network.

Discovery only produces candidates. Every candidate is verified over HTTP
before it is offered to the user: it must report a bridge id and speak
the v2 resource API.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Set

from zeroconf import IPVersion, ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from ..hub.api import HueApi
from ..hub.errors import HueError
from ..hub.identity import hub_url, normalize_hub_id

logger = logging.getLogger(__name__)

# Service type advertised by hubs
SERVICE_TYPE = "_hue._tcp.local."

DEFAULT_DISCOVERY_TIMEOUT = 4.0


@dataclass
class HubCandidate:
    """A hub found on the network."""
    address: str
    name: str
    hub_id: Optional[str] = None
    port: int = 443

    @property
    def key(self) -> str:
        """Id used when offering the hub for selection."""
        return self.hub_id or self.address


BrowseFunc = Callable[[float], Awaitable[List[HubCandidate]]]
ApiFactory = Callable[[str], HueApi]


def default_api_factory(base_url: str) -> HueApi:
    return HueApi(base_url, timeout=5.0)


async def browse_hubs(timeout: float = DEFAULT_DISCOVERY_TIMEOUT) -> List[HubCandidate]:
    """
    Browse for hubs for a fixed window.

    Returns:
        Candidates, one per address
    """
    found: Dict[str, HubCandidate] = {}
    pending: Set[asyncio.Task] = set()
    aiozc = AsyncZeroconf()

    def on_service_state_change(
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if state_change is ServiceStateChange.Added:
            task = asyncio.ensure_future(_resolve(aiozc, service_type, name, found))
            pending.add(task)
            task.add_done_callback(pending.discard)

    browser = AsyncServiceBrowser(
        aiozc.zeroconf,
        [SERVICE_TYPE],
        handlers=[on_service_state_change],
    )
    logger.info(f"Browsing for hubs ({timeout}s)...")

    try:
        await asyncio.sleep(timeout)
    finally:
        await browser.async_cancel()
        for task in list(pending):
            task.cancel()
        await aiozc.async_close()

    logger.info(f"Browse complete: {len(found)} candidate(s)")
    return list(found.values())


async def _resolve(
    aiozc: AsyncZeroconf,
    service_type: str,
    name: str,
    found: Dict[str, HubCandidate],
) -> None:
    info = AsyncServiceInfo(service_type, name)
    if not await info.async_request(aiozc.zeroconf, 3000):
        logger.debug(f"Could not resolve {name}")
        return

    addresses = info.parsed_addresses(IPVersion.V4Only)
    if not addresses:
        logger.warning(f"Hub discovery: no address for {name}")
        return

    raw_id = (info.properties or {}).get(b"bridgeid")
    hub_id = normalize_hub_id(raw_id.decode()) if raw_id else None

    suffix = f".{service_type}"
    display_name = name[: -len(suffix)] if name.endswith(suffix) else name

    found[addresses[0]] = HubCandidate(
        address=addresses[0],
        name=display_name,
        hub_id=hub_id,
        port=info.port or 443,
    )
    logger.debug(f"Found hub candidate {display_name} at {addresses[0]}")


async def verify_candidate(
    candidate: HubCandidate,
    api_factory: ApiFactory = default_api_factory,
) -> Optional[HubCandidate]:
    """
    Confirm that a candidate address hosts a supported hub.

    Returns:
        The candidate with its normalized hub id, or None
    """
    api = api_factory(hub_url(candidate.address))
    try:
        config = await api.get_hub_config()
        if not config.bridgeid:
            logger.debug(f"{candidate.address} did not report a bridge id")
            return None

        if not await api.supports_v2():
            logger.debug(f"{candidate.address} does not support the v2 API")
            return None

        return HubCandidate(
            address=candidate.address,
            name=candidate.name or config.name,
            hub_id=normalize_hub_id(config.bridgeid),
            port=candidate.port,
        )
    except HueError as e:
        logger.debug(f"Dropping candidate {candidate.address}: {e}")
        return None
    finally:
        await api.close()


class HubDiscovery:
    """
    Finds and verifies hubs.

    Usage:
        discovery = HubDiscovery()
        hubs = await discovery.discover()
        hubs = await discovery.discover(manual_address="192.168.1.20")
    """

    def __init__(
        self,
        browse: Optional[BrowseFunc] = None,
        api_factory: Optional[ApiFactory] = None,
        timeout: float = DEFAULT_DISCOVERY_TIMEOUT,
    ):
        self._browse = browse or browse_hubs
        self._api_factory = api_factory or default_api_factory
        self.timeout = timeout

    async def discover(self, manual_address: Optional[str] = None) -> List[HubCandidate]:
        """Browse (or take the manual address) and verify every candidate."""
        if manual_address:
            candidates = [HubCandidate(address=manual_address, name="")]
        else:
            candidates = await self._browse(self.timeout)
        return await self.verify_candidates(candidates)

    async def verify_candidates(self, candidates: List[HubCandidate]) -> List[HubCandidate]:
        results = await asyncio.gather(
            *(verify_candidate(c, self._api_factory) for c in candidates)
        )

        hubs: Dict[str, HubCandidate] = {}
        for hub in results:
            if hub is not None and hub.key not in hubs:
                hubs[hub.key] = hub

        logger.info(f"Verified {len(hubs)} of {len(candidates)} hub candidate(s)")
        return list(hubs.values())
