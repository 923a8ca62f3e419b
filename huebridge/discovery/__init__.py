"""
Hub discovery for huebridge.

Finds hubs on the local network via mDNS and verifies them before they
are offered during setup.
"""

from .mdns import (
    SERVICE_TYPE,
    HubCandidate,
    HubDiscovery,
    browse_hubs,
    verify_candidate,
)

__all__ = [
    "SERVICE_TYPE",
    "HubCandidate",
    "HubDiscovery",
    "browse_hubs",
    "verify_candidate",
]
