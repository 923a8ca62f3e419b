"""
Hub identifier normalization.

The same hub shows up under different identifiers depending on where we
learn about it:
- mDNS TXT records and /api/config: 16 hex digit EUI-64 with "fffe" padding
- the hub's MAC address: colon delimited
- previously stored ids: canonical 12 hex digit form

All of them are reduced to the lowercase 12 digit form.
"""

import logging
import re

logger = logging.getLogger(__name__)

_HEX12 = re.compile(r"^[0-9a-f]{12}$")
_HEX16 = re.compile(r"^[0-9a-f]{16}$")
_MAC = re.compile(r"^[0-9a-f]{2}([:-][0-9a-f]{2}){5}$")

EUI64_PADDING = "fffe"


def normalize_hub_id(raw: str) -> str:
    """
    Canonicalize a hub identifier.

    Unrecognized shapes are logged and returned unchanged.
    """
    value = (raw or "").strip()
    lowered = value.lower()

    if _MAC.match(lowered):
        return lowered.replace(":", "").replace("-", "")

    if _HEX16.match(lowered) and lowered[6:10] == EUI64_PADDING:
        return lowered[:6] + lowered[10:]

    if _HEX12.match(lowered):
        return lowered

    logger.warning(f"Unrecognized hub id format: {value!r}")
    return value


def hub_url(address: str) -> str:
    """Base URL of the hub's resource API."""
    if address.startswith(("http://", "https://")):
        return address.rstrip("/")
    return f"https://{address}"
