"""
Hub communication.

Provides:
- REST client with retry and typed errors
- Light resource operations
- Event stream client
- Hub identifier normalization
"""

from .api import HueApi, backoff_delay
from .errors import (
    BadRequest,
    HueError,
    LinkButtonNotPressed,
    NotFound,
    ServerError,
    ServiceUnavailable,
    Timeout,
    Unauthorized,
)
from .events import (
    HueEventStream,
    StreamConnected,
    StreamDisconnected,
    StreamError,
    StreamState,
    StreamUpdate,
)
from .identity import hub_url, normalize_hub_id
from .models import Credentials, HubConfig, LightResource, LightStateParams

__all__ = [
    # Client
    "HueApi",
    "backoff_delay",
    # Errors
    "HueError",
    "BadRequest",
    "Unauthorized",
    "NotFound",
    "Timeout",
    "ServiceUnavailable",
    "ServerError",
    "LinkButtonNotPressed",
    # Event stream
    "HueEventStream",
    "StreamState",
    "StreamConnected",
    "StreamDisconnected",
    "StreamUpdate",
    "StreamError",
    # Identity
    "normalize_hub_id",
    "hub_url",
    # Models
    "Credentials",
    "HubConfig",
    "LightResource",
    "LightStateParams",
]
