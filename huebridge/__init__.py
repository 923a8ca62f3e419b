"""
huebridge - Philips Hue hub bridge

Pairs with a Hue hub on the local network and keeps a host's view of the
hub's lights in sync, over the hub's REST API and event stream.

Example:
    >>> from huebridge import DeviceRegistry, SyncEngine, get_config
    >>> registry = DeviceRegistry(get_config().data_dir)
    >>> engine = SyncEngine(registry, host)
    >>> await engine.start()
"""

__version__ = "1.0.0"

from .config import Config, get_config
from .registry.devices import DeviceRegistry
from .setup.flow import SetupFlow
from .sync.engine import SyncEngine

__all__ = [
    "__version__",
    "Config",
    "get_config",
    "DeviceRegistry",
    "SetupFlow",
    "SyncEngine",
]
