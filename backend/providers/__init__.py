from .location import LocationManager
from .registry import get_providers, reload_providers, load_providers, ProviderSet

__all__ = [
    "LocationManager",
    "get_providers",
    "reload_providers",
    "load_providers",
    "ProviderSet",
]
