"""Provider clients and the guard that wraps every outbound call."""

from .contracts import (
    CatalogProvider,
    ProviderError,
    SetlistProvider,
    ShowProvider,
)
from .provider_guard import ProviderGuard, build_provider_guard

__all__ = [
    "CatalogProvider",
    "ProviderError",
    "ProviderGuard",
    "SetlistProvider",
    "ShowProvider",
    "build_provider_guard",
]
