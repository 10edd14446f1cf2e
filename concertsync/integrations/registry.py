"""Construct the provider clients from runtime settings."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from concertsync.config import Settings
from concertsync.integrations.contracts import CatalogProvider, SetlistProvider, ShowProvider
from concertsync.integrations.setlistfm_client import SetlistFmClient
from concertsync.integrations.spotify_client import SpotifyClient
from concertsync.integrations.ticketmaster_client import TicketmasterClient
from concertsync.logging import get_logger
from concertsync.utils.retry import RetryPolicy

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class ProviderClients:
    show: ShowProvider
    catalog: CatalogProvider
    setlist: SetlistProvider

    async def aclose(self) -> None:
        """Close provider clients that own an HTTP connection pool."""

        for provider in (self.show, self.catalog, self.setlist):
            close = getattr(provider, "aclose", None)
            if callable(close):
                await close()


def build_provider_clients(
    settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
) -> ProviderClients:
    policy = RetryPolicy.from_external(settings.external)
    credentials = settings.credentials
    missing = [
        name
        for name, value in (
            ("SPOTIFY_CLIENT_ID", credentials.spotify_client_id),
            ("SPOTIFY_CLIENT_SECRET", credentials.spotify_client_secret),
            ("TICKETMASTER_API_KEY", credentials.ticketmaster_api_key),
            ("SETLISTFM_API_KEY", credentials.setlistfm_api_key),
        )
        if not value
    ]
    if missing:
        logger.warning(
            "Provider credentials missing; affected calls will fail",
            extra={"event": "provider.credentials.missing", "keys": ",".join(missing)},
        )
    return ProviderClients(
        show=TicketmasterClient(
            credentials.ticketmaster_api_key, policy=policy, transport=transport
        ),
        catalog=SpotifyClient(
            credentials.spotify_client_id,
            credentials.spotify_client_secret,
            policy=policy,
            transport=transport,
        ),
        setlist=SetlistFmClient(credentials.setlistfm_api_key, policy=policy, transport=transport),
    )


__all__ = ["ProviderClients", "build_provider_clients"]
