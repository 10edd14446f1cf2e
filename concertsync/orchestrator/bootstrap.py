"""Bootstrap helpers wiring providers, services and the job registry."""

from __future__ import annotations

from dataclasses import dataclass

from concertsync.config import Settings, load_settings
from concertsync.integrations.provider_guard import ProviderGuard, build_provider_guard
from concertsync.integrations.registry import ProviderClients, build_provider_clients
from concertsync.orchestrator.artist_import import ArtistImportOrchestrator
from concertsync.orchestrator.jobs import JobHandlerDeps, JobProcessor
from concertsync.services.catalog_ingest import CatalogIngestService
from concertsync.services.concert_dao import ConcertDao
from concertsync.services.setlist_sync import SetlistSyncService
from concertsync.services.show_ingest import ShowIngestService
from concertsync.services.sync_progress import SyncProgressTracker
from concertsync.services.trending import TrendingCalculator


@dataclass(slots=True)
class EngineRuntime:
    """Container bundling the engine components built from one settings snapshot."""

    settings: Settings
    clients: ProviderClients
    dao: ConcertDao
    guard: ProviderGuard
    tracker: SyncProgressTracker
    orchestrator: ArtistImportOrchestrator
    processor: JobProcessor


def bootstrap_engine(
    settings: Settings | None = None,
    *,
    clients: ProviderClients | None = None,
    dao: ConcertDao | None = None,
    guard: ProviderGuard | None = None,
) -> EngineRuntime:
    settings = settings or load_settings()
    clients = clients or build_provider_clients(settings)
    dao = dao or ConcertDao()
    guard = guard or build_provider_guard(settings)
    tracker = SyncProgressTracker()

    show_ingest = ShowIngestService(
        provider=clients.show, guard=guard, dao=dao, config=settings.imports
    )
    catalog_ingest = CatalogIngestService(
        provider=clients.catalog, guard=guard, dao=dao, config=settings.imports
    )
    setlist_provider = clients.setlist if settings.credentials.setlistfm_api_key else None
    setlist_sync = SetlistSyncService(dao=dao, guard=guard, provider=setlist_provider)
    orchestrator = ArtistImportOrchestrator(
        show_provider=clients.show,
        guard=guard,
        dao=dao,
        catalog_ingest=catalog_ingest,
        show_ingest=show_ingest,
        setlist_sync=setlist_sync,
        tracker=tracker,
        config=settings.imports,
    )
    processor = JobProcessor(
        JobHandlerDeps(
            dao=dao,
            guard=guard,
            orchestrator=orchestrator,
            show_ingest=show_ingest,
            catalog_ingest=catalog_ingest,
            trending=TrendingCalculator(dao=dao, config=settings.trending),
            imports=settings.imports,
        )
    )
    return EngineRuntime(
        settings=settings,
        clients=clients,
        dao=dao,
        guard=guard,
        tracker=tracker,
        orchestrator=orchestrator,
        processor=processor,
    )


__all__ = ["EngineRuntime", "bootstrap_engine"]
