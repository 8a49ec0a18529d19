"""Application services."""

from bitrot.application.services.discogs_matcher import DiscogsMatcherService
from bitrot.application.services.enrichment_persister import (
    EnrichmentPersister,
    extract_enrichment,
)
from bitrot.application.services.release_ingestion_service import ReleaseIngestionService
from bitrot.application.services.stats_service import CatalogSummary, StatsService

__all__ = [
    "CatalogSummary",
    "DiscogsMatcherService",
    "EnrichmentPersister",
    "ReleaseIngestionService",
    "StatsService",
    "extract_enrichment",
]
