"""Portfolio services: commit, aggregation, context rendering and queries."""

from insurepulse.services.portfolio.aggregation_engine import AggregationEngine, build_snapshot
from insurepulse.services.portfolio.context_builder import ContextBuilder
from insurepulse.services.portfolio.ingestion_service import IngestionService
from insurepulse.services.portfolio.query_service import PortfolioQueryService
from insurepulse.services.portfolio.upsert_coordinator import UpsertCoordinator

__all__ = [
    "AggregationEngine",
    "ContextBuilder",
    "IngestionService",
    "PortfolioQueryService",
    "UpsertCoordinator",
    "build_snapshot",
]
