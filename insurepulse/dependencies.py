"""Centralized dependency injection for the FastAPI application.

Factory functions build services per request around the session factory the
application lifespan stored on ``app.state``. Tests replace any of them with
``app.dependency_overrides``.
"""

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from insurepulse.core.config import settings
from insurepulse.core.llm_client import AnthropicClient, CompletionClient
from insurepulse.services.normalization.batch_validator import BatchValidator
from insurepulse.services.normalization.schema_normalizer import SchemaNormalizer
from insurepulse.services.portfolio.aggregation_engine import AggregationEngine
from insurepulse.services.portfolio.context_builder import ContextBuilder
from insurepulse.services.portfolio.ingestion_service import IngestionService
from insurepulse.services.portfolio.query_service import PortfolioQueryService
from insurepulse.services.portfolio.upsert_coordinator import UpsertCoordinator


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Session factory created during application startup."""
    return request.app.state.session_factory


async def get_tenant_id(
    x_tenant_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """Resolve the calling tenant from the ``X-Tenant-ID`` header.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Tenant-ID header is required",
        )
    return tenant_id


async def get_ingestion_service(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
) -> IngestionService:
    """Get ingestion service instance.

    Args:
        session_factory: Session factory from dependency injection

    Returns:
        IngestionService: Validates uploads and commits accepted policies
    """
    validator = BatchValidator(SchemaNormalizer(settings.pipeline))
    return IngestionService(validator, UpsertCoordinator(session_factory))


async def get_aggregation_engine(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
) -> AggregationEngine:
    return AggregationEngine(session_factory, settings.expense_load_factor)


async def get_context_builder() -> ContextBuilder:
    return ContextBuilder(settings.context_max_chars, settings.pipeline.reporting_currency)


async def get_completion_client() -> CompletionClient:
    return AnthropicClient(settings.llm)


async def get_query_service(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    aggregation_engine: Annotated[AggregationEngine, Depends(get_aggregation_engine)],
    context_builder: Annotated[ContextBuilder, Depends(get_context_builder)],
    completion_client: Annotated[CompletionClient, Depends(get_completion_client)],
) -> PortfolioQueryService:
    """Get portfolio query service instance.

    Args:
        session_factory: Session factory for logging queries
        aggregation_engine: Computes the tenant snapshot
        context_builder: Renders the snapshot as text
        completion_client: External completion service

    Returns:
        PortfolioQueryService: Answers questions about the portfolio
    """
    return PortfolioQueryService(session_factory, aggregation_engine, context_builder, completion_client)
