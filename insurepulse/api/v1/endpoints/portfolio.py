from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from insurepulse.dependencies import (
    get_aggregation_engine,
    get_context_builder,
    get_ingestion_service,
    get_query_service,
    get_tenant_id,
)
from insurepulse.schemas.portfolio import (
    ContextResponse,
    DefectResponse,
    QueryRequest,
    QueryResponse,
    SnapshotResponse,
    StorageFailureResponse,
    UploadRequest,
    UploadResponse,
)
from insurepulse.services.portfolio.aggregation_engine import AggregationEngine
from insurepulse.services.portfolio.context_builder import ContextBuilder
from insurepulse.services.portfolio.ingestion_service import IngestionService
from insurepulse.services.portfolio.query_service import PortfolioQueryService
from insurepulse.utils.exceptions import APIClientError, StorageFailure
from insurepulse.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "/uploads",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload policy rows",
    operation_id="upload_policy_rows",
    responses={503: {"model": StorageFailureResponse}},
)
async def upload_policies(
    request: UploadRequest,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    ingestion_service: Annotated[IngestionService, Depends(get_ingestion_service)],
):
    """
    Validate and commit one uploaded policy file.

    Defective rows are reported and skipped. If the commit fails nothing from
    the upload is stored and the response is 503 with outcome "aborted".
    """
    try:
        outcome = await ingestion_service.ingest(request.rows, tenant_id)
    except StorageFailure as e:
        body = StorageFailureResponse(
            error="Upload could not be committed; no policies were changed",
            defects=[DefectResponse.from_rejected(row) for row in e.defects],
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(mode="json"),
        )

    return UploadResponse.from_outcome(outcome)


@router.get(
    "/summary",
    response_model=SnapshotResponse,
    summary="Portfolio metrics",
    operation_id="get_portfolio_summary",
)
async def get_summary(
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    aggregation_engine: Annotated[AggregationEngine, Depends(get_aggregation_engine)],
) -> SnapshotResponse:
    """Metrics over the tenant's active policies."""
    try:
        snapshot = await aggregation_engine.compute_snapshot(tenant_id)
    except StorageFailure:
        raise HTTPException(status_code=503, detail="Portfolio is temporarily unavailable")

    return SnapshotResponse.from_snapshot(snapshot)


@router.get(
    "/context",
    response_model=ContextResponse,
    summary="Portfolio context text",
    operation_id="get_portfolio_context",
)
async def get_context(
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    aggregation_engine: Annotated[AggregationEngine, Depends(get_aggregation_engine)],
    context_builder: Annotated[ContextBuilder, Depends(get_context_builder)],
) -> ContextResponse:
    """The bounded text summary sent to the completion service."""
    try:
        snapshot = await aggregation_engine.compute_snapshot(tenant_id)
    except StorageFailure:
        raise HTTPException(status_code=503, detail="Portfolio is temporarily unavailable")

    return ContextResponse(context=context_builder.render_context(snapshot))


@router.post(
    "/query",
    response_model=QueryResponse,
    summary="Ask a question about the portfolio",
    operation_id="query_portfolio",
)
async def query_portfolio(
    request: QueryRequest,
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    query_service: Annotated[PortfolioQueryService, Depends(get_query_service)],
) -> QueryResponse:
    """Answer a natural-language question using the tenant's portfolio."""
    try:
        answer = await query_service.answer(tenant_id, request.query)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageFailure:
        raise HTTPException(status_code=503, detail="Portfolio is temporarily unavailable")
    except APIClientError as e:
        LOGGER.error(f"Portfolio query failed for tenant {tenant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="Failed to process AI query")

    return QueryResponse.from_answer(answer)
