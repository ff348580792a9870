"""Request and response models for the portfolio API."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from insurepulse.schemas.records import (
    AggregateSnapshot,
    DimensionAggregate,
    QueryAnswer,
    RejectedRow,
    UploadOutcome,
)


class UploadRequest(BaseModel):
    """One uploaded policy file, already parsed into rows."""

    rows: List[Dict[str, Any]] = Field(
        ...,
        description="Raw rows keyed by the file's own column headers",
        examples=[[{"Policy Number": "P-100", "Premium": "12,000", "Country": "SA"}]],
    )


class DefectResponse(BaseModel):
    """A rejected row and why it was rejected."""

    row_index: int = Field(..., description="Zero-based position of the row in the upload")
    reason: str = Field(..., description="Defect code", examples=["missing_policy_number"])
    field: Optional[str] = Field(None, description="Canonical field that caused the defect")
    message: str = Field(..., description="Human-readable defect description")

    @classmethod
    def from_rejected(cls, row: RejectedRow) -> "DefectResponse":
        return cls(
            row_index=row.row_index,
            reason=row.reason.value,
            field=row.field,
            message=row.message,
        )


class UploadResponse(BaseModel):
    """Result of a committed upload."""

    accepted: int = Field(..., description="Distinct policies accepted from the upload")
    rejected: int = Field(..., description="Rows rejected by validation")
    inserted: int = Field(..., description="Policies that did not exist before")
    updated: int = Field(..., description="Existing policies whose values changed")
    unchanged: int = Field(..., description="Existing policies resubmitted without change")
    superseded: int = Field(..., description="Rows replaced by a later row with the same policy number")
    outcome: str = Field(..., description="Batch outcome", examples=["committed", "partially-rejected"])
    defects: List[DefectResponse] = Field(default_factory=list, description="Rejected rows")

    @classmethod
    def from_outcome(cls, outcome: UploadOutcome) -> "UploadResponse":
        return cls(
            accepted=outcome.accepted,
            rejected=outcome.rejected,
            inserted=outcome.inserted,
            updated=outcome.updated,
            unchanged=outcome.unchanged,
            superseded=outcome.superseded,
            outcome=outcome.outcome.value,
            defects=[DefectResponse.from_rejected(row) for row in outcome.defects],
        )


class StorageFailureResponse(BaseModel):
    """Body returned when a batch commit aborted."""

    error: str = Field(..., description="Human-readable error message")
    outcome: str = Field(default="aborted", description="Batch outcome")
    defects: List[DefectResponse] = Field(default_factory=list, description="Rows rejected before the commit")


class DimensionResponse(BaseModel):
    """Metrics for one country or line of business."""

    key: str
    policy_count: int
    total_premium: Decimal
    incurred_losses: Decimal
    loss_ratio: float
    combined_ratio: float
    takaful_percentage: float

    @classmethod
    def from_aggregate(cls, row: DimensionAggregate) -> "DimensionResponse":
        return cls(
            key=row.key,
            policy_count=row.policy_count,
            total_premium=row.total_premium,
            incurred_losses=row.incurred_losses,
            loss_ratio=float(row.loss_ratio),
            combined_ratio=float(row.combined_ratio),
            takaful_percentage=float(row.takaful_percentage),
        )


class SnapshotResponse(BaseModel):
    """Portfolio metrics over a tenant's active policies.

    Amounts are in the reporting currency and serialized as strings to keep
    them exact; ratios are fractions (0.4 means 40%).
    """

    tenant_id: str
    policy_count: int
    total_premium: Decimal
    average_premium: Decimal
    incurred_losses: Decimal
    loss_ratio: float
    combined_ratio: float
    takaful_premium: Decimal
    takaful_percentage: float
    by_country: List[DimensionResponse] = Field(default_factory=list)
    by_line_of_business: List[DimensionResponse] = Field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot: AggregateSnapshot) -> "SnapshotResponse":
        return cls(
            tenant_id=snapshot.tenant_id,
            policy_count=snapshot.policy_count,
            total_premium=snapshot.total_premium,
            average_premium=snapshot.average_premium,
            incurred_losses=snapshot.incurred_losses,
            loss_ratio=float(snapshot.loss_ratio),
            combined_ratio=float(snapshot.combined_ratio),
            takaful_premium=snapshot.takaful_premium,
            takaful_percentage=float(snapshot.takaful_percentage),
            by_country=[DimensionResponse.from_aggregate(row) for row in snapshot.by_country],
            by_line_of_business=[
                DimensionResponse.from_aggregate(row) for row in snapshot.by_line_of_business
            ],
        )


class ContextResponse(BaseModel):
    """Rendered portfolio context."""

    context: str = Field(..., description="Bounded text summary of the portfolio")


class QueryRequest(BaseModel):
    """A natural-language question about the portfolio."""

    query: str = Field(
        default="",
        description="Question to answer",
        examples=["Which country has the worst loss ratio?"],
    )


class QueryResponse(BaseModel):
    """Answer to a portfolio question."""

    query: str
    response: str
    created_at: datetime

    @classmethod
    def from_answer(cls, answer: QueryAnswer) -> "QueryResponse":
        return cls(query=answer.query, response=answer.response, created_at=answer.created_at)


class HealthCheckResponse(BaseModel):
    """Health check response model.

    Attributes:
        status: Service status
        version: Application version
        service: Service name
        database: Database status
    """

    status: str = Field(
        default="healthy",
        description="Service health status",
        examples=["healthy", "degraded"],
    )
    version: str = Field(
        ...,
        description="Application version",
        examples=["0.1.0"],
    )
    service: str = Field(
        ...,
        description="Service name",
        examples=["InsurePulse"],
    )
    database: str = Field(
        default="healthy",
        description="Database status",
        examples=["healthy", "unhealthy"],
    )
