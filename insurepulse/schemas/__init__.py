"""Domain records and API schemas."""

from insurepulse.schemas.records import (
    ActivePolicy,
    AggregateSnapshot,
    BatchOutcome,
    BatchResult,
    CommitResult,
    DefectReason,
    DimensionAggregate,
    InsuranceType,
    PolicyRecord,
    PolicyStatus,
    QueryAnswer,
    RejectedRow,
    UploadBatch,
    UploadOutcome,
)

__all__ = [
    "ActivePolicy",
    "AggregateSnapshot",
    "BatchOutcome",
    "BatchResult",
    "CommitResult",
    "DefectReason",
    "DimensionAggregate",
    "InsuranceType",
    "PolicyRecord",
    "PolicyStatus",
    "QueryAnswer",
    "RejectedRow",
    "UploadBatch",
    "UploadOutcome",
]
