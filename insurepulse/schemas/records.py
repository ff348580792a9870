"""Domain records for portfolio ingestion and aggregation.

These are plain dataclasses passed between the normalization, persistence
and aggregation services. API-facing pydantic models live in
``insurepulse.schemas.portfolio``.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


class InsuranceType(str, Enum):
    """Coverage structure of a policy."""
    CONVENTIONAL = "conventional"
    TAKAFUL = "takaful"


class PolicyStatus(str, Enum):
    """Lifecycle status of a stored policy."""
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class DefectReason(str, Enum):
    """Why a raw row was rejected during normalization."""
    MISSING_POLICY_NUMBER = "missing_policy_number"
    NEGATIVE_PREMIUM = "negative_premium"
    UNSUPPORTED_CURRENCY = "unsupported_currency"
    EXPIRATION_BEFORE_EFFECTIVE = "expiration_before_effective"
    INVALID_COUNTRY = "invalid_country"
    INVALID_INSURANCE_TYPE = "invalid_insurance_type"
    INVALID_STATUS = "invalid_status"
    PREMIUM_OUT_OF_RANGE = "premium_out_of_range"


class BatchOutcome(str, Enum):
    """Final state of one upload batch."""
    COMMITTED = "committed"
    PARTIALLY_REJECTED = "partially-rejected"
    ABORTED = "aborted"


@dataclass(frozen=True)
class PolicyRecord:
    """Canonical, storage-ready representation of one policy row."""
    tenant_id: str
    policy_number: str
    premium: Decimal
    country: str
    insurance_type: InsuranceType = InsuranceType.CONVENTIONAL
    status: PolicyStatus = PolicyStatus.ACTIVE
    insured_name: Optional[str] = None
    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None
    line_of_business: Optional[str] = None
    source_currency: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        """Column values for the ``policies`` table."""
        return {
            "tenant_id": self.tenant_id,
            "policy_number": self.policy_number,
            "insured_name": self.insured_name,
            "premium": self.premium,
            "effective_date": self.effective_date,
            "expiration_date": self.expiration_date,
            "line_of_business": self.line_of_business,
            "country": self.country,
            "insurance_type": self.insurance_type.value,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class RejectedRow:
    """A row excluded from a batch, with the defect that excluded it."""
    row_index: int
    reason: DefectReason
    message: str
    field: Optional[str] = None


@dataclass
class BatchResult:
    """Outcome of validating every row of one uploaded file.

    Attributes:
        row_count: Number of raw rows received
        accepted: One record per distinct policy number (last occurrence wins)
        rejected: Rows excluded by a normalization defect
        superseded: Valid rows replaced by a later row with the same policy number
    """
    row_count: int
    accepted: List[PolicyRecord] = field(default_factory=list)
    rejected: List[RejectedRow] = field(default_factory=list)
    superseded: int = 0

    @property
    def accepted_premium(self) -> Decimal:
        return sum((record.premium for record in self.accepted), Decimal(0))

    def defect_counts(self) -> Dict[str, int]:
        return dict(Counter(row.reason.value for row in self.rejected))


@dataclass(frozen=True)
class CommitResult:
    """Row counts produced by one transactional batch merge."""
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0


@dataclass
class UploadBatch:
    """One uploaded file for the duration of a single ingestion request."""
    tenant_id: str
    rows: Sequence[Mapping[str, Any]]
    accepted: List[PolicyRecord] = field(default_factory=list)
    rejected: List[RejectedRow] = field(default_factory=list)
    superseded: int = 0
    outcome: Optional[BatchOutcome] = None


@dataclass(frozen=True)
class UploadOutcome:
    """Summary returned to the caller after a successful ingestion."""
    accepted: int
    rejected: int
    inserted: int
    updated: int
    unchanged: int
    superseded: int
    outcome: BatchOutcome
    defects: Tuple[RejectedRow, ...] = ()


@dataclass(frozen=True)
class ActivePolicy:
    """Slice of an active stored policy needed for aggregation."""
    policy_number: str
    premium: Decimal
    country: str
    line_of_business: Optional[str]
    insurance_type: InsuranceType


@dataclass(frozen=True)
class DimensionAggregate:
    """Metrics for one country or one line of business."""
    dimension: str
    key: str
    policy_count: int
    total_premium: Decimal
    incurred_losses: Decimal
    loss_ratio: Decimal
    combined_ratio: Decimal
    takaful_percentage: Decimal


@dataclass(frozen=True)
class AggregateSnapshot:
    """Portfolio metrics over a tenant's active policies. Never mutated."""
    tenant_id: str
    policy_count: int
    total_premium: Decimal
    average_premium: Decimal
    incurred_losses: Decimal
    loss_ratio: Decimal
    combined_ratio: Decimal
    takaful_premium: Decimal
    takaful_percentage: Decimal
    by_country: Tuple[DimensionAggregate, ...] = ()
    by_line_of_business: Tuple[DimensionAggregate, ...] = ()


@dataclass(frozen=True)
class QueryAnswer:
    """Text answer from the completion service for one portfolio question."""
    query: str
    response: str
    context: str
    created_at: datetime
