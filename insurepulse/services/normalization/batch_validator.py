"""Batch validator for uploaded policy rows.

Runs the schema normalizer over every row of one upload, partitions the rows
into accepted records and rejected rows, and collapses duplicate policy
numbers within the file.
"""

from typing import Any, Dict, Mapping, Optional, Sequence

from insurepulse.schemas.records import BatchResult, PolicyRecord
from insurepulse.services.normalization.schema_normalizer import SchemaNormalizer
from insurepulse.utils.exceptions import NormalizationDefect
from insurepulse.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BatchValidator:
    """Validates a full row set with a partial-success policy.

    A defective row is recorded and skipped; it never stops the remaining
    rows. When a policy number appears more than once, the last valid
    occurrence in file order is accepted and earlier ones are superseded.
    """

    def __init__(self, normalizer: Optional[SchemaNormalizer] = None):
        self.normalizer = normalizer or SchemaNormalizer()

    def validate(self, rows: Sequence[Mapping[str, Any]], tenant_id: str) -> BatchResult:
        """Normalize every row and partition the batch.

        Args:
            rows: Raw rows in file order
            tenant_id: Tenant the upload belongs to

        Returns:
            BatchResult: accepted records, rejected rows and batch statistics

        Raises:
            ValueError: If tenant_id is empty
        """
        if not tenant_id:
            raise ValueError("tenant_id is required to validate a batch")

        result = BatchResult(row_count=len(rows))
        accepted_by_number: Dict[str, PolicyRecord] = {}

        for row_index, row in enumerate(rows):
            try:
                record = self.normalizer.normalize(row, tenant_id)
            except NormalizationDefect as defect:
                result.rejected.append(defect.to_rejected_row(row_index))
                LOGGER.debug(
                    f"Row {row_index} rejected: {defect}",
                    extra={"tenant_id": tenant_id, "row_index": row_index, "reason": defect.reason.value},
                )
                continue

            if record.policy_number in accepted_by_number:
                result.superseded += 1
                LOGGER.debug(
                    f"Row {row_index} supersedes an earlier row for policy {record.policy_number}",
                    extra={"tenant_id": tenant_id, "row_index": row_index},
                )
            accepted_by_number[record.policy_number] = record

        result.accepted = list(accepted_by_number.values())

        LOGGER.info(
            f"Validated {result.row_count} rows: {len(result.accepted)} accepted, "
            f"{len(result.rejected)} rejected, {result.superseded} superseded",
            extra={
                "tenant_id": tenant_id,
                "rows_processed": result.row_count,
                "accepted": len(result.accepted),
                "rejected": len(result.rejected),
                "superseded": result.superseded,
                "defect_counts": result.defect_counts(),
                "accepted_premium": str(result.accepted_premium),
            },
        )

        return result
