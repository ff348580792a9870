"""Ingestion service: one uploaded row set from raw rows to committed policies."""

from typing import Any, Mapping, Sequence

from insurepulse.schemas.records import (
    BatchOutcome,
    CommitResult,
    UploadBatch,
    UploadOutcome,
)
from insurepulse.services.normalization.batch_validator import BatchValidator
from insurepulse.services.portfolio.upsert_coordinator import UpsertCoordinator
from insurepulse.utils.exceptions import StorageFailure
from insurepulse.utils.logging import get_logger

LOGGER = get_logger(__name__)


class IngestionService:
    """Validates an upload and commits its accepted records.

    Rejected rows never block the rest of the batch. A storage failure
    aborts the whole batch; nothing from it is applied.
    """

    def __init__(self, validator: BatchValidator, coordinator: UpsertCoordinator):
        self.validator = validator
        self.coordinator = coordinator

    async def ingest(self, rows: Sequence[Mapping[str, Any]], tenant_id: str) -> UploadOutcome:
        """Validate ``rows`` and commit the accepted records for ``tenant_id``.

        Args:
            rows: Raw uploaded rows in file order
            tenant_id: Tenant the upload belongs to

        Returns:
            UploadOutcome: counts, outcome and defect list

        Raises:
            ValueError: If tenant_id is empty
            StorageFailure: If the commit aborted; carries the batch's defects
        """
        batch = UploadBatch(tenant_id=tenant_id, rows=rows)

        validation = self.validator.validate(batch.rows, tenant_id)
        batch.accepted = validation.accepted
        batch.rejected = validation.rejected
        batch.superseded = validation.superseded

        commit = CommitResult()
        if batch.accepted:
            try:
                commit = await self.coordinator.commit(batch.accepted, tenant_id)
            except StorageFailure as e:
                batch.outcome = BatchOutcome.ABORTED
                e.defects = list(batch.rejected)
                LOGGER.error(
                    f"Upload aborted for tenant {tenant_id}",
                    extra={
                        "tenant_id": tenant_id,
                        "rows": len(batch.rows),
                        "accepted": len(batch.accepted),
                        "rejected": len(batch.rejected),
                    },
                )
                raise
        else:
            LOGGER.info(
                f"No rows accepted for tenant {tenant_id}; skipping commit",
                extra={"tenant_id": tenant_id, "rejected": len(batch.rejected)},
            )

        batch.outcome = BatchOutcome.PARTIALLY_REJECTED if batch.rejected else BatchOutcome.COMMITTED

        outcome = UploadOutcome(
            accepted=len(batch.accepted),
            rejected=len(batch.rejected),
            inserted=commit.inserted,
            updated=commit.updated,
            unchanged=commit.unchanged,
            superseded=batch.superseded,
            outcome=batch.outcome,
            defects=tuple(batch.rejected),
        )

        LOGGER.info(
            f"Upload {outcome.outcome.value} for tenant {tenant_id}",
            extra={
                "tenant_id": tenant_id,
                "accepted": outcome.accepted,
                "rejected": outcome.rejected,
                "inserted": outcome.inserted,
                "updated": outcome.updated,
                "unchanged": outcome.unchanged,
            },
        )
        return outcome
