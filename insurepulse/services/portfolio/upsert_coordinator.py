"""Transactional merge of validated policy batches into durable storage."""

import asyncio
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from insurepulse.repositories.policy_repository import PolicyRepository, UpsertOutcome
from insurepulse.schemas.records import CommitResult, PolicyRecord
from insurepulse.utils.exceptions import StorageFailure
from insurepulse.utils.logging import get_logger

LOGGER = get_logger(__name__)


class UpsertCoordinator:
    """Merges accepted records under one-row-per-(tenant, policy number).

    The whole batch runs in a single transaction. Existing rows for the
    incoming policy numbers are row-locked first and every statement runs in
    policy-number order, so concurrent uploads for the same tenant take their
    row and unique-index locks in the same order. A failure anywhere rolls
    everything back and surfaces as ``StorageFailure``; there is no retry here.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def commit(self, batch: Sequence[PolicyRecord], tenant_id: str) -> CommitResult:
        """Insert new policies and merge known ones, atomically.

        Args:
            batch: Validated records, at most one per policy number
            tenant_id: Tenant all records must belong to

        Returns:
            CommitResult: inserted, updated and unchanged counts

        Raises:
            ValueError: If a record belongs to another tenant or numbers repeat
            StorageFailure: If the transaction could not be committed
        """
        self._check_batch(batch, tenant_id)
        if not batch:
            return CommitResult()

        counts = {outcome: 0 for outcome in UpsertOutcome}
        now = datetime.now(timezone.utc)

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    repository = PolicyRepository(session)
                    existing = await repository.lock_existing(
                        tenant_id, (record.policy_number for record in batch)
                    )
                    LOGGER.debug(
                        f"Locked {len(existing)} stored policies for tenant {tenant_id}",
                        extra={"tenant_id": tenant_id, "batch_size": len(batch)},
                    )

                    for record in sorted(batch, key=lambda r: r.policy_number):
                        outcome = await repository.upsert(record, now)
                        counts[outcome] += 1

        except (SQLAlchemyError, asyncio.TimeoutError, OSError) as e:
            LOGGER.error(
                f"Batch commit aborted for tenant {tenant_id}: {e}",
                exc_info=True,
                extra={"tenant_id": tenant_id, "batch_size": len(batch)},
            )
            raise StorageFailure(
                f"Batch of {len(batch)} policies was not committed: {e}",
                original_error=e,
            ) from e

        result = CommitResult(
            inserted=counts[UpsertOutcome.INSERTED],
            updated=counts[UpsertOutcome.UPDATED],
            unchanged=counts[UpsertOutcome.UNCHANGED],
        )
        LOGGER.info(
            f"Committed {len(batch)} policies for tenant {tenant_id}",
            extra={
                "tenant_id": tenant_id,
                "inserted": result.inserted,
                "updated": result.updated,
                "unchanged": result.unchanged,
            },
        )

        return result

    @staticmethod
    def _check_batch(batch: Sequence[PolicyRecord], tenant_id: str) -> None:
        if not tenant_id:
            raise ValueError("tenant_id is required to commit a batch")

        foreign = {record.tenant_id for record in batch if record.tenant_id != tenant_id}
        if foreign:
            raise ValueError(f"Batch for tenant {tenant_id} contains records for {sorted(foreign)}")

        numbers = [record.policy_number for record in batch]
        if len(numbers) != len(set(numbers)):
            raise ValueError("Batch contains duplicate policy numbers; validate it first")
