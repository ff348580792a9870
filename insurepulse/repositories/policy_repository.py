import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from insurepulse.database.models import Policy
from insurepulse.repositories.base_repository import BaseRepository
from insurepulse.schemas.records import ActivePolicy, InsuranceType, PolicyRecord, PolicyStatus

# Columns a re-submitted row may overwrite. Everything else keeps its first value.
MERGE_UPDATABLE_COLUMNS = ("premium", "expiration_date", "status")

CENTS = Decimal("0.01")

# Keeps IN (...) lists under SQLite's bound-parameter limit
LOOKUP_CHUNK_SIZE = 500

_DIALECT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class UpsertOutcome(str, Enum):
    """What a single upsert statement did to the stored row."""
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def storage_values(record: PolicyRecord) -> Dict[str, Any]:
    """Column values for ``record`` as they will be stored (premium in cents)."""
    values = record.to_row()
    values["premium"] = record.premium.quantize(CENTS, rounding=ROUND_HALF_UP)
    return values


class PolicyRepository(BaseRepository[Policy]):
    """Repository for the ``policies`` table.

    Write methods only execute statements; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, Policy)

    async def lock_existing(
        self,
        tenant_id: str,
        policy_numbers: Iterable[str],
    ) -> Dict[str, Policy]:
        """Load and row-lock the tenant's stored policies among ``policy_numbers``.

        Args:
            tenant_id: Tenant owning the policies
            policy_numbers: Policy numbers about to be merged

        Returns:
            Dict[str, Policy]: Stored policies keyed by policy number
        """
        numbers = sorted(set(policy_numbers))
        existing: Dict[str, Policy] = {}

        for start in range(0, len(numbers), LOOKUP_CHUNK_SIZE):
            chunk = numbers[start:start + LOOKUP_CHUNK_SIZE]
            query = (
                select(Policy)
                .where(Policy.tenant_id == tenant_id, Policy.policy_number.in_(chunk))
                .order_by(Policy.policy_number)
                .with_for_update()
            )
            result = await self.session.execute(query)
            for policy in result.scalars():
                existing[policy.policy_number] = policy

        return existing

    async def upsert(self, record: PolicyRecord, now: datetime) -> UpsertOutcome:
        """Insert ``record`` or merge it into the stored row for the same policy number.

        The merge only rewrites ``MERGE_UPDATABLE_COLUMNS`` and ``updated_at``,
        and only when at least one of those columns actually changes.

        Returns:
            UpsertOutcome: Decided by the statement itself, so a row inserted by
            a concurrent transaction is reported as merged
        """
        insert = self._dialect_insert()
        values = storage_values(record)
        new_id = uuid.uuid4()

        stmt = insert(Policy).values(id=new_id, created_at=now, **values)
        excluded = stmt.excluded

        set_ = {column: getattr(excluded, column) for column in MERGE_UPDATABLE_COLUMNS}
        set_["updated_at"] = now

        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "policy_number"],
            set_=set_,
            where=or_(
                *(
                    getattr(Policy, column).is_distinct_from(getattr(excluded, column))
                    for column in MERGE_UPDATABLE_COLUMNS
                )
            ),
        ).returning(Policy.id)

        # A skipped DO UPDATE returns no row; a fresh insert keeps our id
        stored_id = (await self.session.execute(stmt)).scalar_one_or_none()
        if stored_id is None:
            return UpsertOutcome.UNCHANGED
        if stored_id == new_id:
            return UpsertOutcome.INSERTED
        return UpsertOutcome.UPDATED

    async def get_by_policy_number(self, tenant_id: str, policy_number: str) -> Optional[Policy]:
        query = select(Policy).where(
            Policy.tenant_id == tenant_id,
            Policy.policy_number == policy_number,
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_for_tenant(self, tenant_id: str) -> List[Policy]:
        """All stored policies of a tenant regardless of status, by policy number."""
        query = select(Policy).where(Policy.tenant_id == tenant_id).order_by(Policy.policy_number)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_active_policies(self, tenant_id: str) -> List[ActivePolicy]:
        """Active policies of a tenant in policy-number order.

        Args:
            tenant_id: Tenant to read

        Returns:
            List[ActivePolicy]: Aggregation view of each active policy
        """
        query = (
            select(
                Policy.policy_number,
                Policy.premium,
                Policy.country,
                Policy.line_of_business,
                Policy.insurance_type,
            )
            .where(Policy.tenant_id == tenant_id, Policy.status == PolicyStatus.ACTIVE.value)
            .order_by(Policy.policy_number)
        )
        result = await self.session.execute(query)

        return [
            ActivePolicy(
                policy_number=row.policy_number,
                premium=Decimal(row.premium or 0),
                country=row.country,
                line_of_business=row.line_of_business,
                insurance_type=InsuranceType(row.insurance_type),
            )
            for row in result
        ]

    def _dialect_insert(self):
        dialect_name = self.session.get_bind().dialect.name
        try:
            return _DIALECT_INSERTS[dialect_name]
        except KeyError:
            raise NotImplementedError(
                f"Upsert is not supported on the {dialect_name} dialect"
            ) from None

