from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from insurepulse.database.models import Claim
from insurepulse.repositories.base_repository import BaseRepository


class ClaimRepository(BaseRepository[Claim]):
    """Repository for the ``claims`` table."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Claim)

    async def create_claim(
        self,
        tenant_id: str,
        policy_number: str,
        paid_amount: Decimal = Decimal(0),
        reserve_amount: Decimal = Decimal(0),
        status: str = "open",
        claim_number: Optional[str] = None,
    ) -> Claim:
        """Record a claim against a policy number.

        Args:
            tenant_id: Tenant owning the claim
            policy_number: Policy the loss is reported against (not enforced)
            paid_amount: Amount already paid
            reserve_amount: Outstanding reserve
            status: Claim status
            claim_number: Insurer claim reference

        Returns:
            Claim: The created claim

        Raises:
            ValueError: If an amount is negative
        """
        if paid_amount < 0 or reserve_amount < 0:
            raise ValueError("Claim paid and reserve amounts must be non-negative")

        return await self.create(
            tenant_id=tenant_id,
            policy_number=policy_number,
            claim_number=claim_number,
            paid_amount=paid_amount,
            reserve_amount=reserve_amount,
            status=status,
        )

    async def incurred_by_policy(self, tenant_id: str) -> Dict[str, Decimal]:
        """Sum paid + reserve per policy number for a tenant."""
        incurred = func.sum(Claim.paid_amount + Claim.reserve_amount)
        query = (
            select(Claim.policy_number, incurred.label("incurred"))
            .where(Claim.tenant_id == tenant_id)
            .group_by(Claim.policy_number)
            .order_by(Claim.policy_number)
        )
        result = await self.session.execute(query)
        return {row.policy_number: Decimal(row.incurred or 0) for row in result}
