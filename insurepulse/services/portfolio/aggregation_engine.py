"""Portfolio risk metrics over a tenant's active policies.

Metrics:
    loss ratio      = incurred losses / premium (0 when premium is 0)
    combined ratio  = loss ratio * (1 + expense load factor)
    Takaful mix     = takaful premium / premium (0 when premium is 0)

Incurred losses are paid + reserve of the claims whose policy number matches
an active policy of the same tenant.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Mapping, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from insurepulse.core.config import settings
from insurepulse.repositories.claim_repository import ClaimRepository
from insurepulse.repositories.policy_repository import PolicyRepository
from insurepulse.schemas.records import (
    ActivePolicy,
    AggregateSnapshot,
    DimensionAggregate,
    InsuranceType,
)
from insurepulse.utils.exceptions import ConfigurationError, StorageFailure
from insurepulse.utils.logging import get_logger

LOGGER = get_logger(__name__)

ZERO = Decimal(0)

COUNTRY_DIMENSION = "country"
LINE_OF_BUSINESS_DIMENSION = "line_of_business"
UNSPECIFIED_LINE = "Unspecified"


def ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Division that yields zero for an empty denominator."""
    if denominator == 0:
        return ZERO
    return numerator / denominator


@dataclass
class _Accumulator:
    policy_count: int = 0
    premium: Decimal = ZERO
    losses: Decimal = ZERO
    takaful_premium: Decimal = ZERO

    def add(self, policy: ActivePolicy, losses: Decimal) -> None:
        self.policy_count += 1
        self.premium += policy.premium
        self.losses += losses
        if policy.insurance_type == InsuranceType.TAKAFUL:
            self.takaful_premium += policy.premium


@dataclass
class _DimensionIndex:
    name: str
    groups: Dict[str, _Accumulator] = field(default_factory=dict)

    def add(self, key: str, policy: ActivePolicy, losses: Decimal) -> None:
        self.groups.setdefault(key, _Accumulator()).add(policy, losses)

    def freeze(self, multiplier: Decimal) -> Tuple[DimensionAggregate, ...]:
        frozen = []
        for key, acc in self.groups.items():
            loss_ratio = ratio(acc.losses, acc.premium)
            frozen.append(
                DimensionAggregate(
                    dimension=self.name,
                    key=key,
                    policy_count=acc.policy_count,
                    total_premium=acc.premium,
                    incurred_losses=acc.losses,
                    loss_ratio=loss_ratio,
                    combined_ratio=loss_ratio * multiplier,
                    takaful_percentage=ratio(acc.takaful_premium, acc.premium),
                )
            )
        return tuple(frozen)


def build_snapshot(
    tenant_id: str,
    policies: Sequence[ActivePolicy],
    losses_by_policy: Mapping[str, Decimal],
    expense_load_factor: Decimal,
) -> AggregateSnapshot:
    """Compute the snapshot from already-loaded rows.

    Dimension rows appear in the order their keys are first met in
    ``policies``; keys with no active policy never appear.

    Args:
        tenant_id: Tenant the rows belong to
        policies: Active policies, in a stable order
        losses_by_policy: Incurred losses keyed by policy number
        expense_load_factor: Expense load added on top of the loss ratio

    Returns:
        AggregateSnapshot: Immutable metrics
    """
    multiplier = Decimal(1) + expense_load_factor

    totals = _Accumulator()
    by_country = _DimensionIndex(COUNTRY_DIMENSION)
    by_line = _DimensionIndex(LINE_OF_BUSINESS_DIMENSION)

    for policy in policies:
        losses = losses_by_policy.get(policy.policy_number, ZERO)
        totals.add(policy, losses)
        by_country.add(policy.country, policy, losses)
        by_line.add(policy.line_of_business or UNSPECIFIED_LINE, policy, losses)

    loss_ratio = ratio(totals.losses, totals.premium)

    return AggregateSnapshot(
        tenant_id=tenant_id,
        policy_count=totals.policy_count,
        total_premium=totals.premium,
        average_premium=ratio(totals.premium, Decimal(totals.policy_count)),
        incurred_losses=totals.losses,
        loss_ratio=loss_ratio,
        combined_ratio=loss_ratio * multiplier,
        takaful_premium=totals.takaful_premium,
        takaful_percentage=ratio(totals.takaful_premium, totals.premium),
        by_country=by_country.freeze(multiplier),
        by_line_of_business=by_line.freeze(multiplier),
    )


class AggregationEngine:
    """Reads a tenant's current active book and computes its snapshot."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        expense_load_factor: Optional[Decimal] = None,
    ):
        """Initialize aggregation engine.

        Args:
            session_factory: Factory for read sessions
            expense_load_factor: Overrides the configured expense load

        Raises:
            ConfigurationError: If the expense load factor is negative
        """
        factor = settings.expense_load_factor if expense_load_factor is None else Decimal(expense_load_factor)
        if factor < 0:
            raise ConfigurationError(f"Expense load factor must be non-negative, got {factor}")

        self.session_factory = session_factory
        self.expense_load_factor = factor

    async def compute_snapshot(self, tenant_id: str) -> AggregateSnapshot:
        """Compute metrics over the tenant's active policies and their claims.

        Policies and claims are read in one transaction, so a concurrent
        batch commit is seen either entirely or not at all.

        Raises:
            StorageFailure: If the read fails
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    policies = await PolicyRepository(session).get_active_policies(tenant_id)
                    losses = await ClaimRepository(session).incurred_by_policy(tenant_id)
        except (SQLAlchemyError, asyncio.TimeoutError, OSError) as e:
            LOGGER.error(
                f"Failed to read portfolio for tenant {tenant_id}: {e}",
                exc_info=True,
                extra={"tenant_id": tenant_id},
            )
            raise StorageFailure(f"Could not read portfolio for tenant {tenant_id}", original_error=e) from e

        snapshot = build_snapshot(tenant_id, policies, losses, self.expense_load_factor)

        LOGGER.debug(
            "Computed portfolio snapshot",
            extra={
                "tenant_id": tenant_id,
                "policy_count": snapshot.policy_count,
                "countries": len(snapshot.by_country),
                "lines_of_business": len(snapshot.by_line_of_business),
            },
        )
        return snapshot

