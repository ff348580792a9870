"""Repository layer modules."""

from insurepulse.repositories.ai_query_repository import AIQueryRepository
from insurepulse.repositories.claim_repository import ClaimRepository
from insurepulse.repositories.policy_repository import PolicyRepository

__all__ = [
    "AIQueryRepository",
    "ClaimRepository",
    "PolicyRepository",
]
