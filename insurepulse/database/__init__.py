"""Database module for SQLAlchemy models."""

from insurepulse.core.database import Base
from insurepulse.database.models import AIQuery, Claim, Policy

__all__ = [
    "Base",
    "AIQuery",
    "Claim",
    "Policy",
]
