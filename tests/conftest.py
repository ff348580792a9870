"""Pytest configuration and shared fixtures."""

from decimal import Decimal
from typing import Any, Dict, List

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from insurepulse.core.config import PipelineSettings
from insurepulse.core.database import Base, create_session_factory
from insurepulse.database import models  # noqa: F401
from insurepulse.main import app
from insurepulse.schemas.records import InsuranceType, PolicyRecord, PolicyStatus
from insurepulse.services.normalization.schema_normalizer import SchemaNormalizer

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def pipeline_settings() -> PipelineSettings:
    """Pipeline settings independent of the local environment."""
    return PipelineSettings(
        DEFAULT_COUNTRY="BH",
        REPORTING_CURRENCY="USD",
        EXPENSE_LOAD_FACTOR=Decimal("0.15"),
        CONTEXT_MAX_CHARS=4000,
    )


@pytest.fixture
def normalizer(pipeline_settings) -> SchemaNormalizer:
    return SchemaNormalizer(pipeline_settings)


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with the full schema.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


def make_record(
    policy_number: str,
    premium: str = "1000",
    country: str = "BH",
    tenant_id: str = TENANT,
    **overrides: Any,
) -> PolicyRecord:
    """Build a canonical record with sensible defaults."""
    fields: Dict[str, Any] = {
        "tenant_id": tenant_id,
        "policy_number": policy_number,
        "premium": Decimal(premium),
        "country": country,
        "insurance_type": InsuranceType.CONVENTIONAL,
        "status": PolicyStatus.ACTIVE,
    }
    fields.update(overrides)
    return PolicyRecord(**fields)


@pytest.fixture
def sample_rows() -> List[Dict[str, Any]]:
    """Raw rows as a spreadsheet upload would deliver them."""
    return [
        {"Policy Number": "P-100", "Premium": "12,000", "Country": "SA"},
        {"Policy No": "P-200", "Gross Premium": "BHD 1,000", "Territory": "Bahrain", "Type": "Takaful"},
        {"Policy Number": "", "Premium": "500", "Country": "AE"},
        {"Policy Number": "P-300", "Premium": "(250)", "Country": "KW"},
    ]


@pytest.fixture
def record_factory():
    """Factory for canonical policy records."""
    return make_record
