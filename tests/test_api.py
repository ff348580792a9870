"""Test API endpoints."""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import status

from insurepulse.dependencies import (
    get_aggregation_engine,
    get_context_builder,
    get_ingestion_service,
    get_query_service,
)
from insurepulse.main import app
from insurepulse.schemas.records import (
    ActivePolicy,
    BatchOutcome,
    DefectReason,
    InsuranceType,
    QueryAnswer,
    RejectedRow,
    UploadOutcome,
)
from insurepulse.services.portfolio.aggregation_engine import build_snapshot
from insurepulse.services.portfolio.context_builder import ContextBuilder
from insurepulse.utils.exceptions import APIClientError, APITimeoutError, StorageFailure

TENANT_HEADERS = {"X-Tenant-ID": "tenant-a"}

DEFECT = RejectedRow(
    row_index=2,
    reason=DefectReason.MISSING_POLICY_NUMBER,
    message="Row has no policy number",
    field="policy_number",
)


@pytest.fixture
def snapshot():
    policies = [
        ActivePolicy("P-1", Decimal("100000.00"), "SA", "Motor", InsuranceType.TAKAFUL),
        ActivePolicy("P-2", Decimal("50000.00"), "BH", "Property", InsuranceType.CONVENTIONAL),
    ]
    return build_snapshot("tenant-a", policies, {"P-1": Decimal("60000.00")}, Decimal("0.15"))


@pytest.fixture
def mock_ingestion_service():
    service = Mock()
    service.ingest = AsyncMock(
        return_value=UploadOutcome(
            accepted=2,
            rejected=1,
            inserted=1,
            updated=1,
            unchanged=0,
            superseded=0,
            outcome=BatchOutcome.PARTIALLY_REJECTED,
            defects=(DEFECT,),
        )
    )
    app.dependency_overrides[get_ingestion_service] = lambda: service
    return service


@pytest.fixture
def mock_aggregation_engine(snapshot):
    engine = Mock()
    engine.compute_snapshot = AsyncMock(return_value=snapshot)
    app.dependency_overrides[get_aggregation_engine] = lambda: engine
    app.dependency_overrides[get_context_builder] = lambda: ContextBuilder(max_chars=4000, currency="USD")
    return engine


@pytest.fixture
def mock_query_service():
    service = Mock()
    service.answer = AsyncMock(
        return_value=QueryAnswer(
            query="Which country is worst?",
            response="Saudi Arabia.",
            context="Portfolio Summary:\n",
            created_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        )
    )
    app.dependency_overrides[get_query_service] = lambda: service
    return service


class TestUploads:
    """POST /api/v1/portfolio/uploads."""

    def test_upload(self, test_client, mock_ingestion_service):
        rows = [{"Policy Number": "P-100", "Premium": "12,000", "Country": "SA"}]

        response = test_client.post("/api/v1/portfolio/uploads", json={"rows": rows}, headers=TENANT_HEADERS)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["outcome"] == "partially-rejected"
        assert data["accepted"] == 2
        assert data["inserted"] == 1
        assert data["updated"] == 1
        assert data["defects"] == [
            {
                "row_index": 2,
                "reason": "missing_policy_number",
                "field": "policy_number",
                "message": "Row has no policy number",
            }
        ]
        mock_ingestion_service.ingest.assert_awaited_once_with(rows, "tenant-a")

    def test_storage_failure(self, test_client, mock_ingestion_service):
        mock_ingestion_service.ingest.side_effect = StorageFailure("timeout", defects=[DEFECT])

        response = test_client.post(
            "/api/v1/portfolio/uploads",
            json={"rows": [{"Policy Number": "P-1"}]},
            headers=TENANT_HEADERS,
        )

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        data = response.json()
        assert data["outcome"] == "aborted"
        assert data["error"]
        assert data["defects"][0]["row_index"] == 2

    def test_missing_tenant(self, test_client, mock_ingestion_service):
        response = test_client.post("/api/v1/portfolio/uploads", json={"rows": []})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        mock_ingestion_service.ingest.assert_not_called()

    def test_blank_tenant(self, test_client, mock_ingestion_service):
        response = test_client.post("/api/v1/portfolio/uploads", json={"rows": []}, headers={"X-Tenant-ID": "  "})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_body_must_have_rows(self, test_client, mock_ingestion_service):
        response = test_client.post("/api/v1/portfolio/uploads", json={}, headers=TENANT_HEADERS)

        assert response.status_code == 422


class TestSummary:
    """GET /api/v1/portfolio/summary and /context."""

    def test_summary(self, test_client, mock_aggregation_engine):
        response = test_client.get("/api/v1/portfolio/summary", headers=TENANT_HEADERS)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["policy_count"] == 2
        assert Decimal(data["total_premium"]) == Decimal("150000")
        assert data["loss_ratio"] == pytest.approx(0.4)
        assert data["combined_ratio"] == pytest.approx(0.46)
        assert data["takaful_percentage"] == pytest.approx(2 / 3)
        assert [row["key"] for row in data["by_country"]] == ["SA", "BH"]
        assert [row["key"] for row in data["by_line_of_business"]] == ["Motor", "Property"]
        mock_aggregation_engine.compute_snapshot.assert_awaited_once_with("tenant-a")

    def test_summary_storage_failure(self, test_client, mock_aggregation_engine):
        mock_aggregation_engine.compute_snapshot.side_effect = StorageFailure("read timeout")

        response = test_client.get("/api/v1/portfolio/summary", headers=TENANT_HEADERS)

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE

    def test_summary_requires_tenant(self, test_client, mock_aggregation_engine):
        response = test_client.get("/api/v1/portfolio/summary")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_context(self, test_client, mock_aggregation_engine):
        response = test_client.get("/api/v1/portfolio/context", headers=TENANT_HEADERS)

        assert response.status_code == status.HTTP_200_OK
        context = response.json()["context"]
        assert context.startswith("Portfolio Summary:\n- Total Policies: 2\n")
        assert "- Loss Ratio: 40.0%" in context


class TestQuery:
    """POST /api/v1/portfolio/query."""

    def test_query(self, test_client, mock_query_service):
        response = test_client.post(
            "/api/v1/portfolio/query",
            json={"query": "Which country is worst?"},
            headers=TENANT_HEADERS,
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["query"] == "Which country is worst?"
        assert data["response"] == "Saudi Arabia."
        assert data["created_at"].startswith("2024-05-01T12:00:00")
        mock_query_service.answer.assert_awaited_once_with("tenant-a", "Which country is worst?")

    def test_blank_query(self, test_client, mock_query_service):
        mock_query_service.answer.side_effect = ValueError("Query is required")

        response = test_client.post("/api/v1/portfolio/query", json={"query": "  "}, headers=TENANT_HEADERS)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"] == "Query is required"

    @pytest.mark.parametrize("error", [APIClientError("boom"), APITimeoutError("slow")])
    def test_completion_failure(self, test_client, mock_query_service, error):
        mock_query_service.answer.side_effect = error

        response = test_client.post("/api/v1/portfolio/query", json={"query": "trends?"}, headers=TENANT_HEADERS)

        assert response.status_code == status.HTTP_502_BAD_GATEWAY

    def test_query_requires_tenant(self, test_client, mock_query_service):
        response = test_client.post("/api/v1/portfolio/query", json={"query": "trends?"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestHealth:
    """GET /health."""

    def test_health(self, test_client):
        db_client = Mock()
        db_client.health_check = AsyncMock(return_value={"status": "healthy", "connected": True})
        app.state.db_client = db_client
        try:
            response = test_client.get("/health")
        finally:
            del app.state.db_client

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert data["service"] == "InsurePulse"

    def test_health_degraded(self, test_client):
        db_client = Mock()
        db_client.health_check = AsyncMock(return_value={"status": "unhealthy", "connected": False})
        app.state.db_client = db_client
        try:
            response = test_client.get("/health")
        finally:
            del app.state.db_client

        assert response.json()["status"] == "degraded"
