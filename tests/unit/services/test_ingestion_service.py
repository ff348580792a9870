"""Unit tests for IngestionService."""

from unittest.mock import AsyncMock, Mock

import pytest

from insurepulse.schemas.records import BatchOutcome, CommitResult, DefectReason
from insurepulse.services.normalization.batch_validator import BatchValidator
from insurepulse.services.portfolio.ingestion_service import IngestionService
from insurepulse.utils.exceptions import StorageFailure

TENANT = "tenant-a"


@pytest.fixture
def mock_coordinator():
    coordinator = Mock()
    coordinator.commit = AsyncMock(return_value=CommitResult(inserted=2))
    return coordinator


@pytest.fixture
def service(normalizer, mock_coordinator):
    return IngestionService(BatchValidator(normalizer), mock_coordinator)


@pytest.mark.asyncio
async def test_partially_rejected_upload(service, mock_coordinator, sample_rows):
    outcome = await service.ingest(sample_rows, TENANT)

    assert outcome.outcome == BatchOutcome.PARTIALLY_REJECTED
    assert outcome.accepted == 2
    assert outcome.rejected == 2
    assert outcome.inserted == 2
    assert [defect.reason for defect in outcome.defects] == [
        DefectReason.MISSING_POLICY_NUMBER,
        DefectReason.NEGATIVE_PREMIUM,
    ]

    committed, tenant_id = mock_coordinator.commit.call_args.args
    assert tenant_id == TENANT
    assert [record.policy_number for record in committed] == ["P-100", "P-200"]


@pytest.mark.asyncio
async def test_clean_upload_is_committed(service, mock_coordinator):
    mock_coordinator.commit.return_value = CommitResult(inserted=1, updated=1, unchanged=0)

    outcome = await service.ingest(
        [{"Policy Number": "P-1", "Premium": "10"}, {"Policy Number": "P-2", "Premium": "20"}],
        TENANT,
    )

    assert outcome.outcome == BatchOutcome.COMMITTED
    assert (outcome.inserted, outcome.updated, outcome.unchanged) == (1, 1, 0)
    assert outcome.defects == ()


@pytest.mark.asyncio
async def test_superseded_rows_are_reported(service):
    outcome = await service.ingest(
        [{"Policy Number": "P-1", "Premium": "10"}, {"Policy Number": "P-1", "Premium": "20"}],
        TENANT,
    )

    assert outcome.accepted == 1
    assert outcome.superseded == 1
    assert outcome.outcome == BatchOutcome.COMMITTED


@pytest.mark.asyncio
async def test_nothing_accepted_skips_commit(service, mock_coordinator):
    outcome = await service.ingest([{"Premium": "10"}], TENANT)

    mock_coordinator.commit.assert_not_called()
    assert outcome.accepted == 0
    assert outcome.inserted == 0
    assert outcome.outcome == BatchOutcome.PARTIALLY_REJECTED


@pytest.mark.asyncio
async def test_empty_upload(service, mock_coordinator):
    outcome = await service.ingest([], TENANT)

    mock_coordinator.commit.assert_not_called()
    assert outcome.outcome == BatchOutcome.COMMITTED
    assert outcome.accepted == 0


@pytest.mark.asyncio
async def test_storage_failure_carries_defects(service, mock_coordinator, sample_rows):
    mock_coordinator.commit.side_effect = StorageFailure("timeout")

    with pytest.raises(StorageFailure) as exc_info:
        await service.ingest(sample_rows, TENANT)

    assert [defect.row_index for defect in exc_info.value.defects] == [2, 3]


@pytest.mark.asyncio
async def test_tenant_is_required(service, sample_rows):
    with pytest.raises(ValueError):
        await service.ingest(sample_rows, "")
