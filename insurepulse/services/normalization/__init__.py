"""Row normalization and batch validation services."""

from insurepulse.services.normalization.batch_validator import BatchValidator
from insurepulse.services.normalization.schema_normalizer import SchemaNormalizer

__all__ = [
    "BatchValidator",
    "SchemaNormalizer",
]
