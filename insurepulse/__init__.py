"""InsurePulse portfolio ingestion and analytics core."""

__version__ = "0.1.0"
