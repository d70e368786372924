"""Bank movement ingestion: deduplication, budget matching and transfer detection."""

__version__ = "0.1.0"
