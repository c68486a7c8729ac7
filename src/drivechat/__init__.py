"""Document chat service: Drive ingestion, session retrieval and provider fallback."""

__version__ = "0.1.0"
