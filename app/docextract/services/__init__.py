"""
Services package for the extraction pipeline.

Contains:
- polling: Deadline-bounded polling of remote operations
- document_client: OpenAI files/vector stores/responses client (and mock)
- ingestion: Upload and indexing workflow
- extraction: Structured-data extraction and normalization
- spreadsheet: Excel export
"""

from .extraction import ExtractionService
from .ingestion import IngestionService

__all__ = ["ExtractionService", "IngestionService"]
