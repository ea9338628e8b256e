"""Pytest configuration and fixtures."""

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from app.docextract.main import app
from app.docextract.services.extraction import ExtractionService, get_extraction_service
from app.docextract.services.ingestion import IngestionService, get_ingestion_service
from app.docextract.services.mock_client import MockDocumentClient


def make_ingestion(client: MockDocumentClient, **overrides) -> IngestionService:
    """Ingestion service with polling fast enough for tests."""
    options = {
        "poll_interval": 0.001,
        "job_timeout": 2.0,
        "container_timeout": 2.0,
    }
    options.update(overrides)
    return IngestionService(client, **options)


class FakeClock:
    """Deterministic clock whose sleep advances time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_client() -> MockDocumentClient:
    """In-memory remote service: job completes on the second poll."""
    return MockDocumentClient()


@pytest.fixture
def client(mock_client: MockDocumentClient) -> Generator[TestClient, None, None]:
    """Create a test client wired to the mock remote service."""
    app.dependency_overrides[get_ingestion_service] = lambda: make_ingestion(mock_client)
    app.dependency_overrides[get_extraction_service] = lambda: ExtractionService(
        mock_client, model="mock-model"
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Minimal single-page PDF."""
    return b"""%PDF-1.4
1 0 obj
<< /Type /Catalog /Pages 2 0 R >>
endobj
2 0 obj
<< /Type /Pages /Kids [3 0 R] /Count 1 >>
endobj
3 0 obj
<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >>
endobj
trailer
<< /Size 4 /Root 1 0 R >>
%%EOF"""


@pytest.fixture
def ingestion_factory():
    """Factory for fast-polling ingestion services."""
    return make_ingestion
