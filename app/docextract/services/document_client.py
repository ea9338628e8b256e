"""
Client for the remote document storage, indexing and completion service.

The pipeline only depends on the ``DocumentServiceClient`` protocol; the
OpenAI implementation maps SDK objects into the pydantic records of
``models`` at this boundary so nothing downstream touches SDK types.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Protocol

from openai import AsyncOpenAI, OpenAIError

from ..models import FileIndexingResult, IndexingContainer, IndexingJob, RemoteFile
from .exceptions import RemoteServiceError

logger = logging.getLogger(__name__)


class DocumentServiceClient(Protocol):
    """Operations the pipeline needs from the remote service."""

    async def create_file(
        self, content: bytes, filename: str, content_type: str
    ) -> RemoteFile: ...

    async def create_container(
        self, name: str, expires_after_days: int
    ) -> IndexingContainer: ...

    async def get_container_status(self, container_id: str) -> str: ...

    async def create_indexing_job(
        self, container_id: str, file_ids: list[str]
    ) -> IndexingJob: ...

    async def get_indexing_job(self, job_id: str, container_id: str) -> IndexingJob: ...

    async def list_container_files(
        self, container_id: str
    ) -> list[FileIndexingResult]: ...

    async def create_completion(self, file_id: str, instruction: str) -> str: ...


@contextmanager
def _remote_call(operation: str) -> Iterator[None]:
    """Translate SDK and transport errors into RemoteServiceError."""
    try:
        yield
    except OpenAIError as e:
        logger.error("Remote call %s failed: %s", operation, e)
        raise RemoteServiceError(f"{operation} failed: {e}", operation=operation) from e


def _dump(value: Any) -> dict[str, Any] | None:
    """Convert an optional SDK model to a plain dict."""
    if value is None:
        return None
    if hasattr(value, "model_dump"):
        return value.model_dump()
    return dict(value)


class OpenAIDocumentClient:
    """
    DocumentServiceClient backed by the OpenAI Files, Vector Stores and
    Responses APIs.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        max_output_tokens: int = 100_000,
    ):
        """
        Initialize the client.

        Args:
            api_key: OpenAI API key.
            model: Model used for completions (must accept PDF file input).
            max_output_tokens: Output token cap per completion.
        """
        self.api_key = api_key
        self.model = model
        self.max_output_tokens = max_output_tokens
        self._client = None

    @property
    def client(self):
        """Lazy-load the async OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def create_file(
        self, content: bytes, filename: str, content_type: str
    ) -> RemoteFile:
        with _remote_call("files.create"):
            uploaded = await self.client.files.create(
                file=(filename, content, content_type),
                purpose="user_data",
            )
        return RemoteFile(id=uploaded.id, filename=getattr(uploaded, "filename", None))

    async def create_container(
        self, name: str, expires_after_days: int
    ) -> IndexingContainer:
        with _remote_call("vector_stores.create"):
            store = await self.client.vector_stores.create(
                name=name,
                expires_after={"anchor": "last_active_at", "days": expires_after_days},
            )
        return IndexingContainer(id=store.id, name=store.name, status=store.status)

    async def get_container_status(self, container_id: str) -> str:
        with _remote_call("vector_stores.retrieve"):
            store = await self.client.vector_stores.retrieve(container_id)
        return store.status

    async def create_indexing_job(
        self, container_id: str, file_ids: list[str]
    ) -> IndexingJob:
        with _remote_call("vector_stores.file_batches.create"):
            batch = await self.client.vector_stores.file_batches.create(
                vector_store_id=container_id,
                file_ids=file_ids,
            )
        return self._to_job(batch, container_id)

    async def get_indexing_job(self, job_id: str, container_id: str) -> IndexingJob:
        with _remote_call("vector_stores.file_batches.retrieve"):
            batch = await self.client.vector_stores.file_batches.retrieve(
                job_id,
                vector_store_id=container_id,
            )
        return self._to_job(batch, container_id)

    async def list_container_files(
        self, container_id: str
    ) -> list[FileIndexingResult]:
        results: list[FileIndexingResult] = []
        with _remote_call("vector_stores.files.list"):
            # The paginator fetches follow-up pages while iterating
            async for entry in self.client.vector_stores.files.list(
                vector_store_id=container_id
            ):
                results.append(
                    FileIndexingResult(
                        file_id=entry.id,
                        status=entry.status,
                        last_error=_dump(entry.last_error),
                    )
                )
        return results

    async def create_completion(self, file_id: str, instruction: str) -> str:
        with _remote_call("responses.create"):
            response = await self.client.responses.create(
                model=self.model,
                input=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "input_file", "file_id": file_id},
                            {"type": "input_text", "text": instruction},
                        ],
                    }
                ],
                max_output_tokens=self.max_output_tokens,
            )
        return response.output_text or ""

    @staticmethod
    def _to_job(batch: Any, container_id: str) -> IndexingJob:
        counts = _dump(getattr(batch, "file_counts", None))
        return IndexingJob(
            id=batch.id,
            vector_store_id=getattr(batch, "vector_store_id", None) or container_id,
            status=batch.status,
            file_counts=counts,
        )


# =============================================================================
# Singleton Factory
# =============================================================================

_document_client: DocumentServiceClient | None = None


def get_document_client() -> DocumentServiceClient:
    """Get or create the remote client singleton (mock mode without an API key)."""
    global _document_client
    if _document_client is None:
        from ..config import get_settings
        from .mock_client import MockDocumentClient

        settings = get_settings()
        if settings.openai_api_key:
            _document_client = OpenAIDocumentClient(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                max_output_tokens=settings.max_output_tokens,
            )
        else:
            logger.warning(
                "Document client running in MOCK MODE. Set OPENAI_API_KEY in .env for real extraction."
            )
            _document_client = MockDocumentClient()
    return _document_client
