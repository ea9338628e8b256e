"""
Upload workflow: store the file remotely and wait until it is indexed.

Each upload runs a strictly sequential state machine::

    RECEIVED -> UPLOADED -> CONTAINER_CREATED -> JOB_SUBMITTED -> JOB_POLLING
      -> JOB_COMPLETED | JOB_FAILED | JOB_TIMEOUT
      -> PER_FILE_CHECK -> FILE_READY | FILE_MISSING | FILE_FAILED

A file is ready only when its indexing job completed AND its own
per-file result is not failed. Any failure ends the request; nothing is
retried and the remote job is never cancelled (the container expires on
its own).
"""

import logging
import re
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field

from ..config import Settings, get_settings
from ..models import (
    ContainerStatus,
    FileIndexingResult,
    IndexedFileSummary,
    IndexingContainer,
    IndexingJob,
    JobStatus,
    RemoteFile,
)
from .document_client import DocumentServiceClient, get_document_client
from .exceptions import (
    InternalInconsistencyError,
    RemoteOperationFailed,
    RemoteOperationTimedOut,
)
from .polling import await_completion

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "upload.pdf"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class IngestionState(str, Enum):
    """States of a single upload."""

    RECEIVED = "received"
    UPLOADED = "uploaded"
    CONTAINER_CREATED = "container_created"
    JOB_SUBMITTED = "job_submitted"
    JOB_POLLING = "job_polling"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    JOB_TIMEOUT = "job_timeout"
    PER_FILE_CHECK = "per_file_check"
    FILE_READY = "file_ready"
    FILE_MISSING = "file_missing"
    FILE_FAILED = "file_failed"


class IngestionOutcome(BaseModel):
    """Result of a successful upload: the file is ready for extraction."""

    file_id: str
    container_id: str
    job_id: str
    filename: str
    content_type: str
    job: IndexingJob
    file_results: list[FileIndexingResult] = Field(default_factory=list)
    state: IngestionState = IngestionState.FILE_READY

    def indexed_files(self) -> list[IndexedFileSummary]:
        """Per-file statuses for the upload response."""
        return [IndexedFileSummary(id=r.file_id, status=r.status) for r in self.file_results]


def sanitize_filename(filename: str | None) -> str:
    """
    Strip directory components from a client-supplied filename.

    Nothing else is altered: the remote service picks a parser from the
    extension, so the name must reach it unchanged.
    """
    name = re.split(r"[\\/]", filename or "")[-1].strip()
    if name in ("", ".", ".."):
        return DEFAULT_FILENAME
    return name


class IngestionService:
    """
    Drives the upload workflow against a DocumentServiceClient.

    Timeouts for container readiness and job completion are separate
    and configured independently.
    """

    def __init__(
        self,
        client: DocumentServiceClient,
        poll_interval: float = 1.5,
        job_timeout: float = 90.0,
        container_timeout: float = 120.0,
        max_poll_interval: float | None = None,
        backoff_factor: float = 1.0,
        expires_after_days: int = 7,
        await_container_ready: bool = False,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.job_timeout = job_timeout
        self.container_timeout = container_timeout
        self.max_poll_interval = max_poll_interval
        self.backoff_factor = backoff_factor
        self.expires_after_days = expires_after_days
        self.await_container_ready = await_container_ready

    @classmethod
    def from_settings(
        cls, client: DocumentServiceClient, settings: Settings
    ) -> "IngestionService":
        return cls(
            client,
            poll_interval=settings.poll_interval_seconds,
            job_timeout=settings.indexing_job_timeout_seconds,
            container_timeout=settings.container_ready_timeout_seconds,
            max_poll_interval=settings.poll_max_interval_seconds,
            backoff_factor=settings.poll_backoff_factor,
            expires_after_days=settings.vector_store_expiry_days,
            await_container_ready=settings.await_container_ready,
        )

    # -------------------------------------------------------------------------
    # Workflow
    # -------------------------------------------------------------------------

    async def ingest(
        self,
        content: bytes,
        filename: str | None,
        content_type: str | None,
        should_cancel: Callable[[], Awaitable[bool]] | None = None,
    ) -> IngestionOutcome:
        """
        Upload a file, index it and verify it is ready for extraction.

        Args:
            content: Raw file bytes.
            filename: Original filename (path components are stripped).
            content_type: Declared content type, forwarded unmodified.
            should_cancel: Optional coroutine function; polling stops when it
                returns True.

        Returns:
            IngestionOutcome for a file that is ready for extraction.

        Raises:
            RemoteOperationFailed: The job or the per-file indexing failed.
            RemoteOperationTimedOut: The job (or container) did not finish in time.
            InternalInconsistencyError: The job completed but the file has no
                per-file result.
            OperationCancelled: ``should_cancel`` reported True while polling.
            RemoteServiceError: A remote call errored out.
        """
        safe_name = sanitize_filename(filename)
        mime = content_type or DEFAULT_CONTENT_TYPE
        self._transition(IngestionState.RECEIVED, filename=safe_name, bytes=len(content))

        remote_file = await self.upload_file(content, safe_name, mime)
        self._transition(IngestionState.UPLOADED, fileId=remote_file.id)

        container = await self.create_container(safe_name)
        self._transition(IngestionState.CONTAINER_CREATED, vectorStoreId=container.id)

        job = await self.submit_job(container.id, remote_file.id)
        self._transition(IngestionState.JOB_SUBMITTED, batchId=job.id)

        job = await self.await_job(job, remote_file.id, should_cancel=should_cancel)
        self._transition(IngestionState.JOB_COMPLETED, batchId=job.id)

        if self.await_container_ready:
            await self.wait_for_container_ready(container.id, should_cancel=should_cancel)

        file_results = await self.verify_file(container.id, remote_file.id, job.id)
        self._transition(IngestionState.FILE_READY, fileId=remote_file.id)

        return IngestionOutcome(
            file_id=remote_file.id,
            container_id=container.id,
            job_id=job.id,
            filename=safe_name,
            content_type=mime,
            job=job,
            file_results=file_results,
        )

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def upload_file(self, content: bytes, filename: str, content_type: str) -> RemoteFile:
        """Step 1: store the bytes remotely with filename and content type intact."""
        return await self.client.create_file(content, filename, content_type)

    async def create_container(self, filename: str) -> IndexingContainer:
        """Step 2: create a container dedicated to this upload."""
        return await self.client.create_container(
            name=f"upload:{filename}",
            expires_after_days=self.expires_after_days,
        )

    async def submit_job(self, container_id: str, file_id: str) -> IndexingJob:
        """Step 3: add the file to the container as a new indexing job."""
        return await self.client.create_indexing_job(container_id, [file_id])

    async def await_job(
        self,
        job: IndexingJob,
        file_id: str,
        should_cancel: Callable[[], Awaitable[bool]] | None = None,
    ) -> IndexingJob:
        """Step 4: poll the job until it completes, fails or times out."""
        self._transition(IngestionState.JOB_POLLING, batchId=job.id)
        ids = {"fileId": file_id, "vectorStoreId": job.vector_store_id, "batchId": job.id}

        try:
            return await await_completion(
                lambda: self.client.get_indexing_job(job.id, job.vector_store_id),
                is_success=lambda j: j.status == JobStatus.COMPLETED,
                is_failure=lambda j: j.status == JobStatus.FAILED,
                timeout=self.job_timeout,
                poll_interval=self.poll_interval,
                max_interval=self.max_poll_interval,
                backoff_factor=self.backoff_factor,
                should_cancel=should_cancel,
                describe=f"file batch {job.id}",
            )
        except RemoteOperationFailed as e:
            self._transition(IngestionState.JOB_FAILED, batchId=job.id)
            raise RemoteOperationFailed(
                "File batch failed during vector store processing",
                last_status=e.last_status,
                batchStatus=_status_dump(e.last_status),
                **ids,
            ) from e
        except RemoteOperationTimedOut as e:
            self._transition(IngestionState.JOB_TIMEOUT, batchId=job.id)
            raise RemoteOperationTimedOut(
                f"Timed out waiting for file batch {job.id} "
                f"(last status: {getattr(e.last_status, 'status', e.last_status)})",
                last_status=e.last_status,
                elapsed=e.elapsed,
                lastStatus=_status_dump(e.last_status),
                timeoutSeconds=self.job_timeout,
                **ids,
            ) from e

    async def wait_for_container_ready(
        self,
        container_id: str,
        should_cancel: Callable[[], Awaitable[bool]] | None = None,
    ) -> str:
        """Poll the container until it reports completed (fails if it expired)."""
        try:
            return await await_completion(
                lambda: self.client.get_container_status(container_id),
                is_success=lambda s: s == ContainerStatus.COMPLETED,
                is_failure=lambda s: s == ContainerStatus.EXPIRED,
                timeout=self.container_timeout,
                poll_interval=self.poll_interval,
                max_interval=self.max_poll_interval,
                backoff_factor=self.backoff_factor,
                should_cancel=should_cancel,
                describe=f"vector store {container_id}",
            )
        except RemoteOperationFailed as e:
            raise RemoteOperationFailed(
                "Vector store expired before it became ready",
                last_status=e.last_status,
                vectorStoreId=container_id,
                vectorStoreStatus=e.last_status,
            ) from e
        except RemoteOperationTimedOut as e:
            raise RemoteOperationTimedOut(
                e.message,
                last_status=e.last_status,
                elapsed=e.elapsed,
                vectorStoreId=container_id,
                lastStatus=e.last_status,
                timeoutSeconds=self.container_timeout,
            ) from e

    async def verify_file(
        self, container_id: str, file_id: str, job_id: str
    ) -> list[FileIndexingResult]:
        """
        Step 5: check the per-file result, which job completion does not imply.

        Returns:
            All per-file results of the container.
        """
        self._transition(IngestionState.PER_FILE_CHECK, fileId=file_id)
        results = await self.client.list_container_files(container_id)
        ids = {"fileId": file_id, "vectorStoreId": container_id, "batchId": job_id}

        entry = next((r for r in results if r.file_id == file_id), None)

        if entry is None:
            self._transition(IngestionState.FILE_MISSING, fileId=file_id)
            raise InternalInconsistencyError(
                "File not found in vector store after batch completed",
                files=[{"id": r.file_id, "status": r.status} for r in results],
                **ids,
            )

        if entry.status == JobStatus.FAILED:
            self._transition(IngestionState.FILE_FAILED, fileId=file_id)
            raise RemoteOperationFailed(
                "Vector store indexing failed for this file",
                last_status=entry.status,
                vectorStoreFile={
                    "id": entry.file_id,
                    "status": entry.status,
                    "last_error": entry.last_error,
                },
                **ids,
            )

        return results

    @staticmethod
    def _transition(state: IngestionState, **details: Any) -> None:
        logger.info("Ingestion -> %s %s", state.value, details)


def _status_dump(status: Any) -> Any:
    """JSON-safe form of a polled status."""
    if hasattr(status, "model_dump"):
        return status.model_dump()
    return status


# =============================================================================
# Singleton Factory
# =============================================================================

_ingestion_service: IngestionService | None = None


def get_ingestion_service() -> IngestionService:
    """Get or create the ingestion service singleton."""
    global _ingestion_service
    if _ingestion_service is None:
        _ingestion_service = IngestionService.from_settings(
            get_document_client(), get_settings()
        )
    return _ingestion_service
