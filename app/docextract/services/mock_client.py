"""
In-memory stand-in for the remote document service.

Used in mock mode (no OPENAI_API_KEY) and as the fake in tests. Job and
container statuses are scripted: each poll consumes the next value of the
script and the last value repeats forever.
"""

import itertools
import json
import logging
from typing import Any, Callable

from ..models import FileIndexingResult, IndexingContainer, IndexingJob, RemoteFile

logger = logging.getLogger(__name__)


MOCK_EXTRACTION: dict[str, Any] = {
    "tables": [
        {
            "tableName": "Table 1",
            "columns": ["Item", "Part Number", "Description", "Qty"],
            "rows": [
                {"Item": "1", "Part Number": "MOCK-1001", "Description": "Bracket", "Qty": "2"},
                {"Item": "2", "Part Number": "MOCK-1002", "Description": "Fastener M6", "Qty": "8"},
            ],
        },
        {
            "tableName": "BOND BOM",
            "columns": ["Part Number", "Material"],
            "rows": [{"Part Number": "MOCK-1001", "Material": "Carbon prepreg"}],
        },
    ],
    "keyFields": [
        {"field": "Part Number", "value": "MOCK-ASSY-001"},
        {"field": "Drawn By", "value": "mock@example.com"},
    ],
    "processSteps": [
        {"step": 1, "text": "Laminate plies per stack"},
        {"step": 2, "text": "Cure per cycle"},
    ],
    "notes": [{"note": "DEVELOPMENT MODE: mock extraction, set OPENAI_API_KEY."}],
    "idIndex": [
        {"id": "MOCK-1001", "type": "part_number", "foundIn": "table:Table 1"},
        {"id": "MOCK-1001", "type": "part_number", "foundIn": "table:BOND BOM"},
        {"id": "mock@example.com", "type": "email", "foundIn": "keyFields"},
    ],
}


class MockDocumentClient:
    """
    DocumentServiceClient that keeps everything in memory.

    Attributes:
        calls: Ordered log of (operation, arguments) tuples.
    """

    def __init__(
        self,
        job_statuses: list[str] | None = None,
        container_statuses: list[str] | None = None,
        file_status: str = "completed",
        file_last_error: dict[str, Any] | None = None,
        register_files: bool = True,
        completion: str | Callable[[str, str], str] | None = None,
    ):
        """
        Initialize the mock client.

        Args:
            job_statuses: Statuses returned by successive job polls.
            container_statuses: Statuses returned by successive container polls.
            file_status: Per-file status reported once a job is listed.
            file_last_error: Per-file error detail reported with the status.
            register_files: If False, jobs never produce per-file entries.
            completion: Raw completion text, or a callable (file_id, instruction)
                returning it. Defaults to a canned engineering-drawing extraction.
        """
        self.job_statuses = job_statuses or ["in_progress", "completed"]
        self.container_statuses = container_statuses or ["completed"]
        self.file_status = file_status
        self.file_last_error = file_last_error
        self.register_files = register_files
        self.completion = completion
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

        self._ids = itertools.count(1)
        self._files: dict[str, RemoteFile] = {}
        self._containers: dict[str, list[FileIndexingResult]] = {}
        self._job_polls: dict[str, Any] = {}
        self._container_polls: dict[str, Any] = {}

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids):06d}"

    @staticmethod
    def _script(statuses: list[str]):
        """Yield the scripted statuses, repeating the last one."""
        yield from statuses
        while True:
            yield statuses[-1]

    def poll_count(self, operation: str) -> int:
        """Number of recorded calls to ``operation``."""
        return sum(1 for name, _ in self.calls if name == operation)

    async def create_file(
        self, content: bytes, filename: str, content_type: str
    ) -> RemoteFile:
        self.calls.append(("create_file", (len(content), filename, content_type)))
        remote = RemoteFile(id=self._next_id("file-mock"), filename=filename)
        self._files[remote.id] = remote
        return remote

    async def create_container(
        self, name: str, expires_after_days: int
    ) -> IndexingContainer:
        self.calls.append(("create_container", (name, expires_after_days)))
        container = IndexingContainer(
            id=self._next_id("vs_mock"), name=name, status="completed"
        )
        self._containers[container.id] = []
        self._container_polls[container.id] = self._script(self.container_statuses)
        return container

    async def get_container_status(self, container_id: str) -> str:
        self.calls.append(("get_container_status", (container_id,)))
        return next(self._container_polls[container_id])

    async def create_indexing_job(
        self, container_id: str, file_ids: list[str]
    ) -> IndexingJob:
        self.calls.append(("create_indexing_job", (container_id, tuple(file_ids))))
        job_id = self._next_id("vsfb_mock")
        self._job_polls[job_id] = (container_id, file_ids, self._script(self.job_statuses))
        return IndexingJob(id=job_id, vector_store_id=container_id, status="in_progress")

    async def get_indexing_job(self, job_id: str, container_id: str) -> IndexingJob:
        self.calls.append(("get_indexing_job", (job_id, container_id)))
        owner, file_ids, script = self._job_polls[job_id]
        status = next(script)

        if status in ("completed", "failed") and self.register_files:
            entries = self._containers[owner]
            known = {e.file_id for e in entries}
            for file_id in file_ids:
                if file_id not in known:
                    entries.append(
                        FileIndexingResult(
                            file_id=file_id,
                            status=self.file_status,
                            last_error=self.file_last_error,
                        )
                    )

        return IndexingJob(id=job_id, vector_store_id=owner, status=status)

    async def list_container_files(
        self, container_id: str
    ) -> list[FileIndexingResult]:
        self.calls.append(("list_container_files", (container_id,)))
        return list(self._containers.get(container_id, []))

    async def create_completion(self, file_id: str, instruction: str) -> str:
        self.calls.append(("create_completion", (file_id,)))
        if callable(self.completion):
            return self.completion(file_id, instruction)
        if self.completion is not None:
            return self.completion
        logger.info("Returning mock extraction for %s", file_id)
        return json.dumps(MOCK_EXTRACTION)
