"""
Pydantic models for the PDF extraction pipeline.

Defines strict types for the remote indexing records, the normalized
extraction output and the HTTP response bodies. Wire names are camelCase
aliases; Python attributes stay snake_case.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for models serialized with camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Remote Service Records
# =============================================================================


class JobStatus(str, Enum):
    """Indexing job (file batch) statuses reported by the remote service."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ContainerStatus(str, Enum):
    """Indexing container (vector store) statuses."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"


class RemoteFile(BaseModel):
    """A file stored by the remote service."""

    id: str = Field(..., min_length=1)
    filename: str | None = None


class IndexingContainer(BaseModel):
    """A vector store grouping uploaded files for retrieval."""

    id: str = Field(..., min_length=1)
    name: str | None = None
    status: str = ContainerStatus.COMPLETED.value


class IndexingJob(BaseModel):
    """
    Asynchronous act of adding files to a container (a file batch).

    Attributes:
        id: Batch identifier.
        vector_store_id: Owning container identifier.
        status: Job status, vocabulary owned by the remote service.
        file_counts: Optional per-status counters reported with the job.
    """

    id: str = Field(..., min_length=1)
    vector_store_id: str
    status: str
    file_counts: dict[str, int] | None = None


class FileIndexingResult(BaseModel):
    """
    Authoritative readiness signal for a single file within a container.

    Attributes:
        file_id: The file reference this entry describes.
        status: Per-file status (in_progress, completed, cancelled, failed).
        last_error: Error detail from the remote service, kept verbatim.
    """

    file_id: str
    status: str
    last_error: dict[str, Any] | None = None


# =============================================================================
# Upload Models
# =============================================================================


class IndexedFileSummary(BaseModel):
    """Short per-file status entry returned for observability."""

    id: str
    status: str


class UploadResponse(WireModel):
    """Response model for POST /upload."""

    ok: bool = True
    file_id: str = Field(..., alias="fileId")
    vector_store_id: str = Field(..., alias="vectorStoreId")
    batch_id: str = Field(..., alias="batchId")
    indexed_files: list[IndexedFileSummary] = Field(
        default_factory=list, alias="indexedFiles"
    )
    note: str = "File uploaded and indexed successfully"


# =============================================================================
# Extraction Models
# =============================================================================


class ExtractedTable(WireModel):
    """
    A table extracted from the document.

    Every row carries exactly the declared columns, with string values.
    """

    table_name: str = Field(..., alias="tableName")
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, str]] = Field(default_factory=list)


class KeyField(BaseModel):
    """A title-block style field (Part Number, Material, Drawn By, ...)."""

    field: str
    value: str


class ProcessStep(BaseModel):
    """A numbered process step."""

    step: int
    text: str


class DocumentNote(BaseModel):
    """One item from the NOTES section."""

    note: str


class IdIndexEntry(WireModel):
    """An identifier-like string and where it was found."""

    id: str
    type: str = "other"
    found_in: str = Field(default="other", alias="foundIn")


class IdAnalysis(BaseModel):
    """Cross-reference of identifiers by number of locations."""

    ids_found_in_multiple_tables: list[Any] = Field(default_factory=list)
    ids_found_in_single_location: list[Any] = Field(default_factory=list)


class DocumentTextBlock(BaseModel):
    """A block of running document text in reading order."""

    order: int
    content: str


class ExtractionMeta(WireModel):
    """Provenance of an extraction."""

    source_file_id: str = Field(..., alias="sourceFileId")
    generated_at_iso: str = Field(..., alias="generatedAtISO")
    model: str | None = None


class ExtractionData(WireModel):
    """Normalized extraction output."""

    document_text: list[DocumentTextBlock] = Field(
        default_factory=list, alias="documentText"
    )
    tables: list[ExtractedTable] = Field(default_factory=list)
    key_fields: list[KeyField] = Field(default_factory=list, alias="keyFields")
    process_steps: list[ProcessStep] = Field(default_factory=list, alias="processSteps")
    notes: list[DocumentNote] = Field(default_factory=list)
    id_index: list[IdIndexEntry] = Field(default_factory=list, alias="idIndex")
    id_analysis: IdAnalysis = Field(default_factory=IdAnalysis, alias="idAnalysis")
    meta: ExtractionMeta


class AskResponse(WireModel):
    """Response model for GET /ask/{fileId}."""

    ok: bool = True
    file_id: str = Field(..., alias="fileId")
    data: ExtractionData


# =============================================================================
# Export Models
# =============================================================================


class ExportTable(WireModel):
    """
    A loosely-typed table submitted for export.

    Built with ``from_raw`` so that any JSON value yields a table; unknown
    shapes degrade to empty columns/rows instead of failing validation.
    """

    table_name: str | None = Field(default=None, alias="tableName")
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Any) -> "ExportTable":
        """Coerce an arbitrary JSON value into an export table."""
        if not isinstance(raw, dict):
            return cls()

        name = raw.get("tableName")
        columns = raw.get("columns")
        rows = raw.get("rows")

        return cls(
            table_name=name if isinstance(name, str) else None,
            columns=[str(c) for c in columns] if isinstance(columns, list) else [],
            rows=[r if isinstance(r, dict) else {} for r in rows]
            if isinstance(rows, list)
            else [],
        )


# =============================================================================
# Misc
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy")
    message: str = Field(default="")
    version: str = Field(default="1.0.0")
