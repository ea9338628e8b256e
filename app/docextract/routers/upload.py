"""
Router for the upload endpoint.

Handles:
- PDF upload, vector store indexing and per-file readiness check
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Request, UploadFile

from ..config import Settings, get_settings
from ..models import UploadResponse
from ..services.exceptions import InvalidInputError, PipelineError
from ..services.ingestion import IngestionService, get_ingestion_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["upload"])


@router.post("/upload", response_model=UploadResponse)
async def upload_document(
    request: Request,
    file: Annotated[UploadFile | None, File(description="PDF file to index")] = None,
    ingestion: IngestionService = Depends(get_ingestion_service),
    settings: Settings = Depends(get_settings),
) -> UploadResponse:
    """
    Upload a PDF and wait until it is indexed.

    The file is stored remotely with its original name and content type,
    added to a new vector store, and the indexing batch is polled until it
    finishes. Polling stops if the client disconnects.
    """
    if file is None:
        raise InvalidInputError("No file uploaded (field name must be 'file').")

    try:
        # Read at most one byte past the limit
        file_bytes = await file.read(settings.max_upload_bytes + 1)

        if not file_bytes:
            raise InvalidInputError("Empty file provided")

        if len(file_bytes) > settings.max_upload_bytes:
            raise InvalidInputError(
                f"File too large (limit {settings.max_upload_bytes} bytes)"
            )

        logger.info("Uploading %s (%d bytes)", file.filename, len(file_bytes))

        outcome = await ingestion.ingest(
            file_bytes,
            file.filename,
            file.content_type,
            should_cancel=request.is_disconnected,
        )

        return UploadResponse(
            file_id=outcome.file_id,
            vector_store_id=outcome.container_id,
            batch_id=outcome.job_id,
            indexed_files=outcome.indexed_files(),
        )

    except PipelineError:
        raise
    except Exception as e:
        logger.exception("Unexpected error during upload")
        raise PipelineError(f"Upload failed: {e}") from e
    finally:
        await file.close()
