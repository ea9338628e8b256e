"""
Router for the extraction endpoint.
"""

import logging

from fastapi import APIRouter, Depends

from ..config import Settings, get_settings
from ..models import AskResponse
from ..services.exceptions import InvalidInputError, PipelineError
from ..services.extraction import ExtractionService, get_extraction_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ask", tags=["ask"])


@router.get("/{file_id}", response_model=AskResponse)
async def ask_document(
    file_id: str,
    extraction: ExtractionService = Depends(get_extraction_service),
    settings: Settings = Depends(get_settings),
) -> AskResponse:
    """
    Extract tables, title-block fields, process steps, notes and ids
    from an uploaded PDF.

    Example: GET /ask/file-abc123
    """
    if not file_id.startswith(settings.file_id_prefix):
        raise InvalidInputError(
            f"Invalid fileId. Expected a path param like /ask/{settings.file_id_prefix}..."
        )

    try:
        data = await extraction.extract(file_id)
    except PipelineError:
        raise
    except Exception as e:
        logger.exception("Unexpected error during extraction of %s", file_id)
        raise PipelineError(f"Ask failed: {e}") from e

    return AskResponse(file_id=file_id, data=data)
