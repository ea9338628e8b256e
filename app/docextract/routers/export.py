"""
Router for the Excel export endpoint.
"""

import logging

from fastapi import APIRouter, Request, Response

from ..services.exceptions import ExportError, InvalidInputError, PipelineError
from ..services.spreadsheet import XLSX_MEDIA_TYPE, build_workbook, tables_from_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/export", tags=["export"])


@router.post("/excel")
async def export_excel(request: Request) -> Response:
    """
    Export extracted tables as an .xlsx file with one sheet per table.

    Body: the full /ask response ({ok, data}), its data object, or just
    {tables: [...]}.
    """
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidInputError(f"Request body is not valid JSON: {e}") from e

    tables = tables_from_payload(body)

    try:
        content = build_workbook(tables)
    except PipelineError:
        raise
    except Exception as e:
        logger.exception("Unexpected error during Excel export")
        raise ExportError(f"Excel export failed: {e}") from e

    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="extracted.xlsx"'},
    )
