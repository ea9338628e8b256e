"""
Structured-data extraction from an indexed PDF.

Sends one completion request that references the uploaded file by id,
parses the reply strictly as JSON and normalizes it into the fixed
table/field schema. Malformed output is never repaired or retried.
"""

import json
import logging
import math
from datetime import datetime, timezone
from typing import Any

from ..config import get_settings
from ..models import (
    DocumentNote,
    DocumentTextBlock,
    ExtractedTable,
    ExtractionData,
    ExtractionMeta,
    IdAnalysis,
    IdIndexEntry,
    KeyField,
    ProcessStep,
)
from .document_client import DocumentServiceClient, get_document_client
from .exceptions import ResponseParseError

logger = logging.getLogger(__name__)


# =============================================================================
# Extraction Prompt
# =============================================================================

EXTRACTION_PROMPT = """
You are given a single-page engineering drawing PDF. Extract structured data and return JSON ONLY.

Output schema (must match exactly):
{
  "tables": [
    { "tableName": "string", "columns": ["string"], "rows": [ { "col": "value" } ] }
  ],
  "keyFields": [
    { "field": "string", "value": "string" }
  ],
  "processSteps": [
    { "step": "number", "text": "string" }
  ],
  "notes": [
    { "note": "string" }
  ],
  "idIndex": [
    { "id": "string", "type": "part_number|email|phone|other", "foundIn": "table:<name>|keyFields|processSteps|notes|other" }
  ]
}

Rules:
- JSON only. No markdown. No commentary.
- Tables: extract ALL BOM-style tables you see. Keep each table separate. Preserve column order.
- For each table row: include keys EXACTLY matching the table's columns. Use "" if a cell is blank.
- keyFields: capture title-block style fields (e.g., Part Number, Description, Classification, Mass, Material, Drawn By, Email, Phone, Issue/Revision, Date) when present.
- processSteps: capture numbered process steps in order.
- notes: capture the NOTES section as an array (one note per item).
- idIndex: list all identifier-like strings (part numbers/codes, emails, phone numbers). Keep IDs as strings; do not dedupe unless identical.

TABLE NAMING
- Name tables sequentially in reading order as:
  "Table 1", "Table 2", "Table 3", etc.
- ONLY override this default name if there is a clear, explicit label
  printed immediately above the table (e.g. "Stage 1: Laminate", "BOND BOM").
- If a label is used, it MUST be the exact text printed above the table.
- If there is any ambiguity, missing label, or uncertainty, use the default
  sequential name ("Table N").
- Never infer or invent table names.
""".strip()


# =============================================================================
# Normalization Helpers
# =============================================================================


def cell_text(value: Any) -> str:
    """
    Coerce a JSON value to the text stored in a table cell.

    null becomes "", booleans are lowercase, integral floats drop ".0" and
    nested containers are kept as compact JSON.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def normalize_row(columns: list[str], row: Any) -> dict[str, str]:
    """Emit exactly ``columns`` for a row, using "" for missing or null cells."""
    source = _as_dict(row)
    return {column: cell_text(source.get(column)) for column in columns}


def normalize_tables(raw_tables: Any) -> list[ExtractedTable]:
    """
    Normalize the model's tables.

    Tables without a usable name are called "Table N" by position.
    """
    tables: list[ExtractedTable] = []
    for index, raw in enumerate(_as_list(raw_tables), start=1):
        table = _as_dict(raw)
        columns = [cell_text(c) for c in _as_list(table.get("columns"))]
        rows = [normalize_row(columns, r) for r in _as_list(table.get("rows"))]

        name = table.get("tableName")
        if not isinstance(name, str) or not name.strip():
            name = f"Table {index}"

        tables.append(ExtractedTable(table_name=name, columns=columns, rows=rows))
    return tables


def _normalize_document_text(raw: Any) -> list[DocumentTextBlock]:
    blocks = []
    for index, item in enumerate(_as_list(raw), start=1):
        entry = _as_dict(item)
        order = entry.get("order")
        if not isinstance(order, int) or isinstance(order, bool):
            order = index
        blocks.append(DocumentTextBlock(order=order, content=cell_text(entry.get("content"))))
    return blocks


def _normalize_key_fields(raw: Any) -> list[KeyField]:
    return [
        KeyField(field=cell_text(entry.get("field")), value=cell_text(entry.get("value")))
        for entry in map(_as_dict, _as_list(raw))
    ]


def _normalize_process_steps(raw: Any) -> list[ProcessStep]:
    steps = []
    for index, item in enumerate(_as_list(raw), start=1):
        entry = _as_dict(item)
        try:
            step = int(entry.get("step"))
        except (TypeError, ValueError, OverflowError):
            step = index
        steps.append(ProcessStep(step=step, text=cell_text(entry.get("text"))))
    return steps


def _normalize_notes(raw: Any) -> list[DocumentNote]:
    notes = []
    for item in _as_list(raw):
        # Models sometimes return bare strings instead of {"note": ...}
        text = item.get("note") if isinstance(item, dict) else item
        notes.append(DocumentNote(note=cell_text(text)))
    return notes


def _normalize_id_index(raw: Any) -> list[IdIndexEntry]:
    entries = []
    for entry in map(_as_dict, _as_list(raw)):
        if entry.get("id") is None:
            continue
        entries.append(
            IdIndexEntry(
                id=cell_text(entry.get("id")),
                type=cell_text(entry.get("type")) or "other",
                found_in=cell_text(entry.get("foundIn")) or "other",
            )
        )
    return entries


def derive_id_analysis(id_index: list[IdIndexEntry]) -> IdAnalysis:
    """
    Group identifiers by where they were found.

    An id listed under two or more distinct ``table:`` locations goes to
    ``ids_found_in_multiple_tables``; an id seen in exactly one location
    goes to ``ids_found_in_single_location``.
    """
    locations: dict[str, list[str]] = {}
    for entry in id_index:
        seen = locations.setdefault(entry.id, [])
        if entry.found_in not in seen:
            seen.append(entry.found_in)

    multiple = []
    single = []
    for id_value, found_in in locations.items():
        tables = [loc for loc in found_in if loc.startswith("table:")]
        if len(tables) > 1:
            multiple.append({"id": id_value, "tables": [t[len("table:"):] for t in tables]})
        elif len(found_in) == 1:
            single.append({"id": id_value, "foundIn": found_in[0]})

    return IdAnalysis(
        ids_found_in_multiple_tables=multiple,
        ids_found_in_single_location=single,
    )


def _normalize_id_analysis(raw: Any, id_index: list[IdIndexEntry]) -> IdAnalysis:
    analysis = _as_dict(raw)
    multiple = analysis.get("ids_found_in_multiple_tables")
    single = analysis.get("ids_found_in_single_location")

    if isinstance(multiple, list) or isinstance(single, list):
        return IdAnalysis(
            ids_found_in_multiple_tables=_as_list(multiple),
            ids_found_in_single_location=_as_list(single),
        )
    return derive_id_analysis(id_index)


def normalize_extraction(
    parsed: dict[str, Any], file_id: str, model: str | None = None
) -> ExtractionData:
    """
    Enforce the output schema on a parsed model reply.

    Args:
        parsed: The JSON object returned by the model.
        file_id: Source file reference, recorded in ``meta``.
        model: Model name, recorded in ``meta``.

    Returns:
        ExtractionData with every section present.
    """
    id_index = _normalize_id_index(parsed.get("idIndex"))

    return ExtractionData(
        document_text=_normalize_document_text(parsed.get("documentText")),
        tables=normalize_tables(parsed.get("tables")),
        key_fields=_normalize_key_fields(parsed.get("keyFields")),
        process_steps=_normalize_process_steps(parsed.get("processSteps")),
        notes=_normalize_notes(parsed.get("notes")),
        id_index=id_index,
        id_analysis=_normalize_id_analysis(parsed.get("idAnalysis"), id_index),
        meta=ExtractionMeta(
            source_file_id=file_id,
            generated_at_iso=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            model=model,
        ),
    )


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def parse_model_output(raw_text: str, preview_chars: int = 1200) -> dict[str, Any]:
    """
    Parse the model reply strictly as a JSON object.

    Raises:
        ResponseParseError: The text is not JSON or not a JSON object. The
            error carries the first ``preview_chars`` characters.
    """
    try:
        parsed = json.loads(raw_text, parse_constant=_reject_constant)
    except ValueError as e:
        logger.error("Failed to parse extraction response: %s", raw_text[:500])
        raise ResponseParseError(
            "Model did not return valid JSON.", preview=raw_text[:preview_chars]
        ) from e

    if not isinstance(parsed, dict):
        raise ResponseParseError(
            "Model did not return a JSON object.", preview=raw_text[:preview_chars]
        )
    return parsed


# =============================================================================
# Extraction Service
# =============================================================================


class ExtractionService:
    """Requests and normalizes the extraction for an indexed file."""

    def __init__(
        self,
        client: DocumentServiceClient,
        model: str | None = None,
        preview_chars: int = 1200,
        instruction: str = EXTRACTION_PROMPT,
    ):
        self.client = client
        self.model = model
        self.preview_chars = preview_chars
        self.instruction = instruction

    async def extract(self, file_id: str) -> ExtractionData:
        """
        Extract structured data from a previously ingested file.

        Args:
            file_id: Reference returned by the upload workflow.

        Returns:
            Normalized ExtractionData.

        Raises:
            ResponseParseError: The model reply is not a JSON object.
            RemoteServiceError: The completion request failed.
        """
        logger.info("Requesting extraction for %s", file_id)
        raw_text = await self.client.create_completion(file_id, self.instruction)

        parsed = parse_model_output(raw_text, self.preview_chars)
        data = normalize_extraction(parsed, file_id, model=self.model)

        logger.info(
            "Extracted %d table(s), %d key field(s), %d id(s) from %s",
            len(data.tables),
            len(data.key_fields),
            len(data.id_index),
            file_id,
        )
        return data


_extraction_service: ExtractionService | None = None


def get_extraction_service() -> ExtractionService:
    """Get or create the extraction service singleton."""
    global _extraction_service
    if _extraction_service is None:
        settings = get_settings()
        _extraction_service = ExtractionService(
            get_document_client(),
            model=settings.openai_model,
            preview_chars=settings.preview_max_chars,
        )
    return _extraction_service
