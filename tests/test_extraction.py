"""Tests for extraction requests and output normalization."""

import json

import pytest

from app.docextract.models import IdIndexEntry
from app.docextract.services.exceptions import ResponseParseError
from app.docextract.services.extraction import (
    EXTRACTION_PROMPT,
    ExtractionService,
    cell_text,
    derive_id_analysis,
    normalize_extraction,
    normalize_row,
    normalize_tables,
    parse_model_output,
)
from app.docextract.services.mock_client import MOCK_EXTRACTION, MockDocumentClient


class TestCellText:
    """Tests for JSON value to cell text coercion."""

    def test_scalars(self):
        assert cell_text(None) == ""
        assert cell_text("A-100") == "A-100"
        assert cell_text(5) == "5"
        assert cell_text(2.5) == "2.5"
        assert cell_text(3.0) == "3"

    def test_booleans_are_lowercase(self):
        assert cell_text(True) == "true"
        assert cell_text(False) == "false"

    def test_containers_become_compact_json(self):
        assert cell_text({"a": 1}) == '{"a":1}'
        assert cell_text([1, "x"]) == '[1,"x"]'


class TestNormalizeRows:
    """Tests for row normalization."""

    def test_missing_cell_becomes_empty_string(self):
        """A row missing a declared column gets "" for it."""
        assert normalize_row(["id", "note"], {"id": 5}) == {"id": "5", "note": ""}

    def test_null_cell_becomes_empty_string(self):
        assert normalize_row(["id"], {"id": None}) == {"id": ""}

    def test_undeclared_keys_are_dropped(self):
        assert normalize_row(["id"], {"id": "1", "extra": "x"}) == {"id": "1"}

    def test_non_object_row_is_kept_blank(self):
        """Rows are never rejected, only blanked."""
        assert normalize_row(["a", "b"], "garbage") == {"a": "", "b": ""}


class TestNormalizeTables:
    """Tests for table normalization."""

    def test_positional_default_names(self):
        """Tables without a name are named by position."""
        tables = normalize_tables(
            [
                {"columns": ["a"], "rows": []},
                {"tableName": "BOND BOM", "columns": ["a"], "rows": []},
                {"tableName": "   ", "columns": ["a"], "rows": []},
            ]
        )
        assert [t.table_name for t in tables] == ["Table 1", "BOND BOM", "Table 3"]

    def test_columns_coerced_to_strings(self):
        tables = normalize_tables([{"columns": [1, "Qty"], "rows": [{"1": "x", "Qty": 2}]}])
        assert tables[0].columns == ["1", "Qty"]
        assert tables[0].rows == [{"1": "x", "Qty": "2"}]

    def test_malformed_tables_degrade_to_empty(self):
        tables = normalize_tables(["not a table", {"columns": "nope", "rows": "nope"}])
        assert [(t.columns, t.rows) for t in tables] == [([], []), ([], [])]

    def test_non_list_yields_no_tables(self):
        assert normalize_tables({"tableName": "x"}) == []
        assert normalize_tables(None) == []


class TestParseModelOutput:
    """Tests for strict JSON parsing of the model reply."""

    def test_valid_object(self):
        assert parse_model_output('{"tables": []}') == {"tables": []}

    def test_invalid_json_carries_bounded_preview(self):
        raw = "Sure! Here is the data: " + "x" * 5000

        with pytest.raises(ResponseParseError) as exc_info:
            parse_model_output(raw, preview_chars=1200)

        assert exc_info.value.preview == raw[:1200]
        payload = exc_info.value.to_payload()
        assert payload["error"] == "Model did not return valid JSON."
        assert len(payload["preview"]) == 1200

    def test_markdown_fenced_json_is_not_repaired(self):
        with pytest.raises(ResponseParseError):
            parse_model_output('```json\n{"tables": []}\n```')

    @pytest.mark.parametrize(
        "raw",
        [
            '{"processSteps": [{"step": Infinity, "text": "x"}]}',
            '{"tables": [{"rows": [{"a": NaN}]}]}',
            '{"v": -Infinity}',
        ],
    )
    def test_non_standard_constants_are_rejected(self, raw):
        with pytest.raises(ResponseParseError) as exc_info:
            parse_model_output(raw)
        assert exc_info.value.message == "Model did not return valid JSON."
        assert exc_info.value.preview == raw

    def test_non_object_json_is_rejected(self):
        with pytest.raises(ResponseParseError):
            parse_model_output("[1, 2, 3]")


class TestNormalizeExtraction:
    """Tests for the full normalized extraction."""

    def test_mock_extraction_sections(self):
        data = normalize_extraction(MOCK_EXTRACTION, "file-abc", model="gpt-4o")

        assert [t.table_name for t in data.tables] == ["Table 1", "BOND BOM"]
        assert data.key_fields[0].field == "Part Number"
        assert [s.step for s in data.process_steps] == [1, 2]
        assert len(data.notes) == 1
        assert data.meta.source_file_id == "file-abc"
        assert data.meta.model == "gpt-4o"
        assert data.meta.generated_at_iso.endswith("Z")

    def test_wire_names(self):
        dumped = normalize_extraction(MOCK_EXTRACTION, "file-abc").model_dump(by_alias=True)

        assert {"documentText", "tables", "idAnalysis", "meta"} <= dumped.keys()
        assert dumped["tables"][0]["tableName"] == "Table 1"
        assert dumped["meta"]["sourceFileId"] == "file-abc"
        assert "generatedAtISO" in dumped["meta"]

    def test_document_text_order_defaults_to_position(self):
        data = normalize_extraction(
            {"documentText": [{"content": "A"}, {"order": 7, "content": "B"}, "C"]}, "file-x"
        )
        assert [(b.order, b.content) for b in data.document_text] == [
            (1, "A"),
            (7, "B"),
            (3, ""),
        ]

    def test_loose_sections(self):
        data = normalize_extraction(
            {
                "notes": ["ALL DIMENSIONS IN MM", {"note": "DEBURR"}],
                "processSteps": [{"step": "3", "text": "Cure"}, {"text": "Trim"}],
                "idIndex": [{"id": 1234}, {"type": "email"}],
            },
            "file-x",
        )
        assert [n.note for n in data.notes] == ["ALL DIMENSIONS IN MM", "DEBURR"]
        assert [(s.step, s.text) for s in data.process_steps] == [(3, "Cure"), (2, "Trim")]
        assert [(e.id, e.type, e.found_in) for e in data.id_index] == [("1234", "other", "other")]

    def test_non_finite_step_falls_back_to_position(self):
        data = normalize_extraction(
            {"processSteps": [{"step": float("inf"), "text": "Cure"}, {"step": float("nan")}]},
            "file-x",
        )
        assert [s.step for s in data.process_steps] == [1, 2]

    def test_model_id_analysis_is_kept(self):
        data = normalize_extraction(
            {
                "idAnalysis": {
                    "ids_found_in_multiple_tables": ["P-1"],
                    "ids_found_in_single_location": "bad",
                }
            },
            "file-x",
        )
        assert data.id_analysis.ids_found_in_multiple_tables == ["P-1"]
        assert data.id_analysis.ids_found_in_single_location == []


class TestDeriveIdAnalysis:
    """Tests for deriving the id cross-reference from the id index."""

    def test_groups_by_location(self):
        entries = [
            IdIndexEntry(id="P-1", found_in="table:Table 1"),
            IdIndexEntry(id="P-1", found_in="table:BOND BOM"),
            IdIndexEntry(id="P-2", found_in="table:Table 1"),
            IdIndexEntry(id="a@b.com", found_in="keyFields"),
            IdIndexEntry(id="a@b.com", found_in="keyFields"),
            IdIndexEntry(id="P-3", found_in="table:Table 1"),
            IdIndexEntry(id="P-3", found_in="notes"),
        ]

        analysis = derive_id_analysis(entries)

        assert analysis.ids_found_in_multiple_tables == [
            {"id": "P-1", "tables": ["Table 1", "BOND BOM"]}
        ]
        assert analysis.ids_found_in_single_location == [
            {"id": "P-2", "foundIn": "table:Table 1"},
            {"id": "a@b.com", "foundIn": "keyFields"},
        ]


class TestExtractionService:
    """Tests for ExtractionService.extract."""

    @pytest.mark.asyncio
    async def test_sends_one_request_with_instruction(self):
        seen: list[tuple[str, str]] = []

        def reply(file_id: str, instruction: str) -> str:
            seen.append((file_id, instruction))
            return json.dumps({"tables": [{"columns": ["id", "note"], "rows": [{"id": 5}]}]})

        service = ExtractionService(MockDocumentClient(completion=reply))

        data = await service.extract("file-123")

        assert seen == [("file-123", EXTRACTION_PROMPT)]
        assert data.tables[0].rows == [{"id": "5", "note": ""}]
        assert data.tables[0].table_name == "Table 1"

    @pytest.mark.asyncio
    async def test_parse_failure_is_not_retried(self):
        mock_client = MockDocumentClient(completion="I could not read the drawing.")
        service = ExtractionService(mock_client, preview_chars=10)

        with pytest.raises(ResponseParseError) as exc_info:
            await service.extract("file-123")

        assert exc_info.value.preview == "I could no"
        assert mock_client.poll_count("create_completion") == 1

    def test_prompt_declares_every_section(self):
        for key in ("tables", "keyFields", "processSteps", "notes", "idIndex"):
            assert f'"{key}"' in EXTRACTION_PROMPT
        assert "Table N" in EXTRACTION_PROMPT
