"""Tests for the Excel export."""

import io

import pytest
from openpyxl import load_workbook

from app.docextract.models import ExportTable
from app.docextract.services.exceptions import InvalidInputError
from app.docextract.services.spreadsheet import (
    MAX_COLUMN_WIDTH,
    PLACEHOLDER_TEXT,
    build_workbook,
    column_widths,
    resolve_columns,
    safe_sheet_name,
    tables_from_payload,
    unique_sheet_name,
)


def open_workbook(content: bytes):
    return load_workbook(io.BytesIO(content))


def table(name=None, columns=None, rows=None) -> ExportTable:
    return ExportTable.from_raw({"tableName": name, "columns": columns, "rows": rows})


class TestSheetNames:
    """Tests for sheet name derivation."""

    def test_strips_invalid_characters(self):
        assert safe_sheet_name("Stage 1: Laminate", "Table 1") == "Stage 1 Laminate"
        assert safe_sheet_name("a/b\\c?d*e[f]g", "Table 1") == "a b c d e f g"

    def test_collapses_whitespace(self):
        assert safe_sheet_name("  BOND \n\t BOM  ", "Table 1") == "BOND BOM"

    def test_truncates_to_31_characters(self):
        assert safe_sheet_name("x" * 40, "Table 1") == "x" * 31

    def test_edge_apostrophes_removed(self):
        assert safe_sheet_name("'Quoted'", "Table 1") == "Quoted"
        assert safe_sheet_name(" ' BOM ''", "Table 1") == "BOM"
        assert safe_sheet_name("O'Neil parts", "Table 1") == "O'Neil parts"
        assert safe_sheet_name("'''", "Table 2") == "Table 2"

    def test_truncation_does_not_leave_trailing_apostrophe(self):
        assert safe_sheet_name("x" * 30 + "'y", "Table 1") == "x" * 30

    def test_empty_result_falls_back(self):
        assert safe_sheet_name("", "Table 4") == "Table 4"
        assert safe_sheet_name(None, "Table 4") == "Table 4"
        assert safe_sheet_name("[]:", "Table 4") == "Table 4"

    def test_suffix_resolves_collisions(self):
        used: set[str] = set()
        names = [unique_sheet_name("Parts", used) for _ in range(3)]
        assert names == ["Parts", "Parts 2", "Parts 3"]

    def test_suffix_keeps_length_limit(self):
        used: set[str] = set()
        base = "y" * 31
        unique_sheet_name(base, used)
        second = unique_sheet_name(base, used)
        assert second == "y" * 29 + " 2"
        assert len(second) == 31

    def test_collisions_ignore_case(self):
        used: set[str] = set()
        assert unique_sheet_name("Parts", used) == "Parts"
        assert unique_sheet_name("PARTS", used) == "PARTS 2"


class TestColumns:
    """Tests for column derivation and sizing."""

    def test_declared_columns_win(self):
        assert resolve_columns(table(columns=["b", "a"], rows=[{"c": 1}])) == ["b", "a"]

    def test_union_of_row_keys_in_first_seen_order(self):
        t = table(rows=[{"a": 1}, {"b": 2, "a": 3}, {"c": None}])
        assert resolve_columns(t) == ["a", "b", "c"]

    def test_widths_from_header_and_content(self):
        widths = column_widths(["Id", "Description"], [["1", "x" * 20]])
        assert widths == [10, 22]

    def test_widths_capped(self):
        assert column_widths(["a"], [["x" * 500]]) == [MAX_COLUMN_WIDTH]

    def test_widths_sample_first_fifty_rows(self):
        rows = [["x"]] * 50 + [["y" * 40]]
        assert column_widths(["a"], rows) == [10]


class TestBuildWorkbook:
    """Tests for build_workbook."""

    def test_sheet_naming_is_deterministic(self):
        """Colliding and empty names resolve to distinct sheets."""
        content = build_workbook(
            [table("A:B", ["x"]), table("A:B", ["x"]), table("", ["x"])]
        )
        assert open_workbook(content).sheetnames == ["A B", "A B 2", "Table 3"]

    def test_non_string_name_uses_position(self):
        tables = [ExportTable.from_raw({"tableName": 7, "columns": ["x"]})]
        assert open_workbook(build_workbook(tables)).sheetnames == ["Table 1"]

    def test_headers_and_text_cells(self):
        content = build_workbook(
            [table("BOM", ["Part Number", "Qty"], [{"Part Number": "00123", "Qty": 4}])]
        )
        ws = open_workbook(content)["BOM"]

        assert [c.value for c in ws[1]] == ["Part Number", "Qty"]
        assert [c.value for c in ws[2]] == ["00123", "4"]
        assert all(c.number_format == "@" for c in ws[2])

    def test_formula_like_values_stay_text(self):
        """Values starting with "=" are stored as literal strings."""
        rows = [{"=HEADER()": "=1+2"}, {"=HEADER()": '=HYPERLINK("x")'}]
        content = build_workbook([table("T", ["=HEADER()"], rows)])
        ws = open_workbook(content)["T"]

        for cell in (ws["A1"], ws["A2"], ws["A3"]):
            assert cell.data_type == "s"
        assert ws["A1"].value == "=HEADER()"
        assert ws["A2"].value == "=1+2"
        assert ws["A3"].value == '=HYPERLINK("x")'

    def test_header_cells_use_text_format(self):
        ws = open_workbook(build_workbook([table("T", ["a", "b"])]))["T"]
        assert all(c.number_format == "@" for c in ws[1])

    def test_missing_cells_are_blank(self):
        content = build_workbook([table("T", ["a", "b"], [{"a": "1"}])])
        ws = open_workbook(content)["T"]
        assert ws["A2"].value == "1"
        assert ws["B2"].value in (None, "")

    def test_empty_table_gets_placeholder_row(self):
        """A table with nothing to show still produces a readable sheet."""
        content = build_workbook([table("Empty")])
        ws = open_workbook(content)["Empty"]

        assert ws.max_row == 2
        assert ws["A1"].value == "message"
        assert ws["A2"].value == PLACEHOLDER_TEXT
        assert ws["A1"].number_format == "@"
        assert ws["A2"].number_format == "@"

    def test_columns_derived_from_rows(self):
        content = build_workbook([table("T", rows=[{"a": 1}, {"b": 2}])])
        ws = open_workbook(content)["T"]
        assert [c.value for c in ws[1]] == ["a", "b"]
        assert ws.max_row == 3

    def test_styling(self):
        content = build_workbook([table("T", ["a", "b"], [{"a": "x" * 100, "b": "y"}])])
        ws = open_workbook(content)["T"]

        assert ws.freeze_panes == "A2"
        assert ws["A1"].font.bold
        assert ws.auto_filter.ref == "A1:B1"
        assert ws["A2"].alignment.wrap_text
        assert ws.column_dimensions["A"].width == MAX_COLUMN_WIDTH
        assert ws.row_dimensions[1].height == 18
        assert ws.row_dimensions[2].height == 30

    def test_illegal_characters_removed(self):
        content = build_workbook([table("T", ["a"], [{"a": "bad\x01value"}])])
        assert open_workbook(content)["T"]["A2"].value == "badvalue"

    def test_sheets_in_input_order(self):
        content = build_workbook([table("Z", ["a"]), table("A", ["a"]), table("M", ["a"])])
        assert open_workbook(content).sheetnames == ["Z", "A", "M"]


class TestTablesFromPayload:
    """Tests for locating tables in an export request body."""

    TABLES = [{"tableName": "T", "columns": ["a"], "rows": [{"a": "1"}]}]

    @pytest.mark.parametrize(
        "body",
        [
            {"ok": True, "fileId": "file-1", "data": {"tables": TABLES}},
            {"data": {"tables": TABLES}},
            {"tables": TABLES},
        ],
    )
    def test_accepted_shapes(self, body):
        tables = tables_from_payload(body)
        assert [t.table_name for t in tables] == ["T"]

    @pytest.mark.parametrize(
        "body",
        [{}, {"tables": []}, {"data": {"tables": "x"}}, [1, 2], "tables", None],
    )
    def test_no_tables_rejected(self, body):
        with pytest.raises(InvalidInputError) as exc_info:
            tables_from_payload(body)
        assert exc_info.value.status_code == 400
        assert "No tables found" in exc_info.value.message

    def test_loose_rows_are_coerced(self):
        tables = tables_from_payload({"tables": [{"columns": [1], "rows": ["x", {"1": 2}]}, 5]})
        assert tables[0].columns == ["1"]
        assert tables[0].rows == [{}, {"1": 2}]
        assert tables[1].columns == [] and tables[1].table_name is None
