"""
CSV helper tests.
"""

import pytest

from testhub.core.exceptions import ImportFailedError
from testhub.services.csv_service import (
    load_records,
    missing_fields,
    parse_csv,
    require_columns,
    to_records,
    write_csv,
)


class TestParse:
    def test_cells_trimmed_and_bom_stripped(self):
        assert parse_csv("\ufeff A , B \n1, 2\n") == [["A", "B"], ["1", "2"]]
        assert parse_csv("\ufeffA\n".encode("utf-8")) == [["A"]]

    def test_non_utf8_bytes(self):
        with pytest.raises(ImportFailedError):
            parse_csv("tid\nテスト\n".encode("shift_jis"))

    def test_quoted_commas(self):
        assert parse_csv('email,tags\na@example.com,"body,chassis"\n')[1] == ["a@example.com", "body,chassis"]


class TestRecords:
    def test_headers_normalized_and_rows_numbered(self):
        records = to_records([["TID", " Test_Case "], ["T1", "a"], ["", ""], ["T2"]])
        assert records == [
            {"tid": "T1", "test_case": "a", "row_num": 2},
            {"tid": "T2", "test_case": "", "row_num": 4},
        ]

    def test_require_columns(self):
        require_columns(["TID", "extra"], ("tid",))
        with pytest.raises(ImportFailedError, match="tid"):
            require_columns(["name"], ("tid",))

    def test_load_records_empty(self):
        with pytest.raises(ImportFailedError):
            load_records("", ("tid",))
        with pytest.raises(ImportFailedError):
            load_records("tid\n\n", ("tid",))

    def test_missing_fields(self):
        assert missing_fields({"tid": " ", "oem": "A"}, ("tid", "oem", "model")) == ["tid", "model"]


def test_write_csv():
    text = write_csv(["a", "b"], [[1, "x,y"], ["", None]])
    assert text.splitlines() == ["a,b", '1,"x,y"', ","]
