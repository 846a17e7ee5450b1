from __future__ import annotations

import pytest

from sheetsync.infrastructure.sheets_ranges import build_range, column_letter, extract_values


@pytest.mark.parametrize(("index", "letters"), [(1, "A"), (26, "Z"), (27, "AA"), (52, "AZ"), (702, "ZZ")])
def test_column_letter(index, letters) -> None:
    assert column_letter(index) == letters


def test_build_range_quotes_sheet_titles() -> None:
    assert build_range("Sheet1", 1, 201, 26) == "'Sheet1'!A1:Z201"
    assert build_range("Ann's tours", 202, 1201, 30) == "'Ann''s tours'!A202:AD1201"


def test_build_range_rejects_inverted_rows() -> None:
    with pytest.raises(ValueError):
        build_range("Sheet1", 10, 5, 26)


def test_extract_values_stringifies_cells() -> None:
    assert extract_values({"values": [["a", None, 3]]}) == [["a", "", "3"]]
    assert extract_values({"range": "'Sheet1'!A1:Z1"}) == []
    assert extract_values(None) == []
