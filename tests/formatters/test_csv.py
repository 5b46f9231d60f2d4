"""Tests for CSVFormatter."""

import csv
from io import StringIO

import pytest

from gridstream.core.models import ColumnMeta, QueryResult
from gridstream.formatters.base import Formatter
from gridstream.formatters.csv import CSVFormatter


def _make_result(rows=None):
    if rows is None:
        rows = [(1, "alice"), (2, "bob")]
    return QueryResult(
        columns=[
            ColumnMeta(name="id", type_oid=23, type_name="int4"),
            ColumnMeta(name="name", type_oid=25, type_name="text"),
        ],
        rows=rows,
        row_count=len(rows),
    )


@pytest.mark.unit
def test_csv_formatter_implements_protocol():
    assert isinstance(CSVFormatter(), Formatter)


@pytest.mark.unit
def test_csv_formatter_outputs_header_and_data():
    assert list(CSVFormatter().format(_make_result())) == ["id,name", "1,alice", "2,bob"]


@pytest.mark.unit
def test_csv_formatter_no_header():
    assert list(CSVFormatter(no_header=True).format(_make_result())) == ["1,alice", "2,bob"]


@pytest.mark.unit
def test_csv_formatter_null_is_empty():
    lines = list(CSVFormatter().format(_make_result(rows=[(1, None)])))
    assert lines[1] == "1,"


@pytest.mark.unit
def test_csv_formatter_quotes_special_values():
    lines = list(CSVFormatter().format(_make_result(rows=[(1, 'say "hi", bob')])))
    parsed = next(csv.reader(StringIO(lines[1])))
    assert parsed == ["1", 'say "hi", bob']
