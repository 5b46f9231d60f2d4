"""Tests for JSONFormatter."""

import json
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from gridstream.core.models import ColumnMeta, QueryResult
from gridstream.formatters.base import Formatter
from gridstream.formatters.json import JSONFormatter


def _make_result(rows=None, row_offset=0):
    if rows is None:
        rows = [(1, "alice"), (2, "bob")]
    return QueryResult(
        columns=[
            ColumnMeta(name="id", type_oid=23, type_name="int4"),
            ColumnMeta(name="name", type_oid=25, type_name="text"),
        ],
        rows=rows,
        row_count=len(rows),
        row_offset=row_offset,
    )


@pytest.mark.unit
def test_json_formatter_implements_protocol():
    assert isinstance(JSONFormatter(), Formatter)


@pytest.mark.unit
def test_json_formatter_rows_as_dicts():
    parsed = json.loads("\n".join(JSONFormatter().format(_make_result())))
    assert parsed == [{"id": 1, "name": "alice"}, {"id": 2, "name": "bob"}]


@pytest.mark.unit
def test_json_formatter_compact_is_single_line():
    lines = list(JSONFormatter(compact=True).format(_make_result()))
    assert len(lines) == 1
    assert "\n" not in lines[0]


@pytest.mark.unit
def test_json_formatter_envelope_carries_position():
    output = "\n".join(JSONFormatter(envelope=True).format(_make_result(row_offset=50)))
    parsed = json.loads(output)
    assert parsed["row_offset"] == 50
    assert parsed["row_count"] == 2
    assert [c["name"] for c in parsed["columns"]] == ["id", "name"]
    assert parsed["rows"][0] == {"id": 1, "name": "alice"}


@pytest.mark.unit
def test_json_formatter_serializes_special_types():
    stamp = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
    output = "\n".join(JSONFormatter().format(_make_result(rows=[(Decimal("1.50"), stamp)])))
    parsed = json.loads(output)
    assert parsed[0] == {"id": "1.50", "name": "2024-01-02T03:04:05+00:00"}
