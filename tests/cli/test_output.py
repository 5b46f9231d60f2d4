"""Tests for output format selection and TTY detection."""

import pytest

from gridstream.cli.output import OutputFormat, get_formatter, resolve_format, write_output
from gridstream.core.models import ColumnMeta, QueryResult
from gridstream.formatters.csv import CSVFormatter
from gridstream.formatters.json import JSONFormatter
from gridstream.formatters.table import TableFormatter


@pytest.mark.unit
def test_output_format_enum_values():
    assert [f.value for f in OutputFormat] == ["table", "json", "csv"]


@pytest.mark.unit
@pytest.mark.parametrize("name", ["json", "table", "csv"])
def test_resolve_format_explicit(name, monkeypatch):
    monkeypatch.setattr("gridstream.cli.output.detect_tty", lambda: True)
    assert resolve_format(name) == name


@pytest.mark.unit
@pytest.mark.parametrize(("tty", "expected"), [(True, "table"), (False, "csv")])
def test_resolve_format_by_tty(tty, expected, monkeypatch):
    monkeypatch.setattr("gridstream.cli.output.detect_tty", lambda: tty)
    assert resolve_format(None) == expected


@pytest.mark.unit
def test_resolve_format_configured_default(monkeypatch):
    monkeypatch.setattr("gridstream.cli.output.detect_tty", lambda: True)
    assert resolve_format(None, default="json") == "json"
    assert resolve_format("csv", default="json") == "csv"


@pytest.mark.unit
def test_get_formatter_types():
    assert isinstance(get_formatter("table"), TableFormatter)
    assert isinstance(get_formatter("json"), JSONFormatter)
    assert isinstance(get_formatter("csv"), CSVFormatter)


@pytest.mark.unit
def test_get_formatter_passes_options():
    table = get_formatter("table", width=80, row_numbers=False)
    assert table.width == 80
    assert table.row_numbers is False
    assert get_formatter("json", compact=True).compact is True
    assert get_formatter("csv", no_header=True).no_header is True


@pytest.mark.unit
def test_write_output(capsys):
    result = QueryResult(
        columns=[ColumnMeta(name="answer", type_oid=23, type_name="int4")],
        rows=[(42,)],
        row_count=1,
    )
    write_output(CSVFormatter(), result)
    assert capsys.readouterr().out == "answer\n42\n"
