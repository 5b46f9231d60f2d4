"""Tests for the data commands, run against an in-memory source."""

import json
from pathlib import Path

import pytest

from gridstream.cli.main import app
from gridstream.core.exit_codes import ExitCode
from gridstream.core.sources import FileViewSource, ScriptSource, TableSource
from tests.fakes import FakeSource, make_rows

QUERY_FILE = Path(__file__).parent.parent / "fixtures" / "select_42.sql"


class _FakePgEngine:
    def __init__(self, config):
        self.config = config
        self.resyncs = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def resync(self):
        self.resyncs += 1


@pytest.fixture
def source(monkeypatch, temp_dir):
    """Route every command to one FakeSource and record the descriptors it was bound to."""
    monkeypatch.setenv("GRIDSTREAM_CACHE_DIR", str(temp_dir / "tabs"))
    state = {"source": FakeSource(make_rows(25, reverse=True), batch_size=10), "bound": []}

    def fake_bind(engine, descriptor):
        state["bound"].append(descriptor)
        return state["source"].binding()

    monkeypatch.setattr("gridstream.cli.commands._shared.PgEngine", _FakePgEngine)
    monkeypatch.setattr("gridstream.cli.commands._shared.bind_source", fake_bind)
    return state


def _invoke(runner, *args):
    return runner.invoke(app, list(args))


def _csv_lines(result):
    return [line for line in result.stdout.splitlines() if line and line[0].isdigit()]


@pytest.mark.unit
class TestPageCommand:
    def test_first_page(self, runner, source):
        result = _invoke(runner, "--format", "csv", "page", "-e", "SELECT 1", "--to", "3")
        assert result.exit_code == 0, result.output
        assert _csv_lines(result) == ["24,row24", "23,row23", "22,row22"]
        assert source["bound"] == [ScriptSource(query="SELECT 1")]

    def test_sorted_page_from_offset(self, runner, source):
        result = _invoke(
            runner,
            "--format", "csv",
            "page", "--table", "sales.orders",
            "--sort", "id:asc", "--from", "12", "--to", "15",
        )
        assert result.exit_code == 0, result.output
        assert _csv_lines(result) == ["12,row12", "13,row13", "14,row14"]
        assert source["bound"] == [TableSource(schema_name="sales", object_name="orders")]

    def test_json_rows(self, runner, source):
        result = _invoke(
            runner, "--format", "json", "--compact", "page", "-e", "SELECT 1", "--to", "2"
        )
        assert result.exit_code == 0, result.output
        line = next(ln for ln in result.stdout.splitlines() if ln.startswith("["))
        assert json.loads(line) == [{"id": 24, "name": "row24"}, {"id": 23, "name": "row23"}]

    def test_invalid_sort(self, runner, source):
        result = _invoke(runner, "page", "-e", "SELECT 1", "--sort", "id:sideways")
        assert result.exit_code == ExitCode.INPUT_ERROR

    def test_to_before_from(self, runner, source):
        result = _invoke(runner, "page", "-e", "SELECT 1", "--from", "10", "--to", "5")
        assert result.exit_code == ExitCode.INPUT_ERROR

    def test_conflicting_sources(self, runner, source):
        result = _invoke(runner, "page", "-e", "SELECT 1", "--table", "users")
        assert result.exit_code == ExitCode.INPUT_ERROR
        assert source["bound"] == []

    def test_missing_query_file(self, runner, source, temp_dir):
        result = _invoke(runner, "page", str(temp_dir / "missing.sql"))
        assert result.exit_code == ExitCode.INPUT_ERROR

    def test_query_file(self, runner, source):
        result = _invoke(runner, "--format", "csv", "page", str(QUERY_FILE))
        assert result.exit_code == 0, result.output
        assert source["bound"] == [ScriptSource(query="SELECT 42 AS answer\n")]

    def test_data_source_error(self, runner, source):
        source["source"] = FakeSource(
            make_rows(5), reader_errors=[RuntimeError("boom"), RuntimeError("boom")]
        )
        result = _invoke(runner, "page", "-e", "SELECT 1")
        assert result.exit_code == ExitCode.DATA_SOURCE_ERROR
        assert "Error:" in result.output

    def test_tab_persists_rows(self, runner, source, temp_dir):
        result = _invoke(runner, "--tab", "t1", "--format", "csv", "page", "-e", "SELECT 1")
        assert result.exit_code == 0, result.output
        shown = _invoke(runner, "cache", "show", "t1")
        assert shown.exit_code == 0
        assert "Columns: id, name" in shown.stdout


@pytest.mark.unit
class TestExportCommand:
    def test_export_all_rows(self, runner, source):
        result = _invoke(runner, "--format", "csv", "export", "-e", "SELECT 1")
        assert result.exit_code == 0, result.output
        assert len(_csv_lines(result)) == 25
        assert "id,name" in result.stdout

    def test_export_columns(self, runner, source):
        result = _invoke(runner, "--format", "csv", "export", "--table", "users", "-c", "name")
        assert result.exit_code == 0, result.output
        assert "name" in result.stdout.splitlines()
        assert "row24" in result.stdout
        assert "24,row24" not in result.stdout

    def test_empty_column_list(self, runner, source):
        result = _invoke(runner, "export", "-e", "SELECT 1", "--columns", " , ")
        assert result.exit_code == ExitCode.INPUT_ERROR


@pytest.mark.unit
class TestCountCommand:
    def test_estimated_count(self, runner, source):
        source["source"] = FakeSource(make_rows(25), estimated=100)
        result = _invoke(runner, "count", "--table", "users")
        assert result.exit_code == 0, result.output
        assert "real: unknown" in result.stdout
        assert "estimated: 100" in result.stdout
        assert "available: 10" in result.stdout

    def test_exact_count(self, runner, source):
        result = _invoke(runner, "count", "-e", "SELECT 1", "--exact")
        assert result.exit_code == 0, result.output
        assert "real: 25" in result.stdout
        assert "available: 25" in result.stdout

    def test_file_view_count(self, runner, source):
        source["source"] = FakeSource(make_rows(3), row_count=3)
        result = _invoke(runner, "count", "--file-view", "imports.people")
        assert result.exit_code == 0, result.output
        assert "real: 3" in result.stdout
        assert source["bound"] == [FileViewSource(schema_name="imports", view_name="people")]


@pytest.mark.unit
class TestAggregateCommand:
    def test_sum(self, runner, source):
        result = _invoke(runner, "aggregate", "id", "--type", "sum", "--table", "users")
        assert result.exit_code == 0, result.output
        assert result.stdout.strip().splitlines()[-1] == str(sum(range(25)))

    def test_unknown_type(self, runner, source):
        result = _invoke(runner, "aggregate", "id", "-t", "median", "--table", "users")
        assert result.exit_code == ExitCode.INPUT_ERROR

    def test_unsupported_source(self, runner, source):
        source["source"] = FakeSource(make_rows(3), sortable=False)
        result = _invoke(runner, "aggregate", "id", "-e", "SHOW search_path")
        assert result.exit_code == ExitCode.INPUT_ERROR
        assert "not available" in result.output
