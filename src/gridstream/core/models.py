"""Data models for GridStream.

Pydantic models for values that cross a serialization boundary (column
metadata, sort specs, persisted tab state, formatted results) and plain
frozen dataclasses for the hot-path values the adapter creates per batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Row = tuple[Any, ...]
SortOrder = Literal["asc", "desc"]
AggregateType = Literal["count", "sum", "avg", "min", "max"]

AGGREGATE_TYPES: tuple[str, ...] = ("count", "sum", "avg", "min", "max")


class ColumnMeta(BaseModel):
    """Metadata for a single result column."""

    model_config = ConfigDict(frozen=True)

    name: str
    type_oid: int
    type_name: str


class ColumnSort(BaseModel):
    """One column of a sort spec."""

    model_config = ConfigDict(frozen=True)

    column: str
    order: SortOrder = "asc"


SortSpec = tuple[ColumnSort, ...]


class QueryResult(BaseModel):
    """A block of rows ready for output, positioned at ``row_offset``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    columns: list[ColumnMeta]
    rows: list[tuple[Any, ...]]
    row_count: int
    status_message: str = ""
    row_offset: int = 0


class TabDataCache(BaseModel):
    """Persisted per-tab state used to seed a cold-started adapter."""

    schema_: list[ColumnMeta] = Field(default=[], alias="schema")
    rows: list[list[Any]] = []
    row_offset: int = 0
    real_row_count: int | None = None
    estimated_row_count: int | None = None
    sort: list[ColumnSort] = []

    model_config = ConfigDict(populate_by_name=True)

    @property
    def available_row_count(self) -> int:
        return self.row_offset + len(self.rows)


@dataclass(frozen=True)
class RecordBatch:
    """One chunk of rows delivered by a single pull from a stream."""

    columns: tuple[ColumnMeta, ...]
    rows: list[Row] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class RowCountInfo:
    real_row_count: int | None = None
    estimated_row_count: int | None = None
    available_row_count: int = 0


@dataclass(frozen=True)
class StaleSnapshot:
    """Last known-good data, displayed while its replacement is built."""

    schema: tuple[ColumnMeta, ...]
    rows: list[Row]
    row_offset: int = 0

    @property
    def available_row_count(self) -> int:
        return self.row_offset + len(self.rows)


@dataclass(frozen=True)
class DataSlice:
    rows: list[Row]
    row_offset: int
