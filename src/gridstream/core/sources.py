"""Logical data-source descriptors for tabs.

A tab shows one of four kinds of source. Descriptors are plain pydantic
models so they can be stored with the tab and passed across the CLI.
"""

from __future__ import annotations

import re
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

_SUBQUERY_KEYWORDS = frozenset({"SELECT", "WITH", "VALUES", "TABLE"})
_LEADING_COMMENTS = re.compile(r"\A(?:\s+|--[^\n]*(?:\n|\Z)|/\*.*?\*/)*", re.DOTALL)
_FIRST_WORD = re.compile(r"[A-Za-z_]+")


class FileViewSource(BaseModel):
    """A view created over a file; its rows can be counted exactly."""

    kind: Literal["file-view"] = "file-view"
    schema_name: str = "public"
    view_name: str


class TableSource(BaseModel):
    """A table or view in an attached database."""

    kind: Literal["table"] = "table"
    schema_name: str = "public"
    object_name: str
    object_type: Literal["table", "view"] = "table"


class ScriptSource(BaseModel):
    """The result of the last query executed in a script tab."""

    kind: Literal["script"] = "script"
    query: str | None = None


class SchemaBrowserSource(BaseModel):
    kind: Literal["schema-browser"] = "schema-browser"


DataSourceDescriptor = Annotated[
    FileViewSource | TableSource | ScriptSource | SchemaBrowserSource,
    Field(discriminator="kind"),
]

_descriptor_adapter: TypeAdapter[DataSourceDescriptor] = TypeAdapter(DataSourceDescriptor)


def parse_descriptor(data: dict[str, object]) -> DataSourceDescriptor:
    return _descriptor_adapter.validate_python(data)


def quote_ident(name: str) -> str:
    """Quote a PostgreSQL identifier, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def qualified_name(schema: str, name: str) -> str:
    return f"{quote_ident(schema)}.{quote_ident(name)}"


def trim_query(sql: str) -> str:
    """Strip surrounding whitespace and trailing semicolons."""
    return sql.strip().rstrip(";").rstrip()


def is_allowed_in_subquery(sql: str) -> bool:
    """True if ``sql`` is a row-returning statement usable as a sub-query."""
    body = _LEADING_COMMENTS.sub("", sql, count=1)
    if body.startswith("("):
        return is_allowed_in_subquery(body[1:])
    match = _FIRST_WORD.match(body)
    return bool(match) and match.group(0).upper() in _SUBQUERY_KEYWORDS
