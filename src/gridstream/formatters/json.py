"""JSON formatter."""

from __future__ import annotations

import json
from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from gridstream.formatters.base import registry

if TYPE_CHECKING:
    from collections.abc import Iterator

    from gridstream.core.models import QueryResult


def _serialize_value(val: Any) -> Any:
    if isinstance(val, (int, float, str, bool, type(None))):
        return val
    if isinstance(val, (datetime, date, time)):
        return val.isoformat()
    if isinstance(val, Decimal):
        return str(val)
    if isinstance(val, (list, tuple)):
        return [_serialize_value(v) for v in val]
    if isinstance(val, dict):
        return {str(k): _serialize_value(v) for k, v in val.items()}
    return str(val)


class JSONFormatter:
    """Rows as a list of objects, or an envelope carrying the page position."""

    def __init__(self, compact: bool = False, envelope: bool = False) -> None:
        self.compact = compact
        self.envelope = envelope

    def format(self, result: QueryResult) -> Iterator[str]:
        rows_as_dicts = [
            {
                col.name: _serialize_value(val)
                for col, val in zip(result.columns, row, strict=True)
            }
            for row in result.rows
        ]
        payload: Any = rows_as_dicts
        if self.envelope:
            payload = {
                "row_offset": result.row_offset,
                "row_count": result.row_count,
                "columns": [col.model_dump() for col in result.columns],
                "rows": rows_as_dicts,
            }

        if self.compact:
            yield json.dumps(payload, default=str)
        else:
            yield json.dumps(payload, indent=2, default=str)


registry.register("json", JSONFormatter)
