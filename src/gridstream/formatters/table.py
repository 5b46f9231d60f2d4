"""Rich table formatter."""

from __future__ import annotations

import shutil
from io import StringIO
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from gridstream.formatters.base import registry

if TYPE_CHECKING:
    from collections.abc import Iterator

    from gridstream.core.models import QueryResult

_NO_RESULTS = "No results"


def _truncate(value: str, width: int) -> str:
    if len(value) <= width:
        return value
    return value[: width - 1] + "…"


class TableFormatter:
    """Renders rows as a rich table, numbered from ``row_offset + 1``."""

    def __init__(self, width: int = 40, row_numbers: bool = True) -> None:
        self.width = width
        self.row_numbers = row_numbers

    def format(self, result: QueryResult) -> Iterator[str]:
        if not result.rows:
            yield _NO_RESULTS
            return

        table = Table(show_edge=True, pad_edge=True)
        if self.row_numbers:
            table.add_column("#", justify="right", style="dim", no_wrap=True)
        for col in result.columns:
            table.add_column(col.name, no_wrap=True)

        for i, row in enumerate(result.rows, start=result.row_offset + 1):
            cells = [_truncate(str(v) if v is not None else "", self.width) for v in row]
            if self.row_numbers:
                cells.insert(0, str(i))
            table.add_row(*cells)

        buf = StringIO()
        term_width = shutil.get_terminal_size((120, 24)).columns
        console = Console(file=buf, force_terminal=True, width=term_width)
        console.print(table)
        yield buf.getvalue().rstrip("\n")


registry.register("table", TableFormatter)
