"""Sort-spec toggling and comparison helpers."""

from __future__ import annotations

from collections.abc import Sequence

from gridstream.core.models import ColumnMeta, ColumnSort, SortOrder, SortSpec

_NEXT_ORDER: dict[SortOrder | None, SortOrder | None] = {
    None: "asc",
    "asc": "desc",
    "desc": None,
}


def toggle_column_sort(order: SortOrder | None) -> SortOrder | None:
    """Cycle one column through unsorted -> asc -> desc -> unsorted."""
    return _NEXT_ORDER[order]


def toggle_multi_column_sort(
    current: Sequence[ColumnSort], column: str, *, multi: bool = False
) -> SortSpec:
    """Toggle ``column`` inside a sort spec.

    Without ``multi`` every other column is discarded, so the result holds
    zero or one entries. With ``multi`` the column is toggled in place,
    appended when new, and dropped when it returns to unsorted.
    """
    existing = next((s for s in current if s.column == column), None)
    toggled = toggle_column_sort(existing.order if existing else None)

    if not multi:
        if toggled is None:
            return ()
        return (ColumnSort(column=column, order=toggled),)

    result: list[ColumnSort] = []
    for spec in current:
        if spec.column != column:
            result.append(spec)
        elif toggled is not None:
            result.append(ColumnSort(column=column, order=toggled))
    if existing is None and toggled is not None:
        result.append(ColumnSort(column=column, order=toggled))
    return tuple(result)


def is_same_sort_spec(current: Sequence[ColumnSort], other: Sequence[ColumnSort]) -> bool:
    """Compare two sort specs column by column; order matters.

    ``(name, id)`` and ``(id, name)`` produce different row orders, so a
    change between them needs a new reader.
    """
    return tuple(current) == tuple(other)


def is_same_schema(current: Sequence[ColumnMeta], other: Sequence[ColumnMeta]) -> bool:
    """Compare two schemas column by column; order matters."""
    return len(current) == len(other) and all(
        a.name == b.name and a.type_oid == b.type_oid for a, b in zip(current, other)
    )


def is_strict_schema_subset(schema: Sequence[ColumnMeta], columns: Sequence[str]) -> bool:
    """True if every column is in ``schema`` and at least one schema column is left out."""
    names = {c.name for c in schema}
    requested = set(columns)
    return requested <= names and requested != names


def parse_sort_arg(value: str) -> ColumnSort:
    """Parse ``column`` or ``column:asc|desc`` into a ColumnSort."""
    column, _, order = value.partition(":")
    order = (order or "asc").lower()
    if not column or order not in ("asc", "desc"):
        msg = f"Invalid sort '{value}'. Expected column or column:asc|desc"
        raise ValueError(msg)
    return ColumnSort(column=column, order=order)  # type: ignore[arg-type]
