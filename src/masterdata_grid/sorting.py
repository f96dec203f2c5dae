"""Single-column sort state and ordering.

Clicking a header cycles ``asc -> desc -> none`` on that column; clicking
another column starts over at ``asc``.  Ordering is stable: rows with
equal keys keep their original relative order, and nulls sort last in
both directions.  Foreign-key columns order by their resolved label,
not by the raw id.

Text and labels are collated with the Unicode Collation Algorithm, so
accents and case do not push words out of alphabetical order
(``apple < Österreich < Polen < Zypern``).
"""

from functools import cache, cmp_to_key
from typing import Any

import polars as pl
from pyuca import Collator

from masterdata_grid.frames import label_expr
from masterdata_grid.models import ROW_ID_FIELD, UNSORTED, GridColumn, LookupTable, SortSpec

# Column kinds whose values are ordered by collation key.
_COLLATED_KINDS: tuple[str, ...] = ("text", "id")


@cache
def _collator() -> Collator:
    return Collator()


def collation_key(text: str) -> tuple[int, ...]:
    """Unicode collation sort key of *text*."""
    return _collator().sort_key(text)


def toggle(spec: SortSpec, column: str) -> SortSpec:
    """Advance the sort state machine for a click on *column*."""
    if spec.field != column:
        return SortSpec(column, "asc")
    if spec.direction == "asc":
        return SortSpec(column, "desc")
    return UNSORTED


def _resolve_column(spec: SortSpec, columns: list[GridColumn]) -> GridColumn:
    for column in columns:
        if column.key == spec.field:
            return column
    raise ValueError(f"Unknown sort column {spec.field!r}")


def _collation_rank(df: pl.DataFrame, key: pl.Expr) -> pl.Expr:
    """Replace the strings of *key* by their rank in collation order.

    Strings with the same collation key share a rank, so they tie and
    fall back to ``__row_id__``.  Nulls stay null.
    """
    texts = df.select(key.alias("_key"))["_key"].drop_nulls().unique().to_list()
    ordered = sorted(texts, key=collation_key)
    ranks: list[int] = []
    rank, previous = -1, None
    for text in ordered:
        current = collation_key(text)
        if current != previous:
            rank, previous = rank + 1, current
        ranks.append(rank)
    return key.replace_strict(ordered, ranks, default=None, return_dtype=pl.UInt32)


def apply_sort(
    df: pl.DataFrame,
    spec: SortSpec,
    columns: list[GridColumn],
    lookups: dict[str, LookupTable] | None = None,
) -> pl.DataFrame:
    """Order *df* by *spec*, falling back to original order.

    *df* must carry the ``__row_id__`` column built by
    :func:`~masterdata_grid.frames.records_to_frame`; it is the tie
    breaker and the whole ordering when *spec* is inactive.
    """
    if not spec.is_active:
        return df.sort(ROW_ID_FIELD)

    column = _resolve_column(spec, columns)
    if column.kind == "id":
        lookup = (lookups or {}).get(column.lookup or "") or LookupTable()
        key = label_expr(column, lookup)
    else:
        key = pl.col(column.key)
    if column.kind in _COLLATED_KINDS:
        if not df.select(key.is_not_null().any()).item():
            # Nothing but nulls: every row ties.
            return df.sort(ROW_ID_FIELD)
        key = _collation_rank(df, key)

    return df.sort(
        [key, pl.col(ROW_ID_FIELD)],
        descending=[spec.direction == "desc", False],
        nulls_last=True,
    )


def sort_key(record: dict[str, Any], column: GridColumn, lookups: dict[str, LookupTable] | None = None) -> Any:
    """Return the value *record* is ordered by for *column*.

    Text and labels come back as collation keys.
    """
    value = record.get(column.key)
    if column.kind == "id":
        lookup = (lookups or {}).get(column.lookup or "") or LookupTable()
        value = lookup.label(value)
    if column.kind in _COLLATED_KINDS and isinstance(value, str):
        return collation_key(value)
    return value


def compare(
    a: dict[str, Any],
    b: dict[str, Any],
    spec: SortSpec,
    columns: list[GridColumn],
    lookups: dict[str, LookupTable] | None = None,
) -> int:
    """Three-way comparison of two records under *spec*.

    Returns a negative number, zero or a positive number.  Equal keys
    (and an inactive *spec*) compare as ``0`` so that a stable sort
    keeps their original order.  Nulls are greater than everything in
    both directions.
    """
    if not spec.is_active:
        return 0
    column = _resolve_column(spec, columns)
    left = sort_key(a, column, lookups)
    right = sort_key(b, column, lookups)

    if left is None or right is None:
        return (left is None) - (right is None)
    if left == right:
        return 0
    result = -1 if left < right else 1
    return -result if spec.direction == "desc" else result


def sort_records(
    records: list[dict[str, Any]],
    spec: SortSpec,
    columns: list[GridColumn],
    lookups: dict[str, LookupTable] | None = None,
) -> list[dict[str, Any]]:
    """Stable in-memory sort of plain records using :func:`compare`."""
    return sorted(records, key=cmp_to_key(lambda a, b: compare(a, b, spec, columns, lookups)))


# ---------------------------------------------------------------------------
# MUI sort model
# ---------------------------------------------------------------------------

def sort_model_from_spec(spec: SortSpec) -> list[dict[str, str]]:
    """Render *spec* as a MUI ``sortModel`` (empty when unsorted)."""
    if not spec.is_active:
        return []
    return [{"field": spec.field or "", "sort": spec.direction}]


def spec_from_sort_model(sort_model: list[dict[str, Any]]) -> SortSpec:
    """Read the first entry of a MUI ``sortModel``.

    The grid is configured with ``sortingOrder = ['asc', 'desc', null]``
    so the model it reports already follows the same cycle as
    :func:`toggle`.
    """
    if not sort_model:
        return UNSORTED
    entry = sort_model[0]
    direction = entry.get("sort")
    if direction not in ("asc", "desc") or not entry.get("field"):
        return UNSORTED
    return SortSpec(entry["field"], direction)
