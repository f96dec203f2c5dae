"""Conversions between backend records and the polars frame the grid works on."""

from typing import Any

import polars as pl

from masterdata_grid.models import ROW_ID_FIELD, GridColumn, LookupTable

# Only kinds with an unambiguous wire type are forced; numbers and dates
# keep whatever type the backend sent.
_POLARS_TYPES: dict[str, type[pl.DataType]] = {
    "text": pl.String,
    "id": pl.Int64,
    "boolean": pl.Boolean,
}


def records_to_frame(records: list[dict[str, Any]], columns: list[GridColumn]) -> pl.DataFrame:
    """Build the engine frame from a list of backend records.

    Every configured column is present (missing ones are null-filled) and
    a ``__row_id__`` column records each record's position in *records*.
    That index is the original-order key sorting falls back to.
    """
    present: set[str] = set()
    for record in records:
        present.update(record)

    if not records:
        schema = {c.key: _POLARS_TYPES.get(c.kind, pl.String) for c in columns}
        return pl.DataFrame(schema=schema).with_row_index(ROW_ID_FIELD)

    overrides = {
        c.key: _POLARS_TYPES[c.kind]
        for c in columns
        if c.key in present and c.kind in _POLARS_TYPES
    }
    frame = pl.from_dicts(records, schema_overrides=overrides, infer_schema_length=None)

    missing = [
        pl.lit(None, dtype=_POLARS_TYPES.get(c.kind, pl.String)).alias(c.key)
        for c in columns
        if c.key not in frame.columns
    ]
    if missing:
        frame = frame.with_columns(missing)
    return frame.with_row_index(ROW_ID_FIELD)


def frame_to_records(df: pl.DataFrame) -> list[dict[str, Any]]:
    """Convert a frame back to JSON-safe record dicts.

    The internal ``__row_id__`` column is dropped.  Temporal columns are
    converted to ISO-8601 strings; everything else is already a Python
    scalar after ``to_dicts()``.
    """
    if ROW_ID_FIELD in df.columns:
        df = df.drop(ROW_ID_FIELD)

    temporal_cols: set[str] = {
        name
        for name, dtype in df.schema.items()
        if isinstance(dtype, (pl.Date, pl.Datetime, pl.Time, pl.Duration))
    }
    if not temporal_cols:
        return df.to_dicts()

    exprs: list[pl.Expr] = [
        pl.col(c).cast(pl.String) if c in temporal_cols else pl.col(c)
        for c in df.columns
    ]
    return df.select(exprs).to_dicts()


def label_expr(column: GridColumn, lookup: LookupTable) -> pl.Expr:
    """Expression resolving a foreign-key column to its display labels.

    Ids that are null or missing from *lookup* resolve to the lookup's
    unknown placeholder.
    """
    unknown = pl.lit(lookup.unknown_label, dtype=pl.String)
    mapping = lookup.mapping()
    if not mapping:
        # Every id is unknown; the predicate keeps the column's length.
        return pl.when(pl.col(column.key).is_null()).then(unknown).otherwise(unknown)
    return (
        pl.col(column.key)
        .cast(pl.Int64, strict=False)
        .replace_strict(
            list(mapping.keys()),
            list(mapping.values()),
            default=unknown,
            return_dtype=pl.String,
        )
        .fill_null(unknown)
    )
