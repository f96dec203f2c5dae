"""Per-column filter state and its translation to polars expressions.

A filter state is a plain ``{column_key: value}`` dict.  Every entry is
ANDed with the others; a value that means "no constraint" (``None``, a
blank string, and for id / boolean columns also ``0``, ``"any"`` and
``"all"``) is the same as leaving the key out.

The value's meaning depends on the column kind:

* ``text`` / ``number``: case-insensitive substring of the value's
  string form.
* ``date``: prefix of the ISO date string (``"2024-03"`` matches March).
* ``boolean``: ``True`` / ``False``; ``None`` matches either.
* ``id``: an ``int`` matches that id exactly; a ``str`` is a
  case-insensitive substring of the resolved lookup label.

Also provided: conversion from the MUI DataGrid ``filterModel``, and the
merge rule that lets single-item Community-edition filter events build
up a multi-column filter.
"""

import logging
from typing import Any

import polars as pl

from masterdata_grid.frames import label_expr
from masterdata_grid.models import GridColumn, LookupTable

logger = logging.getLogger(__name__)

FilterState = dict[str, Any]

_ANY_TOKENS: frozenset[str] = frozenset({"", "any", "all"})
_TRUE_TOKENS: frozenset[str] = frozenset({"true", "1", "yes", "active"})
_FALSE_TOKENS: frozenset[str] = frozenset({"false", "0", "no", "inactive"})


def normalize_bool(value: Any) -> bool | None:
    """Coerce a tri-state filter value to ``True`` / ``False`` / ``None``.

    Raises:
        ValueError: If *value* is not a recognised boolean token.
    """
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _ANY_TOKENS:
        return None
    if text in _TRUE_TOKENS:
        return True
    if text in _FALSE_TOKENS:
        return False
    raise ValueError(f"Not a boolean filter value: {value!r}")


def is_unconstrained(column: GridColumn, value: Any) -> bool:
    """Return ``True`` when *value* places no constraint on *column*."""
    if value is None:
        return True
    if column.kind == "boolean":
        return normalize_bool(value) is None
    if column.kind == "id":
        if isinstance(value, bool):
            return False
        if isinstance(value, int):
            return value == 0
        return str(value).strip().lower() in _ANY_TOKENS
    return str(value).strip() == ""


def _contains(expr: pl.Expr, needle: str) -> pl.Expr:
    return (
        expr.fill_null("")
        .str.to_lowercase()
        .str.contains(needle.lower(), literal=True)
    )


def column_filter_expr(
    column: GridColumn,
    value: Any,
    lookup: LookupTable | None = None,
) -> pl.Expr | None:
    """Build the predicate for one column, or ``None`` when unconstrained."""
    if is_unconstrained(column, value):
        return None

    col = pl.col(column.key)

    if column.kind == "boolean":
        return col == normalize_bool(value)

    if column.kind == "id":
        if isinstance(value, int) and not isinstance(value, bool):
            return col == value
        resolved = label_expr(column, lookup or LookupTable())
        return _contains(resolved, str(value).strip())

    if column.kind == "date":
        return col.cast(pl.String).fill_null("").str.starts_with(str(value).strip())

    return _contains(col.cast(pl.String), str(value).strip())


def build_filter_expr(
    filter_state: FilterState,
    columns: list[GridColumn],
    lookups: dict[str, LookupTable] | None = None,
) -> pl.Expr | None:
    """AND together the predicates of every constrained column.

    Keys that are not filterable columns are ignored.

    Returns:
        The combined expression, or ``None`` when nothing is constrained.
    """
    by_key = {c.key: c for c in columns}
    lookups = lookups or {}
    combined: pl.Expr | None = None

    for key, value in filter_state.items():
        column = by_key.get(key)
        if column is None or not column.filterable:
            logger.debug("Ignoring filter on unknown or unfilterable column %r", key)
            continue
        lookup = lookups.get(column.lookup) if column.lookup else None
        expr = column_filter_expr(column, value, lookup)
        if expr is None:
            continue
        combined = expr if combined is None else combined & expr

    return combined


def apply_filters(
    df: pl.DataFrame,
    filter_state: FilterState,
    columns: list[GridColumn],
    lookups: dict[str, LookupTable] | None = None,
) -> pl.DataFrame:
    """Return the rows of *df* that satisfy every active filter.

    The relative order of the surviving rows is unchanged.
    """
    expr = build_filter_expr(filter_state, columns, lookups)
    if expr is None:
        return df
    return df.filter(expr)


def active_filter_fields(filter_state: FilterState, columns: list[GridColumn]) -> list[str]:
    """Keys of the columns that currently constrain the result."""
    by_key = {c.key: c for c in columns}
    return [
        key
        for key, value in filter_state.items()
        if key in by_key and not is_unconstrained(by_key[key], value)
    ]


# ---------------------------------------------------------------------------
# MUI filter model
# ---------------------------------------------------------------------------

_TEXT_OPERATORS: frozenset[str] = frozenset({"contains", "equals", "is", "startsWith"})


def filter_state_from_model(
    filter_model: dict[str, Any],
    columns: list[GridColumn],
    lookups: dict[str, LookupTable] | None = None,
) -> FilterState:
    """Convert a MUI ``filterModel`` into a filter state.

    Only operators with a direct counterpart are honoured: text-like
    operators become substring filters, ``is`` on a boolean column
    becomes a tri-state value and ``is`` on a ``singleSelect`` column
    (whose options are labels) selects the id behind that label.
    Other items are dropped.
    """
    by_key = {c.key: c for c in columns}
    lookups = lookups or {}
    state: FilterState = {}

    for item in filter_model.get("items", []) if filter_model else []:
        key = item.get("field")
        operator = item.get("operator", "")
        value = item.get("value")
        column = by_key.get(key) if key else None
        if column is None or not column.filterable or value is None:
            continue

        if column.kind == "boolean":
            if operator == "is":
                state[column.key] = normalize_bool(value)
            continue

        if column.kind == "id":
            lookup = lookups.get(column.lookup or "")
            if operator == "is" and lookup is not None:
                matches = [item_id for item_id, label in lookup.options() if label == value]
                state[column.key] = matches[0] if matches else str(value)
            elif operator in _TEXT_OPERATORS:
                state[column.key] = str(value)
            continue

        if operator in _TEXT_OPERATORS or (column.kind == "number" and operator == "="):
            state[column.key] = str(value)
        else:
            logger.debug("Dropping unsupported filter operator %r on %r", operator, key)

    return state


def merge_filter_model(
    existing: dict[str, Any],
    incoming: dict[str, Any],
) -> dict[str, Any]:
    """Merge an incoming MUI filter model into an accumulated one.

    The Community edition only sends one filter item at a time, so each
    item is folded into the existing set, keyed by ``field``:

    * An item with a value (even an empty string, which clears the
      field) replaces or adds the filter for its field.
    * An item without a value keeps the field's existing filter, taking
      over its operator if that changed (the user is still typing).
    * An empty ``items`` list clears everything.

    Returns:
        The merged filter model, or ``{}`` when no filter remains.
    """
    incoming_items: list[dict[str, Any]] = incoming.get("items", []) if incoming else []
    if not incoming_items:
        return {}

    by_field: dict[str, dict[str, Any]] = {
        item["field"]: item
        for item in (existing or {}).get("items", [])
        if item.get("field")
    }

    for item in incoming_items:
        key = item.get("field")
        if not key:
            continue
        operator = item.get("operator", "")
        if item.get("value") is not None:
            by_field[key] = item
        elif key in by_field and operator and operator != by_field[key].get("operator"):
            by_field[key] = {**by_field[key], "operator": operator}

    if not by_field:
        return {}
    return {
        "items": list(by_field.values()),
        "logicOperator": incoming.get("logicOperator", "and"),
    }
