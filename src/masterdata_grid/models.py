"""Column descriptors, lookup references and sort specs for the grid engine.

:class:`GridColumn` configures the engine (how a column filters, sorts
and edits).  :class:`ColumnDef` is its serialised form for the MUI X
DataGrid; :meth:`GridColumn.to_column_def` converts one into the other.
"""

from dataclasses import dataclass
from typing import Any, Literal

import reflex as rx
from reflex.components.props import PropsBase

ColumnKind = Literal["text", "number", "id", "boolean", "date"]
SortDirection = Literal["asc", "desc", "none"]
RowState = Literal["viewing", "editing", "saving", "delete_pending", "deleting"]

ROW_ID_FIELD: str = "__row_id__"


def humanize_field_name(field_name: str) -> str:
    """Convert a snake_case or raw field name to a human-friendly header.

    Examples:
        ``"address_type_id"`` -> ``"Address Type Id"``
        ``"code"`` -> ``"Code"``
    """
    return field_name.strip("_").replace("_", " ").title()


class ColumnDef(PropsBase):
    """Column definition for the MUI X DataGrid, maps to GridColDef.

    Attributes are automatically converted from snake_case to camelCase
    when serialized to JavaScript props via PropsBase.
    """

    field: str
    header_name: str | None = None
    width: int | None = None
    min_width: int | None = None
    flex: int | None = None
    type: Literal["string", "number", "date", "dateTime", "boolean", "singleSelect"] | None = None
    align: Literal["left", "center", "right"] | None = None
    editable: bool | rx.Var[bool] = False
    sortable: bool | rx.Var[bool] = True
    filterable: bool | rx.Var[bool] = True
    description: str | None = None
    value_options: list[str] | None = None


_GRID_TYPES: dict[str, str] = {
    "text": "string",
    "number": "number",
    "id": "singleSelect",
    "boolean": "boolean",
    "date": "string",
}


@dataclass(frozen=True)
class GridColumn:
    """Engine-side description of one column.

    Attributes:
        key: Record field name.
        kind: ``text`` (substring filter), ``number``, ``id`` (foreign key
            into *lookup*), ``boolean`` (tri-state filter) or ``date``
            (ISO string, prefix filter).
        label: Header text; defaults to the humanized key.
        sortable: Whether the header toggles sorting.
        filterable: Whether the column accepts a filter.
        editable: Whether the column is part of the edit session and
            therefore of every diff payload.
        required: Validation: must be non-blank (or, for ``id`` columns,
            a selected non-zero id).
        lookup: Name of the lookup table an ``id`` column references.
        translatable: The column holds the per-locale translation text.
        payload_key: Key used on the wire when it differs from *key*
            (the translatable ``name`` column travels as ``text``).
        pattern: Optional regex the value must fully match.
        default: Initial value for new-item drafts.
    """

    key: str
    kind: ColumnKind = "text"
    label: str | None = None
    sortable: bool = True
    filterable: bool = True
    editable: bool = False
    required: bool = False
    lookup: str | None = None
    translatable: bool = False
    payload_key: str | None = None
    pattern: str | None = None
    default: Any = None

    def __post_init__(self) -> None:
        if self.kind == "id" and not self.lookup:
            raise ValueError(f"Column {self.key!r} of kind 'id' needs a lookup table")

    @property
    def header(self) -> str:
        return self.label or humanize_field_name(self.key)

    @property
    def wire_key(self) -> str:
        return self.payload_key or self.key

    def to_column_def(self, lookup: "LookupTable | None" = None) -> ColumnDef:
        """Build the MUI column definition for this column.

        Foreign-key columns become ``singleSelect`` columns whose options
        are the resolved labels of *lookup*.
        """
        value_options: list[str] | None = None
        if self.kind == "id" and lookup is not None:
            value_options = [label for _, label in lookup.options()]
        return ColumnDef(
            field=self.key,
            header_name=self.header,
            type=_GRID_TYPES[self.kind],
            sortable=self.sortable,
            filterable=self.filterable,
            value_options=value_options,
            flex=1,
        )


def editable_columns(columns: list[GridColumn]) -> list[GridColumn]:
    return [c for c in columns if c.editable]


def translatable_column(columns: list[GridColumn]) -> GridColumn | None:
    """Return the (at most one) translatable column."""
    found = [c for c in columns if c.translatable]
    if len(found) > 1:
        raise ValueError("A grid supports at most one translatable column")
    return found[0] if found else None


# ---------------------------------------------------------------------------
# Lookup references
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LookupItem:
    """One row of a lookup/reference table as returned by the backend."""

    id: int
    code: str
    name: str | None = None
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LookupItem":
        return cls(
            id=int(data["id"]),
            code=str(data.get("code") or ""),
            name=data.get("name") or None,
            is_active=bool(data.get("is_active", True)),
        )


class LookupTable:
    """Resolves foreign-key ids to display labels.

    The label is the item's ``name``, falling back to its ``code``,
    falling back to *unknown_label* for ids that are missing from the
    table (including every id when the table failed to load).
    """

    def __init__(self, items: list[LookupItem] | None = None, unknown_label: str = "Unknown") -> None:
        self.items: list[LookupItem] = list(items or [])
        self.unknown_label = unknown_label
        self._by_id: dict[int, LookupItem] = {item.id: item for item in self.items}

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._by_id

    def get(self, item_id: int | None) -> LookupItem | None:
        if item_id is None:
            return None
        return self._by_id.get(item_id)

    def label(self, item_id: int | None) -> str:
        item = self.get(item_id)
        if item is None:
            return self.unknown_label
        return item.name or item.code or self.unknown_label

    def mapping(self) -> dict[int, str]:
        """Return ``{id: label}`` for every item in the table."""
        return {item.id: self.label(item.id) for item in self.items}

    def options(self, *, active_only: bool = False) -> list[tuple[int, str]]:
        """Return ``(id, label)`` pairs for select inputs, in table order."""
        return [
            (item.id, self.label(item.id))
            for item in self.items
            if item.is_active or not active_only
        ]


# ---------------------------------------------------------------------------
# Sort spec
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SortSpec:
    """Active sort column and direction.

    ``direction == "none"`` means original order and always comes with
    ``field is None``.
    """

    field: str | None = None
    direction: SortDirection = "none"

    def __post_init__(self) -> None:
        if (self.field is None) != (self.direction == "none"):
            raise ValueError(
                f"Inconsistent sort spec: field={self.field!r}, direction={self.direction!r}"
            )

    @property
    def is_active(self) -> bool:
        return self.direction != "none"


UNSORTED = SortSpec()


@dataclass(frozen=True)
class RequestContext:
    """Locale and auth state threaded explicitly into every backend call."""

    locale_id: int = 1
    locale_code: str = "en"
    auth_token: str | None = None
