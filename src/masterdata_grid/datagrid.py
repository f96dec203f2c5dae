"""Reflex binding for the MUI X DataGrid (Community, v8).

Only the props the editable grid drives are declared.  In server mode
the grid renders exactly the rows it is handed and reports paging,
sorting and filtering back through the ``on_*_model_change`` events;
the engine does the rest.  Page sizes stay within the Community limit
of 100 rows.
"""

from typing import Any, Literal

import reflex as rx
from reflex.components.el import Div

from masterdata_grid.models import ColumnDef

# Keys of the row-click params that reference live JS objects.
_ROW_CLICK_DROPPED_KEYS: tuple[str, ...] = ("api", "columns", "node", "event")


def _row_click_payload(params: rx.Var) -> list[rx.Var]:
    """Send the row-click params without their unserialisable members."""
    dropped = ", ".join(_ROW_CLICK_DROPPED_KEYS)
    return [rx.Var(f"(({{{dropped}, ...rest}}) => rest)({params})")]


def _model_payload(model: rx.Var) -> list[rx.Var]:
    return [model]


class DataGrid(rx.Component):
    """``DataGrid`` from ``@mui/x-data-grid``.

    Needs a parent with explicit dimensions; :class:`WrappedDataGrid`
    provides one.
    """

    library: str = "@mui/x-data-grid"
    tag: str = "DataGrid"
    is_default: bool = False

    lib_dependencies: list[str] = [
        "@mui/material@^7.0.0",
        "@emotion/react@^11.14.0",
        "@emotion/styled@^11.14.0",
    ]

    rows: rx.Var[list[dict[str, Any]]]
    columns: rx.Var[list[dict[str, Any]]]
    get_row_id: rx.Var[Any]
    get_row_class_name: rx.Var[Any]

    loading: rx.Var[bool]
    density: rx.Var[Literal["comfortable", "compact", "standard"]]
    disable_row_selection_on_click: rx.Var[bool]
    disable_column_selector: rx.Var[bool]
    hide_footer: rx.Var[bool]

    # Paging, sorting and filtering are reported, not performed, in
    # server mode.
    row_count: rx.Var[int]
    pagination: rx.Var[bool]
    pagination_mode: rx.Var[Literal["client", "server"]]
    pagination_model: rx.Var[dict[str, int]]
    page_size_options: rx.Var[list[int]]
    sorting_mode: rx.Var[Literal["client", "server"]]
    sorting_order: rx.Var[list[str | None]]
    sort_model: rx.Var[list[dict[str, Any]]]
    filter_mode: rx.Var[Literal["client", "server"]]
    filter_model: rx.Var[dict[str, Any]]
    filter_debounce_ms: rx.Var[int]

    sx: rx.Var[dict[str, Any]]

    on_row_click: rx.EventHandler[_row_click_payload]
    on_sort_model_change: rx.EventHandler[_model_payload]
    on_filter_model_change: rx.EventHandler[_model_payload]
    on_pagination_model_change: rx.EventHandler[_model_payload]

    @classmethod
    def create(
        cls,
        *children: rx.Component,
        row_id_field: str | None = None,
        row_class_field: str | None = None,
        **props: Any,
    ) -> rx.Component:
        """Create the grid.

        Args:
            row_id_field: Row field used as ``getRowId``.
            row_class_field: Row field whose value becomes the row's CSS
                class, prefixed with ``row-`` (``"editing"`` ->
                ``row-editing``).
        """
        if row_id_field is not None:
            props["get_row_id"] = rx.Var(f"(row) => row.{row_id_field}")
        if row_class_field is not None:
            props["get_row_class_name"] = rx.Var(
                f"(params) => `row-${{params.row.{row_class_field} ?? 'viewing'}}`"
            )
        return super().create(*children, **props)


class WrappedDataGrid(DataGrid):
    """:class:`DataGrid` in a sized ``<div>``, in server mode by default."""

    @classmethod
    def create(cls, *children: rx.Component, server_side: bool = True, **props: Any) -> rx.Component:
        width = props.pop("width", "100%")
        height = props.pop("height", "520px")
        props.setdefault("pagination", True)
        props.setdefault("sorting_order", ["asc", "desc", None])
        if server_side:
            for mode in ("pagination_mode", "filter_mode", "sorting_mode"):
                props.setdefault(mode, "server")
        return Div.create(super().create(*children, **props), width=width, height=height)


class DataGridNamespace(rx.ComponentNamespace):
    column_def = ColumnDef
    root = DataGrid.create
    __call__ = WrappedDataGrid.create


data_grid = DataGridNamespace()
