"""Reflex state mixin and UI helpers for editable reference-data grids.

Subclass :class:`EditableGridMixin` together with ``rx.State``, return a
:class:`~masterdata_grid.orchestrator.GridOrchestrator` from
:meth:`~EditableGridMixin.build_grid`, trigger
:meth:`~EditableGridMixin.load_grid` on page load and render with
:func:`editable_grid`.

``EditableGridMixin`` is a Reflex **state mixin** (``mixin=True``), so
every subclass gets its own ``grid_*`` vars and several grids can share
a page.  The orchestrators themselves (polars frames, sessions) live in
a module-level registry keyed by state class and client token; only the
current page of rows and the form state are serialised to the browser.

Typical usage::

    from masterdata_grid import EditableGridMixin, GridOrchestrator, editable_grid

    class CountriesState(EditableGridMixin, rx.State):
        def build_grid(self) -> GridOrchestrator:
            preset = preset_for("countries")
            return GridOrchestrator(WebhookPersistence(), preset.table, list(preset.columns))

    def index():
        return editable_grid(CountriesState)

    app.add_page(index, on_load=CountriesState.load_grid)
"""

import logging
from typing import Any

import reflex as rx

from masterdata_grid.config import PAGE_SIZE_OPTIONS
from masterdata_grid.datagrid import data_grid
from masterdata_grid.errors import GridError, ValidationError
from masterdata_grid.filters import filter_state_from_model, merge_filter_model
from masterdata_grid.models import editable_columns
from masterdata_grid.orchestrator import (
    Deleted,
    GridOrchestrator,
    RejectedReferentialIntegrity,
)
from masterdata_grid.session import coerce_field_value
from masterdata_grid.sorting import sort_model_from_spec, spec_from_sort_model

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Module-level orchestrator registry
# ---------------------------------------------------------------------------

_grids: dict[str, GridOrchestrator] = {}

# Extra row field carrying the engine's row state to the browser.
ROW_STATE_FIELD: str = "_row_state"

_ROW_STATE_STYLES: dict[str, Any] = {
    "& .row-editing": {"backgroundColor": "var(--amber-3)"},
    "& .row-saving, & .row-deleting": {"opacity": 0.6},
    "& .row-delete_pending": {"backgroundColor": "var(--red-3)"},
}


def _registry_key(state: rx.State) -> str:
    return f"{type(state).__name__}:{state.router.session.client_token}"


class EditableGridMixin(rx.State, mixin=True):
    """Reflex State mixin wiring a :class:`GridOrchestrator` to the MUI grid.

    Subclasses **must** also inherit from ``rx.State`` and implement
    :meth:`build_grid`::

        class MyGrid(EditableGridMixin, rx.State):
            def build_grid(self) -> GridOrchestrator:
                ...

    Clicking a row opens it in the edit form below the grid; the form
    also hosts "New" and "Delete".  Every handler that talks to the
    backend is a generator so the loading state reaches the browser
    before the request is made.
    """

    # -- Grid --
    grid_rows: list[dict[str, Any]] = []
    grid_columns: list[dict[str, Any]] = []
    grid_row_count: int = 0
    grid_loading: bool = False
    grid_loaded: bool = False
    grid_summary: str = ""
    grid_error: str = ""
    grid_warnings: list[str] = []
    grid_pagination_model: dict[str, int] = {"page": 0, "pageSize": 20}
    grid_sort_model: list[dict[str, str]] = []
    grid_filter_model: dict[str, Any] = {"items": []}
    grid_active_filter_fields: list[str] = []
    grid_locale: str = "en"

    # -- Edit / create form --
    grid_form_mode: str = ""
    grid_form_record_id: int = 0
    grid_form_fields: list[dict[str, Any]] = []
    grid_field_errors: dict[str, str] = {}
    grid_has_translation: bool = False
    grid_propagate_all_locales: bool = False
    grid_saving: bool = False

    # -- Delete confirmation --
    grid_delete_id: int = 0
    grid_delete_label: str = ""

    # -- Backend-only vars --
    _grid_filter: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_grid(self) -> GridOrchestrator:
        """Return the orchestrator for this grid (called once per client)."""
        raise NotImplementedError(f"{type(self).__name__} must implement build_grid()")

    def _grid(self) -> GridOrchestrator:
        key = _registry_key(self)
        if key not in _grids:
            _grids[key] = self.build_grid()
        return _grids[key]

    async def load_grid(self):
        """Load records and lookups, then show the first page."""
        self.grid_loading = True  # type: ignore[assignment]
        yield

        grid = self._grid()
        report = await grid.load()
        self.grid_error = report.error.message if report.error else ""  # type: ignore[assignment]
        self._sync_grid(grid)
        self.grid_loaded = True  # type: ignore[assignment]
        self.grid_loading = False  # type: ignore[assignment]

    async def set_grid_locale(self, locale_code: str):
        """Reload names and labels in another locale."""
        self.grid_loading = True  # type: ignore[assignment]
        yield

        grid = self._grid()
        report = await grid.set_locale(locale_code)
        self.grid_error = report.error.message if report.error else ""  # type: ignore[assignment]
        self._sync_grid(grid)
        self.grid_loading = False  # type: ignore[assignment]

    # ------------------------------------------------------------------
    # Grid event handlers
    # ------------------------------------------------------------------

    def handle_grid_filter(self, filter_model: dict[str, Any]) -> None:
        """Fold a MUI filter event into the accumulated filter and re-slice.

        The Community edition sends one filter item at a time; see
        :func:`~masterdata_grid.filters.merge_filter_model`.
        """
        grid = self._grid()
        merged = merge_filter_model(self._grid_filter or {}, filter_model)
        self._grid_filter = merged  # type: ignore[assignment]
        # Echo every accumulated item back to the filter panel.
        self.grid_filter_model = merged or {"items": []}  # type: ignore[assignment]
        grid.set_filters(filter_state_from_model(merged, grid.columns, grid.lookups))
        self._sync_grid(grid)

    def clear_grid_filters(self) -> None:
        grid = self._grid()
        self._grid_filter = {}  # type: ignore[assignment]
        self.grid_filter_model = {"items": []}  # type: ignore[assignment]
        grid.clear_filters()
        self._sync_grid(grid)

    def handle_grid_sort(self, sort_model: list[dict[str, Any]]) -> None:
        grid = self._grid()
        grid.set_sort(spec_from_sort_model(sort_model))
        self._sync_grid(grid)

    def handle_grid_pagination(self, pagination_model: dict[str, Any]) -> None:
        """MUI pages are 0-based; the engine's are 1-based."""
        grid = self._grid()
        page_size = int(pagination_model.get("pageSize", grid.page_size))
        if page_size != grid.page_size:
            grid.set_page_size(page_size)
        else:
            grid.set_page(int(pagination_model.get("page", 0)) + 1)
        self._sync_grid(grid)

    def handle_grid_row_click(self, params: dict[str, Any]) -> None:
        """Open the clicked row in the edit form."""
        row: dict[str, Any] = params.get("row", {})
        if not row or "id" not in row:
            return
        grid = self._grid()
        if self.grid_form_mode == "create":
            grid.cancel_create()
        try:
            grid.start_edit(int(row["id"]))
        except (GridError, KeyError) as exc:
            self.grid_error = str(exc)  # type: ignore[assignment]
            return
        self.grid_form_mode = "edit"  # type: ignore[assignment]
        self.grid_form_record_id = int(row["id"])  # type: ignore[assignment]
        self.grid_field_errors = {}  # type: ignore[assignment]
        self.grid_propagate_all_locales = False  # type: ignore[assignment]
        self.grid_error = ""  # type: ignore[assignment]
        self._sync_form(grid)
        self._sync_grid(grid)

    # ------------------------------------------------------------------
    # Form event handlers
    # ------------------------------------------------------------------

    def open_grid_create(self) -> None:
        grid = self._grid()
        self._close_edit(grid)
        grid.start_create()
        self.grid_form_mode = "create"  # type: ignore[assignment]
        self.grid_form_record_id = 0  # type: ignore[assignment]
        self.grid_field_errors = {}  # type: ignore[assignment]
        self._sync_form(grid)
        self._sync_grid(grid)

    def set_grid_field(self, key: str, value: Any) -> None:
        grid = self._grid()
        try:
            coerced = coerce_field_value(grid.column(key), value)
        except ValueError:
            self.grid_field_errors = {**self.grid_field_errors, key: "Invalid number"}  # type: ignore[assignment]
            return
        if self.grid_form_mode == "edit":
            grid.update_field(self.grid_form_record_id, key, coerced)
        elif self.grid_form_mode == "create":
            grid.update_create_field(key, coerced)
        errors = {k: v for k, v in self.grid_field_errors.items() if k != key}
        self.grid_field_errors = errors  # type: ignore[assignment]
        self._sync_form(grid)

    def set_grid_propagate_all_locales(self, value: bool) -> None:
        grid = self._grid()
        if self.grid_form_mode == "edit":
            grid.set_propagate_all_locales(self.grid_form_record_id, value)
        self.grid_propagate_all_locales = value  # type: ignore[assignment]

    def cancel_grid_form(self) -> None:
        grid = self._grid()
        self._close_edit(grid)
        grid.cancel_create()
        self._reset_form()
        self._sync_grid(grid)

    async def save_grid_form(self):
        """Commit the edit (or create the new record) shown in the form."""
        grid = self._grid()
        self.grid_saving = True  # type: ignore[assignment]
        self.grid_error = ""  # type: ignore[assignment]
        self.grid_warnings = []  # type: ignore[assignment]
        yield

        try:
            if self.grid_form_mode == "edit":
                result = await grid.commit_edit(self.grid_form_record_id)
                self.grid_warnings = result.warnings  # type: ignore[assignment]
            elif self.grid_form_mode == "create":
                await grid.create()
        except ValidationError as exc:
            self.grid_field_errors = exc.field_errors  # type: ignore[assignment]
            self._sync_form(grid)
        except GridError as exc:
            logger.error("Saving %s failed: %s", grid.table, exc)
            self.grid_error = str(exc)  # type: ignore[assignment]
        else:
            self._reset_form()
        self._sync_grid(grid)
        self.grid_saving = False  # type: ignore[assignment]

    # ------------------------------------------------------------------
    # Delete event handlers
    # ------------------------------------------------------------------

    def request_grid_delete(self) -> None:
        """Ask to confirm deletion of the record open in the form."""
        grid = self._grid()
        record_id = self.grid_form_record_id
        if self.grid_form_mode != "edit" or not record_id:
            return
        self._close_edit(grid)
        try:
            grid.request_delete(record_id)
        except (GridError, KeyError) as exc:
            self.grid_error = str(exc)  # type: ignore[assignment]
            return
        record = grid.record(record_id)
        self.grid_delete_id = record_id  # type: ignore[assignment]
        self.grid_delete_label = str(record.get("name") or record.get("code") or record_id)  # type: ignore[assignment]
        self._reset_form()
        self._sync_grid(grid)

    def cancel_grid_delete(self) -> None:
        grid = self._grid()
        grid.cancel_delete(self.grid_delete_id)
        self.grid_delete_id = 0  # type: ignore[assignment]
        self.grid_delete_label = ""  # type: ignore[assignment]
        self._sync_grid(grid)

    async def confirm_grid_delete(self):
        grid = self._grid()
        record_id = self.grid_delete_id
        self.grid_loading = True  # type: ignore[assignment]
        yield

        try:
            outcome = await grid.confirm_delete(record_id)
        except GridError as exc:
            logger.error("Deleting %s/%s failed: %s", grid.table, record_id, exc)
            self.grid_error = str(exc)  # type: ignore[assignment]
        else:
            if isinstance(outcome, Deleted):
                self.grid_error = ""  # type: ignore[assignment]
            elif isinstance(outcome, RejectedReferentialIntegrity):
                self.grid_error = (  # type: ignore[assignment]
                    f"Cannot delete: the record is still in use. {outcome.message}"
                )
            else:
                self.grid_error = f"Delete failed: {outcome.reason}"  # type: ignore[assignment]
            self.grid_delete_id = 0  # type: ignore[assignment]
            self.grid_delete_label = ""  # type: ignore[assignment]
        self._sync_grid(grid)
        self.grid_loading = False  # type: ignore[assignment]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _close_edit(self, grid: GridOrchestrator) -> None:
        record_id = self.grid_form_record_id
        if self.grid_form_mode == "edit" and grid.row_state(record_id) == "editing":
            grid.cancel_edit(record_id)

    def _reset_form(self) -> None:
        self.grid_form_mode = ""  # type: ignore[assignment]
        self.grid_form_record_id = 0  # type: ignore[assignment]
        self.grid_form_fields = []  # type: ignore[assignment]
        self.grid_field_errors = {}  # type: ignore[assignment]
        self.grid_propagate_all_locales = False  # type: ignore[assignment]

    def _sync_form(self, grid: GridOrchestrator) -> None:
        """Copy the open draft into ``grid_form_fields``."""
        if self.grid_form_mode == "edit":
            session = grid.sessions.get(self.grid_form_record_id)
            values = session.draft if session else {}
        elif self.grid_form_mode == "create" and grid.create_draft is not None:
            values = grid.create_draft.values
        else:
            values = {}

        fields: list[dict[str, Any]] = []
        for column in editable_columns(grid.columns):
            value = values.get(column.key)
            if column.kind == "boolean":
                shown: Any = bool(value)
            else:
                shown = "" if value is None else str(value)
            options = [
                {"value": str(item_id), "label": label}
                for item_id, label in grid.options_for(column.key)
            ] if column.kind == "id" else []
            fields.append(
                {
                    "key": column.key,
                    "label": column.header + (" *" if column.required else ""),
                    "kind": column.kind,
                    "value": shown,
                    "options": options,
                    "error": self.grid_field_errors.get(column.key, ""),
                }
            )
        self.grid_form_fields = fields  # type: ignore[assignment]
        self.grid_has_translation = grid.translatable is not None  # type: ignore[assignment]

    def _sync_grid(self, grid: GridOrchestrator) -> None:
        """Push the orchestrator's current page and view state to the browser."""
        self.grid_rows = [  # type: ignore[assignment]
            {**row, ROW_STATE_FIELD: grid.row_state(row["id"])} if "id" in row else row
            for row in grid.display_rows()
        ]
        self.grid_columns = [  # type: ignore[assignment]
            c.to_column_def(grid.lookups.get(c.lookup or "")).dict() for c in grid.columns
        ]
        self.grid_row_count = grid.row_count  # type: ignore[assignment]
        self.grid_pagination_model = {"page": grid.page - 1, "pageSize": grid.page_size}  # type: ignore[assignment]
        self.grid_sort_model = sort_model_from_spec(grid.sort_spec)  # type: ignore[assignment]
        self.grid_active_filter_fields = grid.active_filter_fields()  # type: ignore[assignment]
        self.grid_summary = grid.summary()  # type: ignore[assignment]
        self.grid_locale = grid.context.locale_code  # type: ignore[assignment]


# ---------------------------------------------------------------------------
# UI helpers
# ---------------------------------------------------------------------------

def editable_grid(
    state_cls: type,
    *,
    height: str = "520px",
    width: str = "100%",
    density: str = "compact",
    show_form: bool = True,
    **extra_props: Any,
) -> rx.Component:
    """Return the toolbar, a server-mode ``data_grid`` and the edit form.

    Args:
        state_cls: The ``rx.State`` subclass that also inherits from
            :class:`EditableGridMixin`.
        height: CSS height of the grid container.
        width: CSS width of the grid container.
        density: Grid density (``"comfortable"``, ``"compact"``, ``"standard"``).
        show_form: Render the edit form and delete confirmation below the
            grid.  Without them a row click still opens an edit session.
        **extra_props: Additional props forwarded to ``data_grid()``.
    """
    grid = data_grid(
        rows=state_cls.grid_rows,
        columns=state_cls.grid_columns,
        row_id_field="id",
        row_class_field=ROW_STATE_FIELD,
        row_count=state_cls.grid_row_count,
        pagination_model=state_cls.grid_pagination_model,
        page_size_options=PAGE_SIZE_OPTIONS,
        sort_model=state_cls.grid_sort_model,
        filter_model=state_cls.grid_filter_model,
        # -- Display --
        loading=state_cls.grid_loading,
        density=density,
        disable_row_selection_on_click=True,
        # -- Events --
        on_filter_model_change=state_cls.handle_grid_filter,
        on_sort_model_change=state_cls.handle_grid_sort,
        on_pagination_model_change=state_cls.handle_grid_pagination,
        on_row_click=state_cls.handle_grid_row_click,
        sx=extra_props.pop("sx", _ROW_STATE_STYLES),
        height=height,
        width=width,
        **extra_props,
    )
    if not show_form:
        return rx.fragment(editable_grid_toolbar(state_cls), grid)

    return rx.fragment(
        editable_grid_toolbar(state_cls),
        grid,
        editable_grid_delete_confirm(state_cls),
        editable_grid_form(state_cls),
    )


def editable_grid_toolbar(state_cls: type) -> rx.Component:
    """Summary line, New / Clear filters buttons and error / warning callouts."""
    return rx.vstack(
        rx.hstack(
            rx.text(state_cls.grid_summary, size="2", color="var(--gray-11)"),
            rx.spacer(),
            rx.cond(
                state_cls.grid_active_filter_fields.length() > 0,  # type: ignore[union-attr]
                rx.button(
                    rx.icon("filter_x", size=14),
                    "Clear filters",
                    size="1",
                    variant="soft",
                    color_scheme="gray",
                    on_click=state_cls.clear_grid_filters,
                ),
            ),
            rx.button(
                rx.icon("plus", size=14),
                "New",
                size="1",
                on_click=state_cls.open_grid_create,
            ),
            width="100%",
            align="center",
        ),
        rx.cond(
            state_cls.grid_error != "",
            rx.callout(state_cls.grid_error, icon="triangle_alert", color_scheme="red", size="1"),
        ),
        rx.foreach(
            state_cls.grid_warnings,
            lambda warning: rx.callout(warning, icon="info", color_scheme="amber", size="1"),
        ),
        width="100%",
        spacing="2",
        margin_bottom="0.5em",
    )


def _form_input(state_cls: type, field: rx.Var) -> rx.Component:
    options = field["options"].to(list[dict[str, str]])
    control = rx.match(
        field["kind"],
        (
            "boolean",
            rx.switch(
                checked=field["value"].to(bool),
                on_change=lambda value: state_cls.set_grid_field(field["key"], value),
            ),
        ),
        (
            "id",
            rx.el.select(
                rx.el.option("Select...", value=""),
                rx.foreach(options, lambda o: rx.el.option(o["label"], value=o["value"])),
                value=field["value"].to(str),
                on_change=lambda value: state_cls.set_grid_field(field["key"], value),
            ),
        ),
        rx.input(
            value=field["value"].to(str),
            on_change=lambda value: state_cls.set_grid_field(field["key"], value),
            width="100%",
        ),
    )
    return rx.vstack(
        rx.text(field["label"].to(str), size="1", weight="medium"),
        control,
        rx.cond(
            field["error"].to(str) != "",
            rx.text(field["error"].to(str), size="1", color="var(--red-11)"),
        ),
        spacing="1",
        min_width="14em",
    )


def editable_grid_form(state_cls: type) -> rx.Component:
    """The edit / create form for the row picked in the grid."""
    return rx.cond(
        state_cls.grid_form_mode != "",
        rx.box(
            rx.heading(
                rx.cond(state_cls.grid_form_mode == "create", "New record", "Edit record"),
                size="3",
                margin_bottom="0.5em",
            ),
            rx.flex(
                rx.foreach(state_cls.grid_form_fields, lambda f: _form_input(state_cls, f)),
                wrap="wrap",
                spacing="4",
            ),
            rx.cond(
                state_cls.grid_has_translation & (state_cls.grid_form_mode == "edit"),
                rx.hstack(
                    rx.checkbox(
                        "Apply this name to all languages",
                        checked=state_cls.grid_propagate_all_locales,
                        on_change=state_cls.set_grid_propagate_all_locales,
                    ),
                    margin_top="0.75em",
                ),
            ),
            rx.hstack(
                rx.button(
                    "Save",
                    on_click=state_cls.save_grid_form,
                    loading=state_cls.grid_saving,
                ),
                rx.button(
                    "Cancel",
                    variant="soft",
                    color_scheme="gray",
                    on_click=state_cls.cancel_grid_form,
                ),
                rx.spacer(),
                rx.cond(
                    state_cls.grid_form_mode == "edit",
                    rx.button(
                        rx.icon("trash_2", size=14),
                        "Delete",
                        variant="soft",
                        color_scheme="red",
                        on_click=state_cls.request_grid_delete,
                    ),
                ),
                margin_top="1em",
                width="100%",
            ),
            margin_top="1em",
            padding="1em",
            border_radius="8px",
            background="var(--gray-a3)",
        ),
    )


def editable_grid_delete_confirm(state_cls: type) -> rx.Component:
    """Inline confirmation shown while a delete is pending."""
    return rx.cond(
        state_cls.grid_delete_id != 0,
        rx.callout.root(
            rx.callout.icon(rx.icon("trash_2")),
            rx.callout.text(
                "Delete ",
                rx.text.strong(state_cls.grid_delete_label),
                "? The record is deactivated and hidden from new selections.",
            ),
            rx.hstack(
                rx.button(
                    "Delete",
                    color_scheme="red",
                    size="1",
                    on_click=state_cls.confirm_grid_delete,
                ),
                rx.button(
                    "Keep",
                    variant="soft",
                    color_scheme="gray",
                    size="1",
                    on_click=state_cls.cancel_grid_delete,
                ),
            ),
            color_scheme="red",
            margin_top="1em",
        ),
    )
