"""Example Reflex app with editable reference-data grids.

Four tabs, all on the in-memory sample backend:
  1. Countries -- 25 rows with English, German and Hungarian names.
     Switch the locale to see the names change.
  2. Object Types -- types used by a relation type cannot be deleted;
     try it to see the referential-integrity rejection.
  3. Relation Types -- two foreign keys into object types, shown and
     sorted by their labels.
  4. Addresses -- an entity table scoped to object 1, with
     ``field_old`` / ``field_new`` update payloads.

Set ``MASTERDATA_API_BASE_URL`` and swap ``_persistence`` for a
``WebhookPersistence`` to edit a live backend instead.
"""

import reflex as rx

from masterdata_grid import (
    EditableGridMixin,
    GridOrchestrator,
    GridSettings,
    build_demo_persistence,
    editable_grid,
    preset_for,
)

# One backend for every tab so edits show up across grids.
_persistence = build_demo_persistence(delay=0.2)
_settings = GridSettings.from_env()

LOCALES: list[str] = list(_settings.locales)


def _build(table: str, **kwargs) -> GridOrchestrator:
    preset = preset_for(table)
    return GridOrchestrator(
        _persistence,
        preset.table,
        list(preset.columns),
        settings=_settings,
        diff_style=preset.diff_style,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Grid states
# ---------------------------------------------------------------------------

class CountriesState(EditableGridMixin, rx.State):
    def build_grid(self) -> GridOrchestrator:
        return _build("countries", page_size=10)


class ObjectTypesState(EditableGridMixin, rx.State):
    def build_grid(self) -> GridOrchestrator:
        return _build("object-types")


class RelationTypesState(EditableGridMixin, rx.State):
    def build_grid(self) -> GridOrchestrator:
        return _build("object-relation-types")


class AddressesState(EditableGridMixin, rx.State):
    def build_grid(self) -> GridOrchestrator:
        return _build("addresses", parent_id=1)


class AppState(rx.State):
    """Loads every grid on page load."""

    def load_all(self):
        return [
            CountriesState.load_grid,
            ObjectTypesState.load_grid,
            RelationTypesState.load_grid,
            AddressesState.load_grid,
        ]


# ---------------------------------------------------------------------------
# UI
# ---------------------------------------------------------------------------

def _locale_select(state_cls: type) -> rx.Component:
    return rx.hstack(
        rx.text("Locale", size="2", color="var(--gray-11)"),
        rx.select(
            LOCALES,
            value=state_cls.grid_locale,
            on_change=state_cls.set_grid_locale,
            size="1",
        ),
        align="center",
        margin_bottom="0.5em",
    )


def _tab(description: str, state_cls: type) -> rx.Component:
    return rx.box(
        rx.text(description, margin_bottom="1em", color="var(--gray-11)"),
        _locale_select(state_cls),
        editable_grid(state_cls, height="480px"),
        padding_top="1em",
    )


def index() -> rx.Component:
    """Render the main page with tabs."""
    return rx.box(
        rx.heading("Reference Data -- Editable Grids", size="6", margin_bottom="1em"),
        rx.tabs.root(
            rx.tabs.list(
                rx.tabs.trigger("Countries", value="countries"),
                rx.tabs.trigger("Object Types", value="object-types"),
                rx.tabs.trigger("Relation Types", value="relation-types"),
                rx.tabs.trigger("Addresses", value="addresses"),
            ),
            rx.tabs.content(
                _tab(
                    "Click a row to edit it. Tick \"Update all languages\" to push a "
                    "new name to every locale before the record is saved.",
                    CountriesState,
                ),
                value="countries",
            ),
            rx.tabs.content(
                _tab(
                    "Types used by a relation type are still referenced and cannot be deleted.",
                    ObjectTypesState,
                ),
                value="object-types",
            ),
            rx.tabs.content(
                _tab(
                    "Parent and child types are foreign keys; filter and sort use their labels.",
                    RelationTypesState,
                ),
                value="relation-types",
            ),
            rx.tabs.content(
                _tab("Addresses of object 1.", AddressesState),
                value="addresses",
            ),
            default_value="countries",
        ),
        padding="2em",
        max_width="1400px",
        margin="0 auto",
    )


app = rx.App()
app.add_page(index, on_load=AppState.load_all)
