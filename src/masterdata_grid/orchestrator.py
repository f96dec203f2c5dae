"""The grid engine: one table's records, lookups, view state and edits.

:class:`GridOrchestrator` owns the loaded frame and runs every view
change through the same pipeline::

    records -> filter -> sort -> page slice

Filter, sort and paging changes are synchronous and never touch the
backend.  Loading, saving, creating and deleting are coroutines that go
through a :class:`~masterdata_grid.persistence.Persistence`.

Typical usage::

    grid = GridOrchestrator(MemoryPersistence(...), "countries", columns)
    await grid.load()
    grid.set_filter("name", "land")
    grid.toggle_sort("code")
    grid.visible_rows()
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any

import polars as pl

from masterdata_grid import session as edit_session
from masterdata_grid.config import GridSettings, language_id_for
from masterdata_grid.errors import (
    EditSessionError,
    GridError,
    PartialLoadError,
    RequestError,
    SubmissionInProgressError,
)
from masterdata_grid.filters import FilterState, active_filter_fields, apply_filters, is_unconstrained
from masterdata_grid.frames import frame_to_records, records_to_frame
from masterdata_grid.models import (
    ROW_ID_FIELD,
    UNSORTED,
    GridColumn,
    LookupTable,
    RequestContext,
    RowState,
    SortSpec,
    translatable_column,
)
from masterdata_grid.pagination import PageSlice, clamp_page, slice_page, total_pages
from masterdata_grid.persistence import Persistence
from masterdata_grid.session import CreateDraft, DiffKeyStyle, DiffPayload, EditSession
from masterdata_grid.sorting import apply_sort, toggle
from masterdata_grid.translations import LocaleResult, propagate_translation, supported_languages

logger = logging.getLogger(__name__)

# Backend error codes that mean "other records still depend on this one".
REFERENTIAL_ERROR_CODES: frozenset[str] = frozenset(
    {
        "REFERENTIAL_INTEGRITY",
        "CONSTRAINT_VIOLATION",
        "FOREIGN_KEY_CONSTRAINT",
        "HAS_DEPENDENTS",
        "LAST_PARENT",
    }
)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Deleted:
    record_id: int


@dataclass(frozen=True)
class RejectedReferentialIntegrity:
    """The backend refused because other records reference this one."""

    record_id: int
    message: str


@dataclass(frozen=True)
class RejectedOtherReason:
    record_id: int
    reason: str


DeleteOutcome = Deleted | RejectedReferentialIntegrity | RejectedOtherReason


def classify_delete_error(record_id: int, exc: RequestError) -> DeleteOutcome:
    """Map a rejected delete to the outcome shown to the user."""
    if exc.status == 409 or exc.code in REFERENTIAL_ERROR_CODES:
        return RejectedReferentialIntegrity(record_id, exc.message)
    return RejectedOtherReason(record_id, str(exc))


@dataclass(frozen=True)
class LoadReport:
    """What a :meth:`GridOrchestrator.load` call fetched.

    Attributes:
        record_count: Records held after the load (the previous ones
            when the record fetch failed).
        lookup_sizes: Items per lookup table; ``0`` for failed tables.
        elapsed_ms: Wall time of the whole load.
        error: The failed sources, ``None`` when everything loaded.
    """

    record_count: int
    lookup_sizes: dict[str, int]
    elapsed_ms: float
    error: PartialLoadError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class SaveResult:
    """A successful commit plus the per-locale translation outcomes."""

    record_id: int
    payload: DiffPayload
    translations: tuple[LocaleResult, ...] = ()

    @property
    def warnings(self) -> list[str]:
        return [r.warning() for r in self.translations if r.failed]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class GridOrchestrator:
    """Editable grid over one backend table.

    Args:
        persistence: Backend the records, lookups and edits go through.
        table: Backend table name.
        columns: Column descriptors; at most one may be translatable.
        settings: Page size, supported locales and unknown-label text.
        context: Locale and auth for backend calls.  Defaults to the
            settings' default locale.
        page_size: Overrides ``settings.page_size``.
        parent_id: Lists and creates records under this parent object.
        diff_style: Wire key style of update payloads (``"suffix"`` for
            ``field_old`` / ``field_new``, ``"prefix"`` for
            ``old_field`` / ``new_field``).
        allow_multiple_concurrent_edits: Keep several rows in edit mode
            at once.  When ``False``, starting an edit discards any other
            open session.
        language_table: Lookup table listing the supported languages.
    """

    def __init__(
        self,
        persistence: Persistence,
        table: str,
        columns: list[GridColumn],
        *,
        settings: GridSettings | None = None,
        context: RequestContext | None = None,
        page_size: int | None = None,
        parent_id: int | None = None,
        diff_style: DiffKeyStyle = "suffix",
        allow_multiple_concurrent_edits: bool = False,
        language_table: str = "languages",
    ) -> None:
        self.persistence = persistence
        self.table = table
        self.columns = list(columns)
        self.translatable = translatable_column(self.columns)
        self.settings = settings or GridSettings()
        self.context = context or RequestContext(
            locale_id=language_id_for(self.settings.default_locale, self.settings.language_ids),
            locale_code=self.settings.default_locale,
        )
        self.parent_id = parent_id
        self.diff_style: DiffKeyStyle = diff_style
        self.allow_multiple_concurrent_edits = allow_multiple_concurrent_edits
        self.language_table = language_table

        self.lookups: dict[str, LookupTable] = {
            name: LookupTable([], self.settings.unknown_label) for name in self.lookup_names
        }
        self.filter_state: FilterState = {}
        self.sort_spec: SortSpec = UNSORTED
        self.page = 1
        self.page_size = page_size or self.settings.page_size
        self.sessions: dict[int, EditSession] = {}
        self.create_draft: CreateDraft | None = None
        self.load_error: PartialLoadError | None = None
        self.last_load: LoadReport | None = None

        self._frame: pl.DataFrame = records_to_frame([], self.columns)
        self._row_states: dict[int, RowState] = {}
        self._in_flight: set[str] = set()
        self._page_slice: PageSlice = slice_page(self._frame, 1, self.page_size)
        self._recompute()

    # -- Derived view -----------------------------------------------------

    @property
    def lookup_names(self) -> list[str]:
        return sorted({c.lookup for c in self.columns if c.lookup})

    @property
    def page_slice(self) -> PageSlice:
        return self._page_slice

    @property
    def row_count(self) -> int:
        """Rows matching the current filters."""
        return self._page_slice.total_rows

    @property
    def total_pages(self) -> int:
        return self._page_slice.total_pages

    @property
    def record_count(self) -> int:
        return self._frame.height

    def visible_rows(self) -> list[dict[str, Any]]:
        return self._page_slice.records()

    def display_rows(self) -> list[dict[str, Any]]:
        """Visible rows with foreign keys replaced by their labels."""
        return [self.display_row(row) for row in self.visible_rows()]

    def display_row(self, record: dict[str, Any]) -> dict[str, Any]:
        out = dict(record)
        for column in self.columns:
            if column.kind == "id":
                out[column.key] = self.label_for(column.key, record.get(column.key))
        return out

    def records(self) -> list[dict[str, Any]]:
        """Every loaded record in backend order."""
        return frame_to_records(self._frame.sort(ROW_ID_FIELD))

    def record(self, record_id: int) -> dict[str, Any]:
        """Return the loaded record with *record_id*.

        Raises:
            KeyError: If no loaded record has that id.
        """
        if "id" not in self._frame.columns:
            raise KeyError(f"No {self.table} record with id {record_id}")
        matches = self._frame.filter(pl.col("id") == record_id)
        if matches.height == 0:
            raise KeyError(f"No {self.table} record with id {record_id}")
        return frame_to_records(matches)[0]

    def column(self, key: str) -> GridColumn:
        for column in self.columns:
            if column.key == key:
                return column
        raise KeyError(f"Unknown column {key!r}")

    def label_for(self, column_key: str, value: int | None) -> str:
        column = self.column(column_key)
        lookup = self.lookups.get(column.lookup or "")
        if lookup is None:
            return self.settings.unknown_label
        return lookup.label(value)

    def options_for(self, column_key: str, *, active_only: bool = True) -> list[tuple[int, str]]:
        column = self.column(column_key)
        lookup = self.lookups.get(column.lookup or "")
        return lookup.options(active_only=active_only) if lookup is not None else []

    def active_filter_fields(self) -> list[str]:
        return active_filter_fields(self.filter_state, self.columns)

    def summary(self) -> str:
        window = self._page_slice
        if window.total_rows == 0:
            return "No records"
        return (
            f"Showing {window.first_item}-{window.last_item} of {window.total_rows} "
            f"(page {window.page} of {window.total_pages})"
        )

    # -- Loading ----------------------------------------------------------

    async def load(self) -> LoadReport:
        """Fetch the records and every lookup table concurrently.

        A lookup that fails leaves its table empty (its ids render as the
        unknown label).  When the records fail, the previously loaded
        records stay in place.  Either way the failures are reported on
        the returned :class:`LoadReport` and on :attr:`load_error`;
        exceptions raised by the fetches never propagate.
        """
        t0 = time.perf_counter()
        names = self.lookup_names
        results = await asyncio.gather(
            self.persistence.list_records(self.context, self.table, self._list_params()),
            *(
                self.persistence.resolve_lookup(self.context, name, self.context.locale_code)
                for name in names
            ),
            return_exceptions=True,
        )
        records_result, lookup_results = results[0], results[1:]
        failures: dict[str, Exception] = {}

        for name, result in zip(names, lookup_results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(
                    "Lookup %r failed to load: %s", name, result, exc_info=not isinstance(result, GridError)
                )
                failures[name] = result
                self.lookups[name] = LookupTable([], self.settings.unknown_label)
            else:
                self.lookups[name] = LookupTable(result, self.settings.unknown_label)

        if isinstance(records_result, BaseException):
            if not isinstance(records_result, Exception):
                raise records_result
            logger.warning(
                "Records of %r failed to load, keeping %d loaded records: %s",
                self.table,
                self._frame.height,
                records_result,
                exc_info=not isinstance(records_result, GridError),
            )
            failures["records"] = records_result
        else:
            self._frame = records_to_frame(records_result, self.columns)

        self.load_error = PartialLoadError(failures) if failures else None
        self._recompute()

        elapsed_ms = (time.perf_counter() - t0) * 1000
        self.last_load = LoadReport(
            record_count=self._frame.height,
            lookup_sizes={name: len(self.lookups[name]) for name in names},
            elapsed_ms=elapsed_ms,
            error=self.load_error,
        )
        logger.debug(
            "Loaded %s: %d records, %d lookups (%.1fms)",
            self.table,
            self._frame.height,
            len(names),
            elapsed_ms,
        )
        return self.last_load

    async def set_locale(self, locale_code: str, locale_id: int | None = None) -> LoadReport:
        """Switch the request locale and reload."""
        if locale_id is None:
            locale_id = language_id_for(locale_code, self.settings.language_ids)
        self.context = replace(self.context, locale_code=locale_code, locale_id=locale_id)
        return await self.load()

    def _list_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"language_code": self.context.locale_code}
        if self.parent_id is not None:
            params["parent_id"] = self.parent_id
        return params

    def _recompute(self) -> None:
        t0 = time.perf_counter()
        filtered = apply_filters(self._frame, self.filter_state, self.columns, self.lookups)
        ordered = apply_sort(filtered, self.sort_spec, self.columns, self.lookups)
        self.page = clamp_page(self.page, total_pages(ordered.height, self.page_size))
        self._page_slice = slice_page(ordered, self.page, self.page_size)
        logger.debug(
            "Pipeline %s: %d/%d rows, page %d/%d (%.1fms)",
            self.table,
            ordered.height,
            self._frame.height,
            self.page,
            self._page_slice.total_pages,
            (time.perf_counter() - t0) * 1000,
        )

    # -- View state -------------------------------------------------------

    def set_filter(self, key: str, value: Any) -> None:
        """Constrain column *key*; an "any" value removes the constraint.

        Raises:
            KeyError: For unknown columns.
            ValueError: For columns that are not filterable.
        """
        column = self.column(key)
        if not column.filterable:
            raise ValueError(f"Column {key!r} is not filterable")
        state = {k: v for k, v in self.filter_state.items() if k != key}
        if not is_unconstrained(column, value):
            state[key] = value
        self.filter_state = state
        self._recompute()

    def set_filters(self, filter_state: FilterState) -> None:
        """Replace the whole filter state."""
        self.filter_state = dict(filter_state)
        self._recompute()

    def clear_filters(self) -> None:
        self.filter_state = {}
        self._recompute()

    def toggle_sort(self, key: str) -> SortSpec:
        """Header click on column *key*: ``asc -> desc -> none``."""
        if not self.column(key).sortable:
            raise ValueError(f"Column {key!r} is not sortable")
        self.sort_spec = toggle(self.sort_spec, key)
        self._recompute()
        return self.sort_spec

    def set_sort(self, spec: SortSpec) -> None:
        if spec.is_active and not self.column(spec.field or "").sortable:
            raise ValueError(f"Column {spec.field!r} is not sortable")
        self.sort_spec = spec
        self._recompute()

    def set_page(self, page: int) -> int:
        """Go to *page*, clamped into range; returns the page shown."""
        self.page = page
        self._recompute()
        return self.page

    def set_page_size(self, page_size: int) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.page_size = page_size
        self.page = 1
        self._recompute()

    # -- Row state --------------------------------------------------------

    def row_state(self, record_id: int) -> RowState:
        return self._row_states.get(record_id, "viewing")

    def _require_state(self, record_id: int, *allowed: RowState) -> RowState:
        state = self.row_state(record_id)
        if state not in allowed:
            raise EditSessionError(f"Record {record_id} is {state.replace('_', ' ')}")
        return state

    # -- Editing ----------------------------------------------------------

    def start_edit(self, record_id: int) -> EditSession:
        """Open an edit session on *record_id* (a no-op if already open).

        Raises:
            KeyError: If the record is not loaded.
            EditSessionError: If the row is saving or being deleted, or,
                with single-session editing, another row is saving.
        """
        if self._require_state(record_id, "viewing", "editing") == "editing":
            return self.sessions[record_id]
        record = self.record(record_id)

        if not self.allow_multiple_concurrent_edits:
            if any(self.row_state(other) == "saving" for other in self.sessions):
                raise EditSessionError("Another record is being saved")
            for other in list(self.sessions):
                logger.info("Discarding unsaved edit of record %s", other)
                self.cancel_edit(other)

        session = edit_session.start(record, self.columns)
        self.sessions[record_id] = session
        self._row_states[record_id] = "editing"
        return session

    def _open_session(self, record_id: int) -> EditSession:
        self._require_state(record_id, "editing")
        return self.sessions[record_id]

    def update_field(self, record_id: int, key: str, value: Any) -> EditSession:
        session = edit_session.update(self._open_session(record_id), key, value)
        self.sessions[record_id] = session
        return session

    def set_propagate_all_locales(self, record_id: int, flag: bool) -> EditSession:
        session = edit_session.set_propagate(self._open_session(record_id), flag)
        self.sessions[record_id] = session
        return session

    def cancel_edit(self, record_id: int) -> None:
        """Drop the draft of *record_id*; nothing is sent to the backend."""
        session = self._open_session(record_id)
        edit_session.cancel(session)
        del self.sessions[record_id]
        del self._row_states[record_id]

    async def commit_edit(self, record_id: int) -> SaveResult:
        """Validate and save the open session on *record_id*.

        When the session asks for it and the translation changed, the
        new text is first upserted in every supported locale.  Locale
        failures come back as :attr:`SaveResult.warnings`.  The record is
        then updated and the grid reloaded.

        Raises:
            ValidationError: Nothing was sent; the session stays open.
            SubmissionInProgressError: A save for this row is in flight.
            RequestError, NetworkError: The update failed; the session
                and its draft are kept for a retry.
        """
        key = f"save:{record_id}"
        if key in self._in_flight:
            raise SubmissionInProgressError(f"Record {record_id} is already being saved")
        session = self._open_session(record_id)
        payload = edit_session.commit(session, language_id=self.context.locale_id)

        self._in_flight.add(key)
        self._row_states[record_id] = "saving"
        try:
            translations: list[LocaleResult] = []
            if payload.update_all_languages:
                translations = await self._propagate(session, payload)
            await self.persistence.update_record(
                self.context, self.table, record_id, payload.to_wire(self.diff_style)
            )
        except Exception:
            self._row_states[record_id] = "editing"
            raise
        finally:
            self._in_flight.discard(key)

        del self.sessions[record_id]
        del self._row_states[record_id]
        await self.load()
        return SaveResult(record_id, payload, tuple(translations))

    async def _propagate(self, session: EditSession, payload: DiffPayload) -> list[LocaleResult]:
        text = payload.new_values()[self.translatable.key]  # type: ignore[union-attr]
        code = payload.new_values().get("code") or session.pristine.get("code")
        if not code:
            code = self.record(session.record_id).get("code")
        try:
            languages = await supported_languages(
                self.persistence, self.context, self.settings.locales, self.language_table
            )
        except GridError as exc:
            logger.warning("Could not resolve languages, translation not propagated: %s", exc)
            return [LocaleResult("*", None, "failed", exc)]
        return await propagate_translation(self.persistence, self.context, str(code), text, languages)

    # -- Creating ---------------------------------------------------------

    def start_create(self) -> CreateDraft:
        self.create_draft = CreateDraft.new(self.columns, parent_id=self.parent_id)
        return self.create_draft

    def update_create_field(self, key: str, value: Any) -> CreateDraft:
        if self.create_draft is None:
            raise EditSessionError("No new-item form is open")
        self.create_draft = self.create_draft.update(key, value)
        return self.create_draft

    def cancel_create(self) -> None:
        self.create_draft = None

    async def create(self, draft: CreateDraft | None = None) -> dict[str, Any]:
        """Create a record from *draft* (or the open form) and reload.

        Raises:
            ValidationError: Nothing was sent; the form stays open.
            SubmissionInProgressError: A create is already in flight.
            RequestError, NetworkError: The form stays open for a retry.
        """
        draft = draft or self.create_draft
        if draft is None:
            raise EditSessionError("No new-item form is open")
        if "create" in self._in_flight:
            raise SubmissionInProgressError("A record is already being created")
        body = draft.to_wire(language_id=self.context.locale_id)

        self._in_flight.add("create")
        try:
            created = await self.persistence.create_record(
                self.context, self.table, body, parent_id=draft.parent_id
            )
        finally:
            self._in_flight.discard("create")

        self.create_draft = None
        await self.load()
        return created

    # -- Deleting ---------------------------------------------------------

    def request_delete(self, record_id: int) -> None:
        """Ask for confirmation before deleting *record_id*."""
        if self._require_state(record_id, "viewing", "delete_pending") == "viewing":
            self.record(record_id)
            self._row_states[record_id] = "delete_pending"

    def cancel_delete(self, record_id: int) -> None:
        if self.row_state(record_id) == "delete_pending":
            del self._row_states[record_id]

    async def confirm_delete(self, record_id: int) -> DeleteOutcome:
        """Delete *record_id* after :meth:`request_delete`.

        Rejections by the backend come back as an outcome and leave the
        row in place.

        Raises:
            EditSessionError: If no delete was requested for the row.
            SubmissionInProgressError: The delete is already in flight.
            NetworkError: No response; the row stays pending so the
                delete can be confirmed again.
        """
        key = f"delete:{record_id}"
        if key in self._in_flight:
            raise SubmissionInProgressError(f"Record {record_id} is already being deleted")
        self._require_state(record_id, "delete_pending")

        self._in_flight.add(key)
        self._row_states[record_id] = "deleting"
        try:
            response = await self.persistence.delete_record(self.context, self.table, record_id)
        except RequestError as exc:
            del self._row_states[record_id]
            outcome = classify_delete_error(record_id, exc)
            logger.info("Delete of %s/%s rejected: %s", self.table, record_id, exc)
            return outcome
        except Exception:
            self._row_states[record_id] = "delete_pending"
            raise
        finally:
            self._in_flight.discard(key)

        del self._row_states[record_id]
        if response.get("success") is False:
            return RejectedOtherReason(record_id, str(response.get("message") or "Delete failed"))
        await self.load()
        return Deleted(record_id)
