"""masterdata-grid – editable reference-data grids for Reflex, backed by polars.

Install the package for the engine, the webhook client and the Reflex
components::

    pip install masterdata-grid

The engine (:class:`GridOrchestrator`) runs without a browser; the
Reflex side (:class:`EditableGridMixin`, :func:`editable_grid`) renders it
with the MUI X DataGrid.
"""

from masterdata_grid.catalog import TABLES, TablePreset, build_demo_persistence, preset_for
from masterdata_grid.config import GridSettings
from masterdata_grid.datagrid import DataGrid, DataGridNamespace, WrappedDataGrid, data_grid
from masterdata_grid.errors import (
    EditSessionError,
    GridError,
    NetworkError,
    PartialLoadError,
    RequestError,
    SubmissionInProgressError,
    ValidationError,
)
from masterdata_grid.filters import apply_filters, filter_state_from_model, merge_filter_model
from masterdata_grid.grid_state import (
    EditableGridMixin,
    editable_grid,
    editable_grid_delete_confirm,
    editable_grid_form,
    editable_grid_toolbar,
)
from masterdata_grid.models import (
    ColumnDef,
    GridColumn,
    LookupItem,
    LookupTable,
    RequestContext,
    SortSpec,
)
from masterdata_grid.orchestrator import (
    Deleted,
    DeleteOutcome,
    GridOrchestrator,
    LoadReport,
    RejectedOtherReason,
    RejectedReferentialIntegrity,
    SaveResult,
)
from masterdata_grid.pagination import PageSlice, page_numbers, slice_page
from masterdata_grid.persistence import MemoryPersistence, Persistence, WebhookPersistence
from masterdata_grid.session import CreateDraft, DiffPayload, EditSession
from masterdata_grid.sorting import apply_sort, compare, toggle
