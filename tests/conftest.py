"""
Pytest configuration and fixtures for masterdata-grid tests.
"""

import pytest

from masterdata_grid.catalog import build_demo_persistence, preset_for
from masterdata_grid.config import GridSettings
from masterdata_grid.models import GridColumn, LookupItem, LookupTable, RequestContext
from masterdata_grid.orchestrator import GridOrchestrator
from masterdata_grid.persistence import MemoryPersistence

# A small mixed-kind table used by the filter and sort tests.
COLUMNS: list[GridColumn] = [
    GridColumn("id", "number"),
    GridColumn("code", "text", editable=True, required=True, pattern=r"[A-Za-z0-9_\-]+"),
    GridColumn("name", "text", editable=True, translatable=True, payload_key="text"),
    GridColumn("country_id", "id", editable=True, required=True, lookup="countries"),
    GridColumn("is_active", "boolean", editable=True, default=True),
    GridColumn("created_at", "date"),
    GridColumn("notes", "text", filterable=False),
]

RECORDS: list[dict] = [
    {"id": 1, "code": "alpha", "name": "Alpha One", "country_id": 1, "is_active": True,
     "created_at": "2024-03-02", "notes": "x"},
    {"id": 2, "code": "beta", "name": "beta two", "country_id": 2, "is_active": False,
     "created_at": "2024-04-10", "notes": "y"},
    {"id": 3, "code": "gamma", "name": None, "country_id": 3, "is_active": True,
     "created_at": "2023-03-15", "notes": "z"},
    {"id": 4, "code": "delta", "name": "Delta", "country_id": 99, "is_active": True,
     "created_at": None, "notes": None},
    {"id": 5, "code": "ALPHABET", "name": "Alphabet", "country_id": None, "is_active": False,
     "created_at": "2024-03-20", "notes": "w"},
]


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "scenario: end-to-end engine scenarios")


@pytest.fixture
def columns() -> list[GridColumn]:
    return list(COLUMNS)


@pytest.fixture
def records() -> list[dict]:
    return [dict(r) for r in RECORDS]


@pytest.fixture
def lookups() -> dict[str, LookupTable]:
    """Country lookup: id 3 has no name (label falls back to code), 99 is missing."""
    return {
        "countries": LookupTable(
            [
                LookupItem(1, "HU", "Hungary"),
                LookupItem(2, "DE", "Germany"),
                LookupItem(3, "AT", None, is_active=False),
            ]
        )
    }


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(locale_id=1, locale_code="en")


@pytest.fixture
def settings() -> GridSettings:
    return GridSettings(base_url="http://api.test/v1", api_key="secret", page_size=10)


@pytest.fixture
def demo_backend() -> MemoryPersistence:
    return build_demo_persistence()


@pytest.fixture
def relation_grid(demo_backend: MemoryPersistence, settings: GridSettings) -> GridOrchestrator:
    """Object relation types (10 rows, two foreign keys into object-types)."""
    preset = preset_for("object-relation-types")
    return GridOrchestrator(
        demo_backend,
        preset.table,
        list(preset.columns),
        settings=settings,
        page_size=20,
        diff_style=preset.diff_style,
    )


@pytest.fixture
def object_type_grid(demo_backend: MemoryPersistence, settings: GridSettings) -> GridOrchestrator:
    preset = preset_for("object-types")
    return GridOrchestrator(demo_backend, preset.table, list(preset.columns), settings=settings)


@pytest.fixture
def items_backend() -> MemoryPersistence:
    """25 items; the first 12 are named ``match``, the rest ``other``."""
    rows = [
        {"id": i, "code": f"item{i:02d}", "name": "match" if i <= 12 else "other", "is_active": True}
        for i in range(1, 26)
    ]
    return MemoryPersistence(tables={"items": rows})
