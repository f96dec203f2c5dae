"""Column presets for the reference tables, plus seed data for the demo backend."""

from dataclasses import dataclass

from masterdata_grid.models import GridColumn
from masterdata_grid.persistence import MemoryPersistence
from masterdata_grid.session import DiffKeyStyle

ID_COLUMN = GridColumn("id", "number", label="ID", editable=False)
CODE_COLUMN = GridColumn("code", "text", editable=True, required=True, pattern=r"[A-Za-z0-9_\-]+")
NAME_COLUMN = GridColumn("name", "text", editable=True, translatable=True, payload_key="text")
ACTIVE_COLUMN = GridColumn("is_active", "boolean", label="Active", editable=True, default=True)


def lookup_columns(*extra: GridColumn) -> tuple[GridColumn, ...]:
    """The columns every lookup table shares, with *extra* before ``Active``."""
    return (ID_COLUMN, CODE_COLUMN, NAME_COLUMN, *extra, ACTIVE_COLUMN)


@dataclass(frozen=True)
class TablePreset:
    """How one backend table is shown and edited."""

    table: str
    title: str
    columns: tuple[GridColumn, ...]
    diff_style: DiffKeyStyle = "prefix"


def _object_type_fk(key: str, label: str) -> GridColumn:
    return GridColumn(key, "id", label=label, editable=True, required=True, lookup="object-types")


TABLES: dict[str, TablePreset] = {
    preset.table: preset
    for preset in (
        TablePreset("languages", "Languages", (ID_COLUMN, CODE_COLUMN, ACTIVE_COLUMN)),
        TablePreset("countries", "Countries", lookup_columns()),
        TablePreset("address-types", "Address Types", lookup_columns()),
        TablePreset("contact-types", "Contact Types", lookup_columns()),
        TablePreset("object-types", "Object Types", lookup_columns()),
        TablePreset(
            "object-statuses",
            "Object Statuses",
            lookup_columns(_object_type_fk("object_type_id", "Object Type")),
        ),
        TablePreset(
            "object-relation-types",
            "Object Relation Types",
            lookup_columns(
                _object_type_fk("parent_object_type_id", "Parent Object Type"),
                _object_type_fk("child_object_type_id", "Child Object Type"),
            ),
        ),
        TablePreset(
            "addresses",
            "Addresses",
            (
                ID_COLUMN,
                GridColumn(
                    "address_type_id", "id", label="Type", editable=True, required=True,
                    lookup="address-types",
                ),
                GridColumn("street_address", "text", editable=True, required=True),
                GridColumn("city", "text", editable=True, required=True),
                GridColumn("postal_code", "text", editable=True),
                GridColumn(
                    "country_id", "id", label="Country", editable=True, required=True,
                    lookup="countries",
                ),
                GridColumn("created_at", "date", label="Created"),
                ACTIVE_COLUMN,
            ),
            diff_style="suffix",
        ),
    )
}


def preset_for(table: str) -> TablePreset:
    """Return the preset for *table*, or a plain lookup-table preset."""
    if table in TABLES:
        return TABLES[table]
    title = table.replace("-", " ").replace("_", " ").title()
    return TablePreset(table, title, lookup_columns())


# ---------------------------------------------------------------------------
# Demo data
# ---------------------------------------------------------------------------

DEMO_LANGUAGES: list[dict] = [
    {"id": 1, "code": "en", "is_active": True},
    {"id": 2, "code": "de", "is_active": True},
    {"id": 3, "code": "hu", "is_active": True},
]

# code -> (English, German, Hungarian)
_OBJECT_TYPES: dict[str, tuple[str, str, str]] = {
    "person": ("Person", "Person", "Személy"),
    "company": ("Company", "Unternehmen", "Cég"),
    "user": ("User", "Benutzer", "Felhasználó"),
    "document": ("Document", "Dokument", "Dokumentum"),
    "file": ("File", "Datei", "Fájl"),
    "employee": ("Employee", "Mitarbeiter", "Alkalmazott"),
}

_ADDRESS_TYPES: dict[str, tuple[str, str, str]] = {
    "temporary": ("Temporary", "Vorübergehend", "Ideiglenes"),
    "mailing": ("Mailing", "Postanschrift", "Levelezési"),
    "permanent": ("Permanent", "Ständig", "Állandó"),
    "home": ("Home", "Privat", "Otthoni"),
    "work": ("Work", "Arbeit", "Munkahelyi"),
    "business": ("Business", "Geschäftlich", "Üzleti"),
    "residential": ("Residential", "Wohnsitz", "Lakóhely"),
    "commercial": ("Commercial", "Gewerblich", "Kereskedelmi"),
}

_COUNTRIES: dict[str, tuple[str, str, str]] = {
    "AT": ("Austria", "Österreich", "Ausztria"),
    "BE": ("Belgium", "Belgien", "Belgium"),
    "BG": ("Bulgaria", "Bulgarien", "Bulgária"),
    "CH": ("Switzerland", "Schweiz", "Svájc"),
    "CZ": ("Czechia", "Tschechien", "Csehország"),
    "DE": ("Germany", "Deutschland", "Németország"),
    "DK": ("Denmark", "Dänemark", "Dánia"),
    "EE": ("Estonia", "Estland", "Észtország"),
    "ES": ("Spain", "Spanien", "Spanyolország"),
    "FI": ("Finland", "Finnland", "Finnország"),
    "FR": ("France", "Frankreich", "Franciaország"),
    "GB": ("United Kingdom", "Vereinigtes Königreich", "Egyesült Királyság"),
    "GR": ("Greece", "Griechenland", "Görögország"),
    "HR": ("Croatia", "Kroatien", "Horvátország"),
    "HU": ("Hungary", "Ungarn", "Magyarország"),
    "IE": ("Ireland", "Irland", "Írország"),
    "IS": ("Iceland", "Island", "Izland"),
    "IT": ("Italy", "Italien", "Olaszország"),
    "LT": ("Lithuania", "Litauen", "Litvánia"),
    "LU": ("Luxembourg", "Luxemburg", "Luxemburg"),
    "NL": ("Netherlands", "Niederlande", "Hollandia"),
    "NO": ("Norway", "Norwegen", "Norvégia"),
    "PL": ("Poland", "Polen", "Lengyelország"),
    "PT": ("Portugal", "Portugal", "Portugália"),
    "RO": ("Romania", "Rumänien", "Románia"),
}

# code -> (parent object type, child object type, English name)
_RELATION_TYPES: dict[str, tuple[str, str, str]] = {
    "employee": ("company", "person", "Employee"),
    "contractor": ("company", "person", "Contractor"),
    "consultant": ("company", "person", "Consultant"),
    "board_member": ("company", "person", "Board Member"),
    "shareholder": ("company", "person", "Shareholder"),
    "spouse": ("person", "person", "Spouse"),
    "parent": ("person", "person", "Parent"),
    "subsidiary": ("company", "company", "Subsidiary"),
    "owner": ("user", "document", "Owner"),
    "attachment": ("document", "file", "Attachment"),
}


def _rows_and_translations(
    names: dict[str, tuple[str, ...]],
    translations: dict[tuple[str, int], str],
) -> list[dict]:
    rows = []
    for row_id, (code, texts) in enumerate(names.items(), start=1):
        rows.append({"id": row_id, "code": code, "is_active": True})
        for language_id, text in enumerate(texts, start=1):
            translations[(code, language_id)] = text
    return rows


def build_demo_persistence(delay: float = 0.0) -> MemoryPersistence:
    """Seed a :class:`MemoryPersistence` with a small reference dataset.

    Object types referenced by a relation type cannot be deleted, which
    makes the referential-integrity rejection easy to try out.
    """
    translations: dict[tuple[str, int], str] = {}
    object_types = _rows_and_translations(_OBJECT_TYPES, translations)
    address_types = _rows_and_translations(_ADDRESS_TYPES, translations)
    countries = _rows_and_translations(_COUNTRIES, translations)

    type_ids = {row["code"]: row["id"] for row in object_types}
    relation_types = []
    for row_id, (code, (parent, child, english)) in enumerate(_RELATION_TYPES.items(), start=1):
        relation_types.append(
            {
                "id": row_id,
                "code": code,
                "parent_object_type_id": type_ids[parent],
                "child_object_type_id": type_ids[child],
                "is_active": True,
            }
        )
        translations.setdefault((code, 1), english)

    addresses = [
        {
            "id": 1,
            "parent_id": 1,
            "address_type_id": 4,
            "street_address": "Andrássy út 12",
            "city": "Budapest",
            "postal_code": "1061",
            "country_id": 15,
            "created_at": "2024-03-02",
            "is_active": True,
        },
        {
            "id": 2,
            "parent_id": 1,
            "address_type_id": 5,
            "street_address": "Friedrichstraße 43",
            "city": "Berlin",
            "postal_code": "10117",
            "country_id": 6,
            "created_at": "2024-05-17",
            "is_active": True,
        },
    ]

    persistence = MemoryPersistence(
        tables={
            "object-types": object_types,
            "address-types": address_types,
            "countries": countries,
            "object-relation-types": relation_types,
            "addresses": addresses,
        },
        translations=translations,
        languages=DEMO_LANGUAGES,
        delay=delay,
    )
    for row in relation_types:
        persistence.add_reference("object-types", row["parent_object_type_id"])
        persistence.add_reference("object-types", row["child_object_type_id"])
    for row in addresses:
        persistence.add_reference("address-types", row["address_type_id"])
        persistence.add_reference("countries", row["country_id"])
    return persistence
