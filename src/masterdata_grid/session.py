"""Edit sessions, new-item drafts and local validation.

An :class:`EditSession` snapshots a record's editable fields when
editing starts and tracks a draft beside the pristine copy.  Committing
validates the draft and produces a :class:`DiffPayload` with an
``(old, new)`` pair for *every* editable field, changed or not, which is
what the webhook backend expects.  Cancelling drops the draft without
any backend call.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from masterdata_grid.errors import ValidationError
from masterdata_grid.models import GridColumn, editable_columns, translatable_column

logger = logging.getLogger(__name__)

DiffKeyStyle = Literal["suffix", "prefix"]

REQUIRED_MESSAGE = "This field is required"
SELECT_MESSAGE = "Please select a value"
FORMAT_MESSAGE = "Invalid format"


# ---------------------------------------------------------------------------
# Field values
# ---------------------------------------------------------------------------

def coerce_field_value(column: GridColumn, raw: Any) -> Any:
    """Coerce a raw form value (usually a string) to the column's type.

    Blank input becomes ``None`` for ``id`` and ``number`` columns and
    ``""`` for text-like ones.

    Raises:
        ValueError: If a non-blank value cannot be parsed.
    """
    if column.kind == "boolean":
        if isinstance(raw, bool):
            return raw
        if raw is None:
            return False
        return str(raw).strip().lower() in ("true", "1", "yes", "on")

    if column.kind in ("id", "number"):
        if raw is None:
            return None
        if isinstance(raw, bool):
            raise ValueError(f"{column.header}: expected a number, got {raw!r}")
        if isinstance(raw, str):
            text = raw.strip()
            if not text:
                return None
            raw = int(text) if text.lstrip("-").isdigit() else float(text)
        if column.kind == "id":
            # 0 is the "nothing selected" option of the select inputs.
            return int(raw) or None
        return raw

    return "" if raw is None else str(raw)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_fields(values: dict[str, Any], columns: list[GridColumn]) -> dict[str, str]:
    """Check *values* against the columns' local rules.

    Returns:
        ``{column_key: message}`` for every failing field, empty when
        the values are valid.
    """
    errors: dict[str, str] = {}
    for column in columns:
        value = values.get(column.key)
        if column.required:
            if column.kind == "id" and not value:
                errors[column.key] = SELECT_MESSAGE
                continue
            if column.kind != "boolean" and _is_blank(value):
                errors[column.key] = REQUIRED_MESSAGE
                continue
        if column.pattern and not _is_blank(value):
            if re.fullmatch(column.pattern, str(value).strip()) is None:
                errors[column.key] = FORMAT_MESSAGE
    return errors


def ensure_valid(values: dict[str, Any], columns: list[GridColumn]) -> None:
    """Raise :class:`ValidationError` unless *values* pass validation."""
    errors = validate_fields(values, columns)
    if errors:
        raise ValidationError(errors)


# ---------------------------------------------------------------------------
# Diff payload
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DiffPayload:
    """Old/new pairs for every editable field of one record.

    Attributes:
        record_id: The edited record.
        pairs: ``{column_key: (old, new)}`` in column order.
        wire_keys: Column keys that travel under a different name.
        update_all_languages: Whether the translation was pushed to
            every supported locale before the update.
        language_id: The locale the edit was made in.
    """

    record_id: int
    pairs: dict[str, tuple[Any, Any]]
    wire_keys: dict[str, str] = field(default_factory=dict)
    update_all_languages: bool = False
    language_id: int | None = None

    def changed(self) -> dict[str, tuple[Any, Any]]:
        return {key: pair for key, pair in self.pairs.items() if pair[0] != pair[1]}

    def new_values(self) -> dict[str, Any]:
        return {key: new for key, (_, new) in self.pairs.items()}

    def to_wire(self, style: DiffKeyStyle = "suffix") -> dict[str, Any]:
        """Serialise to the request body.

        ``"suffix"`` produces ``{field}_old`` / ``{field}_new`` keys (entity
        endpoints), ``"prefix"`` produces ``old_{field}`` / ``new_{field}``
        (lookup endpoints).
        """
        body: dict[str, Any] = {}
        for key, (old, new) in self.pairs.items():
            name = self.wire_keys.get(key, key)
            if style == "suffix":
                body[f"{name}_old"] = old
                body[f"{name}_new"] = new
            elif style == "prefix":
                body[f"old_{name}"] = old
                body[f"new_{name}"] = new
            else:
                raise ValueError(f"Unknown diff key style {style!r}")
        body["update_all_languages"] = 1 if self.update_all_languages else 0
        if self.language_id is not None:
            body["language_id"] = self.language_id
        return body


# ---------------------------------------------------------------------------
# Edit session
# ---------------------------------------------------------------------------

def _snapshot_value(column: GridColumn, value: Any) -> Any:
    if value is None and column.kind in ("text", "date"):
        return ""
    return value


@dataclass(frozen=True)
class EditSession:
    """Pristine snapshot and draft of one record's editable fields.

    Sessions are immutable; :func:`update` returns a new one.
    """

    record_id: int
    pristine: dict[str, Any]
    draft: dict[str, Any]
    columns: tuple[GridColumn, ...]
    propagate_all_locales: bool = False

    @property
    def changed_fields(self) -> list[str]:
        return [c.key for c in self.columns if self.draft.get(c.key) != self.pristine.get(c.key)]

    @property
    def is_dirty(self) -> bool:
        return bool(self.changed_fields)

    @property
    def translation_changed(self) -> bool:
        """The translatable field holds a new, non-blank text."""
        column = translatable_column(list(self.columns))
        if column is None:
            return False
        new = self.draft.get(column.key)
        return not _is_blank(new) and new != self.pristine.get(column.key)

    def field_errors(self) -> dict[str, str]:
        return validate_fields(self.draft, list(self.columns))


def start(record: dict[str, Any], columns: list[GridColumn]) -> EditSession:
    """Open a session on *record*, snapshotting its editable fields."""
    editable = tuple(editable_columns(columns))
    snapshot = {c.key: _snapshot_value(c, record.get(c.key)) for c in editable}
    return EditSession(
        record_id=record["id"],
        pristine=snapshot,
        draft=dict(snapshot),
        columns=editable,
    )


def update(session: EditSession, key: str, value: Any) -> EditSession:
    """Return a session whose draft has *key* set to *value*.

    Raises:
        KeyError: If *key* is not an editable field of the session.
    """
    if key not in session.pristine:
        raise KeyError(f"{key!r} is not an editable field")
    return replace(session, draft={**session.draft, key: value})


def set_propagate(session: EditSession, flag: bool) -> EditSession:
    return replace(session, propagate_all_locales=flag)


def commit(session: EditSession, language_id: int | None = None) -> DiffPayload:
    """Validate the draft and build its diff payload.

    Raises:
        ValidationError: If a required field is blank, a foreign key is
            unselected or a value does not match its pattern.  Nothing is
            sent in that case and the session stays open.
    """
    ensure_valid(session.draft, list(session.columns))
    pairs: dict[str, tuple[Any, Any]] = {}
    for column in session.columns:
        old = session.pristine.get(column.key)
        new = session.draft.get(column.key)
        # Only edited text is stripped; untouched values go out as stored.
        if new != old and isinstance(new, str) and column.kind in ("text", "date"):
            new = new.strip()
        pairs[column.key] = (old, new)
    return DiffPayload(
        record_id=session.record_id,
        pairs=pairs,
        wire_keys={c.key: c.wire_key for c in session.columns if c.wire_key != c.key},
        update_all_languages=session.propagate_all_locales and session.translation_changed,
        language_id=language_id,
    )


def cancel(session: EditSession) -> None:
    """Discard *session*; nothing is sent anywhere."""
    logger.debug("Discarding edit of record %s (dirty=%s)", session.record_id, session.is_dirty)


# ---------------------------------------------------------------------------
# New-item draft
# ---------------------------------------------------------------------------

def _initial_value(column: GridColumn) -> Any:
    if column.default is not None:
        return column.default
    if column.kind == "boolean":
        return False
    if column.kind in ("id", "number"):
        return None
    return ""


@dataclass(frozen=True)
class CreateDraft:
    """Form values for a record that does not exist yet."""

    values: dict[str, Any]
    columns: tuple[GridColumn, ...]
    parent_id: int | None = None

    @classmethod
    def new(cls, columns: list[GridColumn], parent_id: int | None = None) -> "CreateDraft":
        editable = tuple(editable_columns(columns))
        return cls({c.key: _initial_value(c) for c in editable}, editable, parent_id)

    def update(self, key: str, value: Any) -> "CreateDraft":
        if key not in self.values:
            raise KeyError(f"{key!r} is not an editable field")
        return replace(self, values={**self.values, key: value})

    def field_errors(self) -> dict[str, str]:
        return validate_fields(self.values, list(self.columns))

    def to_wire(self, language_id: int | None = None) -> dict[str, Any]:
        """Validate and build the create request body.

        Text values are stripped.  A blank translatable value is left
        out entirely so the backend falls back to the code.

        Raises:
            ValidationError: On the same rules as :func:`commit`.
        """
        ensure_valid(self.values, list(self.columns))
        body: dict[str, Any] = {}
        for column in self.columns:
            value = self.values.get(column.key)
            if isinstance(value, str):
                value = value.strip()
            if column.translatable:
                if not value:
                    continue
                if language_id is not None:
                    body["language_id"] = language_id
            body[column.wire_key] = value
        return body
