"""
Tests for edit sessions, diff payloads, new-item drafts and validation.
"""

import pytest

from masterdata_grid import session as edit_session
from masterdata_grid.errors import ValidationError
from masterdata_grid.models import GridColumn
from masterdata_grid.session import (
    FORMAT_MESSAGE,
    REQUIRED_MESSAGE,
    SELECT_MESSAGE,
    CreateDraft,
    DiffPayload,
    coerce_field_value,
)


@pytest.fixture
def record(records):
    return records[0]


class TestCoerceFieldValue:
    def test_boolean_tokens(self):
        column = GridColumn("is_active", "boolean")
        assert coerce_field_value(column, "true") is True
        assert coerce_field_value(column, "on") is True
        assert coerce_field_value(column, "0") is False
        assert coerce_field_value(column, None) is False

    def test_foreign_key(self):
        column = GridColumn("country_id", "id", lookup="countries")
        assert coerce_field_value(column, "3") == 3
        assert coerce_field_value(column, "0") is None
        assert coerce_field_value(column, "") is None

    def test_number(self):
        column = GridColumn("sort_order", "number")
        assert coerce_field_value(column, "4") == 4
        assert coerce_field_value(column, "2.5") == 2.5
        with pytest.raises(ValueError):
            coerce_field_value(column, "four")

    def test_text(self):
        assert coerce_field_value(GridColumn("code"), None) == ""
        assert coerce_field_value(GridColumn("code"), 12) == "12"


class TestEditSession:
    def test_start_snapshots_editable_fields_only(self, record, columns):
        session = edit_session.start(record, columns)
        assert set(session.pristine) == {"code", "name", "country_id", "is_active"}
        assert session.draft == session.pristine
        assert not session.is_dirty

    def test_null_text_snapshots_as_empty(self, records, columns):
        session = edit_session.start(records[2], columns)
        assert session.pristine["name"] == ""

    def test_update_returns_a_new_session(self, record, columns):
        session = edit_session.start(record, columns)
        changed = edit_session.update(session, "code", "alpha2")
        assert session.draft["code"] == "alpha"
        assert changed.draft["code"] == "alpha2"
        assert changed.changed_fields == ["code"]

    def test_update_rejects_read_only_fields(self, record, columns):
        session = edit_session.start(record, columns)
        with pytest.raises(KeyError):
            edit_session.update(session, "created_at", "2020-01-01")

    def test_unchanged_commit_still_carries_every_field(self, record, columns):
        payload = edit_session.commit(edit_session.start(record, columns), language_id=1)
        assert payload.pairs == {
            "code": ("alpha", "alpha"),
            "name": ("Alpha One", "Alpha One"),
            "country_id": (1, 1),
            "is_active": (True, True),
        }
        assert payload.changed() == {}
        assert payload.update_all_languages is False

    def test_commit_strips_text(self, record, columns):
        session = edit_session.update(edit_session.start(record, columns), "code", "  alpha3 ")
        payload = edit_session.commit(session)
        assert payload.pairs["code"] == ("alpha", "alpha3")
        assert payload.new_values()["code"] == "alpha3"

    def test_untouched_whitespace_is_not_a_change(self, columns):
        stored = {"id": 7, "code": "acme ", "name": " Acme ", "country_id": 1, "is_active": True}
        payload = edit_session.commit(edit_session.start(stored, columns))
        assert payload.pairs["name"] == (" Acme ", " Acme ")
        assert all(old == new for old, new in payload.pairs.values())
        assert payload.changed() == {}
        body = payload.to_wire("suffix")
        assert body["text_old"] == body["text_new"] == " Acme "


class TestDiffPayloadWire:
    @pytest.fixture
    def payload(self, record, columns) -> DiffPayload:
        session = edit_session.start(record, columns)
        session = edit_session.update(session, "name", "Alpha Prime")
        session = edit_session.set_propagate(session, True)
        return edit_session.commit(session, language_id=2)

    def test_suffix_keys(self, payload):
        body = payload.to_wire("suffix")
        assert body["code_old"] == "alpha"
        assert body["code_new"] == "alpha"
        assert body["text_old"] == "Alpha One"
        assert body["text_new"] == "Alpha Prime"
        assert body["country_id_old"] == 1
        assert body["update_all_languages"] == 1
        assert body["language_id"] == 2
        assert "name_new" not in body

    def test_prefix_keys(self, payload):
        body = payload.to_wire("prefix")
        assert body["old_text"] == "Alpha One"
        assert body["new_text"] == "Alpha Prime"
        assert body["new_is_active"] is True

    def test_unknown_style(self, payload):
        with pytest.raises(ValueError):
            payload.to_wire("camel")

    def test_propagation_needs_a_translation_change(self, record, columns):
        session = edit_session.update(edit_session.start(record, columns), "code", "alpha4")
        session = edit_session.set_propagate(session, True)
        assert edit_session.commit(session).to_wire()["update_all_languages"] == 0

    def test_blank_translation_is_not_a_change(self, record, columns):
        session = edit_session.update(edit_session.start(record, columns), "name", "  ")
        assert not session.translation_changed


class TestValidation:
    def test_blank_required_field(self, record, columns):
        session = edit_session.update(edit_session.start(record, columns), "code", "  ")
        with pytest.raises(ValidationError) as exc_info:
            edit_session.commit(session)
        assert exc_info.value.field_errors == {"code": REQUIRED_MESSAGE}

    def test_unselected_foreign_key(self, record, columns):
        session = edit_session.update(edit_session.start(record, columns), "country_id", None)
        assert session.field_errors() == {"country_id": SELECT_MESSAGE}

    def test_pattern_mismatch(self, record, columns):
        session = edit_session.update(edit_session.start(record, columns), "code", "not valid!")
        assert session.field_errors() == {"code": FORMAT_MESSAGE}

    def test_several_errors_at_once(self, record, columns):
        session = edit_session.start(record, columns)
        session = edit_session.update(session, "code", "")
        session = edit_session.update(session, "country_id", 0)
        assert set(session.field_errors()) == {"code", "country_id"}


class TestCreateDraft:
    def test_defaults(self, columns):
        draft = CreateDraft.new(columns)
        assert draft.values == {"code": "", "name": "", "country_id": None, "is_active": True}

    def test_to_wire(self, columns):
        draft = CreateDraft.new(columns)
        draft = draft.update("code", " gamma2 ").update("name", "Gamma").update("country_id", 2)
        assert draft.to_wire(language_id=3) == {
            "code": "gamma2",
            "text": "Gamma",
            "language_id": 3,
            "country_id": 2,
            "is_active": True,
        }

    def test_blank_translation_is_omitted(self, columns):
        draft = CreateDraft.new(columns).update("code", "gamma2").update("country_id", 2)
        body = draft.to_wire(language_id=3)
        assert "text" not in body
        assert "language_id" not in body

    def test_invalid_draft_raises(self, columns):
        with pytest.raises(ValidationError) as exc_info:
            CreateDraft.new(columns).to_wire()
        assert exc_info.value.field_errors == {"code": REQUIRED_MESSAGE, "country_id": SELECT_MESSAGE}

    def test_update_rejects_unknown_field(self, columns):
        with pytest.raises(KeyError):
            CreateDraft.new(columns).update("id", 7)
