"""
Tests for the grid engine: loading, the view pipeline, edit sessions,
translation propagation, creating and deleting.
"""

import asyncio
import logging

import pytest

from masterdata_grid.catalog import build_demo_persistence, preset_for
from masterdata_grid.errors import (
    EditSessionError,
    NetworkError,
    PartialLoadError,
    RequestError,
    SubmissionInProgressError,
    ValidationError,
)
from masterdata_grid.models import SortSpec
from masterdata_grid.orchestrator import (
    Deleted,
    GridOrchestrator,
    RejectedOtherReason,
    RejectedReferentialIntegrity,
)


def _calls(backend, operation: str) -> list[tuple]:
    return [c for c in backend.calls if c[0] == operation]


@pytest.fixture
def items_grid(items_backend, settings) -> GridOrchestrator:
    preset = preset_for("items")
    return GridOrchestrator(items_backend, preset.table, list(preset.columns), settings=settings)


class TestLoad:
    @pytest.mark.asyncio
    async def test_records_and_lookups(self, relation_grid):
        report = await relation_grid.load()
        assert report.ok
        assert report.record_count == 10
        assert report.lookup_sizes == {"object-types": 6}
        assert relation_grid.display_rows()[0]["parent_object_type_id"] == "Company"

    @pytest.mark.asyncio
    async def test_failed_lookup_renders_unknown(self, relation_grid, demo_backend):
        demo_backend.failures["resolve_lookup:object-types"] = NetworkError("down")
        report = await relation_grid.load()

        assert not report.ok
        assert set(report.error.failures) == {"object-types"}
        assert report.record_count == 10
        labels = {row["parent_object_type_id"] for row in relation_grid.display_rows()}
        assert labels == {"Unknown"}

    @pytest.mark.asyncio
    async def test_malformed_lookup_row_degrades_to_unknown(self, relation_grid, demo_backend, caplog):
        demo_backend.tables["object-types"].append({"code": "broken", "is_active": True})
        with caplog.at_level(logging.WARNING, logger="masterdata_grid.orchestrator"):
            report = await relation_grid.load()

        assert isinstance(report.error, PartialLoadError)
        assert set(report.error.failures) == {"object-types"}
        assert isinstance(report.error.failures["object-types"], KeyError)
        assert report.record_count == 10
        assert {row["parent_object_type_id"] for row in relation_grid.display_rows()} == {"Unknown"}
        assert "object-types" in caplog.text

    @pytest.mark.asyncio
    async def test_failed_records_keep_the_previous_data(self, relation_grid, demo_backend):
        await relation_grid.load()
        demo_backend.failures["list_records"] = RequestError("SERVER_ERROR", "boom", status=500)

        report = await relation_grid.load()
        assert set(report.error.failures) == {"records"}
        assert relation_grid.record_count == 10
        assert relation_grid.load_error is report.error

        del demo_backend.failures["list_records"]
        assert (await relation_grid.load()).ok
        assert relation_grid.load_error is None

    @pytest.mark.asyncio
    async def test_locale_switch_relabels(self, relation_grid):
        await relation_grid.set_locale("de")
        assert relation_grid.context.locale_id == 2
        assert relation_grid.display_rows()[0]["parent_object_type_id"] == "Unternehmen"

    @pytest.mark.asyncio
    async def test_parent_scoped_tables(self, demo_backend, settings):
        preset = preset_for("addresses")
        columns = list(preset.columns)
        scoped = GridOrchestrator(demo_backend, preset.table, columns, settings=settings, parent_id=1)
        other = GridOrchestrator(demo_backend, preset.table, columns, settings=settings, parent_id=2)
        await scoped.load()
        await other.load()
        assert scoped.record_count == 2
        assert other.record_count == 0
        assert other.summary() == "No records"


class TestView:
    @pytest.mark.asyncio
    @pytest.mark.scenario
    async def test_narrowing_filter_clamps_the_page(self, items_grid):
        await items_grid.load()
        assert items_grid.set_page(3) == 3
        assert items_grid.summary() == "Showing 21-25 of 25 (page 3 of 3)"

        items_grid.set_filter("name", "match")
        assert items_grid.row_count == 12
        assert items_grid.page == 2
        assert [r["id"] for r in items_grid.visible_rows()] == [11, 12]

    @pytest.mark.asyncio
    async def test_page_requests_are_clamped(self, items_grid):
        await items_grid.load()
        assert items_grid.set_page(99) == 3
        assert items_grid.set_page(0) == 1

    @pytest.mark.asyncio
    async def test_page_size_change_returns_to_the_first_page(self, items_grid):
        await items_grid.load()
        items_grid.set_page(2)
        items_grid.set_page_size(5)
        assert items_grid.page == 1
        assert items_grid.total_pages == 5

    @pytest.mark.asyncio
    async def test_label_filter(self, relation_grid):
        await relation_grid.load()
        relation_grid.set_filter("parent_object_type_id", "company")
        assert relation_grid.row_count == 6
        assert relation_grid.active_filter_fields() == ["parent_object_type_id"]

        relation_grid.set_filter("parent_object_type_id", "any")
        assert relation_grid.row_count == 10
        assert relation_grid.filter_state == {}

    @pytest.mark.asyncio
    async def test_filter_errors(self, relation_grid):
        await relation_grid.load()
        with pytest.raises(KeyError):
            relation_grid.set_filter("nope", "x")

    @pytest.mark.asyncio
    @pytest.mark.scenario
    async def test_label_sort_keeps_ties_in_original_order(self, relation_grid):
        await relation_grid.load()
        assert relation_grid.toggle_sort("parent_object_type_id") == SortSpec("parent_object_type_id", "asc")
        assert [r["id"] for r in relation_grid.visible_rows()] == [1, 2, 3, 4, 5, 8, 10, 6, 7, 9]

        relation_grid.toggle_sort("parent_object_type_id")
        assert [r["id"] for r in relation_grid.visible_rows()] == [9, 6, 7, 10, 1, 2, 3, 4, 5, 8]

        relation_grid.toggle_sort("parent_object_type_id")
        assert [r["id"] for r in relation_grid.visible_rows()] == list(range(1, 11))


class TestEditing:
    @pytest.mark.asyncio
    async def test_commit_updates_and_reloads(self, relation_grid, demo_backend):
        await relation_grid.load()
        relation_grid.start_edit(1)
        relation_grid.update_field(1, "code", "staff")

        result = await relation_grid.commit_edit(1)
        assert result.payload.changed() == {"code": ("employee", "staff")}
        assert result.warnings == []
        assert demo_backend.audit_log[-1]["new"]["code"] == "staff"
        assert relation_grid.record(1)["code"] == "staff"
        assert relation_grid.row_state(1) == "viewing"
        assert relation_grid.sessions == {}

    @pytest.mark.asyncio
    async def test_validation_failure_sends_nothing(self, relation_grid, demo_backend):
        await relation_grid.load()
        relation_grid.start_edit(1)
        relation_grid.update_field(1, "code", "")

        with pytest.raises(ValidationError) as exc_info:
            await relation_grid.commit_edit(1)
        assert "code" in exc_info.value.field_errors
        assert _calls(demo_backend, "update_record") == []
        assert relation_grid.row_state(1) == "editing"

    @pytest.mark.asyncio
    async def test_rejected_save_keeps_the_draft(self, relation_grid, demo_backend):
        await relation_grid.load()
        relation_grid.start_edit(1)
        relation_grid.update_field(1, "code", "staff")
        demo_backend.failures["update_record"] = RequestError("VALIDATION_ERROR", "bad", status=400)

        with pytest.raises(RequestError):
            await relation_grid.commit_edit(1)
        assert relation_grid.row_state(1) == "editing"
        assert relation_grid.sessions[1].draft["code"] == "staff"

        del demo_backend.failures["update_record"]
        await relation_grid.commit_edit(1)
        assert relation_grid.record(1)["code"] == "staff"

    @pytest.mark.asyncio
    async def test_cancel_makes_no_calls(self, relation_grid, demo_backend):
        await relation_grid.load()
        before = len(demo_backend.calls)
        relation_grid.start_edit(1)
        relation_grid.update_field(1, "code", "staff")
        relation_grid.cancel_edit(1)

        assert len(demo_backend.calls) == before
        assert relation_grid.record(1)["code"] == "employee"
        assert relation_grid.row_state(1) == "viewing"

    @pytest.mark.asyncio
    async def test_starting_another_edit_discards_the_first(self, relation_grid):
        await relation_grid.load()
        relation_grid.start_edit(1)
        relation_grid.update_field(1, "code", "staff")
        relation_grid.start_edit(2)

        assert list(relation_grid.sessions) == [2]
        assert relation_grid.row_state(1) == "viewing"
        with pytest.raises(EditSessionError):
            relation_grid.update_field(1, "code", "again")

    @pytest.mark.asyncio
    async def test_multiple_sessions_when_allowed(self, relation_grid):
        relation_grid.allow_multiple_concurrent_edits = True
        await relation_grid.load()
        relation_grid.start_edit(1)
        relation_grid.start_edit(2)
        assert sorted(relation_grid.sessions) == [1, 2]

    @pytest.mark.asyncio
    async def test_unknown_record(self, relation_grid):
        await relation_grid.load()
        with pytest.raises(KeyError):
            relation_grid.start_edit(404)

    @pytest.mark.asyncio
    @pytest.mark.scenario
    async def test_duplicate_submit_is_rejected(self, settings):
        backend = build_demo_persistence(delay=0.01)
        preset = preset_for("object-relation-types")
        grid = GridOrchestrator(backend, preset.table, list(preset.columns), settings=settings)
        await grid.load()
        grid.start_edit(1)
        grid.update_field(1, "code", "staff")

        task = asyncio.create_task(grid.commit_edit(1))
        await asyncio.sleep(0)
        assert grid.row_state(1) == "saving"
        with pytest.raises(SubmissionInProgressError):
            await grid.commit_edit(1)
        with pytest.raises(EditSessionError):
            grid.start_edit(2)

        await task
        assert len(_calls(backend, "update_record")) == 1
        assert grid.row_state(1) == "viewing"


class TestTranslationPropagation:
    @pytest.mark.asyncio
    @pytest.mark.scenario
    async def test_three_locales_with_fallback_and_failure(self, relation_grid, demo_backend):
        # "contractor" only has an English translation; Hungarian fails outright.
        demo_backend.failures["update_translation:3"] = RequestError("SERVER_ERROR", "boom", status=500)
        await relation_grid.load()
        relation_grid.start_edit(2)
        relation_grid.update_field(2, "name", "Freelancer")
        relation_grid.set_propagate_all_locales(2, True)

        result = await relation_grid.commit_edit(2)

        assert [(r.locale_code, r.action) for r in result.translations] == [
            ("en", "updated"),
            ("de", "created"),
            ("hu", "failed"),
        ]
        assert len(result.warnings) == 1
        assert "hu" in result.warnings[0]
        assert result.payload.to_wire("prefix")["update_all_languages"] == 1
        assert demo_backend.translations[("contractor", 2)] == "Freelancer"
        assert ("contractor", 3) not in demo_backend.translations
        assert relation_grid.record(2)["name"] == "Freelancer"

        operations = [c[0] for c in demo_backend.calls]
        assert operations.index("update_translation") < operations.index("update_record")

    @pytest.mark.asyncio
    async def test_no_propagation_without_the_flag(self, relation_grid, demo_backend):
        await relation_grid.load()
        relation_grid.start_edit(2)
        relation_grid.update_field(2, "name", "Freelancer")

        result = await relation_grid.commit_edit(2)
        assert result.translations == ()
        assert _calls(demo_backend, "update_translation") == []
        assert ("contractor", 2) not in demo_backend.translations


class TestCreating:
    @pytest.mark.asyncio
    async def test_create_and_reload(self, object_type_grid, demo_backend):
        await object_type_grid.load()
        object_type_grid.start_create()
        object_type_grid.update_create_field("code", "vehicle")
        object_type_grid.update_create_field("name", "Vehicle")

        created = await object_type_grid.create()
        assert created["id"] == 7
        assert object_type_grid.record_count == 7
        assert object_type_grid.create_draft is None
        assert demo_backend.translations[("vehicle", 1)] == "Vehicle"

    @pytest.mark.asyncio
    async def test_invalid_draft_is_not_sent(self, object_type_grid, demo_backend):
        await object_type_grid.load()
        object_type_grid.start_create()
        with pytest.raises(ValidationError):
            await object_type_grid.create()
        assert _calls(demo_backend, "create_record") == []
        assert object_type_grid.create_draft is not None

    @pytest.mark.asyncio
    async def test_create_without_a_form(self, object_type_grid):
        with pytest.raises(EditSessionError):
            await object_type_grid.create()

    @pytest.mark.asyncio
    async def test_duplicate_create_is_rejected(self, settings):
        backend = build_demo_persistence(delay=0.01)
        preset = preset_for("object-types")
        grid = GridOrchestrator(backend, preset.table, list(preset.columns), settings=settings)
        await grid.load()
        grid.start_create()
        grid.update_create_field("code", "vehicle")

        task = asyncio.create_task(grid.create())
        await asyncio.sleep(0)
        with pytest.raises(SubmissionInProgressError):
            await grid.create()
        await task
        assert len(_calls(backend, "create_record")) == 1


class TestDeleting:
    @pytest.mark.asyncio
    @pytest.mark.scenario
    async def test_referenced_row_is_rejected(self, object_type_grid):
        await object_type_grid.load()
        object_type_grid.request_delete(1)
        assert object_type_grid.row_state(1) == "delete_pending"

        outcome = await object_type_grid.confirm_delete(1)
        assert isinstance(outcome, RejectedReferentialIntegrity)
        assert object_type_grid.record(1)["is_active"] is True
        assert object_type_grid.row_state(1) == "viewing"

    @pytest.mark.asyncio
    async def test_unreferenced_row_is_deleted(self, object_type_grid):
        await object_type_grid.load()
        object_type_grid.request_delete(6)
        assert await object_type_grid.confirm_delete(6) == Deleted(6)
        assert object_type_grid.record(6)["is_active"] is False

    @pytest.mark.asyncio
    async def test_other_rejections(self, object_type_grid, demo_backend):
        await object_type_grid.load()
        demo_backend.failures["delete_record"] = RequestError("SERVER_ERROR", "boom", status=500)
        object_type_grid.request_delete(6)
        outcome = await object_type_grid.confirm_delete(6)
        assert isinstance(outcome, RejectedOtherReason)
        assert "boom" in outcome.reason

    @pytest.mark.asyncio
    async def test_network_error_keeps_the_request_pending(self, object_type_grid, demo_backend):
        await object_type_grid.load()
        demo_backend.failures["delete_record"] = NetworkError("down")
        object_type_grid.request_delete(6)
        with pytest.raises(NetworkError):
            await object_type_grid.confirm_delete(6)
        assert object_type_grid.row_state(6) == "delete_pending"

    @pytest.mark.asyncio
    async def test_confirm_needs_a_request(self, object_type_grid):
        await object_type_grid.load()
        with pytest.raises(EditSessionError):
            await object_type_grid.confirm_delete(6)

    @pytest.mark.asyncio
    async def test_cancel_and_edit_guard(self, object_type_grid):
        await object_type_grid.load()
        object_type_grid.request_delete(6)
        with pytest.raises(EditSessionError):
            object_type_grid.start_edit(6)
        object_type_grid.cancel_delete(6)
        assert object_type_grid.row_state(6) == "viewing"
