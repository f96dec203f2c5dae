"""
Tests for the masterdata-grid command line.
"""

import json

from typer.testing import CliRunner

from masterdata_grid.cli import _build_app_code, app
from masterdata_grid.errors import NetworkError
from masterdata_grid.persistence import WebhookPersistence

runner = CliRunner()


class TestBrowse:
    def test_page_of_demo_data(self):
        result = runner.invoke(app, ["browse", "countries", "--demo", "--page-size", "10", "--page", "3"])
        assert result.exit_code == 0, result.output
        assert "Countries: Showing 21-25 of 25 (page 3 of 3)" in result.stdout

    def test_json_output_with_filter_and_sort(self):
        result = runner.invoke(
            app,
            [
                "browse",
                "object-relation-types",
                "--demo",
                "--filter",
                "parent_object_type_id=company",
                "--sort",
                "code",
                "--desc",
                "--json",
            ],
        )
        assert result.exit_code == 0, result.output
        rows = json.loads(result.stdout)
        assert len(rows) == 6
        assert {r["parent_object_type_id"] for r in rows} == {"Company"}
        assert rows[0]["code"] == "subsidiary"

    def test_locale(self):
        result = runner.invoke(
            app, ["browse", "countries", "--demo", "--locale", "hu", "--filter", "code=HU", "--json"]
        )
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)[0]["name"] == "Magyarország"

    def test_boolean_filter(self):
        result = runner.invoke(app, ["browse", "countries", "--demo", "--filter", "is_active=no", "--json"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == []

    def test_bad_filter_is_a_usage_error(self):
        result = runner.invoke(app, ["browse", "countries", "--demo", "--filter", "code"])
        assert result.exit_code == 2
        result = runner.invoke(app, ["browse", "countries", "--demo", "--filter", "nope=1"])
        assert result.exit_code == 2

    def test_unreachable_backend_reports_a_warning(self, monkeypatch):
        def refuse(self, ctx, method, path, **kwargs):
            raise NetworkError(f"No response from {path}")

        monkeypatch.setattr(WebhookPersistence, "request", refuse)
        result = runner.invoke(app, ["browse", "countries", "--base-url", "http://127.0.0.1:9"])
        assert result.exit_code == 0
        assert "records failed to load" in result.output
        assert "No records" in result.output


class TestDemoTemplate:
    def test_app_code_names_the_table(self):
        code = _build_app_code("object-types", "600px", "Object Types")
        assert 'preset_for("object-types")' in code
        assert 'height="600px"' in code
        assert "__" + "TABLE__" not in code
        compile(code, "grid_demo_app.py", "exec")
