"""CLI for masterdata-grid -- browse and edit reference tables.

Usage::

    # Print page 2 of the countries table from the webhook API
    masterdata-grid browse countries --page 2 --page-size 10

    # Filter and sort against the built-in sample data
    masterdata-grid browse object-relation-types --demo \\
        --filter parent_object_type_id=Company --sort code --desc

    # Launch the editable grid in the browser on the sample data
    masterdata-grid demo --table countries

``browse`` goes through the same ``GridOrchestrator`` pipeline as the
browser grid, so filters and sorting behave identically.
"""

import asyncio
import json
import logging
import os
import subprocess
import sys
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Annotated, Any, Optional

import polars as pl
import typer

from masterdata_grid.catalog import build_demo_persistence, preset_for
from masterdata_grid.config import GridSettings
from masterdata_grid.errors import GridError
from masterdata_grid.filters import normalize_bool
from masterdata_grid.models import SortSpec
from masterdata_grid.orchestrator import GridOrchestrator
from masterdata_grid.persistence import MemoryPersistence, WebhookPersistence

app = typer.Typer(
    name="masterdata-grid",
    help="Browse and edit reference-data tables.",
    no_args_is_help=True,
)


@app.callback()
def _configure(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log debug output to stderr")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_filter(grid: GridOrchestrator, spec: str) -> tuple[str, Any]:
    """Parse ``key=value`` into a filter entry typed for the column."""
    key, sep, raw = spec.partition("=")
    if not sep:
        raise typer.BadParameter(f"Expected KEY=VALUE, got {spec!r}", param_hint="--filter")
    try:
        column = grid.column(key.strip())
    except KeyError as exc:
        raise typer.BadParameter(str(exc), param_hint="--filter") from exc

    value: Any = raw.strip()
    if column.kind == "boolean":
        try:
            value = normalize_bool(value)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--filter") from exc
    elif column.kind == "id" and value.isdigit():
        value = int(value)
    return column.key, value


async def _browse(
    grid: GridOrchestrator,
    filters: list[str],
    sort: str | None,
    desc: bool,
    page: int,
) -> None:
    report = await grid.load()
    if report.error is not None:
        for source, exc in report.error.failures.items():
            typer.echo(f"Warning: {source} failed to load: {exc}", err=True)

    for spec in filters:
        key, value = _parse_filter(grid, spec)
        grid.set_filter(key, value)
    if sort:
        try:
            grid.set_sort(SortSpec(sort, "desc" if desc else "asc"))
        except (KeyError, ValueError) as exc:
            raise typer.BadParameter(str(exc), param_hint="--sort") from exc
    grid.set_page(page)


@app.command()
def browse(
    table: Annotated[str, typer.Argument(help="Table to browse, e.g. countries or object-types")],
    filters: Annotated[
        Optional[list[str]],
        typer.Option("--filter", "-f", help="Column filter KEY=VALUE (repeatable)"),
    ] = None,
    sort: Annotated[Optional[str], typer.Option("--sort", "-s", help="Column to sort by")] = None,
    desc: Annotated[bool, typer.Option("--desc", help="Sort descending")] = False,
    page: Annotated[int, typer.Option("--page", "-p", help="Page number (1-based)")] = 1,
    page_size: Annotated[Optional[int], typer.Option("--page-size", "-n", help="Rows per page")] = None,
    locale: Annotated[Optional[str], typer.Option("--locale", "-l", help="Locale code for labels")] = None,
    base_url: Annotated[Optional[str], typer.Option("--base-url", help="Webhook API base URL")] = None,
    demo: Annotated[bool, typer.Option("--demo", help="Use the built-in sample data")] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print the page as JSON records")] = False,
) -> None:
    """Print one page of TABLE, filtered and sorted like the browser grid."""
    settings = GridSettings.from_env()
    if base_url:
        settings = replace(settings, base_url=base_url.rstrip("/"))
    persistence: MemoryPersistence | WebhookPersistence = (
        build_demo_persistence() if demo else WebhookPersistence(settings)
    )

    preset = preset_for(table)
    grid = GridOrchestrator(
        persistence,
        preset.table,
        list(preset.columns),
        settings=settings,
        page_size=page_size,
        diff_style=preset.diff_style,
    )

    async def run() -> None:
        if locale:
            await grid.set_locale(locale)
        await _browse(grid, filters or [], sort, desc, page)

    try:
        asyncio.run(run())
    except GridError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)

    rows = grid.display_rows()
    if as_json:
        typer.echo(json.dumps(rows, ensure_ascii=False, indent=2))
        return

    typer.echo(f"{preset.title}: {grid.summary()}")
    if rows:
        with pl.Config(tbl_rows=-1, tbl_cols=-1, tbl_hide_dataframe_shape=True, fmt_str_lengths=60):
            typer.echo(pl.DataFrame(rows))


# ---------------------------------------------------------------------------
# Demo app template -- uses __PLACEHOLDER__ tokens for dynamic parts.
# ---------------------------------------------------------------------------

_APP_TEMPLATE = '''"""Auto-generated editable grid demo for: __TABLE__"""

import reflex as rx

from masterdata_grid import (
    EditableGridMixin,
    GridOrchestrator,
    build_demo_persistence,
    editable_grid,
    preset_for,
)

_persistence = build_demo_persistence()


class DemoGridState(EditableGridMixin, rx.State):
    """Editable grid on the in-memory sample backend."""

    def build_grid(self) -> GridOrchestrator:
        preset = preset_for("__TABLE__")
        return GridOrchestrator(
            _persistence,
            preset.table,
            list(preset.columns),
            diff_style=preset.diff_style,
        )


def index() -> rx.Component:
    return rx.box(
        rx.heading("__TITLE__", size="6", margin_bottom="0.5em"),
        editable_grid(DemoGridState, height="__HEIGHT__"),
        padding="2em",
        max_width="1400px",
        margin="0 auto",
    )


app = rx.App()
app.add_page(index, on_load=DemoGridState.load_grid)
'''


def _build_app_code(table: str, height: str, title: str) -> str:
    """Generate the Reflex app module source code."""
    template = _APP_TEMPLATE
    template = template.replace("__TABLE__", table)
    template = template.replace("__TITLE__", title)
    template = template.replace("__HEIGHT__", height)
    return template


@app.command()
def demo(
    table: Annotated[str, typer.Option("--table", "-t", help="Sample table to edit")] = "countries",
    height: Annotated[str, typer.Option("--height", help="CSS height of the grid")] = "560px",
    port: Annotated[int, typer.Option("--port", "-p", help="Port for the Reflex frontend")] = 3000,
    title: Annotated[Optional[str], typer.Option("--title", help="Page title")] = None,
) -> None:
    """Launch the editable grid in the browser on the sample data.

    Edits are kept in memory and lost when the app stops.
    """
    preset = preset_for(table)
    if title is None:
        title = f"{preset.title} -- masterdata-grid demo"

    app_code = _build_app_code(preset.table, height, title)

    # Create a temporary Reflex app directory.
    tmp_dir = Path(tempfile.mkdtemp(prefix="masterdata_grid_demo_"))
    app_name = "grid_demo_app"
    app_pkg = tmp_dir / app_name
    app_pkg.mkdir()
    (app_pkg / "__init__.py").write_text("")
    (app_pkg / f"{app_name}.py").write_text(app_code)
    (tmp_dir / "rxconfig.py").write_text(
        f'import reflex as rx\nconfig = rx.Config(app_name="{app_name}", frontend_port={port})\n'
    )

    typer.echo(f"Launching demo for: {preset.table} | Port: {port}")
    os.chdir(tmp_dir)

    # reflex's CLI calls sys.exit() on completion, so init runs in a subprocess.
    typer.echo("Initializing Reflex project...")
    subprocess.run([sys.executable, "-m", "reflex", "init"], cwd=str(tmp_dir), check=True)

    typer.echo("Starting demo...")
    os.execvp(sys.executable, [sys.executable, "-m", "reflex", "run"])


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
