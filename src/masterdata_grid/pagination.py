"""Fixed-size page windows over the filtered, sorted frame."""

import math
from dataclasses import dataclass
from typing import Any

import polars as pl

from masterdata_grid.frames import frame_to_records


@dataclass(frozen=True)
class PageSlice:
    """One page of the pipeline output.

    Attributes:
        visible: The rows on this page (empty when *page* is out of range).
        page: The requested 1-based page number.
        page_size: Rows per page.
        total_rows: Number of rows before slicing.
        total_pages: ``ceil(total_rows / page_size)``, ``0`` when empty.
    """

    visible: pl.DataFrame
    page: int
    page_size: int
    total_rows: int
    total_pages: int

    @property
    def first_item(self) -> int:
        """1-based position of the first row on this page, ``0`` when empty."""
        if self.visible.height == 0:
            return 0
        return (self.page - 1) * self.page_size + 1

    @property
    def last_item(self) -> int:
        if self.visible.height == 0:
            return 0
        return self.first_item + self.visible.height - 1

    def records(self) -> list[dict[str, Any]]:
        return frame_to_records(self.visible)


def total_pages(total_rows: int, page_size: int) -> int:
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")
    return math.ceil(total_rows / page_size) if total_rows > 0 else 0


def clamp_page(page: int, pages: int) -> int:
    """Clamp *page* into ``[1, pages]``; always ``1`` when there are no pages."""
    if pages <= 0:
        return 1
    return max(1, min(page, pages))


def slice_page(df: pl.DataFrame, page: int, page_size: int) -> PageSlice:
    """Cut page *page* (1-based) out of *df*.

    An out-of-range page yields an empty window rather than a corrected
    one; callers that want correction use :func:`clamp_page` first.
    """
    pages = total_pages(df.height, page_size)
    if page < 1 or page > pages:
        visible = df.clear()
    else:
        visible = df.slice((page - 1) * page_size, page_size)
    return PageSlice(
        visible=visible,
        page=page,
        page_size=page_size,
        total_rows=df.height,
        total_pages=pages,
    )


def page_numbers(current: int, pages: int, max_visible: int = 7) -> list[int | None]:
    """Page links for a pager, with ``None`` standing for an ellipsis.

    Example::

        >>> page_numbers(6, 12)
        [1, None, 5, 6, 7, None, 12]
    """
    if pages <= max_visible:
        return list(range(1, pages + 1))

    inner = max_visible - 4  # first, last and two ellipses
    start = max(2, current - inner // 2)
    end = min(pages - 1, start + inner - 1)
    start = max(2, end - inner + 1)

    numbers: list[int | None] = [1]
    if start > 2:
        numbers.append(None)
    numbers.extend(range(start, end + 1))
    if end < pages - 1:
        numbers.append(None)
    numbers.append(pages)
    return numbers
