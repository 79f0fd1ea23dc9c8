"""
Tabular extraction: find the row array inside an unknown document shape,
infer columns, and slice the result for search and pagination.
"""

import json
import math
from dataclasses import dataclass, field
from typing import Any, List

from finboard.formatter import format_value
from finboard.json_path import ABSENT, resolve

DEFAULT_PAGE_SIZE = 10
PAGE_WINDOW_SIZE = 5


def extract_rows(doc: Any) -> Any:
    """
    Locate the array of rows in `doc`.

    A list document is returned as is. For a dict, the longest list-valued
    top-level field wins (first one on ties). Anything else yields ABSENT.
    """
    if isinstance(doc, list):
        return doc
    if not isinstance(doc, dict):
        return ABSENT

    best = ABSENT
    for value in doc.values():
        if isinstance(value, list) and (best is ABSENT or len(value) > len(best)):
            best = value
    return best


def infer_columns(rows: List[Any]) -> List[str]:
    """Union of first-level keys across dict rows, in first-seen order."""
    columns: dict = {}
    for row in rows:
        if isinstance(row, dict):
            for key in row:
                columns.setdefault(key, None)
    return list(columns)


def _cell(row: Any, column: str) -> str:
    # inferred columns are raw keys and may contain "." or "["
    if isinstance(row, dict) and column in row:
        value = row[column]
    else:
        value = resolve(row, column)
    if value is ABSENT or value is None:
        return ""
    return format_value(value)


def table_cells(rows: List[Any], columns: List[str]) -> List[List[str]]:
    """Render each row as one string per column; missing values become empty cells."""
    return [[_cell(row, c) for c in columns] for row in rows]


def filter_rows(rows: List[Any], query: str) -> List[Any]:
    """Case-insensitive substring match against each row's JSON text."""
    if not query:
        return list(rows)
    needle = query.lower()
    return [
        row for row in rows
        if needle in json.dumps(row, ensure_ascii=False, default=str).lower()
    ]


@dataclass
class Page:
    rows: List[Any] = field(default_factory=list)
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    total_rows: int = 0
    total_pages: int = 0
    window_start: int = 1
    window_end: int = 0


def paginate(rows: List[Any], page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Page:
    """
    Slice `rows` to the requested 1-based page.

    The page number is clamped into range; `window_start`/`window_end` bound
    at most PAGE_WINDOW_SIZE page links centred on the current page.
    """
    page_size = max(1, page_size)
    total_pages = math.ceil(len(rows) / page_size)
    page = min(max(1, page), max(1, total_pages))

    if total_pages <= PAGE_WINDOW_SIZE:
        start, end = 1, total_pages
    else:
        start = max(page - PAGE_WINDOW_SIZE // 2, 1)
        end = start + PAGE_WINDOW_SIZE - 1
        if end > total_pages:
            end = total_pages
            start = end - PAGE_WINDOW_SIZE + 1

    offset = (page - 1) * page_size
    return Page(
        rows=rows[offset:offset + page_size],
        page=page,
        page_size=page_size,
        total_rows=len(rows),
        total_pages=total_pages,
        window_start=start,
        window_end=end,
    )
