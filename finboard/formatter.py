"""
Field formatter: turns a resolved JSON value into a display string.
"""

import json
import math
from typing import Any, Optional

from finboard.json_path import ABSENT
from finboard.models import FieldFormat

PLACEHOLDER = "-"
LIST_DELIMITER = ", "
CURRENCY_SYMBOL = "$"
DECIMALS = 2


def _is_number(value: Any) -> bool:
    # bool is an int subclass but a JSON boolean, not a number
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _format_number(value: float, fmt: Optional[FieldFormat]) -> str:
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if fmt == FieldFormat.CURRENCY:
        sign = "-" if value < 0 else ""
        return f"{sign}{CURRENCY_SYMBOL}{abs(value):.{DECIMALS}f}"
    if fmt == FieldFormat.PERCENT:
        # Providers report percentages already scaled (12.5 means 12.5%).
        return f"{value:.{DECIMALS}f}%"
    if isinstance(value, int):
        return str(value)
    return f"{value:.{DECIMALS}f}"


def _format_scalar(value: Any, fmt: Optional[FieldFormat]) -> str:
    if value is None or value is ABSENT:
        return PLACEHOLDER
    if isinstance(value, bool):
        return "true" if value else "false"
    if _is_number(value):
        return _format_number(value, fmt)
    return str(value)


def _format_member(value: Any, fmt: Optional[FieldFormat]) -> str:
    """Formats one element of a list or dict; nested containers are not formatted further."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return _format_scalar(value, fmt)


def _coerce_format(fmt: Any) -> Optional[FieldFormat]:
    """Unknown format tags degrade to plain number formatting."""
    if fmt is None or isinstance(fmt, FieldFormat):
        return fmt
    try:
        return FieldFormat(fmt)
    except (TypeError, ValueError):
        return None


def format_value(value: Any, fmt: Optional[FieldFormat] = None) -> str:
    """
    Render `value` for display.

    Absent and null become "-", lists are joined with ", ", dicts become a flat
    "key: value" listing, numbers honour `fmt`, and strings/booleans are
    returned verbatim regardless of `fmt`. An unrecognized `fmt` is ignored.
    """
    fmt = _coerce_format(fmt)
    if isinstance(value, list):
        return LIST_DELIMITER.join(_format_member(v, fmt) for v in value)
    if isinstance(value, dict):
        return LIST_DELIMITER.join(f"{k}: {_format_member(v, fmt)}" for k, v in value.items())
    return _format_scalar(value, fmt)
