"""
路径解析器：按点号/方括号路径访问任意 JSON 文档。
以 `$.` 或 `$[` 开头的路径交给 jsonpath-ng 处理，其余走严格的逐段解析。
解析失败一律返回 ABSENT，从不抛出异常。
"""

import logging
import re
from typing import Any, List, Optional, Union

logger = logging.getLogger(__name__)


class _Absent:
    """路径不存在时的哨兵值（区别于 JSON null）。"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()

Segment = Union[str, int]

# .key | [123] | ["quoted key"] | ['quoted key']
_SEGMENT_RE = re.compile(
    r"""
    \.?(?P<key>[^.\[\]]+)
    | \[(?P<index>\d+)\]
    | \["(?P<dq>[^"]*)"\]
    | \['(?P<sq>[^']*)'\]
    """,
    re.VERBOSE,
)


def is_absent(value: Any) -> bool:
    return value is ABSENT


# ── 路径切分 ──────────────────────────────────────────

def split_path(path: str) -> Optional[List[Segment]]:
    """
    将路径切分为段列表：str 表示键访问，int 表示下标访问。
    路径格式非法时返回 None。
    """
    segments: List[Segment] = []
    pos = 0
    while pos < len(path):
        match = _SEGMENT_RE.match(path, pos)
        if match is None or match.end() == pos:
            return None
        if match.group("index") is not None:
            segments.append(int(match.group("index")))
        elif match.group("dq") is not None:
            segments.append(match.group("dq"))
        elif match.group("sq") is not None:
            segments.append(match.group("sq"))
        else:
            # 键段之前只允许出现一个点号
            if pos > 0 and path[pos] != ".":
                return None
            segments.append(match.group("key"))
        pos = match.end()
    return segments


# ── JSONPath 解析 ─────────────────────────────────────

def _resolve_jsonpath(root: Any, expr: str) -> Any:
    from jsonpath_ng.ext import parse as jp_parse

    try:
        matches = jp_parse(expr).find(root)
    except Exception as e:
        logger.debug(f"JSONPath '{expr}' 解析失败: {e}")
        return ABSENT
    if not matches:
        logger.debug(f"JSONPath '{expr}' 无匹配")
        return ABSENT
    return matches[0].value


def _is_jsonpath(path: str) -> bool:
    return path == "$" or path.startswith(("$.", "$["))


# ── 统一入口 ──────────────────────────────────────────

def resolve(root: Any, path: str) -> Any:
    """
    沿路径访问 root，返回子值或 ABSENT。

    - 空路径返回 root 本身
    - dict 只接受键段，list 只接受下标段，其他组合立即返回 ABSENT
    - 仅 "$"、"$." 或 "$[" 开头的路径按 JSONPath 处理；"$price" 之类仍是普通键
    """
    if not path:
        return root
    if _is_jsonpath(path):
        return _resolve_jsonpath(root, path)

    segments = split_path(path)
    if segments is None:
        logger.debug(f"非法路径: {path!r}")
        return ABSENT

    current = root
    for segment in segments:
        if isinstance(current, dict) and isinstance(segment, str):
            if segment not in current:
                return ABSENT
            current = current[segment]
        elif isinstance(current, list) and isinstance(segment, int):
            if segment >= len(current):
                return ABSENT
            current = current[segment]
        else:
            return ABSENT
    return current
