"""
比较前的值规范化（normalize）。

数据库读出来的值和前端提交的值表示方式经常不一样：
  - date(2026, 1, 15) vs "2026-01-15" vs "2026-01-15T00:00:00.000Z"
  - Decimal("24.50") vs 24.5 vs "24.5"
  - "Follow up" vs "  Follow up  "
  - None vs {"od": {"axis": None, ...}, "os": {"axis": None, ...}}

normalize_for_compare() 把它们收敛成同一个可比较的形式，
build_field_diff() 只在规范化结果不同时才记录变更。

所有函数都是纯函数，对任何输入都不抛异常。
"""

import json
import math
import re
import sys
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

DATE_ONLY_RE = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")
ISO_DATETIME_RE = re.compile(
    r"^([0-9]{4}-[0-9]{2}-[0-9]{2})[T ][0-9]{2}:[0-9]{2}"
    r"(:[0-9]{2}(\.[0-9]+)?)?(Z|[+-][0-9]{2}:?[0-9]{2})?$"
)
# 只认十进制写法："1e10"、"Infinity"、".5" 都当普通字符串
NUMERIC_RE = re.compile(r"^[+-]?[0-9]+(\.[0-9]+)?$")
WHITESPACE_RE = re.compile(r"\s+")


def is_effectively_empty(value: Any) -> bool:
    """
    值是否"实质为空"：None、空白字符串、非有限数字，
    或所有叶子都实质为空的 list / dict（递归）。
    """
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, float):
        return not math.isfinite(value)
    if isinstance(value, Decimal):
        return not value.is_finite()
    if isinstance(value, (list, tuple)):
        return all(is_effectively_empty(item) for item in value)
    if isinstance(value, Mapping):
        return all(is_effectively_empty(item) for item in value.values())
    return False


def normalize_for_compare(value: Any) -> Any:
    """
    返回 value 的规范形式：None / bool / int / float / str。

    list 和 dict 规范化为稳定的 JSON 字符串（dict 的 key 递归排序），
    所有叶子都为空时规范化为 None。
    """
    if value is None:
        return None
    # bool 是 int 的子类，必须先判断
    if isinstance(value, bool):
        return value
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float, Decimal)):
        return _canonical_number(value)
    if isinstance(value, str):
        return _normalize_string(value)
    if isinstance(value, (list, tuple)):
        return _normalize_sequence(value)
    if isinstance(value, Mapping):
        return _normalize_mapping(value)
    return _normalize_string(str(value))


def values_equal(a: Any, b: Any) -> bool:
    """规范化后比较。True 和 1 在 Python 里相等，这里要区分开。"""
    na = normalize_for_compare(a)
    nb = normalize_for_compare(b)
    if isinstance(na, bool) or isinstance(nb, bool):
        return type(na) is type(nb) and na == nb
    return na == nb


def _canonical_number(value):
    if isinstance(value, Decimal):
        if not value.is_finite():
            return None
        integral = value.to_integral_value()
        if value == integral:
            return _canonical_integer(integral)
        as_float = float(value)
        if not math.isfinite(as_float):
            # 超出 float 范围；不用 normalize()，它会按 context 精度舍入
            return format(value, "f").rstrip("0")
        return as_float
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer():
            return int(value)
        return value
    return _canonical_integer(Decimal(value))


def _canonical_integer(integral: Decimal):
    # 超过 int 转字符串的位数上限时 json.dumps 会抛 ValueError，保留十进制字符串
    limit = sys.get_int_max_str_digits()
    if limit and integral.adjusted() + 1 > limit:
        return format(integral, "f")
    return int(integral)


def _normalize_string(value: str):
    collapsed = WHITESPACE_RE.sub(" ", value.strip())
    if not collapsed:
        return None

    if DATE_ONLY_RE.match(collapsed):
        return collapsed

    match = ISO_DATETIME_RE.match(collapsed)
    if match:
        return match.group(1)

    if NUMERIC_RE.match(collapsed):
        try:
            return _canonical_number(Decimal(collapsed))
        except InvalidOperation:
            return collapsed

    return collapsed


def _normalize_sequence(items):
    normalized = [normalize_for_compare(item) for item in items]
    if all(item is None for item in normalized):
        return None
    return _stable_dumps(normalized)


def _normalize_mapping(mapping):
    kept = {}
    for key, item in mapping.items():
        normalized = normalize_for_compare(item)
        # {"notes": None, "a": 1} 和 {"a": 1} 视为相同
        if normalized is not None:
            kept[str(key)] = normalized
    if not kept:
        return None
    return _stable_dumps(kept)


def _stable_dumps(obj) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
