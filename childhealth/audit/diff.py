"""
字段级 diff：比较库中当前记录和本次提交的 payload，生成 ChangeSet。

部分更新 / 多个表单：
  - 只看 payload 里出现的 key。payload 没带的字段永远不算删除或修改，
    所以不同表单可以各自只提交自己编辑的那部分字段。
  - key 出现在 payload 里（哪怕值是 None）才算"显式更新"。
"""

from collections.abc import Iterable, Mapping
from typing import Any, Optional

from .normalize import is_effectively_empty, values_equal
from .types import ChangeSet

DEFAULT_EXCLUDE_KEYS = frozenset({"id", "created_at", "updated_at"})


def build_field_diff(
    current: Mapping[str, Any],
    payload: Mapping[str, Any],
    exclude_keys: Optional[Iterable[str]] = None,
) -> ChangeSet:
    """
    返回 {field: {"before": ..., "after": ...}}，只包含规范化后确实不同的字段，
    顺序与 payload 的 key 顺序一致。

    exclude_keys 在默认的 id / created_at / updated_at 之上追加，
    例如 visit 更新时排除 child_id。

    - 新增：   current 没有值 → {"before": None, "after": 新值}
    - 修改：   两边都有值但不同 → {"before": 旧值, "after": 新值}
    - 清空：   payload 为 None 或空白字符串 → {"before": 旧值, "after": None}
    """
    exclude = DEFAULT_EXCLUDE_KEYS.union(exclude_keys or ())
    changes: ChangeSet = {}

    for key, after in payload.items():
        if key in exclude:
            continue

        before = current.get(key)
        if values_equal(before, after):
            continue
        if should_filter_change(before, after):
            continue

        changes[key] = {
            "before": before,
            "after": _empty_to_none(after),
        }

    return changes


def should_filter_change(before: Any, after: Any) -> bool:
    """两边都实质为空时，这条变更没有意义。"""
    return is_effectively_empty(before) and is_effectively_empty(after)


def _empty_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip() == "":
        return None
    return value
