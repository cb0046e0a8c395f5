from typing import Optional

from .diff import should_filter_change
from .normalize import values_equal
from .types import ChangeSet

FULL_LIST_MAX_FIELDS = 4
TRUNCATED_PREVIEW_FIELDS = 3


def audit_changes_summary(changes: ChangeSet, entity_type: Optional[str] = None) -> str:
    """
    把 ChangeSet 变成一句简短描述，例如 "Updated visit_date, notes"。

    先过滤掉 before / after 规范化后相同（包括两边都实质为空）的条目，
    调用方不一定用 build_field_diff 生成 changes。
    全部被过滤时返回空字符串，由调用方决定是否回退到库里存的 summary。

    entity_type 目前不影响输出，保留参数以便以后按实体定制。
    """
    return _format_field_names([
        key for key, change in changes.items()
        if not _is_noise(change.get("before"), change.get("after"))
    ])


def stored_changes_summary(changes: ChangeSet) -> str:
    """
    历史接口用：根据库里存的 changes 重新生成 summary。

    存储时长字符串已被截断，截断后相同不代表原值相同，
    所以这里只过滤两边都实质为空的条目，不做规范化比较。
    """
    return _format_field_names([
        key for key, change in changes.items()
        if not should_filter_change(change.get("before"), change.get("after"))
    ])


def _format_field_names(field_names) -> str:
    if not field_names:
        return ""

    if len(field_names) <= FULL_LIST_MAX_FIELDS:
        return f"Updated {', '.join(field_names)}"

    preview = ", ".join(field_names[:TRUNCATED_PREVIEW_FIELDS])
    return f"Updated {len(field_names)} fields: {preview}..."


def _is_noise(before, after) -> bool:
    return should_filter_change(before, after) or values_equal(before, after)
