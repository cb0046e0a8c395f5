"""
字段级审计：normalize → diff → summary。

这里只导出纯函数；持久化在 childhealth.audit.recorder（依赖 ORM，按需导入）。
"""

from .diff import DEFAULT_EXCLUDE_KEYS, build_field_diff, should_filter_change
from .normalize import is_effectively_empty, normalize_for_compare, values_equal
from .summary import audit_changes_summary, stored_changes_summary
from .types import AuditEventParams, ChangeSet, FieldChange

__all__ = [
    "DEFAULT_EXCLUDE_KEYS",
    "AuditEventParams",
    "ChangeSet",
    "FieldChange",
    "audit_changes_summary",
    "build_field_diff",
    "is_effectively_empty",
    "normalize_for_compare",
    "should_filter_change",
    "stored_changes_summary",
    "values_equal",
]
