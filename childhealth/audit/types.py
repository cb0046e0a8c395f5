"""
审计层的标准数据结构。

ChangeSet 是 build_field_diff() 的产物，也是 AuditEvent.changes 的存储格式：
    {"visit_date": {"before": "2026-01-15", "after": "2026-01-16"}, ...}

before / after 永远保存原始值（未经 normalize），方便前端展示。
"""

from dataclasses import dataclass, field
from typing import Any, Optional, TypedDict


class FieldChange(TypedDict):
    before: Any
    after: Any


ChangeSet = dict[str, FieldChange]

ENTITY_VISIT = "visit"
ENTITY_ILLNESS = "illness"
ENTITY_TYPES = (ENTITY_VISIT, ENTITY_ILLNESS)

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_DELETED = "deleted"
ACTIONS = (ACTION_CREATED, ACTION_UPDATED, ACTION_DELETED)


@dataclass
class AuditEventParams:
    """
    写一条审计记录所需的全部参数。

    summary 为 None 时由 audit_changes_summary() 自动生成。
    request_id 是调用方传入的请求关联 ID（X-Request-ID），可为空。
    """

    entity_type: str
    entity_id: int
    action: str
    user_id: Optional[int] = None
    changes: ChangeSet = field(default_factory=dict)
    summary: Optional[str] = None
    request_id: Optional[str] = None

    def to_task_payload(self) -> dict:
        """Celery 只接受 JSON，changes 需先经过 sanitize_changes()。"""
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "user_id": self.user_id,
            "changes": self.changes,
            "summary": self.summary,
            "request_id": self.request_id,
        }

    @classmethod
    def from_task_payload(cls, payload: dict) -> "AuditEventParams":
        return cls(
            entity_type=payload["entity_type"],
            entity_id=payload["entity_id"],
            action=payload["action"],
            user_id=payload.get("user_id"),
            changes=payload.get("changes") or {},
            summary=payload.get("summary"),
            request_id=payload.get("request_id"),
        )
