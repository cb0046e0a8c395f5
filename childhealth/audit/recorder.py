"""
审计事件持久化：把字段级变更写入 audit_events。

  build_field_diff()  →  record_audit_event_safely()  →  AuditEvent

写审计失败绝不能让主操作（visit / illness 的增删改）失败或回滚：
record_audit_event_safely() 在 savepoint 里写入，异常只记日志。
AUDIT_ASYNC=1 时改为提交后投递 Celery 任务。
"""

import logging
import math
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from django.conf import settings
from django.db import transaction

from ..access import can_access_child
from ..models import AuditEvent, Illness, Visit
from .summary import audit_changes_summary
from .types import ACTIONS, ENTITY_ILLNESS, ENTITY_TYPES, ENTITY_VISIT, AuditEventParams, ChangeSet

logger = logging.getLogger(__name__)

DEFAULT_MAX_VALUE_LENGTH = 1000

_ENTITY_MODELS = {
    ENTITY_VISIT: Visit,
    ENTITY_ILLNESS: Illness,
}


def can_view_audit_history(entity_type, entity_id, user) -> bool:
    """
    用户能否查看某个实体的变更历史。

    只有能访问该实体所属孩子的家庭成员才能看；实体不存在（包括已删除）时返回 False。
    """
    if user is None or not getattr(user, 'is_authenticated', False):
        return False

    model = _ENTITY_MODELS.get(entity_type)
    if model is None:
        return False

    child_id = model.objects.filter(id=entity_id).values_list('child_id', flat=True).first()
    if child_id is None:
        return False

    return can_access_child(user, child_id)


def record_audit_event(params: AuditEventParams) -> AuditEvent:
    """
    写入一条审计记录。summary 为 None 时根据 changes 自动生成。
    changes 在写入前经过 sanitize_changes()，不影响 diff 的比较结果。
    """
    if params.entity_type not in ENTITY_TYPES:
        raise ValueError(f"Unknown audit entity type: {params.entity_type!r}")
    if params.action not in ACTIONS:
        raise ValueError(f"Unknown audit action: {params.action!r}")

    summary = params.summary
    if summary is None:
        summary = audit_changes_summary(params.changes, params.entity_type)

    event = AuditEvent.objects.create(
        entity_type=params.entity_type,
        entity_id=params.entity_id,
        user_id=params.user_id,
        action=params.action,
        changes=sanitize_changes(params.changes),
        summary=summary,
        request_id=params.request_id,
    )
    logger.info(
        "[audit] %s %s id=%s by user=%s (%d fields)",
        params.action, params.entity_type, params.entity_id, params.user_id, len(params.changes),
    )
    return event


def record_audit_event_safely(params: AuditEventParams):
    """
    Fire-and-forget：返回 AuditEvent（同步模式）或 None（异步 / 失败）。
    """
    if getattr(settings, 'AUDIT_ASYNC', False):
        if params.summary is None:
            params.summary = audit_changes_summary(params.changes, params.entity_type)
        payload = params.to_task_payload()
        payload['changes'] = sanitize_changes(params.changes)
        transaction.on_commit(lambda: _dispatch_audit_task(payload))
        return None

    try:
        with transaction.atomic():
            return record_audit_event(params)
    except Exception:
        logger.exception(
            "[audit] Failed to record %s event for %s id=%s",
            params.action, params.entity_type, params.entity_id,
        )
        return None


def _dispatch_audit_task(payload):
    from ..tasks import record_audit_event_task

    try:
        record_audit_event_task.delay(payload)
    except Exception:
        logger.exception(
            "[audit] Failed to dispatch %s event for %s id=%s",
            payload['action'], payload['entity_type'], payload['entity_id'],
        )


def sanitize_changes(changes: ChangeSet, max_length=None) -> ChangeSet:
    """JSON-safe 转换 + 截断过长的字符串，只作用于要落库的副本。"""
    if max_length is None:
        max_length = getattr(settings, 'AUDIT_MAX_VALUE_LENGTH', DEFAULT_MAX_VALUE_LENGTH)

    sanitized: ChangeSet = {}
    for key, change in changes.items():
        sanitized[key] = {
            'before': truncate_value(_json_safe(change.get('before')), max_length),
            'after': truncate_value(_json_safe(change.get('after')), max_length),
        }
    return sanitized


def truncate_value(value, max_length):
    if isinstance(value, str) and len(value) > max_length:
        return value[:max_length] + '...'
    return value


def _json_safe(value):
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, Decimal):
        if not value.is_finite():
            return None
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, Mapping):
        return {str(k): _json_safe(v) for k, v in value.items()}
    return str(value)
