import logging
from datetime import timezone as dt_timezone

from django.db import transaction
from django.utils import timezone

from .access import (
    can_access_child,
    can_edit_child,
    get_accessible_child_ids,
    get_family_ids_for_user,
    get_or_create_default_family,
)
from .audit.diff import build_field_diff
from .audit.recorder import can_view_audit_history, record_audit_event_safely
from .audit.types import (
    ACTION_CREATED,
    ACTION_DELETED,
    ACTION_UPDATED,
    ENTITY_ILLNESS,
    ENTITY_VISIT,
    AuditEventParams,
)
from .exceptions import BlockError, ValidationError
from .models import AuditEvent, Child, Illness, Visit
from .serializers import serialize_illness, serialize_visit

logger = logging.getLogger(__name__)

# 乐观锁容差：客户端 updated_at 与库中相差超过 1 秒视为过期
STALE_TOLERANCE_SECONDS = 1

# diff 时额外排除的字段：child_id 不允许通过更新修改，也不进审计
UPDATE_EXCLUDE_KEYS = ('child_id',)


def _user_id(user):
    return user.id if user is not None and getattr(user, 'is_authenticated', False) else None


def _not_found(label, entity_id, code):
    return BlockError(
        message=f'{label} not found',
        code=code,
        detail={'id': entity_id},
        http_status=404,
    )


def _get_child(user, child_id, edit=False):
    """无权访问和不存在一样返回 404，不暴露其他家庭的数据。"""
    if not Child.objects.filter(id=child_id).exists() or not can_access_child(user, child_id):
        raise _not_found('Child', child_id, 'CHILD_NOT_FOUND')
    if edit and not can_edit_child(user, child_id):
        raise BlockError(
            message='You do not have permission to edit records for this child.',
            code='EDIT_FORBIDDEN',
            detail={'child_id': child_id},
            http_status=403,
        )
    return Child.objects.get(id=child_id)


def _get_entity(model, label, code, user, entity_id, edit=False, lock=False):
    queryset = model.objects.select_for_update() if lock else model.objects.all()
    try:
        instance = queryset.get(id=entity_id)
    except model.DoesNotExist:
        raise _not_found(label, entity_id, code)

    if not can_access_child(user, instance.child_id):
        raise _not_found(label, entity_id, code)
    if edit and not can_edit_child(user, instance.child_id):
        raise BlockError(
            message=f'You do not have permission to edit this {label.lower()}.',
            code='EDIT_FORBIDDEN',
            detail={'id': entity_id},
            http_status=403,
        )
    return instance


def _check_not_stale(instance, client_updated_at, label):
    """
    乐观锁：客户端带了 updated_at 且与库中版本不一致 → 409。
    不带 updated_at 时不检查（last write wins）。
    """
    if client_updated_at is None:
        return
    if timezone.is_naive(client_updated_at):
        client_updated_at = timezone.make_aware(client_updated_at, dt_timezone.utc)

    drift = abs((client_updated_at - instance.updated_at).total_seconds())
    if drift > STALE_TOLERANCE_SECONDS:
        raise BlockError(
            message=f'{label} was modified by another user. Please refresh and try again.',
            code='STALE_UPDATE',
            detail={
                'current_version': instance.updated_at.isoformat(),
                'your_version': client_updated_at.isoformat(),
            },
        )


def _audit(entity_type, entity_id, user, action, changes=None, summary=None, request_id=None):
    return record_audit_event_safely(AuditEventParams(
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=_user_id(user),
        action=action,
        changes=changes or {},
        summary=summary,
        request_id=request_id,
    ))


def _filter_by_child(queryset, user, child_id):
    if child_id is not None:
        if not can_access_child(user, child_id):
            raise _not_found('Child', child_id, 'CHILD_NOT_FOUND')
        return queryset.filter(child_id=child_id)
    return queryset.filter(child_id__in=get_accessible_child_ids(user))


# ---------------------------------------------------------------------------
# Children
# ---------------------------------------------------------------------------

def list_children(user):
    return Child.objects.filter(family_id__in=get_family_ids_for_user(user)).order_by('date_of_birth', 'id')


def create_child(user, payload):
    """新建孩子，挂在用户的默认家庭下（没有则自动创建）。"""
    with transaction.atomic():
        family = get_or_create_default_family(user)
        child = Child.objects.create(family=family, **payload)
    child.refresh_from_db()
    logger.info("[child] created id=%s family=%s by user=%s", child.id, family.id, _user_id(user))
    return child


# ---------------------------------------------------------------------------
# Visits
# ---------------------------------------------------------------------------

def list_visits(user, child_id=None):
    return _filter_by_child(Visit.objects.all(), user, child_id).order_by('-visit_date', '-id')


def get_visit_detail(user, visit_id):
    """Get visit by ID. Raises BlockError(404) if not found or not accessible."""
    return _get_entity(Visit, 'Visit', 'VISIT_NOT_FOUND', user, visit_id)


def create_visit(user, payload, request_id=None):
    """
    新建就诊记录，写一条 created 审计。

    create_illness=true 且 visit_type='sick' 且带 illnesses 时，
    自动建一条关联的 Illness；这一步失败只记日志，不影响就诊记录。
    """
    payload = dict(payload)
    create_illness = payload.pop('create_illness', None)
    illness_severity = payload.pop('illness_severity', None)
    child = _get_child(user, payload.pop('child_id'), edit=True)

    with transaction.atomic():
        visit = Visit.objects.create(child=child, **payload)
        _audit(ENTITY_VISIT, visit.id, user, ACTION_CREATED, summary='Visit created', request_id=request_id)

        if create_illness and visit.visit_type == 'sick' and visit.illnesses:
            _create_illness_from_visit(user, visit, illness_severity, request_id)

    visit.refresh_from_db()
    logger.info("[visit] created id=%s child=%s by user=%s", visit.id, child.id, _user_id(user))
    return visit


def _create_illness_from_visit(user, visit, severity, request_id):
    temperature = visit.temperature
    if temperature is not None and not (95 <= temperature <= 110):
        temperature = None

    try:
        with transaction.atomic():
            illness = Illness.objects.create(
                child_id=visit.child_id,
                visit=visit,
                illness_types=list(visit.illnesses),
                start_date=visit.illness_start_date or visit.visit_date,
                end_date=visit.end_date,
                symptoms=visit.symptoms,
                temperature=temperature,
                severity=severity,
                notes=visit.notes,
            )
    except Exception:
        logger.exception("[visit] Failed to create illness from visit id=%s", visit.id)
        return None

    _audit(ENTITY_ILLNESS, illness.id, user, ACTION_CREATED, summary='Illness created', request_id=request_id)
    return illness


def update_visit(user, visit_id, payload, client_updated_at=None, request_id=None):
    """
    部分更新：payload 只包含请求体里出现的字段。
    只有 diff 非空时才写 updated 审计。
    """
    with transaction.atomic():
        visit = _get_entity(Visit, 'Visit', 'VISIT_NOT_FOUND', user, visit_id, edit=True, lock=True)
        _check_not_stale(visit, client_updated_at, 'Visit')

        current = serialize_visit(visit)
        changes = build_field_diff(current, payload, exclude_keys=UPDATE_EXCLUDE_KEYS)

        for key, value in payload.items():
            if key in UPDATE_EXCLUDE_KEYS:
                continue
            setattr(visit, key, value)
        visit.save()

        if changes:
            _audit(ENTITY_VISIT, visit.id, user, ACTION_UPDATED, changes=changes, request_id=request_id)

    visit.refresh_from_db()
    logger.info("[visit] updated id=%s (%d changed fields) by user=%s", visit.id, len(changes), _user_id(user))
    return visit


def delete_visit(user, visit_id, request_id=None):
    with transaction.atomic():
        visit = _get_entity(Visit, 'Visit', 'VISIT_NOT_FOUND', user, visit_id, edit=True, lock=True)
        _audit(ENTITY_VISIT, visit.id, user, ACTION_DELETED, summary='Visit deleted', request_id=request_id)
        visit.delete()
    logger.info("[visit] deleted id=%s by user=%s", visit_id, _user_id(user))


# ---------------------------------------------------------------------------
# Illnesses
# ---------------------------------------------------------------------------

def list_illnesses(user, child_id=None):
    return _filter_by_child(Illness.objects.all(), user, child_id).order_by('-start_date', '-id')


def get_illness_detail(user, illness_id):
    """Get illness by ID. Raises BlockError(404) if not found or not accessible."""
    return _get_entity(Illness, 'Illness', 'ILLNESS_NOT_FOUND', user, illness_id)


def _check_visit_belongs_to_child(visit_id, child_id):
    if visit_id is None:
        return
    if not Visit.objects.filter(id=visit_id, child_id=child_id).exists():
        raise ValidationError(
            message='Request validation failed.',
            code='VALIDATION_ERROR',
            detail={'errors': [{
                'field': 'visit_id',
                'message': 'visit_id must reference a visit of the same child',
            }]},
        )


def create_illness(user, payload, request_id=None):
    payload = dict(payload)
    child = _get_child(user, payload.pop('child_id'), edit=True)
    _check_visit_belongs_to_child(payload.get('visit_id'), child.id)

    with transaction.atomic():
        illness = Illness.objects.create(child=child, **payload)
        _audit(ENTITY_ILLNESS, illness.id, user, ACTION_CREATED, summary='Illness created', request_id=request_id)

    illness.refresh_from_db()
    logger.info("[illness] created id=%s child=%s by user=%s", illness.id, child.id, _user_id(user))
    return illness


def update_illness(user, illness_id, payload, client_updated_at=None, request_id=None):
    with transaction.atomic():
        illness = _get_entity(Illness, 'Illness', 'ILLNESS_NOT_FOUND', user, illness_id, edit=True, lock=True)
        _check_not_stale(illness, client_updated_at, 'Illness')
        if 'visit_id' in payload:
            _check_visit_belongs_to_child(payload['visit_id'], illness.child_id)

        current = serialize_illness(illness)
        changes = build_field_diff(current, payload, exclude_keys=UPDATE_EXCLUDE_KEYS)

        for key, value in payload.items():
            if key in UPDATE_EXCLUDE_KEYS:
                continue
            setattr(illness, key, value)
        illness.save()

        if changes:
            _audit(ENTITY_ILLNESS, illness.id, user, ACTION_UPDATED, changes=changes, request_id=request_id)

    illness.refresh_from_db()
    logger.info("[illness] updated id=%s (%d changed fields) by user=%s", illness.id, len(changes), _user_id(user))
    return illness


def delete_illness(user, illness_id, request_id=None):
    with transaction.atomic():
        illness = _get_entity(Illness, 'Illness', 'ILLNESS_NOT_FOUND', user, illness_id, edit=True, lock=True)
        _audit(ENTITY_ILLNESS, illness.id, user, ACTION_DELETED, summary='Illness deleted', request_id=request_id)
        illness.delete()
    logger.info("[illness] deleted id=%s by user=%s", illness_id, _user_id(user))


# ---------------------------------------------------------------------------
# Audit history
# ---------------------------------------------------------------------------

def get_audit_history(user, entity_type, entity_id, page=1, limit=50):
    """
    返回 (events, total)，按 changed_at 倒序。
    Raises BlockError(403) 当用户不能查看该实体的历史。
    """
    if not can_view_audit_history(entity_type, entity_id, user):
        raise BlockError(
            message='You do not have permission to view this history',
            code='HISTORY_FORBIDDEN',
            detail={'entity_type': entity_type, 'entity_id': entity_id},
            http_status=403,
        )

    queryset = (
        AuditEvent.objects.filter(entity_type=entity_type, entity_id=entity_id)
        .select_related('user')
        .order_by('-changed_at', '-id')
    )
    total = queryset.count()
    offset = (page - 1) * limit
    return list(queryset[offset:offset + limit]), total
