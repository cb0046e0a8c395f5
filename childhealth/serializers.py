"""
Response serializers: ORM 对象 → JSON-able dict。

只负责「输出格式化」，不做任何解析或校验。
输入解析和校验在 childhealth/intake/ adapter 系统。

serialize_visit() / serialize_illness() 的输出同时作为 build_field_diff() 的 current，
所以 before 值和 API 返回给前端的值是同一种表示。
"""

from django.utils import timezone

from .audit.summary import stored_changes_summary

VISIT_FIELDS = (
    'visit_date', 'visit_time', 'visit_type', 'location', 'doctor_name', 'title',
    'weight_value', 'height_value', 'head_circumference_value', 'blood_pressure',
    'heart_rate', 'symptoms', 'temperature', 'illness_start_date', 'end_date',
    'treatment', 'vision_refraction', 'needs_glasses', 'ordered_glasses',
    'illnesses', 'notes',
)

ILLNESS_FIELDS = (
    'illness_types', 'start_date', 'end_date', 'symptoms', 'temperature',
    'severity', 'notes',
)


def _value(value):
    if value is None:
        return None
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    # Decimal
    if hasattr(value, 'is_finite'):
        return float(value)
    return value


def _timestamps(instance):
    return {
        'created_at': instance.created_at.isoformat() if instance.created_at else None,
        'updated_at': instance.updated_at.isoformat() if instance.updated_at else None,
    }


def serialize_child(child):
    return {
        'id': child.id,
        'family_id': child.family_id,
        'name': child.name,
        'date_of_birth': _value(child.date_of_birth),
        'gender': child.gender,
        'notes': child.notes,
        **_timestamps(child),
    }


def serialize_visit(visit):
    data = {'id': visit.id, 'child_id': visit.child_id}
    for field_name in VISIT_FIELDS:
        data[field_name] = _value(getattr(visit, field_name))
    data.update(_timestamps(visit))
    return data


def serialize_illness(illness):
    data = {'id': illness.id, 'child_id': illness.child_id, 'visit_id': illness.visit_id}
    for field_name in ILLNESS_FIELDS:
        data[field_name] = _value(getattr(illness, field_name))
    data.update(_timestamps(illness))
    return data


def serialize_audit_event(event):
    """
    历史列表里的一条记录。

    summary 根据 changes 重新生成（只过滤两边都实质为空的变更，修正旧数据；
    changes 里的长字符串已截断，不能再做规范化比较），
    生成结果为空时回退到库里存的 summary（例如 "Visit created"）。
    """
    changes = event.changes or {}
    summary = stored_changes_summary(changes) or event.summary
    user = event.user
    return {
        'id': event.id,
        'entity_type': event.entity_type,
        'entity_id': event.entity_id,
        'user_id': event.user_id,
        'user_name': user.username if user else None,
        'user_email': (user.email or None) if user else None,
        'action': event.action,
        'changed_at': event.changed_at.isoformat(),
        'request_id': str(event.request_id) if event.request_id else None,
        'changes': changes,
        'summary': summary,
    }


def build_pagination_meta(total, page, limit):
    total_pages = (total + limit - 1) // limit
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'total_pages': total_pages,
        'has_next_page': page < total_pages,
        'has_previous_page': page > 1,
    }


def create_response(data, **meta):
    """统一成功响应：{"data": ..., "meta": {"timestamp": ..., ...}}。"""
    return {
        'data': data,
        'meta': {
            'timestamp': timezone.now().isoformat(),
            **meta,
        },
    }


def serialize_history_page(events, total, page, limit):
    return create_response(
        [serialize_audit_event(event) for event in events],
        pagination=build_pagination_meta(total, page, limit),
    )
