"""
Views 只做三件事：取请求参数 → 调 intake / services → 包装响应。

错误全部以异常的形式抛出，由 unified_exception_handler 统一渲染。
"""

import uuid

from django.conf import settings
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .audit.types import ENTITY_ILLNESS, ENTITY_VISIT
from .exceptions import ValidationError
from .intake import get_adapter
from .serializers import (
    create_response,
    serialize_child,
    serialize_history_page,
    serialize_illness,
    serialize_visit,
)

DEFAULT_PAGE_LIMIT = 50


def parse_pagination_params(query_params):
    """page 默认 1，limit 默认 50、上限 AUDIT_HISTORY_MAX_LIMIT；非法值回退到默认。"""
    max_limit = getattr(settings, 'AUDIT_HISTORY_MAX_LIMIT', 200)
    page = _positive_int(query_params.get('page')) or 1
    limit = _positive_int(query_params.get('limit')) or DEFAULT_PAGE_LIMIT
    return page, min(limit, max_limit)


def _positive_int(raw):
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value >= 1 else None


def get_request_id(request):
    """X-Request-ID 是合法 UUID 时作为审计的 request_id，否则忽略。"""
    raw = request.headers.get('X-Request-ID')
    if not raw:
        return None
    try:
        return str(uuid.UUID(raw))
    except ValueError:
        return None


def _child_id_filter(request):
    raw = request.query_params.get('child_id')
    if raw in (None, ''):
        return None
    value = _positive_int(raw)
    if value is None:
        raise ValidationError(
            message='Request validation failed.',
            code='VALIDATION_ERROR',
            detail={'errors': [{'field': 'child_id', 'message': 'child_id must be a positive integer'}]},
        )
    return value


class ChildListView(APIView):
    """GET/POST /api/children/"""

    def get(self, request):
        children = services.list_children(request.user)
        return Response(create_response([serialize_child(c) for c in children]))

    def post(self, request):
        payload = get_adapter('child', request.body).process()
        child = services.create_child(request.user, payload)
        return Response(create_response(serialize_child(child)), status=status.HTTP_201_CREATED)


class VisitListView(APIView):
    """GET/POST /api/visits/"""

    def get(self, request):
        visits = services.list_visits(request.user, child_id=_child_id_filter(request))
        return Response(create_response([serialize_visit(v) for v in visits]))

    def post(self, request):
        payload = get_adapter('visit', request.body).process()
        visit = services.create_visit(request.user, payload, request_id=get_request_id(request))
        return Response(create_response(serialize_visit(visit)), status=status.HTTP_201_CREATED)


class VisitDetailView(APIView):
    """GET/PUT/DELETE /api/visits/<id>/"""

    def get(self, request, visit_id):
        visit = services.get_visit_detail(request.user, visit_id)
        return Response(create_response(serialize_visit(visit)))

    def put(self, request, visit_id):
        adapter = get_adapter('visit', request.body, partial=True)
        payload = adapter.process()
        visit = services.update_visit(
            request.user, visit_id, payload,
            client_updated_at=adapter.client_updated_at,
            request_id=get_request_id(request),
        )
        return Response(create_response(serialize_visit(visit)))

    def delete(self, request, visit_id):
        services.delete_visit(request.user, visit_id, request_id=get_request_id(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


class VisitHistoryView(APIView):
    """GET /api/visits/<id>/history/"""

    def get(self, request, visit_id):
        page, limit = parse_pagination_params(request.query_params)
        events, total = services.get_audit_history(request.user, ENTITY_VISIT, visit_id, page, limit)
        return Response(serialize_history_page(events, total, page, limit))


class IllnessListView(APIView):
    """GET/POST /api/illnesses/"""

    def get(self, request):
        illnesses = services.list_illnesses(request.user, child_id=_child_id_filter(request))
        return Response(create_response([serialize_illness(i) for i in illnesses]))

    def post(self, request):
        payload = get_adapter('illness', request.body).process()
        illness = services.create_illness(request.user, payload, request_id=get_request_id(request))
        return Response(create_response(serialize_illness(illness)), status=status.HTTP_201_CREATED)


class IllnessDetailView(APIView):
    """GET/PUT/DELETE /api/illnesses/<id>/"""

    def get(self, request, illness_id):
        illness = services.get_illness_detail(request.user, illness_id)
        return Response(create_response(serialize_illness(illness)))

    def put(self, request, illness_id):
        adapter = get_adapter('illness', request.body, partial=True)
        payload = adapter.process()
        illness = services.update_illness(
            request.user, illness_id, payload,
            client_updated_at=adapter.client_updated_at,
            request_id=get_request_id(request),
        )
        return Response(create_response(serialize_illness(illness)))

    def delete(self, request, illness_id):
        services.delete_illness(request.user, illness_id, request_id=get_request_id(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


class IllnessHistoryView(APIView):
    """GET /api/illnesses/<id>/history/"""

    def get(self, request, illness_id):
        page, limit = parse_pagination_params(request.query_params)
        events, total = services.get_audit_history(request.user, ENTITY_ILLNESS, illness_id, page, limit)
        return Response(serialize_history_page(events, total, page, limit))
