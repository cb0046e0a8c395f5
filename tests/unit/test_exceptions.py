"""
Unit tests for exception classes and unified_exception_handler.

不需要数据库，纯 Python 测试：
1. BaseAppException 默认值
2. 各子类的默认 type / code / http_status
3. 构造时覆盖 code / http_status
4. detail 可选
5. unified_exception_handler 把异常转成统一格式的响应
"""
import json
import pytest
from rest_framework.exceptions import MethodNotAllowed, NotAuthenticated
from rest_framework.exceptions import ValidationError as DRFValidationError

from childhealth.exception_handler import unified_exception_handler
from childhealth.exceptions import BaseAppException, BlockError, ValidationError


# -------------------------------------------------------------------
# Exception classes
# -------------------------------------------------------------------

class TestBaseAppException:

    def test_defaults(self):
        exc = BaseAppException('something broke')
        assert exc.message == 'something broke'
        assert exc.type == 'error'
        assert exc.code == 'UNKNOWN_ERROR'
        assert exc.http_status == 500
        assert exc.detail is None

    def test_override_code_and_status(self):
        exc = BaseAppException('bad', code='CUSTOM_CODE', http_status=418)
        assert exc.code == 'CUSTOM_CODE'
        assert exc.http_status == 418

    def test_detail_preserved(self):
        exc = BaseAppException('bad', detail={'key': 'value'})
        assert exc.detail == {'key': 'value'}


class TestValidationError:

    def test_defaults(self):
        exc = ValidationError('bad input')
        assert exc.type == 'validation_error'
        assert exc.code == 'VALIDATION_ERROR'
        assert exc.http_status == 400

    def test_custom_code(self):
        exc = ValidationError('bad body', code='INVALID_BODY')
        assert exc.code == 'INVALID_BODY'
        assert exc.http_status == 400  # status 没变


class TestBlockError:

    def test_defaults(self):
        exc = BlockError('blocked')
        assert exc.type == 'block'
        assert exc.code == 'BUSINESS_BLOCK'
        assert exc.http_status == 409

    def test_override_http_status(self):
        exc = BlockError('not found', code='VISIT_NOT_FOUND', http_status=404)
        assert exc.http_status == 404

    def test_class_defaults_not_mutated(self):
        BlockError('forbidden', code='EDIT_FORBIDDEN', http_status=403)
        assert BlockError.code == 'BUSINESS_BLOCK'
        assert BlockError.http_status == 409


# -------------------------------------------------------------------
# unified_exception_handler
# -------------------------------------------------------------------

def _body(response):
    return json.loads(response.content)


class TestUnifiedExceptionHandler:

    def test_block_error(self):
        exc = BlockError('stale', code='STALE_UPDATE', detail={'current_version': 'x'})
        response = unified_exception_handler(exc, {})

        assert response.status_code == 409
        body = _body(response)
        assert body['type'] == 'block'
        assert body['code'] == 'STALE_UPDATE'
        assert body['detail']['current_version'] == 'x'

    def test_validation_error(self):
        exc = ValidationError('bad', detail={'errors': [{'field': 'visit_date', 'message': 'required'}]})
        response = unified_exception_handler(exc, {})

        assert response.status_code == 400
        assert _body(response)['type'] == 'validation_error'

    def test_no_detail_field_when_none(self):
        response = unified_exception_handler(BlockError('blocked'), {})
        assert 'detail' not in _body(response)

    def test_drf_validation_error(self):
        response = unified_exception_handler(DRFValidationError({'page': ['bad']}), {})

        assert response.status_code == 400
        body = _body(response)
        assert body['code'] == 'VALIDATION_ERROR'
        assert body['detail'] == {'page': ['bad']}

    def test_drf_api_exception(self):
        response = unified_exception_handler(MethodNotAllowed('PATCH'), {})

        assert response.status_code == 405
        assert response.data['type'] == 'error'
        assert response.data['code'] == 'METHOD_NOT_ALLOWED'

    def test_not_authenticated(self):
        response = unified_exception_handler(NotAuthenticated(), {})
        assert response.data['code'] == 'NOT_AUTHENTICATED'

    def test_unknown_exception_left_to_django(self):
        assert unified_exception_handler(RuntimeError('boom'), {}) is None
