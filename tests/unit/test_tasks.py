"""
Unit tests for the Celery audit task.

直接调用 task.apply()（同步执行），不需要 broker。
"""
import pytest
from unittest.mock import patch

from celery.exceptions import Retry

from childhealth.models import AuditEvent
from childhealth.tasks import record_audit_event_task


def _payload(**overrides):
    payload = {
        'entity_type': 'illness',
        'entity_id': 7,
        'action': 'updated',
        'user_id': None,
        'changes': {'severity': {'before': 2, 'after': 5}},
        'summary': None,
        'request_id': None,
    }
    payload.update(overrides)
    return payload


@pytest.mark.django_db
class TestRecordAuditEventTask:

    def test_writes_event(self):
        result = record_audit_event_task.apply(args=[_payload()])

        event = AuditEvent.objects.get()
        assert result.get() == event.id
        assert event.entity_type == 'illness'
        assert event.summary == 'Updated severity'

    def test_invalid_params_not_retried(self):
        with patch.object(record_audit_event_task, 'retry') as mock_retry:
            result = record_audit_event_task.apply(args=[_payload(action='archived')])

        assert result.get() is None
        mock_retry.assert_not_called()
        assert AuditEvent.objects.count() == 0

    def test_db_failure_retried_with_backoff(self):
        with patch('childhealth.audit.recorder.AuditEvent.objects.create', side_effect=RuntimeError('db down')), \
                patch.object(record_audit_event_task, 'retry', side_effect=Retry()) as mock_retry:
            record_audit_event_task.apply(args=[_payload()])

        mock_retry.assert_called_once()
        assert mock_retry.call_args.kwargs['countdown'] == 10
