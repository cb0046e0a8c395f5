"""
Integration tests for /api/illnesses/ and /api/children/.
"""
import pytest

from childhealth.models import AuditEvent, Child, Illness
from tests.conftest import IllnessFactory, VisitFactory
from tests.integration.test_visit_api import send


@pytest.mark.django_db
class TestChildrenApi:

    def test_create_and_list(self, api_client, outsider):
        api_client.force_authenticate(user=outsider)

        status, body = send(api_client, 'post', '/api/children/', {
            'name': 'Leo', 'date_of_birth': '2021-03-03', 'gender': 'male',
        })
        assert status == 201
        assert body['data']['name'] == 'Leo'

        status, body = send(api_client, 'get', '/api/children/')
        assert status == 200
        assert [c['name'] for c in body['data']] == ['Leo']

    def test_create_validation(self, parent_client):
        status, body = send(parent_client, 'post', '/api/children/', {'name': 'Leo'})
        assert status == 400
        assert Child.objects.count() == 0


@pytest.mark.django_db
class TestIllnessApi:

    def test_create(self, parent_client, child):
        visit = VisitFactory(child=child)
        status, body = send(parent_client, 'post', '/api/illnesses/', {
            'child_id': child.id,
            'visit_id': visit.id,
            'illness_types': ['ear_infection'],
            'start_date': '2026-02-01',
            'temperature': '100.8',
        })

        assert status == 201
        assert body['data']['visit_id'] == visit.id
        assert body['data']['temperature'] == 100.8
        event = AuditEvent.objects.get(entity_type='illness', entity_id=body['data']['id'])
        assert event.summary == 'Illness created'

    def test_visit_of_another_child_rejected(self, parent_client, child):
        other_visit = VisitFactory()
        status, body = send(parent_client, 'post', '/api/illnesses/', {
            'child_id': child.id,
            'visit_id': other_visit.id,
            'illness_types': ['flu'],
            'start_date': '2026-02-01',
        })

        assert status == 400
        assert body['detail']['errors'][0]['field'] == 'visit_id'
        assert Illness.objects.count() == 0

    def test_update_and_history(self, parent_client, child):
        illness = IllnessFactory(child=child, severity=2)

        status, body = send(parent_client, 'put', f'/api/illnesses/{illness.id}/', {
            'severity': 5,
            'symptoms': 'Cough',
            'illness_types': ['flu'],
        })
        assert status == 200
        assert body['data']['severity'] == 5

        status, body = send(parent_client, 'get', f'/api/illnesses/{illness.id}/history/')
        assert status == 200
        assert len(body['data']) == 1
        assert body['data'][0]['changes'] == {
            'severity': {'before': 2, 'after': 5},
            'symptoms': {'before': None, 'after': 'Cough'},
        }
        assert body['data'][0]['summary'] == 'Updated severity, symptoms'
        assert body['data'][0]['entity_type'] == 'illness'

    def test_end_before_start_rejected(self, parent_client, child):
        illness = IllnessFactory(child=child)
        status, body = send(parent_client, 'put', f'/api/illnesses/{illness.id}/', {
            'start_date': '2026-02-10', 'end_date': '2026-02-01',
        })
        assert status == 400

    def test_delete(self, parent_client, child):
        illness = IllnessFactory(child=child)
        status, _ = send(parent_client, 'delete', f'/api/illnesses/{illness.id}/')

        assert status == 204
        assert not Illness.objects.filter(id=illness.id).exists()

    def test_not_found(self, parent_client):
        status, body = send(parent_client, 'get', '/api/illnesses/999999/')
        assert status == 404
        assert body['code'] == 'ILLNESS_NOT_FOUND'

    def test_history_of_other_family_forbidden(self, outsider_client, child):
        illness = IllnessFactory(child=child)
        status, body = send(outsider_client, 'get', f'/api/illnesses/{illness.id}/history/')
        assert status == 403
        assert body['code'] == 'HISTORY_FORBIDDEN'
