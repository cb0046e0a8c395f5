"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
"""
import pytest
from datetime import date

import factory
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from childhealth.models import AuditEvent, Child, Family, FamilyMember, Illness, Visit


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = get_user_model()

    username = factory.Sequence(lambda n: f'parent{n}')
    email = factory.LazyAttribute(lambda o: f'{o.username}@example.com')


class FamilyFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Family

    name = 'The Lees'


class FamilyMemberFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = FamilyMember

    family = factory.SubFactory(FamilyFactory)
    user = factory.SubFactory(UserFactory)
    role = 'owner'


class ChildFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Child

    family = factory.SubFactory(FamilyFactory)
    name = 'Mia'
    date_of_birth = date(2020, 5, 1)
    gender = 'female'


class VisitFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Visit

    child = factory.SubFactory(ChildFactory)
    visit_date = date(2026, 1, 15)
    visit_type = 'wellness'
    location = 'Sunrise Pediatrics'
    doctor_name = 'Dr. Patel'


class IllnessFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Illness

    child = factory.SubFactory(ChildFactory)
    illness_types = factory.LazyFunction(lambda: ['flu'])
    start_date = date(2026, 2, 1)


class AuditEventFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = AuditEvent

    entity_type = 'visit'
    entity_id = 1
    action = 'updated'
    changes = factory.LazyFunction(lambda: {'notes': {'before': None, 'after': 'Follow up'}})
    summary = 'Updated notes'


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def family():
    return FamilyFactory()


@pytest.fixture
def parent(family):
    """可读可写的家庭成员（owner）。"""
    return FamilyMemberFactory(family=family, role='owner').user


@pytest.fixture
def viewer(family):
    """只读家庭成员。"""
    return FamilyMemberFactory(family=family, role='read_only').user


@pytest.fixture
def outsider():
    """不属于任何家庭的用户。"""
    return UserFactory()


@pytest.fixture
def child(family):
    return ChildFactory(family=family)


@pytest.fixture
def api_client():
    """未登录的 DRF test client。"""
    return APIClient()


@pytest.fixture
def parent_client(parent):
    client = APIClient()
    client.force_authenticate(user=parent)
    return client


@pytest.fixture
def viewer_client(viewer):
    client = APIClient()
    client.force_authenticate(user=viewer)
    return client


@pytest.fixture
def outsider_client(outsider):
    client = APIClient()
    client.force_authenticate(user=outsider)
    return client


@pytest.fixture
def sample_visit_payload(child):
    """Minimal valid payload for POST /api/visits/."""
    return {
        'child_id': child.id,
        'visit_date': '2026-01-15',
        'visit_type': 'wellness',
        'location': 'Sunrise Pediatrics',
    }
