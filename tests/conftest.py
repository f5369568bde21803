import pytest
from django.core.cache import cache

from apps.tenants.context import bind
from tests.factories import TenantFactory, UserFactory


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()

@pytest.fixture
def user():
    return UserFactory()

@pytest.fixture
def tenant():
    return TenantFactory()

@pytest.fixture
def other_tenant():
    return TenantFactory()

@pytest.fixture
def bound_tenant(tenant):
    with bind(tenant):
        yield tenant
