"""
Pytest configuration and fixtures.
"""
import time

import pytest
from django.conf import settings
import django
from django.core.management import call_command


def pytest_configure(config):
    """Configure Django settings for tests."""
    settings.DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': False,
    }
    settings.CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'perfhub-tests',
        }
    }
    settings.SECURITY_EVENT_SINK = 'memory'
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
    settings.RATELIMIT_ENABLE = False
    settings.SECURE_SSL_REDIRECT = False
    django.setup()


@pytest.fixture(scope='session')
def django_db_setup(django_db_setup, django_db_blocker):
    """Set up test database with migrations."""
    with django_db_blocker.unblock():
        call_command('migrate', '--run-syncdb', verbosity=0)


# ===== SERVICES =====

@pytest.fixture(autouse=True)
def security_sink():
    """
    Fresh process-wide services for every test.

    Installs an in-memory security event sink and key-value store and
    returns the sink so tests can inspect recorded events.
    """
    from apps.core.security_logger import MemorySecurityEventSink, SecurityEventLog
    from apps.core.services import register_service, reset_services
    from apps.core.storage import InMemoryKeyValueStore

    reset_services()
    sink = MemorySecurityEventSink()
    register_service('security_event_log', SecurityEventLog(sink))
    register_service('kv_store', InMemoryKeyValueStore())
    yield sink
    reset_services()


@pytest.fixture
def event_log(security_sink):
    from apps.core.services import get_security_event_log
    return get_security_event_log()


@pytest.fixture
def kv_store():
    from apps.core.storage import InMemoryKeyValueStore
    return InMemoryKeyValueStore()


@pytest.fixture
def clock():
    """Controllable millisecond clock."""
    class Clock:
        def __init__(self):
            self.now = 1_700_000_000_000

        def __call__(self):
            return self.now

        def advance(self, ms):
            self.now += ms

    return Clock()


# ===== FAKE BACKENDS =====

class FakeRoleBackend:
    """
    In-memory RoleBackend.

    roles / permissions map identity id to names; org_roles maps
    (identity id, organization id) to names and wins over roles for that
    organization. Set fail_roles or fail_permissions to make lookups raise
    FetchError. Every write is appended to writes; submit_results
    overrides the outcome per identity.
    """

    def __init__(self, roles=None, permissions=None, identities=None):
        self.roles = dict(roles or {})
        self.permissions = dict(permissions or {})
        self.org_roles = {}
        self.lookup_organizations = []
        self.identities = dict(identities or {})
        self.submit_results = {}
        self.fail_roles = False
        self.fail_permissions = False
        self.role_fetches = 0
        self.permission_fetches = 0
        self.writes = []

    def fetch_roles_for_principal(self, identity_id, organization_id=None):
        from apps.core.exceptions import FetchError
        self.role_fetches += 1
        self.lookup_organizations.append(organization_id)
        if self.fail_roles:
            raise FetchError('roles unavailable')
        scoped = self.org_roles.get((str(identity_id), organization_id))
        if scoped is not None:
            return list(scoped)
        return list(self.roles.get(str(identity_id), []))

    def fetch_effective_permissions(self, identity_id, organization_id=None):
        from apps.core.exceptions import FetchError
        self.permission_fetches += 1
        if self.fail_permissions:
            raise FetchError('permissions unavailable')
        return list(self.permissions.get(str(identity_id), []))

    def resolve_backend_identity(self, target_ref, organization_id=None):
        return self.identities.get(target_ref)

    def submit_role_assignment(self, identity_id, role, justification, organization_id=None, assigned_by=None):
        from apps.rbac.backends import SubmitResult
        self.writes.append((identity_id, role, justification))
        return self.submit_results.get(identity_id, SubmitResult(True))


class FakeSessionProvider:
    """SessionProvider holding a fixed Session."""

    def __init__(self, session=None, refreshed=None, error=None, refresh_error=None):
        self.session = session
        self.refreshed = refreshed
        self.error = error
        self.refresh_error = refresh_error
        self.refresh_calls = 0

    def get_session(self):
        if self.error is not None:
            raise self.error
        return self.session

    def refresh_session(self):
        self.refresh_calls += 1
        if self.refresh_error is not None:
            raise self.refresh_error
        self.session = self.refreshed
        return self.refreshed


class FakeOrganizationContext:
    """OrganizationContext with fixed answers. Records cross-org audit writes."""

    def __init__(self, organization_id='org-1', memberships=1, pending_invitation=False, error=None):
        self.organization_id = organization_id
        self.memberships = memberships
        self.pending_invitation = pending_invitation
        self.error = error
        self.cross_org_attempts = []

    def get_current_organization_id(self):
        if self.error is not None:
            raise self.error
        return self.organization_id

    def count_memberships(self):
        return self.memberships

    def has_pending_invitation(self):
        return self.pending_invitation

    def record_cross_org_attempt(self, target_org_id, operation, details=None):
        self.cross_org_attempts.append((target_org_id, operation))


@pytest.fixture
def role_backend():
    return FakeRoleBackend()


@pytest.fixture
def make_session():
    """Build a Session expiring `expires_in` seconds from now."""
    from apps.session_security.sessions import Session

    def make(user_id='user-1', org_id='org-1', expires_in=3600, session_id='sess-1'):
        return Session(
            user_id=user_id,
            expires_at=time.time() + expires_in,
            org_id=org_id,
            session_id=session_id,
        )

    return make


@pytest.fixture
def session_provider(make_session):
    return FakeSessionProvider(make_session())


@pytest.fixture
def make_session_provider():
    return FakeSessionProvider


@pytest.fixture
def organization_context():
    return FakeOrganizationContext()


@pytest.fixture
def make_organization_context():
    return FakeOrganizationContext


@pytest.fixture
def principal():
    """Build a Principal bound to org-1 with onboarding complete."""
    from apps.rbac.principal import Principal

    def make(identity_id='user-1', organization_id='org-1', onboarding_complete=True, override=None):
        return Principal(
            identity_id=identity_id,
            organization_id=organization_id,
            onboarding_complete=onboarding_complete,
            override=override,
        )

    return make


@pytest.fixture
def resolver(role_backend, event_log):
    from apps.rbac.services import PermissionResolver
    return PermissionResolver(role_backend, event_log=event_log)


@pytest.fixture
def guard(session_provider, organization_context, event_log):
    from apps.tenants.guard import TenantIsolationGuard
    return TenantIsolationGuard(
        session_provider=session_provider,
        organization_context=organization_context,
        event_log=event_log,
    )


# ===== DATABASE FIXTURES =====

@pytest.fixture
def api_client():
    """Return DRF API client."""
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture
def organization(db):
    """Create a test organization."""
    from apps.tenants.models import Organization
    return Organization.objects.create(name='Acme Corp', slug='acme-corp')


@pytest.fixture
def other_organization(db):
    """Create another organization for isolation tests."""
    from apps.tenants.models import Organization
    return Organization.objects.create(name='Globex', slug='globex')


@pytest.fixture
def make_member(db, organization):
    """
    Create a user who is a member of `organization` holding `roles`.
    """
    from apps.rbac.models import RoleAssignment, User
    from apps.tenants.models import OrganizationMembership

    def make(email, roles=(), onboarding_completed=True, org=None, password='testpass123'):
        org = org or organization
        user = User.objects.create_user(email=email, password=password, first_name='Test')
        OrganizationMembership.objects.create(
            user=user,
            organization=org,
            onboarding_completed=onboarding_completed,
        )
        for role in roles:
            RoleAssignment.objects.create(user=user, organization=org, role=role)
        return user

    return make


@pytest.fixture
def admin_user(make_member):
    return make_member('admin@example.com', roles=['admin'])


@pytest.fixture
def manager_user(make_member):
    return make_member('manager@example.com', roles=['manager'])


@pytest.fixture
def employee_user(make_member):
    return make_member('employee@example.com', roles=['employee'])


@pytest.fixture
def auth_client(api_client):
    """Return a function that authenticates api_client as a user."""
    from apps.session_security.sessions import JWTSessionProvider

    def authenticate(user, organization_id=None, **headers):
        token = JWTSessionProvider.issue_token(user.id, email=user.email, org_id=organization_id)
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}', **headers)
        api_client.token = token
        return api_client

    return authenticate
