"""
Tests for resolver cache invalidation on role and membership changes.
"""
import pytest

from apps.core.services import register_service
from apps.rbac.backends import DatabaseRoleBackend
from apps.rbac.catalog import Role
from apps.rbac.models import RoleAssignment
from apps.rbac.principal import Principal
from apps.rbac.services import PermissionResolver


@pytest.fixture
def db_resolver(db):
    resolver = PermissionResolver(DatabaseRoleBackend())
    register_service('permission_resolver', resolver)
    return resolver


def as_principal(user, organization):
    return Principal(
        identity_id=str(user.id),
        organization_id=str(organization.id),
        onboarding_complete=True,
    )


@pytest.mark.django_db
class TestCacheInvalidation:

    def test_new_role_assignment_is_visible_immediately(self, db_resolver, employee_user, organization):
        principal = as_principal(employee_user, organization)
        assert db_resolver.effective_roles(principal) == frozenset({Role.EMPLOYEE})

        RoleAssignment.objects.create(user=employee_user, organization=organization, role='manager')

        assert db_resolver.effective_roles(principal) == frozenset({Role.EMPLOYEE, Role.MANAGER})

    def test_revoked_role_is_dropped_immediately(self, db_resolver, manager_user, organization):
        principal = as_principal(manager_user, organization)
        assert db_resolver.at_least_role(principal, Role.MANAGER) is True

        RoleAssignment.objects.get(user=manager_user, role='manager').revoke()

        assert db_resolver.effective_roles(principal) == frozenset()

    def test_membership_deactivation_drops_roles(self, db_resolver, manager_user, organization):
        principal = as_principal(manager_user, organization)
        assert db_resolver.effective_roles(principal) == frozenset({Role.MANAGER})

        membership = manager_user.memberships.get()
        membership.is_active = False
        membership.save()

        assert db_resolver.effective_roles(principal) == frozenset()
