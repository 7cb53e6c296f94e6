"""
Property-based tests for role hierarchy and permission resolution.

Properties:
- Role levels are unique and all_roles() is sorted highest first
- Incomplete onboarding suppresses every backend role
- Actors at manager level or above may grant any lower role
- An actor holding only the lowest role may never grant a role
- A single unassignable item aborts a bulk grant with zero writes
"""
import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from apps.rbac.catalog import Role, RoleCatalog
from apps.rbac.principal import Principal
from apps.rbac.services import PermissionResolver, RoleAssignmentAuthority, RoleAssignmentRequest

role_names = st.sampled_from([role.value for role in Role])
role_sets = st.lists(role_names, max_size=5)
FIXTURE_OK = [HealthCheck.function_scoped_fixture]


def actor_with(role_backend, roles, identity_id='actor'):
    role_backend.roles[identity_id] = list(roles)
    return Principal(identity_id=identity_id, organization_id='org-1', onboarding_complete=True)


@given(st.permutations(list(Role)))
def test_all_roles_sorted_regardless_of_input_order(roles):
    assert RoleCatalog.highest_role(roles) == RoleCatalog.all_roles()[0]
    levels = [RoleCatalog.level_of(r) for r in RoleCatalog.all_roles()]
    assert levels == sorted(set(levels), reverse=True)


@settings(suppress_health_check=FIXTURE_OK)
@given(backend_roles=role_sets, onboarding=st.sampled_from([False, None]))
def test_incomplete_onboarding_suppresses_roles(role_backend, backend_roles, onboarding):
    role_backend.roles['user-1'] = backend_roles
    resolver = PermissionResolver(role_backend)
    principal = Principal(identity_id='user-1', organization_id='org-1', onboarding_complete=onboarding)

    assert resolver.effective_roles(principal) == frozenset()
    assert resolver.effective_permissions(principal) == frozenset()


@settings(suppress_health_check=FIXTURE_OK)
@given(actor_role=st.sampled_from(list(Role)), target_role=st.sampled_from(list(Role)))
def test_higher_level_managers_can_grant_lower_roles(role_backend, guard, actor_role, target_role):
    actor_level = RoleCatalog.level_of(actor_role)
    if actor_level < RoleCatalog.level_of(Role.MANAGER) or actor_level <= RoleCatalog.level_of(target_role):
        return

    authority = RoleAssignmentAuthority(PermissionResolver(role_backend), role_backend, guard)

    assert authority.can_assign(actor_with(role_backend, [actor_role.value]), target_role) is True


@settings(suppress_health_check=FIXTURE_OK)
@given(target_role=st.sampled_from(list(Role)))
def test_lowest_role_can_never_grant(role_backend, guard, target_role):
    lowest = RoleCatalog.all_roles()[-1]
    authority = RoleAssignmentAuthority(PermissionResolver(role_backend), role_backend, guard)

    assert authority.can_assign(actor_with(role_backend, [lowest.value]), target_role) is False


@pytest.mark.parametrize('valid_count', [1, 3, 10])
def test_one_unassignable_item_aborts_bulk_grant(role_backend, guard, valid_count):
    role_backend.identities.update({f'user{i}@example.com': f'target-{i}' for i in range(valid_count + 1)})
    authority = RoleAssignmentAuthority(PermissionResolver(role_backend), role_backend, guard)
    actor = actor_with(role_backend, ['manager'])

    requests = [
        RoleAssignmentRequest(target=f'user{i}@example.com', role=Role.EMPLOYEE)
        for i in range(valid_count)
    ]
    requests.insert(valid_count // 2, RoleAssignmentRequest(target=f'user{valid_count}@example.com', role=Role.ADMIN))

    result = authority.bulk_assign(actor, requests, 'Reorg')

    assert result.success is False
    assert result.succeeded == 0
    assert len(role_backend.writes) == 0
