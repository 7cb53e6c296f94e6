"""
Tests for RoleAssignmentAuthority.

Covers the hierarchy rule, justification requirement, the guarded write
path and bulk assignment.
"""
import pytest

from apps.core.exceptions import (
    AssignmentRejected,
    InsufficientPermissions,
    MissingJustification,
    NoOrganizationContext,
    TargetNotFound,
)
from apps.rbac.backends import SubmitResult
from apps.rbac.catalog import Role
from apps.rbac.principal import OverrideMode, RoleOverride
from apps.rbac.services import AssignmentState, RoleAssignmentAuthority, RoleAssignmentRequest


@pytest.fixture
def authority(resolver, role_backend, guard):
    role_backend.roles.update({
        'admin-1': ['admin'],
        'director-1': ['director'],
        'manager-1': ['manager'],
        'supervisor-1': ['supervisor'],
        'employee-1': ['employee'],
    })
    role_backend.identities.update({
        'alice@example.com': 'target-1',
        'bob@example.com': 'target-2',
        'carol@example.com': 'target-3',
    })
    return RoleAssignmentAuthority(resolver, role_backend, guard)


def request_for(target='alice@example.com', role=Role.SUPERVISOR, justification='Promotion'):
    return RoleAssignmentRequest(target=target, role=role, justification=justification)


class TestCanAssign:

    @pytest.mark.parametrize('role', list(Role))
    def test_admin_can_assign_every_role(self, authority, principal, role):
        assert authority.can_assign(principal('admin-1'), role) is True

    @pytest.mark.parametrize('actor,role,expected', [
        ('director-1', Role.ADMIN, False),
        ('director-1', Role.DIRECTOR, True),
        ('director-1', Role.EMPLOYEE, True),
        ('manager-1', Role.DIRECTOR, False),
        ('manager-1', Role.MANAGER, True),
        ('manager-1', Role.SUPERVISOR, True),
        ('manager-1', Role.EMPLOYEE, True),
    ])
    def test_hierarchy(self, authority, principal, actor, role, expected):
        assert authority.can_assign(principal(actor), role) is expected

    @pytest.mark.parametrize('role', list(Role))
    def test_employee_cannot_assign(self, authority, principal, role):
        assert authority.can_assign(principal('employee-1'), role) is False

    def test_unknown_role_is_never_assignable(self, authority, principal):
        assert authority.can_assign(principal('admin-1'), 'owner') is False

    def test_actor_without_roles_cannot_assign(self, authority, principal):
        assert authority.can_assign(principal('nobody'), Role.EMPLOYEE) is False

    def test_demo_override_does_not_grant_assignment_authority(self, authority, principal):
        actor = principal('employee-1', override=RoleOverride(OverrideMode.DEMO, Role.ADMIN))

        assert authority.resolver.effective_roles(actor) == frozenset({Role.ADMIN})
        assert authority.can_assign(actor, Role.ADMIN) is False
        assert authority.can_assign(actor, Role.EMPLOYEE) is False

    def test_mimic_override_keeps_admin_assignment_authority(self, authority, principal):
        actor = principal('admin-1', override=RoleOverride(OverrideMode.MIMIC, Role.EMPLOYEE))

        assert authority.can_assign(actor, Role.ADMIN) is True

    def test_sensitive_roles_require_confirmation(self, authority):
        assert authority.requires_confirmation(Role.ADMIN) is True
        assert authority.requires_confirmation('director') is True
        assert authority.requires_confirmation(Role.MANAGER) is False


class TestAssign:

    def test_manager_cannot_assign_director(self, authority, principal, role_backend, security_sink):
        result = authority.assign(principal('manager-1'), request_for(role=Role.DIRECTOR))

        assert result.state == AssignmentState.FAILED
        assert isinstance(result.error, InsufficientPermissions)
        assert role_backend.writes == []
        assert security_sink.of_type('role_assignment_success') == []
        assert security_sink.of_type('role_assignment_error') == []

    @pytest.mark.parametrize('justification', ['', '   '])
    def test_blank_justification_is_rejected(self, authority, principal, role_backend, justification):
        result = authority.assign(
            principal('admin-1'),
            request_for(role=Role.MANAGER, justification=justification),
        )

        assert isinstance(result.error, MissingJustification)
        assert result.error.user_message == 'A reason is required for role assignment.'
        assert role_backend.writes == []

    def test_admin_assignment_succeeds(self, authority, principal, role_backend, security_sink):
        result = authority.assign(
            principal('admin-1'),
            request_for(role=Role.MANAGER, justification='  Team lead  '),
        )

        assert result.succeeded
        assert result.target_identity_id == 'target-1'
        assert role_backend.writes == [('target-1', Role.MANAGER, 'Team lead')]

        events = security_sink.of_type('role_assignment_success')
        assert len(events) == 1
        assert events[0].success is True
        assert events[0].details['role'] == 'manager'
        assert events[0].details['target_user_id'] == 'target-1'
        assert events[0].user_id == 'user-1'

    def test_state_progression(self, authority, principal):
        result = authority.assign(principal('admin-1'), request_for())

        assert result.states == [
            AssignmentState.REQUESTED,
            AssignmentState.VALIDATED,
            AssignmentState.SUBMITTED,
            AssignmentState.SUCCEEDED,
        ]

    def test_unresolved_target(self, authority, principal, role_backend):
        result = authority.assign(principal('admin-1'), request_for(target='ghost@example.com'))

        assert isinstance(result.error, TargetNotFound)
        assert result.states == [
            AssignmentState.REQUESTED,
            AssignmentState.VALIDATED,
            AssignmentState.FAILED,
        ]
        assert role_backend.writes == []

    def test_backend_rejection_carries_reason(self, authority, principal, role_backend, security_sink):
        role_backend.submit_results['target-1'] = SubmitResult(False, 'User already has the supervisor role')

        result = authority.assign(principal('admin-1'), request_for())

        assert isinstance(result.error, AssignmentRejected)
        assert result.error.reason == 'User already has the supervisor role'
        assert result.to_dict()['code'] == 'ASSIGNMENT_REJECTED'

        errors = security_sink.of_type('role_assignment_error')
        assert len(errors) == 1
        assert errors[0].details['error_code'] == 'ASSIGNMENT_REJECTED'
        assert security_sink.of_type('role_assignment_success') == []

    def test_guard_failure_prevents_write(self, resolver, role_backend, guard, principal, organization_context):
        organization_context.memberships = 2
        role_backend.roles['admin-1'] = ['admin']
        role_backend.identities['alice@example.com'] = 'target-1'
        authority = RoleAssignmentAuthority(resolver, role_backend, guard)

        result = authority.assign(principal('admin-1'), request_for())

        assert isinstance(result.error, NoOrganizationContext)
        assert role_backend.writes == []

    def test_success_invalidates_target_cache(self, authority, principal, resolver, role_backend):
        target = principal('target-1')
        assert resolver.effective_roles(target) == frozenset()

        role_backend.roles['target-1'] = ['supervisor']
        authority.assign(principal('admin-1'), request_for())

        assert resolver.effective_roles(target) == frozenset({Role.SUPERVISOR})


class TestBulkAssign:

    def test_one_unassignable_item_aborts_batch(self, authority, principal, role_backend):
        requests = [
            request_for('alice@example.com', Role.EMPLOYEE),
            request_for('bob@example.com', Role.DIRECTOR),
        ]

        result = authority.bulk_assign(principal('manager-1'), requests, 'Reorg')

        assert result.success is False
        assert isinstance(result.error, InsufficientPermissions)
        assert (result.succeeded, result.failed, result.results) == (0, 0, [])
        assert role_backend.writes == []

    def test_missing_shared_justification(self, authority, principal, role_backend):
        result = authority.bulk_assign(principal('admin-1'), [request_for()], '  ')

        assert isinstance(result.error, MissingJustification)
        assert role_backend.writes == []

    def test_partial_failure_is_reported(self, authority, principal, role_backend):
        role_backend.submit_results['target-2'] = SubmitResult(False, 'Rejected')
        requests = [
            request_for('alice@example.com', Role.EMPLOYEE),
            request_for('bob@example.com', Role.SUPERVISOR),
        ]

        result = authority.bulk_assign(principal('admin-1'), requests, 'Reorg')

        assert result.success is False
        assert result.succeeded == 1
        assert result.failed == 1
        assert [r.succeeded for r in result.results] == [True, False]

    def test_shared_justification_applies_to_every_item(self, authority, principal, role_backend):
        requests = [
            request_for('alice@example.com', Role.EMPLOYEE, justification=''),
            request_for('bob@example.com', Role.EMPLOYEE, justification='ignored'),
        ]

        result = authority.bulk_assign(principal('admin-1'), requests, 'Quarterly review')

        assert result.success is True
        assert {w[2] for w in role_backend.writes} == {'Quarterly review'}

    def test_threaded_batch_keeps_input_order(self, authority, principal, security_sink):
        requests = [
            request_for('alice@example.com', Role.EMPLOYEE),
            request_for('ghost@example.com', Role.EMPLOYEE),
            request_for('carol@example.com', Role.MANAGER),
        ]

        result = authority.bulk_assign(principal('admin-1'), requests, 'Reorg', max_workers=3)

        assert [r.request.target for r in result.results] == [
            'alice@example.com', 'ghost@example.com', 'carol@example.com'
        ]
        assert (result.succeeded, result.failed) == (2, 1)
        assert len(security_sink.of_type('role_assignment_success')) == 2

    def test_to_dict(self, authority, principal):
        result = authority.bulk_assign(
            principal('admin-1'),
            [request_for('ghost@example.com', Role.EMPLOYEE)],
            'Reorg',
        )

        data = result.to_dict()
        assert data['success'] is False
        assert data['results'][0]['status'] == 'failed'
        assert data['results'][0]['code'] == 'TARGET_NOT_FOUND'
