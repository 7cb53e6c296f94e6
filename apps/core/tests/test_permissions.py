"""
Tests for HasPermissions and @requires_permissions.
"""
from unittest.mock import Mock

import pytest
from rest_framework.response import Response
from rest_framework.test import APIRequestFactory
from rest_framework.views import APIView

from apps.core.permissions import HasPermissions, requires_permissions
from apps.core.services import register_service
from apps.rbac.services import PermissionResolver


@pytest.fixture(autouse=True)
def installed_resolver(role_backend):
    resolver = PermissionResolver(role_backend)
    register_service('permission_resolver', resolver)
    return resolver


def _request(principal):
    return Mock(principal=principal, method='GET', path='/v1/x', request_id='req-1')


class TestHasPermissions:

    def test_denies_without_principal(self):
        assert HasPermissions().has_permission(_request(None), Mock(required_permissions={'view_reports'})) is False

    def test_allows_when_no_permissions_required(self, principal):
        view = Mock(spec=[])

        assert HasPermissions().has_permission(_request(principal()), view) is True

    def test_checks_every_required_permission(self, principal, role_backend):
        role_backend.roles['user-1'] = ['manager']
        view = Mock(required_permissions={'manage_goals', 'manage_roles'})

        assert HasPermissions().has_permission(_request(principal()), view) is False

        role_backend.roles['user-2'] = ['admin']
        assert HasPermissions().has_permission(_request(principal('user-2')), view) is True

    def test_accepts_legacy_permission_names(self, principal, role_backend):
        role_backend.roles['user-1'] = ['supervisor']
        view = Mock(required_permissions='canViewReports')

        assert HasPermissions().has_permission(_request(principal()), view) is True

    def test_onboarding_principal_is_denied(self, principal, role_backend):
        role_backend.roles['user-1'] = ['admin']
        view = Mock(required_permissions={'view_reports'})

        assert HasPermissions().has_permission(_request(principal(onboarding_complete=False)), view) is False

    def test_object_in_other_organization_is_denied(self, principal):
        request = _request(principal(organization_id='org-1'))

        assert HasPermissions().has_object_permission(request, Mock(), Mock(organization_id='org-2')) is False
        assert HasPermissions().has_object_permission(request, Mock(), Mock(organization_id='org-1')) is True

    def test_object_without_organization_is_allowed(self, principal):
        obj = Mock(spec=[])

        assert HasPermissions().has_object_permission(_request(principal()), Mock(), obj) is True


class ReportView(APIView):
    authentication_classes = []
    permission_classes = [HasPermissions]

    @requires_permissions('manage_roles')
    def get(self, request):
        return Response({'ok': True})

    def post(self, request):
        return Response({'ok': True})


@requires_permissions('view_audit')
class AuditView(APIView):
    authentication_classes = []
    permission_classes = [HasPermissions]

    def get(self, request):
        return Response({'ok': True})


def _call(view, method, principal):
    request = getattr(APIRequestFactory(), method)('/v1/reports')
    request.principal = principal
    return view.as_view()(request)


class TestRequiresPermissions:

    def test_class_decorator_sets_required_permissions(self):
        @requires_permissions('manage_roles', 'view_audit')
        class View:
            pass

        assert View.required_permissions == {'manage_roles', 'view_audit'}

    def test_method_requirement_denies_before_handler_runs(self, principal, role_backend):
        role_backend.roles['user-1'] = ['employee']

        response = _call(ReportView, 'get', principal())

        assert response.status_code == 403

    def test_method_requirement_allows_holder(self, principal, role_backend):
        role_backend.roles['user-1'] = ['admin']

        response = _call(ReportView, 'get', principal())

        assert response.status_code == 200

    def test_method_requirement_applies_to_that_method_only(self, principal, role_backend):
        role_backend.roles['user-1'] = ['employee']

        response = _call(ReportView, 'post', principal())

        assert response.status_code == 200

    def test_class_requirement_enforced(self, principal, role_backend):
        role_backend.roles['user-1'] = ['manager']
        assert _call(AuditView, 'get', principal()).status_code == 403

        role_backend.roles['user-2'] = ['admin']
        assert _call(AuditView, 'get', principal('user-2')).status_code == 200
