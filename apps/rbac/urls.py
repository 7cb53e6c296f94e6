"""
RBAC API URLs.

Provides endpoints for:
- Effective access of the current user
- Route and permission checks
- Role assignment (single and bulk)
"""
from django.urls import path
from apps.rbac.views import (
    AccessMeView,
    BulkRoleAssignView,
    PermissionCheckView,
    RoleAssignView,
    RouteAccessView,
)

app_name = 'rbac'

urlpatterns = [
    path('me', AccessMeView.as_view(), name='access-me'),
    path('routes', RouteAccessView.as_view(), name='route-access'),
    path('permissions/check', PermissionCheckView.as_view(), name='permission-check'),
    path('roles/assign', RoleAssignView.as_view(), name='role-assign'),
    path('roles/bulk-assign', BulkRoleAssignView.as_view(), name='role-bulk-assign'),
]
