"""
DRF permission classes and decorators for permission enforcement.

This module provides:
- HasPermissions: DRF permission class that enforces permission requirements
- @requires_permissions: Decorator to declare required permissions on views
"""
import logging

from rest_framework.permissions import BasePermission

logger = logging.getLogger(__name__)


class HasPermissions(BasePermission):
    """
    DRF permission class that enforces permission requirements on API endpoints.

    This permission class:
    1. Requires an authenticated principal (set by OrganizationContextMiddleware)
    2. Checks every permission in view.required_permissions through the
       PermissionResolver (legacy names are accepted)
    3. Implements has_object_permission to verify the object belongs to the
       principal's organization

    Usage in views:
        class MyView(APIView):
            permission_classes = [HasPermissions]
            required_permissions = ['manage_roles']
    """

    def has_permission(self, request, view):
        principal = getattr(request, 'principal', None)
        if principal is None:
            return False

        required = required_permissions_for(request, view)
        if not required:
            return True

        from apps.rbac.services import get_permission_resolver
        resolver = get_permission_resolver()

        missing = {name for name in required if not resolver.has(principal, name)}
        if missing:
            logger.warning(
                f"Permission denied: user {principal.identity_id} missing permissions: {sorted(missing)}",
                extra={
                    'user_id': principal.identity_id,
                    'organization_id': principal.organization_id,
                    'required_permissions': sorted(required),
                    'missing_permissions': sorted(missing),
                    'view': view.__class__.__name__,
                    'method': request.method,
                    'path': request.path,
                    'request_id': getattr(request, 'request_id', None),
                }
            )
            return False

        return True

    def has_object_permission(self, request, view, obj):
        """
        Verify that the object belongs to the principal's organization.

        Objects without an organization_id are not checked here.
        """
        principal = getattr(request, 'principal', None)
        if principal is None:
            return False

        object_org_id = getattr(obj, 'organization_id', None)
        if object_org_id is None:
            return True

        if str(object_org_id) != str(principal.organization_id):
            logger.warning(
                "Object permission denied: object belongs to a different organization",
                extra={
                    'user_id': principal.identity_id,
                    'organization_id': principal.organization_id,
                    'object_organization_id': str(object_org_id),
                    'object_type': obj.__class__.__name__,
                    'view': view.__class__.__name__,
                    'request_id': getattr(request, 'request_id', None),
                }
            )
            return False

        return True


def _as_set(permissions):
    if not permissions:
        return set()
    if isinstance(permissions, str):
        return {permissions}
    return set(permissions)


def required_permissions_for(request, view):
    """
    Permissions a request must hold: the view's required_permissions plus
    those declared on the handler for the request method.
    """
    required = _as_set(getattr(view, 'required_permissions', None))
    handler = getattr(type(view), request.method.lower(), None)
    required |= _as_set(getattr(handler, 'required_permissions', None))
    return required


def requires_permissions(*permissions):
    """
    Decorator to declare required permissions on a view class or on one
    of its handler methods. Enforced by HasPermissions before the handler
    runs.

    Usage:
        @requires_permissions('manage_roles')
        class RoleAssignView(APIView):
            permission_classes = [HasPermissions]

        class SecurityEventListView(APIView):
            @requires_permissions('view_audit')
            def get(self, request):
                ...
    """
    def decorator(view_or_method):
        view_or_method.required_permissions = set(permissions)
        return view_or_method

    return decorator
