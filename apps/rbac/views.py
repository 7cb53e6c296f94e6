"""
RBAC REST API views.

Implements endpoints for:
- Effective access of the current user
- Route and permission checks
- Role assignment (single and bulk)
"""
import logging

from django.conf import settings
from django.utils.decorators import method_decorator
from django_ratelimit.decorators import ratelimit
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.exceptions import AccessControlError, RateLimited
from apps.core.security_logger import request_context
from apps.core.services import get_rate_limiter, get_security_event_log
from apps.rbac.catalog import RoleCatalog
from apps.rbac.serializers import (
    AccessSnapshotSerializer,
    AssignmentResultSerializer,
    BulkAssignmentResultSerializer,
    BulkRoleAssignmentSerializer,
    PermissionCheckQuerySerializer,
    RoleAssignmentSerializer,
    RouteAccessQuerySerializer,
)
from apps.rbac.services import (
    RoleAssignmentRequest,
    authority_for_request,
    get_permission_resolver,
)

logger = logging.getLogger(__name__)


def _validation_error(serializer):
    return Response(
        {'error': 'Validation error', 'details': serializer.errors},
        status=status.HTTP_400_BAD_REQUEST
    )


def _confirmation_required(roles):
    return Response(
        {
            'error': f"Granting {', '.join(sorted(roles))} requires explicit confirmation.",
            'code': 'CONFIRMATION_REQUIRED',
            'reauthenticate': False,
        },
        status=status.HTTP_400_BAD_REQUEST
    )


def _check_assignment_rate_limit(request):
    """
    Per-actor backoff on role grants.

    Raises:
        RateLimited: actor exceeded ROLE_ASSIGN_MAX_ATTEMPTS in the window
    """
    principal = request.principal
    decision = get_rate_limiter().is_allowed(
        f"role_assign:{principal.identity_id}",
        max_attempts=getattr(settings, 'ROLE_ASSIGN_MAX_ATTEMPTS', 20),
        window_ms=getattr(settings, 'ROLE_ASSIGN_WINDOW_MS', 10 * 60 * 1000),
    )
    if not decision.allowed:
        get_security_event_log().record(
            'role_assignment_rate_limited',
            {
                'wait_time_ms': decision.wait_time_ms,
                'backoff_level': decision.backoff_level,
            },
            success=False,
            user_id=principal.identity_id,
            organization_id=principal.organization_id,
            **request_context(request)
        )
        raise RateLimited(decision.wait_time_ms)


@extend_schema(
    tags=['Access Control'],
    summary='Get effective access',
    description='''
Effective roles and permissions of the authenticated user in the current
organization, plus the roles they may grant.

`state` is one of:
- `loading`: onboarding state not known yet
- `onboarding`: onboarding incomplete, all roles suppressed
- `forbidden`: no effective roles
- `granted`

Send `X-Mimic-Role` (admins only) to preview another role, or
`X-Demo-Role` when demo mode is enabled.
    ''',
    responses={200: AccessSnapshotSerializer},
    examples=[
        OpenApiExample(
            'Manager',
            value={
                'user_id': '123e4567-e89b-12d3-a456-426614174000',
                'organization_id': '123e4567-e89b-12d3-a456-426614174001',
                'onboarding_complete': True,
                'state': 'granted',
                'roles': ['manager'],
                'permissions': ['create_appraisals', 'manage_goals', 'view_reports'],
                'highest_role': 'manager',
                'assignable_roles': ['manager', 'supervisor', 'employee'],
                'override': None,
            },
            response_only=True
        ),
    ]
)
class AccessMeView(APIView):
    """
    GET /v1/access/me
    """

    def get(self, request):
        principal = request.principal
        resolver = get_permission_resolver()
        snapshot = resolver.snapshot(principal)
        authority = authority_for_request(request)

        data = {
            'user_id': principal.identity_id,
            'organization_id': principal.organization_id,
            'onboarding_complete': principal.onboarding_complete,
            'assignable_roles': [
                role.value for role in RoleCatalog.all_roles()
                if authority.can_assign(principal, role)
            ],
            'override': (
                {'mode': principal.override.mode.value, 'role': principal.override.role.value}
                if principal.override else None
            ),
            **snapshot.to_dict(),
        }
        return Response(AccessSnapshotSerializer(data).data)


@extend_schema(
    tags=['Access Control'],
    summary='Check route access',
    description='''
Whether the authenticated user may open a client route. A nested route must
satisfy its own rule and every enclosing rule. Routes without a rule are open.
    ''',
    parameters=[
        OpenApiParameter('path', OpenApiTypes.STR, OpenApiParameter.QUERY, required=True,
                         description='Client route, e.g. /admin/roles'),
    ],
    responses={200: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT},
)
class RouteAccessView(APIView):
    """
    GET /v1/access/routes?path=/admin/roles
    """

    def get(self, request):
        serializer = RouteAccessQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return _validation_error(serializer)

        path = serializer.validated_data['path']
        allowed = get_permission_resolver().can_access_route(request.principal, path)
        return Response({'path': path, 'allowed': allowed})


@extend_schema(
    tags=['Access Control'],
    summary='Check a permission',
    description='Whether the authenticated user holds a permission. Legacy permission names are accepted.',
    parameters=[
        OpenApiParameter('permission', OpenApiTypes.STR, OpenApiParameter.QUERY, required=True),
    ],
    responses={200: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT},
)
class PermissionCheckView(APIView):
    """
    GET /v1/access/permissions/check?permission=manage_goals
    """

    def get(self, request):
        serializer = PermissionCheckQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return _validation_error(serializer)

        permission = serializer.validated_data['permission']
        granted = get_permission_resolver().has(request.principal, permission)
        return Response({'permission': permission, 'granted': granted})


@extend_schema(
    tags=['Role Assignment'],
    summary='Assign a role',
    description='''
Grant a role to a member of the current organization.

Rules:
- Admins may grant any role
- Other actors need at least `manager` and may only grant roles at or below their own level
- A non-empty justification is required
- `admin` and `director` grants need `confirmed: true`

**Rate limit**: 20 grants per 10 minutes per actor, with exponential backoff
    ''',
    request=RoleAssignmentSerializer,
    responses={
        201: AssignmentResultSerializer,
        400: OpenApiTypes.OBJECT,
        403: OpenApiTypes.OBJECT,
        404: OpenApiTypes.OBJECT,
        429: OpenApiTypes.OBJECT,
    },
    examples=[
        OpenApiExample(
            'Assign Request',
            value={
                'target': 'jane@example.com',
                'role': 'supervisor',
                'justification': 'Leads the new onboarding squad',
            },
            request_only=True
        ),
        OpenApiExample(
            'Missing Justification',
            value={
                'target': 'jane@example.com',
                'role': 'supervisor',
                'status': 'failed',
                'target_user_id': None,
                'error': 'A reason is required for role assignment.',
                'code': 'MISSING_JUSTIFICATION',
                'reauthenticate': False,
            },
            response_only=True,
            status_codes=['400']
        ),
    ]
)
class RoleAssignView(APIView):
    """
    POST /v1/access/roles/assign
    """

    def post(self, request):
        serializer = RoleAssignmentSerializer(data=request.data)
        if not serializer.is_valid():
            return _validation_error(serializer)

        data = serializer.validated_data
        role = RoleCatalog.parse(data['role'])
        if RoleCatalog.is_sensitive(role) and not data['confirmed']:
            return _confirmation_required([role.value])

        _check_assignment_rate_limit(request)

        assignment = RoleAssignmentRequest(
            target=data['target'],
            role=role,
            justification=data['justification'],
            confirmed=data['confirmed'],
        )
        result = authority_for_request(request).assign(request.principal, assignment)

        if result.succeeded:
            return Response(result.to_dict(), status=status.HTTP_201_CREATED)

        error_status = (
            result.error.status_code if isinstance(result.error, AccessControlError)
            else status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        return Response(result.to_dict(), status=error_status)


@extend_schema(
    tags=['Role Assignment'],
    summary='Assign roles in bulk',
    description='''
Grant several roles with one shared justification.

The justification and the actor's right to grant every listed role are
checked before any write; one failure rejects the whole request. After that,
each grant succeeds or fails on its own and results keep input order.
    ''',
    request=BulkRoleAssignmentSerializer,
    responses={
        200: BulkAssignmentResultSerializer,
        400: OpenApiTypes.OBJECT,
        403: OpenApiTypes.OBJECT,
        429: OpenApiTypes.OBJECT,
    },
)
@method_decorator(ratelimit(key='user_or_ip', rate='10/m', method='POST', block=False), name='dispatch')
class BulkRoleAssignView(APIView):
    """
    POST /v1/access/roles/bulk-assign
    """

    def post(self, request):
        if getattr(request, 'limited', False):
            response = Response(
                {
                    'error': 'Rate limit exceeded. Please try again later.',
                    'code': 'RATE_LIMIT_EXCEEDED',
                    'retry_after': 60,
                },
                status=status.HTTP_429_TOO_MANY_REQUESTS
            )
            response['Retry-After'] = '60'
            return response

        serializer = BulkRoleAssignmentSerializer(data=request.data)
        if not serializer.is_valid():
            return _validation_error(serializer)

        data = serializer.validated_data
        requests = [
            RoleAssignmentRequest(
                target=item['target'],
                role=RoleCatalog.parse(item['role']),
                confirmed=data['confirmed'],
            )
            for item in data['assignments']
        ]

        sensitive = {r.role.value for r in requests if RoleCatalog.is_sensitive(r.role)}
        if sensitive and not data['confirmed']:
            return _confirmation_required(sensitive)

        result = authority_for_request(request).bulk_assign(
            request.principal,
            requests,
            data['justification'],
        )

        if isinstance(result.error, AccessControlError):
            return Response(result.to_dict(), status=result.error.status_code)
        return Response(result.to_dict(), status=status.HTTP_200_OK)
