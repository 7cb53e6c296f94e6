"""
Organization context middleware for multi-tenant isolation.

Authenticates the bearer session token and binds every API request to the
principal's organization.
"""
import logging

from django.conf import settings
from django.contrib.auth.models import AnonymousUser
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

from apps.core.exceptions import FetchError, UnknownRole
from apps.core.middleware import set_organization_id
from apps.core.sentry_utils import set_principal_context

logger = logging.getLogger(__name__)


class OrganizationContextMiddleware(MiddlewareMixin):
    """
    Resolve the principal and its organization from the session token.

    This middleware:
    1. Extracts the bearer token from the Authorization header
    2. Decodes it into a Session (expired sessions are kept; session
       security decides whether they may refresh)
    3. Loads the user and their organization membership
    4. Applies role overrides (X-Demo-Role when demo mode is enabled,
       X-Mimic-Role for admins previewing another role)
    5. Attaches request.user, request.session_provider,
       request.organization_context, request.membership, request.principal

    Public endpoints (health checks, schema) bypass authentication.
    """

    PUBLIC_PATHS = [
        '/v1/health',
        '/v1/auth/login',
        '/schema',
    ]

    def process_request(self, request):
        request.session_provider = None
        request.organization_context = None
        request.membership = None
        request.principal = None
        request.auth_session = None

        if self._is_public_path(request.path):
            request.user = AnonymousUser()
            return None

        token = self._bearer_token(request)
        if not token:
            return self._error_response(
                'MISSING_CREDENTIALS',
                'Authorization: Bearer <token> header is required',
                status=401
            )

        from apps.session_security.sessions import JWTSessionProvider
        provider = JWTSessionProvider(token)
        session = provider.get_session()
        if session is None:
            return self._error_response('INVALID_TOKEN', 'Invalid session token', status=401)

        from apps.rbac.models import User
        user = User.objects.active().filter(id=session.user_id).first()
        if user is None:
            logger.warning(
                f"Session token for unknown or inactive user: {session.user_id}",
                extra={'request_id': getattr(request, 'request_id', None)}
            )
            return self._error_response('INVALID_TOKEN', 'Invalid session token', status=401)

        from apps.tenants.backends import DatabaseOrganizationContext
        organization_context = DatabaseOrganizationContext(
            user.id,
            email=user.email,
            organization_hint=session.org_id,
        )

        organization_id = None
        membership = None
        try:
            organization_id = organization_context.get_current_organization_id()
            if organization_id is not None:
                membership = organization_context.get_membership()
        except FetchError as e:
            # The guard re-validates and fails closed on write
            logger.error(
                f"Organization context lookup failed: {e}",
                extra={'request_id': getattr(request, 'request_id', None), 'user_id': str(user.id)}
            )

        try:
            override = self._role_override(request)
        except UnknownRole as e:
            return self._error_response('INVALID_ROLE_OVERRIDE', str(e), status=400)

        from apps.rbac.principal import Principal
        principal = Principal(
            identity_id=str(user.id),
            organization_id=organization_id,
            onboarding_complete=membership.onboarding_completed if membership else False,
            override=override,
            email=user.email,
        )

        request.user = user
        request.auth_session = session
        request.session_provider = provider
        request.organization_context = organization_context
        request.membership = membership
        request.principal = principal

        set_organization_id(organization_id)
        set_principal_context(principal)

        logger.debug(
            f"Organization context set: {user.id} @ {organization_id}",
            extra={'request_id': getattr(request, 'request_id', None)}
        )
        return None

    def _role_override(self, request):
        from apps.rbac.catalog import RoleCatalog
        from apps.rbac.principal import OverrideMode, RoleOverride

        demo_role = request.headers.get('X-Demo-Role')
        if demo_role and getattr(settings, 'DEMO_MODE_ENABLED', False):
            return RoleOverride(OverrideMode.DEMO, RoleCatalog.parse(demo_role))

        mimic_role = request.headers.get('X-Mimic-Role')
        if mimic_role:
            return RoleOverride(OverrideMode.MIMIC, RoleCatalog.parse(mimic_role))

        return None

    def _bearer_token(self, request):
        header = request.headers.get('Authorization', '')
        scheme, _, token = header.partition(' ')
        if scheme.lower() != 'bearer':
            return None
        return token.strip() or None

    def _is_public_path(self, path):
        """Check if path is public and doesn't require authentication."""
        return any(path.startswith(public_path) for public_path in self.PUBLIC_PATHS)

    def _error_response(self, code, message, status=400, details=None):
        """Generate standardized error response."""
        error_data = {
            'error': message,
            'code': code,
            'reauthenticate': status == 401,
        }

        if details:
            error_data['details'] = details

        return JsonResponse(error_data, status=status)
