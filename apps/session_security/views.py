"""
Session REST API views.

Implements endpoints for:
- Login (password sign-in with persisted backoff per email)
- Session validation
- Session refresh
"""
import logging

from django.conf import settings
from django.utils.decorators import method_decorator
from django_ratelimit.decorators import ratelimit
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiExample, extend_schema
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.exceptions import FetchError, RateLimited, SessionExpired
from apps.core.security_logger import request_context
from apps.core.services import get_rate_limiter, get_security_event_log
from apps.session_security.serializers import (
    LoginSerializer,
    SessionTokenSerializer,
    SessionValidationSerializer,
)
from apps.session_security.services import service_for_request
from apps.session_security.sessions import JWTSessionProvider

logger = logging.getLogger(__name__)


def _too_many_requests(retry_after=60):
    response = Response(
        {
            'error': 'Rate limit exceeded. Please try again later.',
            'code': 'RATE_LIMIT_EXCEEDED',
            'retry_after': retry_after,
        },
        status=status.HTTP_429_TOO_MANY_REQUESTS
    )
    response['Retry-After'] = str(retry_after)
    return response


@extend_schema(
    tags=['Authentication'],
    summary='Log in',
    description='''
Authenticate with email and password and receive a session token.

Failed and successful attempts count against a per-email limit
(default 5 per 15 minutes) with exponential backoff. A successful login
clears the limit.

**No authentication required** - this is a public endpoint.

**Rate limit**: 20 requests/minute per IP
    ''',
    request=LoginSerializer,
    responses={
        200: OpenApiTypes.OBJECT,
        400: OpenApiTypes.OBJECT,
        401: OpenApiTypes.OBJECT,
        429: OpenApiTypes.OBJECT,
    },
    examples=[
        OpenApiExample(
            'Login Request',
            value={'email': 'user@example.com', 'password': 'SecurePass123!'},
            request_only=True
        ),
        OpenApiExample(
            'Too Many Attempts',
            value={
                'error': 'Too many attempts. Please try again in 60 seconds.',
                'code': 'RATE_LIMITED',
                'reauthenticate': False,
                'retry_after_ms': 60000,
            },
            response_only=True,
            status_codes=['429']
        ),
    ]
)
@method_decorator(ratelimit(key='ip', rate='20/m', method='POST', block=False), name='dispatch')
class LoginView(APIView):
    """
    POST /v1/auth/login

    Authenticate user and return a session token.
    """
    authentication_classes = []
    permission_classes = []

    def post(self, request):
        if getattr(request, 'limited', False):
            return _too_many_requests()

        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': 'Validation error', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        email = serializer.validated_data['email']
        password = serializer.validated_data['password']
        event_log = get_security_event_log().bind(**request_context(request))
        limiter = get_rate_limiter()
        rate_limit_key = f"login:{email}"

        decision = limiter.is_allowed(
            rate_limit_key,
            max_attempts=getattr(settings, 'LOGIN_MAX_ATTEMPTS', 5),
            window_ms=getattr(settings, 'LOGIN_WINDOW_MS', 15 * 60 * 1000),
        )
        if not decision.allowed:
            event_log.record(
                'login_rate_limited',
                {
                    'email': email,
                    'wait_time_ms': decision.wait_time_ms,
                    'backoff_level': decision.backoff_level,
                },
                success=False,
            )
            limiter.set_cooldown(email, -(-decision.wait_time_ms // 1000))
            raise RateLimited(decision.wait_time_ms)

        from apps.rbac.models import User
        user = User.objects.active().filter(email__iexact=email).first()
        if user is None or not user.check_password(password):
            event_log.record(
                'login_failed',
                {'email': email, 'backoff_level': decision.backoff_level},
                success=False,
            )
            return Response(
                {'error': 'Invalid email or password'},
                status=status.HTTP_401_UNAUTHORIZED
            )

        limiter.reset(rate_limit_key)
        user.update_last_login()

        from apps.tenants.backends import DatabaseOrganizationContext
        try:
            organization_id = DatabaseOrganizationContext(user.id, email=user.email).get_current_organization_id()
        except FetchError as e:
            logger.error(f"Organization lookup failed at login: {e}", extra={'user_id': str(user.id)})
            organization_id = None

        token = JWTSessionProvider.issue_token(user.id, email=user.email, org_id=organization_id)
        session = JWTSessionProvider(token).get_session()

        event_log.record(
            'login_success',
            {'email': email},
            success=True,
            user_id=str(user.id),
            organization_id=organization_id,
        )

        return Response(
            {
                'user': {
                    'id': str(user.id),
                    'email': user.email,
                    'full_name': user.get_full_name(),
                },
                'organization_id': organization_id,
                'token': token,
                'expires_at': session.expires_at,
            },
            status=status.HTTP_200_OK
        )


@extend_schema(
    tags=['Session'],
    summary='Validate current session',
    description='''
Check the current session for expiry, fingerprint drift and organization
context. A fingerprint mismatch is terminal and is rejected by the session
middleware before reaching this endpoint.

**Rate limit**: 30 requests/minute per user
    ''',
    request=None,
    responses={200: SessionValidationSerializer, 401: OpenApiTypes.OBJECT},
)
@method_decorator(ratelimit(key='user_or_ip', rate='30/m', method='POST', block=False), name='dispatch')
class SessionValidateView(APIView):
    """
    POST /v1/session/validate
    """

    def post(self, request):
        if getattr(request, 'limited', False):
            return _too_many_requests()

        result = service_for_request(request).validate()
        return Response(SessionValidationSerializer(result.to_dict()).data)


@extend_schema(
    tags=['Session'],
    summary='Refresh current session',
    description='''
Refresh the session token when it is expired (within the refresh grace
period) or about to expire. Returns the current token unchanged when no
refresh is needed.
    ''',
    request=None,
    responses={200: SessionTokenSerializer, 401: OpenApiTypes.OBJECT},
)
@method_decorator(ratelimit(key='user_or_ip', rate='10/m', method='POST', block=False), name='dispatch')
class SessionRefreshView(APIView):
    """
    POST /v1/session/refresh
    """

    def post(self, request):
        if getattr(request, 'limited', False):
            return _too_many_requests()

        provider = request.session_provider
        if not service_for_request(request).auto_refresh():
            raise SessionExpired()

        session = provider.get_session()
        return Response(SessionTokenSerializer({
            'token': provider.token,
            'expires_at': session.expires_at,
        }).data)
