"""
Access-control error taxonomy and DRF exception handling.

Every error kind raised by the access control and tenant isolation layers
derives from AccessControlError and carries:
- code: stable machine-readable identifier
- status_code: HTTP status used by the API layer
- user_message: distinct human-readable message
- should_reauthenticate: whether the client must be sent back to sign-in
"""
import logging
from dataclasses import dataclass
from typing import Optional

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

# Clients show the message first, then redirect to sign-in after this delay
REAUTH_REDIRECT_DELAY_SECONDS = 2


class PerfHubException(Exception):
    """Base exception for PerfHub-specific errors."""

    def __init__(self, message, details=None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class AccessControlError(PerfHubException):
    """Base class for the access-control error taxonomy."""

    code = 'ACCESS_CONTROL_ERROR'
    status_code = 403
    user_message = "You don't have access to perform this action."
    should_reauthenticate = False

    def __init__(self, message=None, details=None):
        super().__init__(message or self.user_message, details)

    @property
    def redirect_delay_seconds(self) -> Optional[int]:
        return REAUTH_REDIRECT_DELAY_SECONDS if self.should_reauthenticate else None

    def to_dict(self) -> dict:
        payload = {
            'error': self.user_message,
            'code': self.code,
            'reauthenticate': self.should_reauthenticate,
        }
        if self.should_reauthenticate:
            payload['redirect_delay_seconds'] = self.redirect_delay_seconds
        return payload


class InsufficientPermissions(AccessControlError):
    """Actor's role level is too low for the requested action."""
    code = 'INSUFFICIENT_PERMISSIONS'
    status_code = 403
    user_message = 'Insufficient permissions to assign this role.'


class MissingJustification(AccessControlError):
    """Justification was empty after trimming. Never reaches the backend."""
    code = 'MISSING_JUSTIFICATION'
    status_code = 400
    user_message = 'A reason is required for role assignment.'


class TargetNotFound(AccessControlError):
    """Referenced identity does not resolve."""
    code = 'TARGET_NOT_FOUND'
    status_code = 404
    user_message = 'Record not found.'


class AssignmentRejected(AccessControlError):
    """Backend-side business rule rejected the assignment."""
    code = 'ASSIGNMENT_REJECTED'
    status_code = 409
    user_message = 'The role assignment was rejected.'

    def __init__(self, reason, details=None):
        self.reason = reason
        super().__init__(reason, details)

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload['error'] = f"{self.user_message} {self.reason}".strip()
        payload['reason'] = self.reason
        return payload


class SessionExpired(AccessControlError):
    """No live session. Client must re-authenticate."""
    code = 'SESSION_EXPIRED'
    status_code = 401
    user_message = 'Your session has expired. Please log in again.'
    should_reauthenticate = True


class NoOrganizationContext(AccessControlError):
    """Principal is not bound to an organization and no onboarding exemption applies."""
    code = 'NO_ORGANIZATION_CONTEXT'
    status_code = 403
    user_message = 'Your account is not associated with an organization yet.'


class CrossOrgAccessDenied(AccessControlError):
    """Hard security violation: target data belongs to another organization."""
    code = 'CROSS_ORG_ACCESS'
    status_code = 403
    user_message = 'Access denied - data isolation violation detected.'
    should_reauthenticate = True


class RateLimited(AccessControlError):
    """Too many attempts. Carries the remaining wait time."""
    code = 'RATE_LIMITED'
    status_code = 429
    user_message = 'Too many attempts.'

    def __init__(self, wait_time_ms: int, details=None):
        self.wait_time_ms = int(wait_time_ms)
        super().__init__(self.remaining_message(), details)

    @property
    def retry_after_seconds(self) -> int:
        # Round up so clients never retry early
        return max(1, -(-self.wait_time_ms // 1000))

    def remaining_message(self) -> str:
        return f"{self.user_message} Please try again in {self.retry_after_seconds} seconds."

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload['error'] = self.remaining_message()
        payload['retry_after_ms'] = self.wait_time_ms
        return payload


class SessionFingerprintMismatch(AccessControlError):
    """Client environment changed mid-session. Terminal: force logout."""
    code = 'SESSION_FINGERPRINT_MISMATCH'
    status_code = 401
    user_message = 'Your session was ended for security reasons. Please log in again.'
    should_reauthenticate = True


class UnknownRole(ValueError):
    """Raised when a role name is not part of the fixed role catalog."""
    pass


class FetchError(PerfHubException):
    """Raised by backend adapters when a role or permission lookup fails."""
    pass


@dataclass(frozen=True)
class TenancyErrorInfo:
    """Classification of a backend error against the tenancy taxonomy."""
    code: str
    message: str
    user_message: str
    should_redirect: bool = False


TENANCY_ERRORS = {
    'PGRST301': TenancyErrorInfo(
        code='INSUFFICIENT_PRIVILEGES',
        message='Insufficient privileges for this operation',
        user_message="You don't have permission to access this data in your organization.",
    ),
    'PGRST116': TenancyErrorInfo(
        code='RLS_VIOLATION',
        message='Row level security policy violation',
        user_message='Access denied - this data belongs to a different organization.',
    ),
    '42501': TenancyErrorInfo(
        code='PERMISSION_DENIED',
        message='Permission denied for operation',
        user_message="You don't have the required permissions for this action.",
    ),
    'CROSS_ORG_ACCESS': TenancyErrorInfo(
        code='CROSS_ORG_ACCESS',
        message='Cross-organization access attempt detected',
        user_message='Access denied - data isolation violation detected.',
        should_redirect=True,
    ),
    'SESSION_EXPIRED': TenancyErrorInfo(
        code='SESSION_EXPIRED',
        message='Session has expired or is invalid',
        user_message='Your session has expired. Please log in again.',
        should_redirect=True,
    ),
}

GENERIC_ERROR = TenancyErrorInfo(
    code='GENERIC_ERROR',
    message='Unclassified backend error',
    user_message='An error occurred. Please try again or contact support if the problem persists.',
)


def backend_error_code(exc) -> str:
    """Extract the backend error code from an exception, if any."""
    code = getattr(exc, 'code', None) or getattr(exc, 'error_code', None)
    return str(code) if code else 'UNKNOWN'


def classify_backend_error(exc) -> TenancyErrorInfo:
    """
    Map a backend error to the tenancy taxonomy.

    Access-control errors map to themselves; backend errors are looked up
    by their code; anything else is GENERIC_ERROR.
    """
    if isinstance(exc, AccessControlError):
        return TenancyErrorInfo(
            code=exc.code,
            message=exc.message,
            user_message=exc.user_message,
            should_redirect=exc.should_reauthenticate,
        )
    return TENANCY_ERRORS.get(backend_error_code(exc), GENERIC_ERROR)


def custom_exception_handler(exc, context):
    """
    DRF exception handler that renders the access-control taxonomy and
    keeps a consistent error format for everything else.
    """
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None

    if isinstance(exc, AccessControlError):
        logger.warning(
            f"Access control error: {exc.code}",
            extra={
                'request_id': request_id,
                'path': request.path if request else None,
                'method': request.method if request else None,
                'error_code': exc.code,
            }
        )
        payload = exc.to_dict()
        payload['request_id'] = request_id
        response = Response(payload, status=exc.status_code)
        if isinstance(exc, RateLimited):
            # RFC 6585
            response['Retry-After'] = str(exc.retry_after_seconds)
        return response

    response = exception_handler(exc, context)

    logger.error(
        f"API Exception: {exc.__class__.__name__}",
        extra={
            'exception': str(exc),
            'request_id': request_id,
            'path': request.path if request else None,
            'method': request.method if request else None,
        },
        exc_info=True
    )

    if response is None:
        return Response(
            {
                'error': 'Internal server error',
                'detail': 'An unexpected error occurred',
                'request_id': request_id,
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    if request_id and isinstance(response.data, dict):
        response.data['request_id'] = request_id

    return response
