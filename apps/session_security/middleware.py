"""
Session security middleware.

Runs after OrganizationContextMiddleware and validates every authenticated
request's session against its fingerprint baseline and expiry.
"""
import logging

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

from apps.core.exceptions import SessionExpired, SessionFingerprintMismatch

logger = logging.getLogger(__name__)


class SessionSecurityMiddleware(MiddlewareMixin):
    """
    Enforce session validity on authenticated requests.

    - Fingerprint mismatch: 401 SESSION_FINGERPRINT_MISMATCH (terminal)
    - Expired session: 401 SESSION_EXPIRED, except on the refresh and
      validate endpoints, which handle expired sessions themselves
    - Refreshable session: X-Session-Refresh: 1 on the response
    """

    EXPIRY_EXEMPT_PATHS = [
        '/v1/session/refresh',
        '/v1/session/validate',
    ]

    def process_request(self, request):
        request.session_validation = None

        if getattr(request, 'session_provider', None) is None:
            return None

        from apps.session_security.services import service_for_request
        result = service_for_request(request).validate(record_completion=False)
        request.session_validation = result

        if result.fingerprint_mismatch:
            logger.warning(
                "Rejected request with mismatched session fingerprint",
                extra={'request_id': getattr(request, 'request_id', None), 'path': request.path}
            )
            return self._error_response(SessionFingerprintMismatch())

        if result.expired and not self._is_expiry_exempt(request.path):
            return self._error_response(SessionExpired())

        return None

    def process_response(self, request, response):
        result = getattr(request, 'session_validation', None)
        if result is not None and result.should_refresh:
            response['X-Session-Refresh'] = '1'
        return response

    def _is_expiry_exempt(self, path):
        return any(path.startswith(exempt) for exempt in self.EXPIRY_EXEMPT_PATHS)

    def _error_response(self, exc):
        return JsonResponse(exc.to_dict(), status=exc.status_code)
