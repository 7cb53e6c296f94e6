"""
Core middleware for request processing.
"""
import logging
import threading
import uuid

from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger(__name__)

_local = threading.local()


def set_organization_id(organization_id):
    """Expose the resolved organization to log records on this thread."""
    _local.organization_id = str(organization_id) if organization_id else None


class RequestIDMiddleware(MiddlewareMixin):
    """
    Inject a unique request_id into each request for tracing.
    The request_id is added to the request object and to log records.
    """

    def process_request(self, request):
        request_id = request.META.get('HTTP_X_REQUEST_ID') or str(uuid.uuid4())
        request.request_id = request_id
        _local.request_id = request_id
        _local.organization_id = None

    def process_response(self, request, response):
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id
        _local.request_id = None
        _local.organization_id = None
        return response


class LoggingFilter(logging.Filter):
    """
    Add request_id and organization_id to log records from thread-local storage.
    """

    def filter(self, record):
        if not getattr(record, 'request_id', None):
            record.request_id = getattr(_local, 'request_id', None)

        if not getattr(record, 'organization_id', None):
            record.organization_id = getattr(_local, 'organization_id', None)

        return True
