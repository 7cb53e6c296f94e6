"""
Core API views.
"""
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from django.db import connection
from django.conf import settings
from drf_spectacular.utils import extend_schema
import logging

from apps.core.services import get_kv_store

logger = logging.getLogger(__name__)

HEALTH_CHECK_KEY = 'health_check'


class HealthCheckView(APIView):
    """
    Health check endpoint to verify system dependencies.

    GET /v1/health

    Returns 200 if all dependencies are healthy, 503 otherwise.
    """
    authentication_classes = []
    permission_classes = []

    @extend_schema(
        tags=['Health'],
        summary="Health check",
        description="Check the database and the key-value store backing rate limits and session fingerprints",
        responses={
            200: {
                'type': 'object',
                'properties': {
                    'status': {'type': 'string'},
                    'database': {'type': 'string'},
                    'kv_store': {'type': 'string'},
                    'security_event_sink': {'type': 'string'},
                }
            },
            503: {
                'type': 'object',
                'properties': {
                    'status': {'type': 'string'},
                    'database': {'type': 'string'},
                    'kv_store': {'type': 'string'},
                    'security_event_sink': {'type': 'string'},
                    'errors': {'type': 'array', 'items': {'type': 'string'}},
                }
            }
        }
    )
    def get(self, request):
        """Check health of all dependencies."""
        health_status = {
            'status': 'healthy',
            'database': 'unknown',
            'kv_store': 'unknown',
            'security_event_sink': getattr(settings, 'SECURITY_EVENT_SINK', 'database'),
        }
        errors = []

        # Check database connectivity
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
            health_status['database'] = 'healthy'
        except Exception as e:
            health_status['database'] = 'unhealthy'
            errors.append(f"Database: {str(e)}")
            logger.error("Database health check failed", exc_info=True)

        # Check the key-value store round trip
        try:
            store = get_kv_store()
            store.set(HEALTH_CHECK_KEY, b'ok')
            if store.get(HEALTH_CHECK_KEY) == b'ok':
                health_status['kv_store'] = 'healthy'
            else:
                health_status['kv_store'] = 'unhealthy'
                errors.append("KV store: Unable to read test key")
            store.delete(HEALTH_CHECK_KEY)
        except Exception as e:
            health_status['kv_store'] = 'unhealthy'
            errors.append(f"KV store: {str(e)}")
            logger.error("KV store health check failed", exc_info=True)

        # Determine overall status
        if errors:
            health_status['status'] = 'unhealthy'
            health_status['errors'] = errors
            return Response(health_status, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        return Response(health_status, status=status.HTTP_200_OK)
