"""
Security audit views.

Organization-scoped read access to the security audit log for users
holding view_audit.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.exceptions import NoOrganizationContext
from apps.core.models import SecurityAuditLog
from apps.core.permissions import requires_permissions
from apps.core.serializers import (
    SecurityEventQuerySerializer,
    SecurityEventSerializer,
    SecuritySummaryQuerySerializer,
    SecuritySummarySerializer,
)

logger = logging.getLogger(__name__)


class StandardResultsSetPagination(PageNumberPagination):
    """Standard pagination for list endpoints."""
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 100


def _organization_events(request):
    organization_id = request.principal.organization_id
    if not organization_id:
        raise NoOrganizationContext()
    return SecurityAuditLog.objects.for_organization(organization_id)


def _validation_error(serializer):
    return Response(
        {'error': 'Validation error', 'details': serializer.errors},
        status=status.HTTP_400_BAD_REQUEST
    )


class SecurityEventListView(APIView):
    """
    GET /v1/security/events
    """

    @extend_schema(
        tags=['Security'],
        summary='List security events',
        description='''
Security events recorded for the current organization, newest first.

Requires `view_audit`.
        ''',
        parameters=[
            OpenApiParameter('event_type', OpenApiTypes.STR, OpenApiParameter.QUERY,
                             description='Only this event type'),
            OpenApiParameter('user_id', OpenApiTypes.STR, OpenApiParameter.QUERY,
                             description='Only events of this user'),
            OpenApiParameter('failures_only', OpenApiTypes.BOOL, OpenApiParameter.QUERY,
                             description='Only failed events'),
            OpenApiParameter('since', OpenApiTypes.DATETIME, OpenApiParameter.QUERY,
                             description='Events at or after this time'),
            OpenApiParameter('until', OpenApiTypes.DATETIME, OpenApiParameter.QUERY,
                             description='Events before this time'),
            OpenApiParameter('page', OpenApiTypes.INT, OpenApiParameter.QUERY),
            OpenApiParameter('page_size', OpenApiTypes.INT, OpenApiParameter.QUERY),
        ],
        responses={200: SecurityEventSerializer(many=True), 400: OpenApiTypes.OBJECT,
                   403: OpenApiTypes.OBJECT},
    )
    @requires_permissions('view_audit')
    def get(self, request):
        query = SecurityEventQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return _validation_error(query)
        filters = query.validated_data

        queryset = _organization_events(request).between(filters.get('since'), filters.get('until'))
        if filters.get('event_type'):
            queryset = queryset.by_event(filters['event_type'])
        if filters.get('user_id'):
            queryset = queryset.for_user(filters['user_id'])
        if filters['failures_only']:
            queryset = queryset.failures()

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = SecurityEventSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)


class SecuritySummaryView(APIView):
    """
    GET /v1/security/summary
    """

    @extend_schema(
        tags=['Security'],
        summary='Security summary',
        description='''
Security metrics for the current organization over the last `hours_back`
hours: totals, failure rate, per event type counts and users with repeated
failures.

Requires `view_audit`.
        ''',
        parameters=[
            OpenApiParameter('hours_back', OpenApiTypes.INT, OpenApiParameter.QUERY,
                             description='Window size in hours (default 24)'),
        ],
        responses={200: SecuritySummarySerializer, 400: OpenApiTypes.OBJECT,
                   403: OpenApiTypes.OBJECT},
    )
    @requires_permissions('view_audit')
    def get(self, request):
        query = SecuritySummaryQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return _validation_error(query)
        hours_back = query.validated_data['hours_back']

        since = timezone.now() - timedelta(hours=hours_back)
        summary = _organization_events(request).between(start=since).summary(
            min_failures=getattr(settings, 'SECURITY_SUSPICIOUS_FAILURE_THRESHOLD', 3),
        )

        logger.info(
            "Security summary generated",
            extra={
                'user_id': request.principal.identity_id,
                'organization_id': request.principal.organization_id,
                'hours_back': hours_back,
                'total_events': summary['metrics']['total_events'],
                'request_id': getattr(request, 'request_id', None),
            }
        )

        data = {
            'organization_id': request.principal.organization_id,
            'since': since,
            'hours_back': hours_back,
            **summary,
        }
        return Response(SecuritySummarySerializer(data).data)
