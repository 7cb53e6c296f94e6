"""
Security audit serializers.

Provides serialization for:
- Security event list filters and rows
- Security summary query and response
"""
from rest_framework import serializers

from apps.core.models import SecurityAuditLog


class SecurityEventQuerySerializer(serializers.Serializer):
    event_type = serializers.CharField(max_length=100, required=False)
    user_id = serializers.CharField(max_length=64, required=False)
    failures_only = serializers.BooleanField(required=False, default=False)
    since = serializers.DateTimeField(required=False)
    until = serializers.DateTimeField(required=False)

    def validate(self, attrs):
        since = attrs.get('since')
        until = attrs.get('until')
        if since and until and since >= until:
            raise serializers.ValidationError({'until': 'Must be later than since'})
        return attrs


class SecurityEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = SecurityAuditLog
        fields = [
            'id', 'event_type', 'event_details', 'success', 'occurred_at',
            'url', 'user_agent', 'user_id', 'organization_id',
        ]
        read_only_fields = fields


class SecuritySummaryQuerySerializer(serializers.Serializer):
    hours_back = serializers.IntegerField(required=False, default=24, min_value=1, max_value=24 * 90)


class EventStatSerializer(serializers.Serializer):
    event_type = serializers.CharField()
    total_count = serializers.IntegerField()
    success_count = serializers.IntegerField()
    failure_count = serializers.IntegerField()
    last_occurrence = serializers.DateTimeField()


class SuspiciousActivitySerializer(serializers.Serializer):
    user_id = serializers.CharField()
    failed_attempts = serializers.IntegerField()
    event_types = serializers.ListField(child=serializers.CharField())
    first_attempt = serializers.DateTimeField()
    last_attempt = serializers.DateTimeField()


class SecurityMetricsSerializer(serializers.Serializer):
    total_events = serializers.IntegerField()
    total_failures = serializers.IntegerField()
    failure_rate = serializers.FloatField()
    suspicious_activity_count = serializers.IntegerField()
    event_types = serializers.IntegerField()


class SecuritySummarySerializer(serializers.Serializer):
    """Security metrics for one organization over a trailing window."""

    organization_id = serializers.CharField()
    since = serializers.DateTimeField()
    hours_back = serializers.IntegerField()
    metrics = SecurityMetricsSerializer()
    event_stats = EventStatSerializer(many=True)
    top_events = EventStatSerializer(many=True)
    suspicious_activity = SuspiciousActivitySerializer(many=True)
