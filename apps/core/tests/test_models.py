"""
Tests for SecurityAuditLog queries.
"""
from datetime import timedelta

import pytest
from django.utils import timezone

from apps.core.models import SecurityAuditLog


def _event(event_type, success=True, user_id='u-1', organization_id='org-1', hours_ago=0):
    return SecurityAuditLog.objects.create(
        event_type=event_type,
        success=success,
        user_id=user_id,
        organization_id=organization_id,
        occurred_at=timezone.now() - timedelta(hours=hours_ago),
    )


@pytest.mark.django_db
class TestSecurityAuditLogQuerySet:

    def test_filters_chain(self):
        _event('login_failed', success=False, hours_ago=1)
        _event('login_failed', success=False, hours_ago=50)
        _event('login_failed', success=False, organization_id='org-2')
        _event('login_failed', success=True)

        queryset = (
            SecurityAuditLog.objects.for_organization('org-1')
            .by_event('login_failed')
            .failures()
            .between(start=timezone.now() - timedelta(hours=24))
        )

        assert queryset.count() == 1

    def test_between_end_is_exclusive(self):
        event = _event('session_refreshed', hours_ago=2)

        assert SecurityAuditLog.objects.between(end=event.occurred_at).count() == 0
        assert SecurityAuditLog.objects.between(start=event.occurred_at).count() == 1

    def test_recent(self):
        _event('session_refreshed', hours_ago=24 * 40)
        _event('session_refreshed', hours_ago=1)

        assert SecurityAuditLog.objects.recent(days=30).count() == 1

    def test_summary_ignores_anonymous_failures_for_suspicious_activity(self):
        for _ in range(3):
            _event('login_failed', success=False, user_id='')

        summary = SecurityAuditLog.objects.for_organization('org-1').summary()

        assert summary['metrics']['total_failures'] == 3
        assert summary['suspicious_activity'] == []

    def test_summary_threshold(self):
        _event('login_failed', success=False, user_id='u-2')
        _event('login_failed', success=False, user_id='u-2')

        assert SecurityAuditLog.objects.summary(min_failures=3)['suspicious_activity'] == []
        activity = SecurityAuditLog.objects.summary(min_failures=2)['suspicious_activity']
        assert [row['user_id'] for row in activity] == ['u-2']

    def test_summary_top_events(self):
        for index in range(7):
            _event(f'event_{index}')

        summary = SecurityAuditLog.objects.summary(top=5)

        assert summary['metrics']['event_types'] == 7
        assert len(summary['top_events']) == 5
