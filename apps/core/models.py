"""
Core models for PerfHub.
Provides BaseModel with UUID primary keys and timestamps, and the
append-only security audit log.
"""
import uuid
from datetime import timedelta

from django.db import models
from django.utils import timezone


class BaseModel(models.Model):
    """
    Abstract base model with UUID primary key and timestamps.

    All PerfHub models inherit from this base model to keep identifiers
    and timestamps consistent across apps.
    """
    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier"
    )

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when the record was created"
    )

    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when the record was last updated"
    )

    class Meta:
        abstract = True
        ordering = ['-created_at']


class SecurityAuditLogQuerySet(models.QuerySet):
    """Chainable SecurityAuditLog filters."""

    def for_organization(self, organization_id):
        return self.filter(organization_id=str(organization_id))

    def for_user(self, user_id):
        return self.filter(user_id=str(user_id))

    def by_event(self, event_type):
        return self.filter(event_type=event_type)

    def failures(self):
        return self.filter(success=False)

    def between(self, start=None, end=None):
        queryset = self
        if start is not None:
            queryset = queryset.filter(occurred_at__gte=start)
        if end is not None:
            queryset = queryset.filter(occurred_at__lt=end)
        return queryset

    def recent(self, days=30):
        return self.between(start=timezone.now() - timedelta(days=days))

    def event_stats(self):
        """Per event type counts, most frequent first."""
        return list(
            self.order_by()
            .values('event_type')
            .annotate(
                total_count=models.Count('id'),
                success_count=models.Count('id', filter=models.Q(success=True)),
                failure_count=models.Count('id', filter=models.Q(success=False)),
                last_occurrence=models.Max('occurred_at'),
            )
            .order_by('-total_count', 'event_type')
        )

    def suspicious_activity(self, min_failures=3):
        """Users with at least min_failures failed events, worst first."""
        failures = self.failures().exclude(user_id='')
        rows = (
            failures.order_by()
            .values('user_id')
            .annotate(
                failed_attempts=models.Count('id'),
                first_attempt=models.Min('occurred_at'),
                last_attempt=models.Max('occurred_at'),
            )
            .filter(failed_attempts__gte=min_failures)
            .order_by('-failed_attempts', 'user_id')
        )
        activity = []
        for row in rows:
            event_types = failures.filter(user_id=row['user_id']).values_list('event_type', flat=True)
            activity.append({**row, 'event_types': sorted(set(event_types))})
        return activity

    def summary(self, min_failures=3, top=5):
        """
        Security metrics for the rows in this queryset.

        Returns:
            dict with metrics (total_events, total_failures, failure_rate as
            a percentage, suspicious_activity_count, event_types),
            event_stats, top_events and suspicious_activity
        """
        event_stats = self.event_stats()
        suspicious = self.suspicious_activity(min_failures=min_failures)
        total_events = sum(row['total_count'] for row in event_stats)
        total_failures = sum(row['failure_count'] for row in event_stats)
        failure_rate = round(total_failures * 100.0 / total_events, 1) if total_events else 0.0

        return {
            'metrics': {
                'total_events': total_events,
                'total_failures': total_failures,
                'failure_rate': failure_rate,
                'suspicious_activity_count': len(suspicious),
                'event_types': len(event_stats),
            },
            'event_stats': event_stats,
            'top_events': event_stats[:top],
            'suspicious_activity': suspicious,
        }


class SecurityAuditLog(models.Model):
    """
    Append-only record of security events.

    Rows are written by DatabaseSecurityEventSink and never updated.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Event type (e.g., 'cross_org_access_attempt')"
    )
    event_details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Structured event details"
    )
    success = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether the underlying action succeeded"
    )
    occurred_at = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        help_text="When the event happened"
    )

    # Ambient context
    url = models.TextField(blank=True, help_text="Originating URL or referrer")
    user_agent = models.TextField(blank=True, help_text="User agent string")
    user_id = models.CharField(max_length=64, blank=True, db_index=True)
    organization_id = models.CharField(max_length=64, blank=True, db_index=True)

    objects = SecurityAuditLogQuerySet.as_manager()

    class Meta:
        db_table = 'security_audit_log'
        ordering = ['-occurred_at']
        indexes = [
            models.Index(fields=['organization_id', 'occurred_at'], name='security_au_organiz_6c1f0e_idx'),
            models.Index(fields=['event_type', 'occurred_at'], name='security_au_event_t_3b2d9a_idx'),
            models.Index(fields=['success', 'occurred_at'], name='security_au_success_9e4a7c_idx'),
        ]

    def __str__(self):
        outcome = 'ok' if self.success else 'failed'
        return f"{self.event_type} ({outcome}) @ {self.occurred_at.isoformat()}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Security audit log entries are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Security audit log entries are append-only")
