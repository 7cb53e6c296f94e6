"""
Security event logging.

Append-only record of security-relevant occurrences:
- Rate limit violations
- Session fingerprint creation and hijack detection
- Organization isolation checks and cross-organization access attempts
- Role assignment outcomes

Recording is best effort: every event goes to the 'security' logger, then to
a pluggable sink (database, Celery queue, log-only). Sink failures are logged
locally and never propagate to the caller whose action triggered the event.
Critical failed events are also sent to Sentry.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.utils import timezone

from apps.core.logging import PIIMasker
from apps.core.sentry_utils import capture_message

logger = logging.getLogger('security')


@dataclass
class SecurityEvent:
    """A single security-relevant occurrence."""

    event_type: str
    details: Dict[str, Any] = field(default_factory=dict)
    success: bool = True
    timestamp: datetime = field(default_factory=timezone.now)
    url: Optional[str] = None
    user_agent: Optional[str] = None
    user_id: Optional[str] = None
    organization_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event_type': self.event_type,
            'details': self.details,
            'success': self.success,
            'timestamp': self.timestamp.isoformat(),
            'url': self.url,
            'user_agent': self.user_agent,
            'user_id': self.user_id,
            'organization_id': self.organization_id,
        }


class SecurityEventSink(ABC):
    """Destination for security events."""

    @abstractmethod
    def append(self, event: SecurityEvent) -> None:
        """Persist or forward the event. May raise; callers swallow."""


class DatabaseSecurityEventSink(SecurityEventSink):
    """Writes events to the security_audit_log table."""

    def append(self, event: SecurityEvent) -> None:
        from apps.core.models import SecurityAuditLog

        SecurityAuditLog.objects.create(
            event_type=event.event_type,
            event_details=event.details,
            success=event.success,
            occurred_at=event.timestamp,
            url=event.url or '',
            user_agent=event.user_agent or '',
            user_id=event.user_id or '',
            organization_id=event.organization_id or '',
        )


class CelerySecurityEventSink(SecurityEventSink):
    """Enqueues events for asynchronous persistence by a Celery worker."""

    def append(self, event: SecurityEvent) -> None:
        from apps.core.tasks import record_security_event

        record_security_event.delay(event.to_dict())


class LoggingSecurityEventSink(SecurityEventSink):
    """Log-only sink. The 'security' logger already has the event."""

    def append(self, event: SecurityEvent) -> None:
        return None


class MemorySecurityEventSink(SecurityEventSink):
    """Keeps events in memory. Used by tests and local tooling."""

    def __init__(self):
        self.events: List[SecurityEvent] = []
        self._lock = threading.Lock()

    def append(self, event: SecurityEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: str) -> List[SecurityEvent]:
        with self._lock:
            return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()


SINKS = {
    'database': DatabaseSecurityEventSink,
    'celery': CelerySecurityEventSink,
    'logging': LoggingSecurityEventSink,
    'memory': MemorySecurityEventSink,
}


def build_sink(name: str) -> SecurityEventSink:
    """Instantiate a sink by its settings name."""
    try:
        return SINKS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown SECURITY_EVENT_SINK '{name}'. Choose one of: {', '.join(sorted(SINKS))}"
        )


def request_context(request) -> Dict[str, Optional[str]]:
    """Extract originating URL/referrer and user agent from a Django request."""
    if request is None:
        return {}
    meta = getattr(request, 'META', {})
    url = meta.get('HTTP_REFERER')
    if not url:
        try:
            url = request.build_absolute_uri()
        except Exception:
            url = getattr(request, 'path', None)
    return {
        'url': url,
        'user_agent': meta.get('HTTP_USER_AGENT'),
    }


class SecurityEventLog:
    """
    Best-effort, append-only security event recorder.

    Constructed once per process and passed to the services that need it.
    bind() returns a child log that stamps ambient context (user, org,
    url, user agent) onto every event it records.
    """

    CRITICAL_EVENTS = {
        'cross_org_access_attempt',
        'session_hijack_detected',
    }

    def __init__(self, sink: SecurityEventSink, context: Optional[Dict[str, Any]] = None):
        self.sink = sink
        self.context = dict(context or {})

    def bind(self, **context) -> 'SecurityEventLog':
        merged = dict(self.context)
        merged.update({k: v for k, v in context.items() if v is not None})
        return SecurityEventLog(self.sink, merged)

    def record(
        self,
        event_type: str,
        details: Optional[Dict[str, Any]] = None,
        success: bool = True,
        **context
    ) -> SecurityEvent:
        """
        Record a security event. Never raises.

        Args:
            event_type: Event name (e.g. 'cross_org_access_attempt')
            details: Structured event details
            success: Whether the underlying action succeeded
            **context: url, user_agent, user_id, organization_id overrides

        Returns:
            The SecurityEvent that was recorded
        """
        ambient = dict(self.context)
        ambient.update({k: v for k, v in context.items() if v is not None})

        event = SecurityEvent(
            event_type=event_type,
            details=dict(details or {}),
            success=success,
            url=ambient.get('url'),
            user_agent=ambient.get('user_agent'),
            user_id=_as_str(ambient.get('user_id')),
            organization_id=_as_str(ambient.get('organization_id')),
        )

        self._log(event)

        try:
            self.sink.append(event)
        except Exception as e:
            logger.error(
                f"Failed to write security event {event_type}: {e}",
                extra={'event_type': event_type, 'sink': type(self.sink).__name__},
                exc_info=True
            )

        if not success and event_type in self.CRITICAL_EVENTS:
            self._alert(event)

        return event

    def _log(self, event: SecurityEvent) -> None:
        try:
            level = logging.INFO if event.success else logging.WARNING
            logger.log(
                level,
                f"Security event: {event.event_type}",
                extra={
                    'event_type': event.event_type,
                    'success': event.success,
                    'details': PIIMasker.mask_dict(event.details),
                    'user_id': event.user_id,
                    'organization_id': event.organization_id,
                    'timestamp': event.timestamp.isoformat(),
                }
            )
        except Exception:
            # A broken handler must not break the caller
            pass

    def _alert(self, event: SecurityEvent) -> None:
        if getattr(settings, 'DEBUG', False):
            return
        try:
            capture_message(
                f"Critical security event: {event.event_type}",
                level='error',
                security_event=PIIMasker.mask_dict(event.to_dict()),
            )
        except Exception as e:
            logger.error(f"Failed to alert on security event {event.event_type}: {e}")


def _as_str(value) -> Optional[str]:
    return str(value) if value is not None else None
