"""
Celery base task and the asynchronous security event writer.
"""
import logging

from celery import Task, shared_task
from django.utils.dateparse import parse_datetime

from apps.core.logging import PIIMasker
from apps.core.sentry_utils import add_breadcrumb, capture_exception, start_transaction

logger = logging.getLogger(__name__)


class LoggedTask(Task):
    """
    Base task class with logging and Sentry integration.

    Logs start, completion, failure and retries with masked arguments, and
    wraps each run in a Sentry transaction when Sentry is configured.
    """

    def __call__(self, *args, **kwargs):
        task_id = self.request.id
        task_name = self.name

        transaction = start_transaction(name=f"task.{task_name}", op="celery.task")

        logger.info(
            f"Task started: {task_name}",
            extra={
                'task_id': task_id,
                'task_name': task_name,
                'task_kwargs': self._sanitize_kwargs(kwargs),
            }
        )
        add_breadcrumb(
            category="task",
            message=f"Task started: {task_name}",
            data={'task_id': task_id},
        )

        try:
            result = super().__call__(*args, **kwargs)
        except Exception as exc:
            logger.error(
                f"Task failed: {task_name}",
                extra={
                    'task_id': task_id,
                    'task_name': task_name,
                    'exception': str(exc),
                },
                exc_info=True
            )
            capture_exception(exc, task={'task_id': task_id, 'task_name': task_name})
            if transaction:
                transaction.set_status("internal_error")
                transaction.finish()
            raise

        logger.info(
            f"Task completed: {task_name}",
            extra={'task_id': task_id, 'task_name': task_name}
        )
        if transaction:
            transaction.set_status("ok")
            transaction.finish()

        return result

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        logger.warning(
            f"Task retry: {self.name} (attempt {self.request.retries}/{self.max_retries})",
            extra={
                'task_id': task_id,
                'task_name': self.name,
                'exception': str(exc),
            }
        )
        add_breadcrumb(
            category="task",
            message=f"Task retry: {self.name}",
            level="warning",
            data={'task_id': task_id, 'exception': str(exc)},
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def _sanitize_kwargs(self, kwargs):
        if not kwargs:
            return {}
        return PIIMasker.mask_dict(kwargs)


@shared_task(
    base=LoggedTask,
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    ignore_result=True,
)
def record_security_event(self, event):
    """
    Persist a security event produced by CelerySecurityEventSink.

    Args:
        event: SecurityEvent.to_dict() payload
    """
    from apps.core.models import SecurityAuditLog

    occurred_at = parse_datetime(event['timestamp']) if event.get('timestamp') else None

    try:
        entry = SecurityAuditLog.objects.create(
            event_type=event['event_type'],
            event_details=event.get('details') or {},
            success=bool(event.get('success', True)),
            url=event.get('url') or '',
            user_agent=event.get('user_agent') or '',
            user_id=event.get('user_id') or '',
            organization_id=event.get('organization_id') or '',
            **({'occurred_at': occurred_at} if occurred_at else {}),
        )
    except Exception as exc:
        raise self.retry(exc=exc)

    return str(entry.id)
