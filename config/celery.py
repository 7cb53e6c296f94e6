"""
Celery configuration for PerfHub.
"""
import logging
import os

from celery import Celery
from celery.signals import task_failure

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('perfhub')

# Load configuration from Django settings with CELERY_ prefix
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks in all installed apps
app.autodiscover_tasks()

logger = logging.getLogger(__name__)


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, einfo=None, **extra):
    """Log task failures that escape the task's own handling."""
    logger.error(
        f"Task failed: {sender.name if sender else 'unknown'}",
        extra={
            'task_id': task_id,
            'exception': str(exception)[:500] if exception else None,
        },
        exc_info=einfo
    )


app.conf.timezone = 'UTC'
