"""
Sentry utilities for adding context and breadcrumbs.

All helpers are no-ops when SENTRY_DSN is not configured.
"""
import sentry_sdk
from django.conf import settings


def _enabled():
    return bool(getattr(settings, 'SENTRY_DSN', None))


def set_principal_context(principal):
    """
    Set principal context in Sentry for error tracking.
    Only identifiers are attached, never PII.

    Args:
        principal: apps.rbac.principal.Principal instance
    """
    if not _enabled():
        return

    sentry_sdk.set_user({"id": str(principal.identity_id)})
    if principal.organization_id:
        sentry_sdk.set_tag("organization_id", str(principal.organization_id))
    if principal.override:
        sentry_sdk.set_tag("role_override", principal.override.mode.value)


def add_breadcrumb(category, message, level="info", data=None):
    """
    Add a breadcrumb to Sentry for debugging.

    Args:
        category: Category of the breadcrumb (e.g., "session", "role_assignment")
        message: Human-readable message
        level: Severity level (debug, info, warning, error)
        data: Optional dictionary of additional data
    """
    if not _enabled():
        return

    sentry_sdk.add_breadcrumb(
        category=category,
        message=message,
        level=level,
        data=data or {}
    )


def capture_exception(exception, **kwargs):
    """
    Capture an exception in Sentry with optional context.

    Args:
        exception: The exception to capture
        **kwargs: Additional context to attach
    """
    if not _enabled():
        return

    with sentry_sdk.push_scope() as scope:
        for key, value in kwargs.items():
            scope.set_context(key, value)
        sentry_sdk.capture_exception(exception)


def capture_message(message, level="info", **kwargs):
    """
    Capture a message in Sentry with optional context.

    Args:
        message: The message to capture
        level: Severity level (debug, info, warning, error, fatal)
        **kwargs: Additional context to attach
    """
    if not _enabled():
        return

    with sentry_sdk.push_scope() as scope:
        for key, value in kwargs.items():
            scope.set_context(key, value)
        sentry_sdk.capture_message(message, level=level)


def start_transaction(name, op):
    """
    Start a Sentry transaction for performance monitoring.

    Returns:
        Transaction object or None if Sentry is not configured
    """
    if not _enabled():
        return None

    return sentry_sdk.start_transaction(name=name, op=op)
