"""
Tenant isolation guard.

Wraps state-changing (and optionally read) operations so that each one:
1. runs only inside a live, non-expired session
2. runs only for a principal bound to an organization, unless the caller
   explicitly allows onboarding flows
3. re-validates organization isolation (exactly one organization, or a
   pending invitation while onboarding)
4. records exactly one security event describing the outcome

Backend errors are classified against the tenancy taxonomy for logging and
then re-raised unchanged.
"""
import logging
import time
from functools import wraps
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

from apps.core.exceptions import (
    CrossOrgAccessDenied,
    FetchError,
    NoOrganizationContext,
    SessionExpired,
    classify_backend_error,
)
from apps.core.sentry_utils import add_breadcrumb

logger = logging.getLogger(__name__)

T = TypeVar('T')


class TenantIsolationGuard:
    """
    Per-principal guard around data operations.

    Args:
        session_provider: SessionProvider for the current principal
        organization_context: OrganizationContext for the current principal
        event_log: SecurityEventLog, usually bound to the request context
        rate_limiter: Optional RateLimiter for per-operation limits
        clock: Callable returning epoch seconds
    """

    # Default limit applied by write(): 60 operations per minute
    WRITE_RATE_LIMIT: Tuple[int, int] = (60, 60 * 1000)

    def __init__(
        self,
        session_provider,
        organization_context,
        event_log,
        rate_limiter=None,
        clock: Callable[[], float] = time.time,
    ):
        self.session_provider = session_provider
        self.organization_context = organization_context
        self.event_log = event_log
        self.rate_limiter = rate_limiter
        self.clock = clock

    def _require_session(self, operation_name):
        try:
            session = self.session_provider.get_session()
        except Exception as e:
            raise SessionExpired(f"Session lookup failed for {operation_name}") from e

        if session is None:
            raise SessionExpired(f"No authenticated session for {operation_name}")
        if session.is_expired(self.clock()):
            raise SessionExpired(f"Session expired before {operation_name}")
        return session

    def _current_organization_id(self, operation_name) -> Optional[str]:
        try:
            return self.organization_context.get_current_organization_id()
        except FetchError as e:
            raise NoOrganizationContext(
                f"Failed to validate organization context for {operation_name}"
            ) from e

    def _isolation_valid(self, organization_id) -> Tuple[bool, bool]:
        """Returns (valid, via_pending_invitation)."""
        if organization_id is not None:
            return self.organization_context.count_memberships() == 1, False
        pending = self.organization_context.has_pending_invitation()
        return pending, pending

    def run(
        self,
        operation_name: str,
        fn: Callable[[], T],
        *,
        allow_during_onboarding: bool = False,
        require_organization: bool = True,
        rate_limit: Optional[Tuple[int, int]] = None,
        event_type: str = 'multi_tenant_operation',
        event_details: Optional[dict] = None,
    ) -> T:
        """
        Execute fn under tenant isolation checks.

        Args:
            operation_name: Name recorded with the security event
            fn: Zero-argument callable performing the operation
            allow_during_onboarding: Permit principals without an organization
            require_organization: Enforce organization binding and isolation
            rate_limit: Optional (max_attempts, window_ms) for this operation
            event_type: Prefix of the outcome event ('<prefix>_success' or '<prefix>_error')
            event_details: Extra details recorded with the outcome event

        Returns:
            Whatever fn returns

        Raises:
            SessionExpired, NoOrganizationContext, RateLimited, or the
            original error raised by fn
        """
        details = {'operation': operation_name, **(event_details or {})}
        user_id = None
        organization_id = None

        try:
            session = self._require_session(operation_name)
            user_id = session.user_id

            if require_organization:
                organization_id = self._current_organization_id(operation_name)
                if organization_id is None and not allow_during_onboarding:
                    raise NoOrganizationContext(
                        f"User not associated with any organization for {operation_name}"
                    )

                try:
                    valid, via_invitation = self._isolation_valid(organization_id)
                except FetchError as e:
                    raise NoOrganizationContext(
                        f"Organization isolation check failed for {operation_name}"
                    ) from e

                if via_invitation:
                    details['pending_invitation'] = True
                if not valid and not allow_during_onboarding:
                    raise NoOrganizationContext(
                        f"Organization isolation validation failed for {operation_name}"
                    )

            if rate_limit and self.rate_limiter is not None:
                max_attempts, window_ms = rate_limit
                self.rate_limiter.check(
                    f"op:{operation_name}:{user_id}",
                    max_attempts=max_attempts,
                    window_ms=window_ms,
                )

            add_breadcrumb(
                category="tenant_guard",
                message=f"Guarded operation: {operation_name}",
                data={'organization_id': organization_id},
            )
            result = fn()

        except Exception as exc:
            info = classify_backend_error(exc)
            logger.warning(
                f"Guarded operation failed: {operation_name} ({info.code})",
                extra={
                    'operation': operation_name,
                    'error_code': info.code,
                    'user_id': user_id,
                    'organization_id': organization_id,
                }
            )
            self.event_log.record(
                f"{event_type}_error",
                {
                    **details,
                    'error_code': info.code,
                    'error': info.message,
                    'exception': type(exc).__name__,
                },
                success=False,
                user_id=user_id,
                organization_id=organization_id,
            )
            raise

        self.event_log.record(
            f"{event_type}_success",
            details,
            success=True,
            user_id=user_id,
            organization_id=organization_id,
        )
        return result

    def write(self, operation_name: str, fn: Callable[[], T], **options) -> T:
        """run() with the default write rate limit."""
        options.setdefault('rate_limit', self.WRITE_RATE_LIMIT)
        return self.run(operation_name, fn, **options)

    def read(self, operation_name: str, fn: Callable[[], T], **options) -> T:
        return self.run(operation_name, fn, **options)

    def batch(self, operation_name: str, operations: Iterable[Callable[[], object]], **options) -> List[object]:
        """Run several related writes as one guarded operation."""
        operations = list(operations)
        return self.write(
            f"batch_{operation_name}",
            lambda: [operation() for operation in operations],
            **options
        )

    def wrap(self, operation_name: str, **options):
        """
        Decorator form of run().

        Usage:
            @guard.wrap('update_goal')
            def update_goal(goal_id, data):
                ...
        """
        def decorator(fn):
            @wraps(fn)
            def wrapper(*args, **kwargs):
                return self.run(operation_name, lambda: fn(*args, **kwargs), **options)
            return wrapper
        return decorator

    def detect_cross_org_access(self, target_org_id, operation: str) -> None:
        """
        Block access to another organization's data.

        A principal without an organization never matches a target.

        Raises:
            CrossOrgAccessDenied: target_org_id differs from the bound organization
            NoOrganizationContext: the bound organization could not be determined
        """
        organization_id = self._current_organization_id(operation)
        if organization_id is not None and str(organization_id) == str(target_org_id):
            return

        session = None
        try:
            session = self.session_provider.get_session()
        except Exception as e:
            logger.warning(f"Session lookup failed during cross-org check: {e}")
        user_id = session.user_id if session else None

        details = {
            'operation': operation,
            'user_org_id': organization_id,
            'target_org_id': str(target_org_id),
        }
        self.event_log.record(
            'cross_org_access_attempt',
            details,
            success=False,
            user_id=user_id,
            organization_id=organization_id,
        )

        try:
            self.organization_context.record_cross_org_attempt(
                target_org_id, operation, {'operation': operation}
            )
        except Exception as e:
            logger.error(
                f"Failed to write cross-org access audit record: {e}",
                extra={'operation': operation, 'user_id': user_id},
                exc_info=True
            )

        raise CrossOrgAccessDenied(
            f"Cross-organization access denied for {operation}",
            details=details,
        )

    def run_for_organization(self, target_org_id, operation_name: str, fn: Callable[[], T], **options) -> T:
        """detect_cross_org_access() then run(). fn never runs on mismatch."""
        self.detect_cross_org_access(target_org_id, operation_name)
        return self.run(operation_name, fn, **options)


def guard_for_request(request) -> TenantIsolationGuard:
    """Build a guard from the context attached by OrganizationContextMiddleware."""
    from apps.core.security_logger import request_context
    from apps.core.services import get_rate_limiter, get_security_event_log

    principal = getattr(request, 'principal', None)
    event_log = get_security_event_log().bind(
        user_id=principal.identity_id if principal else None,
        organization_id=principal.organization_id if principal else None,
        **request_context(request)
    )
    return TenantIsolationGuard(
        session_provider=request.session_provider,
        organization_context=request.organization_context,
        event_log=event_log,
        rate_limiter=get_rate_limiter(),
    )
