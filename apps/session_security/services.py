"""
Session validation and refresh.

SessionSecurityService checks a session for expiry, fingerprint drift and
organization-context resolvability, and refreshes it when validation says
a refresh would help. Fingerprint mismatch is terminal: it is never
reported as refreshable.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from django.conf import settings

from apps.core.exceptions import SessionExpired, SessionFingerprintMismatch
from apps.session_security.fingerprint import generate_fingerprint

logger = logging.getLogger(__name__)

ISSUE_NO_SESSION = 'No active session'
ISSUE_EXPIRED = 'Session expired'
ISSUE_EXPIRING = 'Session expiring soon'
ISSUE_FINGERPRINT = 'Session fingerprint mismatch - possible hijacking'
ISSUE_FINGERPRINT_CHECK = 'Session fingerprint check failed'
ISSUE_ORG_CONTEXT = 'Organization context validation failed'
ISSUE_VALIDATION_ERROR = 'Session validation error'


@dataclass
class SessionValidationResult:
    valid: bool
    issues: List[str] = field(default_factory=list)
    should_refresh: bool = False
    fingerprint_mismatch: bool = False
    expired: bool = False

    def to_dict(self) -> dict:
        return {
            'valid': self.valid,
            'issues': list(self.issues),
            'should_refresh': self.should_refresh,
        }


class SessionSecurityService:
    """
    Validates and refreshes the session of one principal.

    Args:
        provider: SessionProvider
        fingerprint_source: FingerprintSource for the current client
        fingerprints: SessionFingerprint baseline store
        organization_context: OrganizationContext, or None to skip that check
        event_log: SecurityEventLog
        clock: Callable returning epoch seconds
        refresh_lead_seconds: Refresh when the session expires within this window
    """

    def __init__(
        self,
        provider,
        fingerprint_source,
        fingerprints,
        organization_context,
        event_log,
        clock: Callable[[], float] = time.time,
        refresh_lead_seconds: Optional[int] = None,
    ):
        self.provider = provider
        self.fingerprint_source = fingerprint_source
        self.fingerprints = fingerprints
        self.organization_context = organization_context
        self.event_log = event_log
        self.clock = clock
        self.refresh_lead_seconds = (
            refresh_lead_seconds if refresh_lead_seconds is not None
            else getattr(settings, 'SESSION_REFRESH_LEAD_SECONDS', 300)
        )

    def validate(self, record_completion: bool = True) -> SessionValidationResult:
        """
        Validate the current session.

        Args:
            record_completion: Record a session_validation_completed event.
                Per-request checks turn this off; periodic checks keep it.
        """
        try:
            session = self.provider.get_session()
        except Exception as e:
            logger.error(f"Session lookup failed during validation: {e}", exc_info=True)
            return SessionValidationResult(
                valid=False, issues=[ISSUE_VALIDATION_ERROR], should_refresh=True
            )

        if session is None:
            return SessionValidationResult(valid=False, issues=[ISSUE_NO_SESSION], expired=True)

        issues = []
        should_refresh = False
        expired = False

        now = self.clock()
        if session.is_expired(now):
            issues.append(ISSUE_EXPIRED)
            should_refresh = True
            expired = True
        elif session.expires_in(now) < self.refresh_lead_seconds:
            issues.append(ISSUE_EXPIRING)
            should_refresh = True

        session_key = session.session_id or session.user_id
        context = {'user_id': session.user_id, 'organization_id': session.org_id}

        try:
            fingerprint = generate_fingerprint(self.fingerprint_source)
            check = self.fingerprints.observe(session_key, fingerprint)
        except Exception as e:
            logger.error(f"Fingerprint check failed: {e}", exc_info=True)
            issues.append(ISSUE_FINGERPRINT_CHECK)
        else:
            if check.first_observation:
                self.event_log.record(
                    'session_fingerprint_created',
                    {'session_id': session_key},
                    success=True,
                    **context
                )
            elif not check.matches:
                self.event_log.record(
                    'session_hijack_detected',
                    {
                        'session_id': session_key,
                        'reason': 'fingerprint_mismatch',
                    },
                    success=False,
                    **context
                )
                return SessionValidationResult(
                    valid=False,
                    issues=[ISSUE_FINGERPRINT],
                    should_refresh=False,
                    fingerprint_mismatch=True,
                    expired=expired,
                )

        if self.organization_context is not None:
            try:
                organization_id = self.organization_context.get_current_organization_id()
            except Exception as e:
                issues.append(ISSUE_ORG_CONTEXT)
                self.event_log.record(
                    'org_context_validation_failed',
                    {'error': str(e)},
                    success=False,
                    **context
                )
            else:
                if organization_id is None:
                    # Allowed while onboarding
                    self.event_log.record(
                        'user_without_org_context',
                        {'session_id': session_key},
                        success=True,
                        **context
                    )

        result = SessionValidationResult(
            valid=not issues,
            issues=issues,
            should_refresh=should_refresh,
            expired=expired,
        )

        if record_completion:
            self.event_log.record(
                'session_validation_completed',
                result.to_dict(),
                success=result.valid,
                **context
            )
        return result

    def require_valid(self) -> SessionValidationResult:
        """
        validate(), raising for terminal outcomes.

        Raises:
            SessionFingerprintMismatch: fingerprint drifted
            SessionExpired: no session, or expired
        """
        result = self.validate(record_completion=False)
        if result.fingerprint_mismatch:
            raise SessionFingerprintMismatch()
        if result.expired:
            raise SessionExpired()
        return result

    def auto_refresh(self) -> bool:
        """
        Refresh the session when validation asks for it.

        Returns:
            True when the session is valid or was refreshed, False otherwise.
            Refresh failures are logged, never retried here.
        """
        result = self.validate()
        if result.valid:
            return True
        if not result.should_refresh:
            return False

        try:
            session = self.provider.refresh_session()
        except Exception as e:
            logger.warning(f"Session refresh failed: {e}")
            self.event_log.record(
                'session_refresh_failed',
                {'error': str(e), 'issues': result.issues},
                success=False,
            )
            return False

        self.event_log.record(
            'session_refreshed',
            {'expires_at': session.expires_at},
            success=True,
            user_id=session.user_id,
            organization_id=session.org_id,
        )
        return True


def service_for_request(request) -> SessionSecurityService:
    """Build a SessionSecurityService from the context attached by OrganizationContextMiddleware."""
    from apps.core.security_logger import request_context
    from apps.core.services import get_kv_store, get_security_event_log
    from apps.session_security.fingerprint import RequestFingerprintSource, SessionFingerprint

    principal = getattr(request, 'principal', None)
    event_log = get_security_event_log().bind(
        user_id=principal.identity_id if principal else None,
        organization_id=principal.organization_id if principal else None,
        **request_context(request)
    )
    return SessionSecurityService(
        provider=request.session_provider,
        fingerprint_source=RequestFingerprintSource(request),
        fingerprints=SessionFingerprint(get_kv_store()),
        organization_context=request.organization_context,
        event_log=event_log,
    )
