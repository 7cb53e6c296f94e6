"""
Tests for SessionSecurityService.
"""
import pytest

from apps.core.exceptions import FetchError, SessionExpired, SessionFingerprintMismatch
from apps.core.storage import InMemoryKeyValueStore
from apps.session_security.fingerprint import SessionFingerprint, StaticFingerprintSource
from apps.session_security.services import (
    ISSUE_EXPIRED,
    ISSUE_EXPIRING,
    ISSUE_FINGERPRINT,
    ISSUE_NO_SESSION,
    ISSUE_ORG_CONTEXT,
    SessionSecurityService,
)

LAPTOP = {'user_agent': 'Mozilla/5.0', 'platform': 'macOS'}
OTHER_DEVICE = {'user_agent': 'curl/8.0', 'platform': 'Linux'}


@pytest.fixture
def fingerprints():
    return SessionFingerprint(InMemoryKeyValueStore())


@pytest.fixture
def make_service(session_provider, organization_context, event_log, fingerprints):
    def make(provider=None, signals=LAPTOP, context=organization_context):
        return SessionSecurityService(
            provider=provider or session_provider,
            fingerprint_source=StaticFingerprintSource(signals),
            fingerprints=fingerprints,
            organization_context=context,
            event_log=event_log,
            refresh_lead_seconds=300,
        )
    return make


class TestValidate:

    def test_first_validation_creates_baseline(self, make_service, security_sink):
        result = make_service().validate()

        assert result.valid is True
        assert result.issues == []
        assert result.should_refresh is False
        assert len(security_sink.of_type('session_fingerprint_created')) == 1
        completed = security_sink.of_type('session_validation_completed')
        assert completed[0].details == {'valid': True, 'issues': [], 'should_refresh': False}

    def test_same_device_stays_valid(self, make_service, security_sink):
        make_service().validate()

        assert make_service().validate().valid is True
        assert len(security_sink.of_type('session_fingerprint_created')) == 1

    def test_fingerprint_mismatch_is_terminal(self, make_service, security_sink):
        make_service(signals=LAPTOP).validate()

        result = make_service(signals=OTHER_DEVICE).validate()

        assert result.valid is False
        assert result.issues == [ISSUE_FINGERPRINT]
        assert result.should_refresh is False
        assert result.fingerprint_mismatch is True

        events = security_sink.of_type('session_hijack_detected')
        assert len(events) == 1
        assert events[0].success is False
        assert events[0].details == {'session_id': 'sess-1', 'reason': 'fingerprint_mismatch'}

    def test_mismatch_on_expired_session_is_not_refreshable(self, make_service, make_session, make_session_provider):
        provider = make_session_provider(make_session(expires_in=-10))
        make_service(provider=provider, signals=LAPTOP).validate()

        result = make_service(provider=provider, signals=OTHER_DEVICE).validate()

        assert result.fingerprint_mismatch is True
        assert result.should_refresh is False

    def test_expiring_soon(self, make_service, make_session, make_session_provider):
        provider = make_session_provider(make_session(expires_in=120))

        result = make_service(provider=provider).validate()

        assert result.valid is False
        assert result.issues == [ISSUE_EXPIRING]
        assert result.should_refresh is True
        assert result.expired is False

    def test_expired(self, make_service, make_session, make_session_provider):
        provider = make_session_provider(make_session(expires_in=-1))

        result = make_service(provider=provider).validate()

        assert result.issues == [ISSUE_EXPIRED]
        assert result.should_refresh is True
        assert result.expired is True

    def test_no_session(self, make_service, make_session_provider):
        result = make_service(provider=make_session_provider(None)).validate()

        assert result.valid is False
        assert result.issues == [ISSUE_NO_SESSION]

    def test_provider_failure_asks_for_refresh(self, make_service, make_session_provider):
        result = make_service(provider=make_session_provider(error=RuntimeError('down'))).validate()

        assert result.valid is False
        assert result.should_refresh is True

    def test_organization_lookup_failure(self, make_service, make_organization_context, security_sink):
        result = make_service(context=make_organization_context(error=FetchError('db down'))).validate()

        assert result.valid is False
        assert ISSUE_ORG_CONTEXT in result.issues
        assert len(security_sink.of_type('org_context_validation_failed')) == 1

    def test_user_without_organization_is_valid(self, make_service, make_organization_context, security_sink):
        result = make_service(context=make_organization_context(None)).validate()

        assert result.valid is True
        assert len(security_sink.of_type('user_without_org_context')) == 1

    def test_record_completion_can_be_disabled(self, make_service, security_sink):
        make_service().validate(record_completion=False)

        assert security_sink.of_type('session_validation_completed') == []


class TestRequireValid:

    def test_valid(self, make_service):
        assert make_service().require_valid().valid is True

    def test_mismatch_raises(self, make_service):
        make_service(signals=LAPTOP).validate()

        with pytest.raises(SessionFingerprintMismatch):
            make_service(signals=OTHER_DEVICE).require_valid()

    def test_expired_raises(self, make_service, make_session, make_session_provider):
        with pytest.raises(SessionExpired):
            make_service(provider=make_session_provider(make_session(expires_in=-1))).require_valid()


class TestAutoRefresh:

    def test_valid_session_is_not_refreshed(self, make_service, session_provider):
        assert make_service().auto_refresh() is True
        assert session_provider.refresh_calls == 0

    def test_expiring_session_is_refreshed(self, make_service, make_session, make_session_provider, security_sink):
        provider = make_session_provider(
            make_session(expires_in=60),
            refreshed=make_session(expires_in=3600),
        )

        assert make_service(provider=provider).auto_refresh() is True
        assert provider.refresh_calls == 1
        assert len(security_sink.of_type('session_refreshed')) == 1

    def test_refresh_failure(self, make_service, make_session, make_session_provider, security_sink):
        provider = make_session_provider(
            make_session(expires_in=-1),
            refresh_error=SessionExpired('Session expired beyond the refresh window'),
        )

        assert make_service(provider=provider).auto_refresh() is False
        events = security_sink.of_type('session_refresh_failed')
        assert len(events) == 1
        assert events[0].success is False

    def test_mismatch_is_never_refreshed(self, make_service, session_provider):
        make_service(signals=LAPTOP).validate()

        assert make_service(signals=OTHER_DEVICE).auto_refresh() is False
        assert session_provider.refresh_calls == 0
