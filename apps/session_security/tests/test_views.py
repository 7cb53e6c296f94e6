"""
API tests for login, session validation and refresh, and the session
security middleware.
"""
import time

import pytest

from apps.core.services import get_rate_limiter
from apps.session_security.sessions import JWTSessionProvider

LOGIN_URL = '/v1/auth/login'
VALIDATE_URL = '/v1/session/validate'
REFRESH_URL = '/v1/session/refresh'


@pytest.mark.django_db
class TestLogin:

    def test_success(self, api_client, employee_user, organization, security_sink):
        response = api_client.post(LOGIN_URL, {
            'email': 'Employee@Example.com',
            'password': 'testpass123',
        }, format='json')

        assert response.status_code == 200
        data = response.json()
        assert data['user']['id'] == str(employee_user.id)
        assert data['organization_id'] == str(organization.id)

        session = JWTSessionProvider(data['token']).get_session()
        assert session.user_id == str(employee_user.id)
        assert session.org_id == str(organization.id)

        events = security_sink.of_type('login_success')
        assert len(events) == 1
        assert events[0].user_id == str(employee_user.id)

    def test_wrong_password(self, api_client, employee_user, security_sink):
        response = api_client.post(LOGIN_URL, {
            'email': employee_user.email,
            'password': 'wrong',
        }, format='json')

        assert response.status_code == 401
        assert len(security_sink.of_type('login_failed')) == 1

    def test_unknown_email(self, api_client, db, security_sink):
        response = api_client.post(LOGIN_URL, {
            'email': 'nobody@example.com',
            'password': 'whatever',
        }, format='json')

        assert response.status_code == 401
        assert security_sink.of_type('login_failed')[0].success is False

    def test_invalid_payload(self, api_client, db):
        response = api_client.post(LOGIN_URL, {'email': 'not-an-email'}, format='json')

        assert response.status_code == 400

    def test_repeated_failures_are_rate_limited(self, api_client, employee_user, settings, security_sink):
        settings.LOGIN_MAX_ATTEMPTS = 3
        payload = {'email': employee_user.email, 'password': 'wrong'}

        for _ in range(3):
            assert api_client.post(LOGIN_URL, payload, format='json').status_code == 401

        response = api_client.post(LOGIN_URL, payload, format='json')

        assert response.status_code == 429
        assert response.json()['code'] == 'RATE_LIMITED'
        assert int(response['Retry-After']) > 0
        assert len(security_sink.of_type('login_rate_limited')) == 1
        assert get_rate_limiter().get_cooldown_remaining(employee_user.email) > 0

    def test_correct_password_is_also_blocked_while_limited(self, api_client, employee_user, settings):
        settings.LOGIN_MAX_ATTEMPTS = 2
        for _ in range(2):
            api_client.post(LOGIN_URL, {'email': employee_user.email, 'password': 'wrong'}, format='json')

        response = api_client.post(LOGIN_URL, {
            'email': employee_user.email,
            'password': 'testpass123',
        }, format='json')

        assert response.status_code == 429

    def test_success_resets_limit(self, api_client, employee_user, settings):
        settings.LOGIN_MAX_ATTEMPTS = 3
        wrong = {'email': employee_user.email, 'password': 'wrong'}
        right = {'email': employee_user.email, 'password': 'testpass123'}

        api_client.post(LOGIN_URL, wrong, format='json')
        assert api_client.post(LOGIN_URL, right, format='json').status_code == 200

        state = get_rate_limiter().get_state(f'login:{employee_user.email}')
        assert state.attempts == []
        assert state.backoff_level == 0


@pytest.mark.django_db
class TestSessionEndpoints:

    def test_validate(self, auth_client, employee_user, security_sink):
        response = auth_client(employee_user).post(VALIDATE_URL)

        assert response.status_code == 200
        assert response.json() == {'valid': True, 'issues': [], 'should_refresh': False}
        assert len(security_sink.of_type('session_validation_completed')) == 1

    def test_refresh_expiring_session(self, api_client, employee_user, settings):
        token = JWTSessionProvider.issue_token(employee_user.id, email=employee_user.email, lifetime_seconds=60)
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = api_client.post(REFRESH_URL)

        assert response.status_code == 200
        data = response.json()
        assert data['token'] != token
        assert data['expires_at'] > time.time() + 3000

    def test_refresh_expired_session_within_grace(self, api_client, employee_user):
        token = JWTSessionProvider.issue_token(
            employee_user.id, lifetime_seconds=60, now=time.time() - 120
        )
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = api_client.post(REFRESH_URL)

        assert response.status_code == 200
        assert response.json()['token'] != token

    def test_refresh_beyond_grace_is_rejected(self, api_client, employee_user, settings):
        settings.JWT_REFRESH_GRACE_HOURS = 1
        token = JWTSessionProvider.issue_token(
            employee_user.id, lifetime_seconds=60, now=time.time() - 3 * 3600
        )
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = api_client.post(REFRESH_URL)

        assert response.status_code == 401
        assert response.json()['code'] == 'SESSION_EXPIRED'

    def test_valid_session_refresh_returns_same_token(self, auth_client, employee_user):
        client = auth_client(employee_user)

        response = client.post(REFRESH_URL)

        assert response.status_code == 200
        assert response.json()['token'] == client.token


@pytest.mark.django_db
class TestSessionSecurityMiddleware:

    def test_fingerprint_mismatch_is_rejected(self, auth_client, employee_user, security_sink):
        client = auth_client(employee_user, HTTP_USER_AGENT='Mozilla/5.0 (Macintosh)')
        assert client.get('/v1/access/me').status_code == 200

        client.credentials(
            HTTP_AUTHORIZATION=f'Bearer {client.token}',
            HTTP_USER_AGENT='curl/8.0',
        )
        response = client.get('/v1/access/me')

        assert response.status_code == 401
        assert response.json()['code'] == 'SESSION_FINGERPRINT_MISMATCH'
        assert response.json()['reauthenticate'] is True
        assert len(security_sink.of_type('session_hijack_detected')) == 1

    def test_mismatch_blocks_refresh(self, auth_client, employee_user):
        client = auth_client(employee_user, HTTP_USER_AGENT='Mozilla/5.0 (Macintosh)')
        client.get('/v1/access/me')

        client.credentials(HTTP_AUTHORIZATION=f'Bearer {client.token}', HTTP_USER_AGENT='curl/8.0')

        assert client.post(REFRESH_URL).status_code == 401

    def test_expired_session_is_rejected(self, api_client, employee_user):
        token = JWTSessionProvider.issue_token(employee_user.id, lifetime_seconds=60, now=time.time() - 120)
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = api_client.get('/v1/access/me')

        assert response.status_code == 401
        assert response.json()['code'] == 'SESSION_EXPIRED'

    def test_expiring_session_gets_refresh_hint(self, api_client, employee_user):
        token = JWTSessionProvider.issue_token(employee_user.id, lifetime_seconds=60)
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = api_client.get('/v1/access/me')

        assert response.status_code == 200
        assert response['X-Session-Refresh'] == '1'

    def test_fresh_session_has_no_refresh_hint(self, auth_client, employee_user):
        response = auth_client(employee_user).get('/v1/access/me')

        assert 'X-Session-Refresh' not in response

    def test_public_paths_skip_session_checks(self, api_client, db):
        response = api_client.get('/v1/health/')

        assert response.status_code == 200
        assert 'X-Session-Refresh' not in response
