"""
Tests for core API views.
"""
from unittest.mock import patch

import pytest


@pytest.mark.django_db
class TestHealthCheckView:

    def test_healthy(self, api_client):
        response = api_client.get('/v1/health/')

        assert response.status_code == 200
        assert response.data['status'] == 'healthy'
        assert response.data['database'] == 'healthy'
        assert response.data['kv_store'] == 'healthy'
        assert response['X-Request-ID']

    def test_request_id_is_echoed(self, api_client):
        response = api_client.get('/v1/health/', HTTP_X_REQUEST_ID='req-123')

        assert response['X-Request-ID'] == 'req-123'

    def test_unhealthy_kv_store_returns_503(self, api_client):
        with patch('apps.core.views.get_kv_store') as mock_store:
            mock_store.return_value.get.return_value = None
            response = api_client.get('/v1/health/')

        assert response.status_code == 503
        assert response.data['kv_store'] == 'unhealthy'
        assert response.data['errors']

    def test_plain_http_is_served_without_redirect(self, api_client):
        """Tests run over plain HTTP regardless of DEBUG."""
        from django.conf import settings

        response = api_client.get('/v1/health/', secure=False)

        assert settings.SECURE_SSL_REDIRECT is False
        assert response.status_code == 200
