"""
Tests for log masking, sanitization and request-context filters.
"""
import json
import logging

from apps.core.log_sanitizer import SanitizingFilter, SanitizingFormatter
from apps.core.logging import JSONFormatter, PIIMasker
from apps.core.middleware import LoggingFilter, set_organization_id


def _record(msg, *args, **extra):
    record = logging.LogRecord('apps.test', logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestPIIMasker:

    def test_masks_email_local_part(self):
        assert PIIMasker.mask_email('contact jane@example.com') == 'contact j***@example.com'

    def test_sensitive_fields_are_redacted(self):
        masked = PIIMasker.mask_dict({
            'password': 'hunter2',
            'session_fingerprint': 'abc123',
            'role': 'manager',
        })

        assert masked == {'password': '********', 'session_fingerprint': '********', 'role': 'manager'}

    def test_nested_details_are_masked(self):
        masked = PIIMasker.mask_dict({'details': {'email': 'jane@example.com'}})

        assert masked['details']['email'] == 'j***@example.com'


class TestSanitizing:

    def test_bearer_token_is_redacted(self):
        text = SanitizingFormatter.sanitize('Authorization header Bearer abcdefghijklmnopqrstuvwxyz')

        assert 'abcdefghijklmnopqrstuvwxyz' not in text

    def test_fingerprint_is_redacted(self):
        text = SanitizingFormatter.sanitize('fingerprint=' + 'a' * 64)

        assert 'a' * 64 not in text

    def test_filter_sanitizes_args(self):
        record = _record('login with %s', 'password=hunter2')

        SanitizingFilter().filter(record)

        assert 'hunter2' not in record.getMessage()


class TestJSONFormatter:

    def test_includes_request_and_organization(self):
        record = _record('Guarded operation failed', request_id='req-1', organization_id='org-1')

        data = json.loads(JSONFormatter().format(record))

        assert data['message'] == 'Guarded operation failed'
        assert data['request_id'] == 'req-1'
        assert data['organization_id'] == 'org-1'


class TestLoggingFilter:

    def test_adds_thread_local_organization(self):
        set_organization_id('org-9')
        try:
            record = _record('x')
            LoggingFilter().filter(record)
            assert record.organization_id == 'org-9'
        finally:
            set_organization_id(None)
