from django.apps import AppConfig
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.signals import setting_changed
import logging
import sys

logger = logging.getLogger(__name__)

# Settings that the process-wide services are built from
SERVICE_SETTINGS = {
    'CACHES',
    'KV_STORE_CACHE_ALIAS',
    'SECURITY_EVENT_SINK',
    'RATE_LIMIT_ENABLED',
    'RATE_LIMIT_BASE_WAIT_MS',
    'PERMISSION_CACHE_TTL_SECONDS',
}


def _reset_services_on_change(setting, **kwargs):
    if setting in SERVICE_SETTINGS:
        from apps.core.services import reset_services
        reset_services()


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'

    def ready(self):
        """
        Perform startup validation checks when Django initializes.

        This ensures critical security configurations are properly set
        before the application starts accepting requests.
        """
        setting_changed.connect(_reset_services_on_change, dispatch_uid='core_reset_services')

        # Only validate for serving processes; migrations, shell and tests
        # run without full config
        serving = 'runserver' in sys.argv or any(
            server in sys.argv[0] for server in ('gunicorn', 'uvicorn', 'celery')
        )
        if not serving:
            return

        self._validate_jwt_configuration()
        self._validate_service_configuration()
        self._validate_security_settings()

        logger.info("✓ All startup security validations passed")

    def _validate_jwt_configuration(self):
        """Validate JWT secret key configuration."""
        jwt_secret = getattr(settings, 'JWT_SECRET_KEY', None)
        secret_key = getattr(settings, 'SECRET_KEY', None)

        if not jwt_secret:
            raise ImproperlyConfigured(
                "JWT_SECRET_KEY must be set in environment variables. "
                "Generate a strong key with: "
                "python -c \"import secrets; print(secrets.token_urlsafe(32))\""
            )

        if len(jwt_secret) < 32:
            raise ImproperlyConfigured(
                f"JWT_SECRET_KEY must be at least 32 characters long for security. "
                f"Current length: {len(jwt_secret)}."
            )

        if jwt_secret == secret_key:
            raise ImproperlyConfigured(
                "JWT_SECRET_KEY must be different from SECRET_KEY for security."
            )

        unique_chars = len(set(jwt_secret))
        if unique_chars < 16:
            raise ImproperlyConfigured(
                f"JWT_SECRET_KEY has insufficient entropy. "
                f"Found only {unique_chars} unique characters, need at least 16."
            )

        algorithm = getattr(settings, 'JWT_ALGORITHM', 'HS256')
        if algorithm not in ('HS256', 'HS384', 'HS512'):
            raise ImproperlyConfigured(
                f"JWT_ALGORITHM must be an HMAC algorithm, got '{algorithm}'."
            )

        logger.info("✓ JWT configuration validated")

    def _validate_service_configuration(self):
        """Validate security event sink, rate limit and session settings."""
        from apps.core.security_logger import SINKS

        sink = getattr(settings, 'SECURITY_EVENT_SINK', 'database')
        if sink not in SINKS:
            raise ImproperlyConfigured(
                f"SECURITY_EVENT_SINK must be one of {sorted(SINKS)}, got '{sink}'."
            )
        if sink == 'memory':
            logger.warning("⚠ SECURITY_EVENT_SINK is 'memory'. Security events will not be persisted.")

        if getattr(settings, 'RATE_LIMIT_BASE_WAIT_MS', 60000) <= 0:
            raise ImproperlyConfigured("RATE_LIMIT_BASE_WAIT_MS must be positive.")

        if not getattr(settings, 'RATE_LIMIT_ENABLED', True):
            logger.warning("⚠ RATE_LIMIT_ENABLED is False. Sensitive operations are not rate limited.")

        if getattr(settings, 'DEMO_MODE_ENABLED', False) and not getattr(settings, 'DEBUG', False):
            logger.warning("⚠ DEMO_MODE_ENABLED in a non-debug deployment. X-Demo-Role overrides are honored.")

        logger.info("✓ Service configuration validated")

    def _validate_security_settings(self):
        """Validate general security settings."""
        debug = getattr(settings, 'DEBUG', False)
        secret_key = getattr(settings, 'SECRET_KEY', None)

        if not secret_key:
            raise ImproperlyConfigured(
                "SECRET_KEY must be set in environment variables. "
                "Generate with: "
                "python -c \"import secrets; print(secrets.token_urlsafe(50))\""
            )

        if len(secret_key) < 50:
            logger.warning(
                f"⚠ SECRET_KEY is shorter than recommended (current: {len(secret_key)}, recommended: 50+)."
            )

        if not debug:
            weak_patterns = [
                'your-secret-key',
                'change-me',
                'insecure',
                '12345',
                'password',
            ]

            secret_lower = secret_key.lower()
            for pattern in weak_patterns:
                if pattern in secret_lower:
                    raise ImproperlyConfigured(
                        f"SECRET_KEY appears to be a default or weak value (contains '{pattern}')."
                    )

            if getattr(settings, 'JWT_SECRET_KEY', None) == getattr(settings, 'DEV_JWT_SECRET_KEY', None):
                raise ImproperlyConfigured(
                    "JWT_SECRET_KEY is the development default. Set JWT_SECRET_KEY in the environment."
                )

            if not getattr(settings, 'SECURE_SSL_REDIRECT', False):
                logger.warning(
                    "⚠ SECURE_SSL_REDIRECT is not enabled in production. "
                    "HTTPS should be enforced for security."
                )

        logger.info("✓ Security settings validated")
