"""
Django settings for the PerfHub performance-management API.
"""
import os
from pathlib import Path
import environ
import sentry_sdk
from sentry_sdk.integrations.django import DjangoIntegration
from sentry_sdk.integrations.celery import CeleryIntegration
from kombu import Queue, Exchange

# Build paths inside the project
BASE_DIR = Path(__file__).resolve().parent.parent

# Initialize environment variables
env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, ['localhost', '127.0.0.1', 'testserver']),
    DB_CONN_MAX_AGE=(int, 600),
    RATE_LIMIT_ENABLED=(bool, True),
    JSON_LOGS=(bool, False),
    LOG_LEVEL=(str, 'INFO'),
    DEMO_MODE_ENABLED=(bool, False),
)

# Read .env file if it exists
environ.Env.read_env(os.path.join(BASE_DIR, '.env'))

# Development-only fallbacks; startup validation rejects them when serving without DEBUG
DEV_SECRET_KEY = 'django-insecure-perfhub-development-key-do-not-use-in-production'
DEV_JWT_SECRET_KEY = 'dev-jwt-Kq8vZ2mW5xR9tY3nB7cL1pF6hJ4sD0gA'

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = env('SECRET_KEY', default=DEV_SECRET_KEY)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = env('DEBUG')

ALLOWED_HOSTS = env('ALLOWED_HOSTS')

USE_X_FORWARDED_HOST = True
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

# Application definition
INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',

    # Third-party apps
    'rest_framework',
    'drf_spectacular',
    'django_ratelimit',

    # PerfHub apps
    'apps.core',
    'apps.tenants',
    'apps.rbac',
    'apps.session_security',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',

    # Custom middleware
    'apps.core.middleware.RequestIDMiddleware',
    'apps.tenants.middleware.OrganizationContextMiddleware',
    'apps.session_security.middleware.SessionSecurityMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
            ],
        },
    },
]

# Database
DATABASES = {
    'default': env.db('DATABASE_URL', default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
}
DATABASES['default']['CONN_MAX_AGE'] = env('DB_CONN_MAX_AGE')

# Configure based on database engine
if 'postgresql' in DATABASES['default']['ENGINE']:
    DATABASES['default']['OPTIONS'] = {
        'connect_timeout': 10,
    }

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
        'OPTIONS': {'min_length': 12},
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Custom User Model
AUTH_USER_MODEL = 'rbac.User'

# REST Framework
REST_FRAMEWORK = {
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
    ],
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'apps.core.authentication.MiddlewareAuthentication',  # Use user from OrganizationContextMiddleware
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
        'apps.core.permissions.HasPermissions',
    ],
    'UNAUTHENTICATED_USER': 'django.contrib.auth.models.AnonymousUser',
    'EXCEPTION_HANDLER': 'apps.core.exceptions.custom_exception_handler',
}

# DRF Spectacular (OpenAPI)
SPECTACULAR_SETTINGS = {
    'TITLE': 'PerfHub Access Control API',
    'DESCRIPTION': '''
Access control and tenant isolation for the PerfHub performance-management platform.

## Authentication

All API requests require a session token:
- `Authorization: Bearer <token>` - obtained from `/v1/auth/login`

Browser clients also send the fingerprint probes used for session hijack
detection: `X-Client-Screen`, `X-Client-Timezone`, `X-Client-Canvas`,
`X-Client-Webgl`.

## Roles

Roles form a fixed hierarchy: `admin > director > manager > supervisor > employee`.
Roles are suppressed until the member completes onboarding.

Granting a role requires an actor level at least as high as the role granted
(admins may grant anything; no one below manager may grant roles) and a
justification. `admin` and `director` additionally require `confirmed: true`.

## Rate Limiting

| Endpoint | Limit | Key |
|----------|-------|-----|
| `POST /v1/auth/login` | 5 attempts / 15 min with exponential backoff, 20/min per IP | Email, IP |
| `POST /v1/access/roles/assign` | 20 / 10 min | User |
| Guarded writes | 60 / min per operation | User |

Rate-limited responses return `429` with a `Retry-After` header.
    ''',
    'VERSION': '1.0.0',
    'SERVE_INCLUDE_SCHEMA': False,
    'COMPONENT_SPLIT_REQUEST': True,
    'SCHEMA_PATH_PREFIX': r'/v1/',
    'SECURITY': [
        {
            'JWTAuth': []
        }
    ],
    'APPEND_COMPONENTS': {
        'securitySchemes': {
            'JWTAuth': {
                'type': 'http',
                'scheme': 'bearer',
                'bearerFormat': 'JWT',
                'description': 'Session token obtained from /v1/auth/login. Include as: Authorization: Bearer <token>.',
            }
        }
    },
    'TAGS': [
        {'name': 'Authentication', 'description': 'Password login'},
        {'name': 'Session', 'description': 'Session validation and refresh'},
        {'name': 'Access Control', 'description': 'Effective roles, permissions and route access'},
        {'name': 'Role Assignment', 'description': 'Single and bulk role grants'},
        {'name': 'Health', 'description': 'Liveness'},
    ],
}

# ============================================================================
# SECURITY SETTINGS
# ============================================================================

if not DEBUG:
    SECURE_SSL_REDIRECT = env.bool('SECURE_SSL_REDIRECT', default=True)
    SECURE_HSTS_SECONDS = 31536000  # 1 year
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True
else:
    SECURE_SSL_REDIRECT = False
    SECURE_HSTS_SECONDS = 0

SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = 'DENY'

# Cache: Redis in deployments, process-local otherwise
REDIS_URL = env('REDIS_URL', default=None)
if REDIS_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django_redis.cache.RedisCache',
            'LOCATION': REDIS_URL,
            'OPTIONS': {
                'CLIENT_CLASS': 'django_redis.client.DefaultClient',
                'SOCKET_CONNECT_TIMEOUT': 5,
                'SOCKET_TIMEOUT': 5,
                'CONNECTION_POOL_KWARGS': {
                    'max_connections': 50,
                    'retry_on_timeout': True,
                },
            },
            'KEY_PREFIX': 'perfhub',
            'TIMEOUT': 300,
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'perfhub',
        }
    }
    # django-ratelimit requires a shared cache in production
    SILENCED_SYSTEM_CHECKS = ['django_ratelimit.E003', 'django_ratelimit.W001']

# Durable key-value store (rate-limit state, cooldowns, fingerprint baselines)
KV_STORE_CACHE_ALIAS = env('KV_STORE_CACHE_ALIAS', default='default')

# Celery Configuration
CELERY_BROKER_URL = env('CELERY_BROKER_URL', default=REDIS_URL or 'memory://')
CELERY_RESULT_BACKEND = env('CELERY_RESULT_BACKEND', default=None)

CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'

CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 5 * 60
CELERY_TASK_SOFT_TIME_LIMIT = 4 * 60

CELERY_TASK_DEFAULT_QUEUE = 'default'
CELERY_TASK_DEFAULT_EXCHANGE = 'default'
CELERY_TASK_DEFAULT_ROUTING_KEY = 'default'

CELERY_QUEUES = (
    Queue('default', Exchange('default'), routing_key='default'),
    Queue('security', Exchange('security'), routing_key='security'),
)

CELERY_TASK_ROUTES = {
    'apps.core.tasks.record_security_event': {'queue': 'security'},
}

CELERY_WORKER_PREFETCH_MULTIPLIER = 1
CELERY_ACKS_LATE = True
CELERY_TASK_ALWAYS_EAGER = env.bool('CELERY_TASK_ALWAYS_EAGER', default=False)

# Rate Limiting
RATE_LIMIT_ENABLED = env('RATE_LIMIT_ENABLED')
RATE_LIMIT_BASE_WAIT_MS = env.int('RATE_LIMIT_BASE_WAIT_MS', default=60000)
LOGIN_MAX_ATTEMPTS = env.int('LOGIN_MAX_ATTEMPTS', default=5)
LOGIN_WINDOW_MS = env.int('LOGIN_WINDOW_MS', default=15 * 60 * 1000)
ROLE_ASSIGN_MAX_ATTEMPTS = env.int('ROLE_ASSIGN_MAX_ATTEMPTS', default=20)
ROLE_ASSIGN_WINDOW_MS = env.int('ROLE_ASSIGN_WINDOW_MS', default=10 * 60 * 1000)

# Django-ratelimit configuration
RATELIMIT_USE_CACHE = 'default'
RATELIMIT_ENABLE = RATE_LIMIT_ENABLED

# Security events: 'database', 'celery', 'logging' or 'memory'
SECURITY_EVENT_SINK = env('SECURITY_EVENT_SINK', default='database')

# Access control
PERMISSION_CACHE_TTL_SECONDS = env.int('PERMISSION_CACHE_TTL_SECONDS', default=300)
DEMO_MODE_ENABLED = env('DEMO_MODE_ENABLED')

# Security audit: failed events per user before it is reported as suspicious
SECURITY_SUSPICIOUS_FAILURE_THRESHOLD = env.int('SECURITY_SUSPICIOUS_FAILURE_THRESHOLD', default=3)

# Session security
SESSION_REFRESH_LEAD_SECONDS = env.int('SESSION_REFRESH_LEAD_SECONDS', default=300)
SESSION_MONITOR_INTERVAL_SECONDS = env.int('SESSION_MONITOR_INTERVAL_SECONDS', default=300)

# Logging Configuration
LOG_LEVEL = env('LOG_LEVEL')
JSON_LOGS = env('JSON_LOGS')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'json': {
            '()': 'apps.core.logging.JSONFormatter',
        },
        'verbose': {
            '()': 'apps.core.log_sanitizer.SanitizingFormatter',
            'format': '{levelname} {asctime} {module} [{request_id}] {message}',
            'style': '{',
        },
        'simple': {
            '()': 'apps.core.log_sanitizer.SanitizingFormatter',
            'format': '{levelname} {message}',
            'style': '{',
        },
    },
    'filters': {
        'request_context': {
            '()': 'apps.core.middleware.LoggingFilter',
        },
        'sanitize': {
            '()': 'apps.core.log_sanitizer.SanitizingFilter',
        },
    },
    'handlers': {
        'console': {
            'level': LOG_LEVEL,
            'class': 'logging.StreamHandler',
            'formatter': 'json' if JSON_LOGS else 'verbose',
            'filters': ['request_context', 'sanitize'],
        },
        'security': {
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'json' if JSON_LOGS else 'verbose',
            'filters': ['request_context', 'sanitize'],
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'apps': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'security': {
            'handlers': ['security'],
            'level': 'INFO',
            'propagate': False,
        },
        'celery': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}

# Sentry Configuration
SENTRY_DSN = env('SENTRY_DSN', default=None)
SENTRY_ENVIRONMENT = env('SENTRY_ENVIRONMENT', default='development')

if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        integrations=[
            DjangoIntegration(),
            CeleryIntegration(),
        ],
        environment=SENTRY_ENVIRONMENT,
        traces_sample_rate=env.float('SENTRY_TRACES_SAMPLE_RATE', default=0.1),
        send_default_pii=False,
    )

# JWT Authentication Configuration
# SECURITY: JWT_SECRET_KEY must differ from SECRET_KEY (validated at startup)
JWT_SECRET_KEY = env('JWT_SECRET_KEY', default=DEV_JWT_SECRET_KEY)
JWT_ALGORITHM = env('JWT_ALGORITHM', default='HS256')
JWT_EXPIRATION_HOURS = env.int('JWT_EXPIRATION_HOURS', default=24)
JWT_REFRESH_GRACE_HOURS = env.int('JWT_REFRESH_GRACE_HOURS', default=24)
