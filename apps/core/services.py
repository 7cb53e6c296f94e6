"""
Process-wide service instances.

Each service is constructed once per process on first use, from settings,
and handed to callers explicitly. reset_services() drops every instance so
the next lookup rebuilds from current settings (used when settings change
and in tests).
"""
import logging
import threading

from django.conf import settings

logger = logging.getLogger(__name__)

_instances = {}
_lock = threading.Lock()


def _get_or_create(name, factory):
    instance = _instances.get(name)
    if instance is not None:
        return instance
    with _lock:
        instance = _instances.get(name)
        if instance is None:
            instance = factory()
            _instances[name] = instance
            logger.debug(f"Constructed service: {name}")
        return instance


def get_kv_store():
    """Durable key-value store for rate-limit state and session fingerprints."""
    from apps.core.storage import CacheKeyValueStore

    return _get_or_create(
        'kv_store',
        lambda: CacheKeyValueStore(getattr(settings, 'KV_STORE_CACHE_ALIAS', 'default')),
    )


def get_security_event_log():
    from apps.core.security_logger import SecurityEventLog, build_sink

    return _get_or_create(
        'security_event_log',
        lambda: SecurityEventLog(build_sink(getattr(settings, 'SECURITY_EVENT_SINK', 'database'))),
    )


def get_rate_limiter():
    from apps.core.rate_limiting import RateLimiter

    def build():
        return RateLimiter(
            store=get_kv_store(),
            event_log=get_security_event_log(),
            base_wait_ms=getattr(settings, 'RATE_LIMIT_BASE_WAIT_MS', RateLimiter.BASE_WAIT_MS),
            enabled=getattr(settings, 'RATE_LIMIT_ENABLED', True),
        )

    return _get_or_create('rate_limiter', build)


def register_service(name, instance):
    """Install a pre-built instance (tests, management commands)."""
    with _lock:
        _instances[name] = instance


def get_service(name, factory):
    """Look up a named service, constructing it with factory on first use."""
    return _get_or_create(name, factory)


def reset_services(**kwargs):
    with _lock:
        _instances.clear()
