"""
Client fingerprinting for session hijack detection.

A fingerprint is a SHA-256 digest of a fixed set of client environment
signals. The first fingerprint seen for a session becomes its baseline;
every later observation is compared byte-for-byte against it. A mismatch
is terminal for the session.
"""
import hashlib
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)

# Fixed probe set. Sources must report every key.
SIGNALS = (
    'canvas',       # rendering-surface capability signature
    'language',
    'platform',
    'screen',       # geometry and colour depth
    'timezone',
    'webgl',        # GPU descriptor
    'user_agent',
)

MISSING = 'none'


class FingerprintSource(ABC):
    """Platform-specific provider of the client environment signals."""

    @abstractmethod
    def probe(self) -> Dict[str, str]:
        """Return a value for every name in SIGNALS."""


class RequestFingerprintSource(FingerprintSource):
    """
    Reads signals from HTTP request headers.

    Browser-only probes (canvas, screen, timezone, webgl) are computed by
    the client and sent in X-Client-* headers.
    """

    HEADERS = {
        'canvas': 'X-Client-Canvas',
        'language': 'Accept-Language',
        'platform': 'Sec-CH-UA-Platform',
        'screen': 'X-Client-Screen',
        'timezone': 'X-Client-Timezone',
        'webgl': 'X-Client-Webgl',
        'user_agent': 'User-Agent',
    }

    def __init__(self, request):
        self.request = request

    def probe(self) -> Dict[str, str]:
        headers = self.request.headers
        return {
            name: (headers.get(header) or '').strip() or MISSING
            for name, header in self.HEADERS.items()
        }


class StaticFingerprintSource(FingerprintSource):
    """Fixed signals, for tests and non-browser clients."""

    def __init__(self, signals: Optional[Dict[str, str]] = None):
        self.signals = dict(signals or {})

    def probe(self) -> Dict[str, str]:
        return {name: str(self.signals.get(name) or MISSING) for name in SIGNALS}


def generate_fingerprint(source: FingerprintSource) -> str:
    """
    Derive the fingerprint for a source.

    The digest covers only the fixed signal set, serialized with sorted
    keys, so probe order never changes the result.
    """
    probes = source.probe()
    canonical = json.dumps(
        {name: str(probes.get(name, MISSING)) for name in SIGNALS},
        sort_keys=True,
        separators=(',', ':'),
    )
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


@dataclass(frozen=True)
class FingerprintCheck:
    first_observation: bool
    matches: bool


class SessionFingerprint:
    """
    Per-session fingerprint baseline in the durable key-value store.

    Args:
        store: KeyValueStore
    """

    KEY_PREFIX = 'session_fingerprint:'

    def __init__(self, store):
        self.store = store

    def _key(self, session_id) -> str:
        return f"{self.KEY_PREFIX}{session_id}"

    def baseline(self, session_id) -> Optional[str]:
        raw = self.store.get(self._key(session_id))
        if raw is None:
            return None
        try:
            return raw.decode('utf-8')
        except (AttributeError, UnicodeDecodeError):
            logger.warning(f"Discarding unreadable fingerprint baseline for session {session_id}")
            return None

    def observe(self, session_id, fingerprint: str) -> FingerprintCheck:
        """
        Compare fingerprint against the session baseline.

        The first observation is trusted and stored as the baseline.
        """
        stored = self.baseline(session_id)
        if stored is None:
            self.store.set(self._key(session_id), fingerprint.encode('utf-8'))
            return FingerprintCheck(first_observation=True, matches=True)
        return FingerprintCheck(first_observation=False, matches=stored == fingerprint)

    def clear(self, session_id) -> None:
        self.store.delete(self._key(session_id))
