"""
Rate limiting with persisted exponential backoff.

Each rate-limit key (e.g. 'login:<identity>', 'role_assign:<user>') owns a
JSON document in the durable key-value store:

    {"attempts": [<epoch ms>, ...], "backoff_level": <int>}

Attempts older than the window are pruned before every evaluation. Once the
window holds max_attempts entries the caller must wait
BASE_WAIT_MS * 2 ** backoff_level since the last attempt. The backoff level
only grows; reset() is the only way to clear it.

Cooldowns are separate, identity-keyed countdown timers with second
granularity, used for client-side "try again in N seconds" display.
"""
import json
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from apps.core.exceptions import RateLimited
from apps.core.storage import KeyValueStore

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single rate-limit evaluation."""

    allowed: bool
    wait_time_ms: int
    backoff_level: int


@dataclass
class RateLimitState:
    attempts: List[int]
    backoff_level: int = 0

    @classmethod
    def empty(cls) -> 'RateLimitState':
        return cls(attempts=[], backoff_level=0)

    @classmethod
    def loads(cls, raw: Optional[bytes]) -> 'RateLimitState':
        """Parse persisted state. Anything unreadable is treated as no prior state."""
        if not raw:
            return cls.empty()
        try:
            data = json.loads(raw)
            attempts = [int(t) for t in data.get('attempts', [])]
            backoff_level = max(0, int(data.get('backoff_level', 0)))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Discarding unreadable rate limit state: {e}")
            return cls.empty()
        return cls(attempts=attempts, backoff_level=backoff_level)

    def dumps(self) -> bytes:
        return json.dumps({
            'attempts': self.attempts,
            'backoff_level': self.backoff_level,
        }).encode('utf-8')


class RateLimiter:
    """
    Attempt tracker with exponential backoff, persisted across restarts.

    Constructed once per process (see apps.core.services.get_rate_limiter)
    and injected into the services that need it. Evaluations on the same key
    are serialized by a lock chosen from a fixed stripe set by key, so memory
    stays bounded however many keys are seen.
    """

    BASE_WAIT_MS = 60000
    LOCK_STRIPES = 64
    DEFAULT_MAX_ATTEMPTS = 5
    DEFAULT_WINDOW_MS = 5 * 60 * 1000

    STATE_PREFIX = 'rate_limit:'
    COOLDOWN_PREFIX = 'cooldown:'

    def __init__(
        self,
        store: KeyValueStore,
        event_log=None,
        base_wait_ms: int = BASE_WAIT_MS,
        clock: Callable[[], int] = _now_ms,
        enabled: bool = True,
    ):
        """
        Args:
            store: Durable key-value store for attempt state and cooldowns
            event_log: Optional SecurityEventLog for 'rate_limit_exceeded' events
            base_wait_ms: Wait time at backoff level 0
            clock: Callable returning the current time in epoch milliseconds
            enabled: When False every evaluation is allowed and nothing is stored
        """
        self.store = store
        self.event_log = event_log
        self.base_wait_ms = base_wait_ms
        self.clock = clock
        self.enabled = enabled
        self._locks = tuple(threading.Lock() for _ in range(self.LOCK_STRIPES))

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def _state_key(self, key: str) -> str:
        return f"{self.STATE_PREFIX}{key}"

    def _cooldown_key(self, identity: str) -> str:
        return f"{self.COOLDOWN_PREFIX}{identity}"

    def is_allowed(
        self,
        key: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        window_ms: int = DEFAULT_WINDOW_MS,
    ) -> RateLimitDecision:
        """
        Evaluate and record an attempt for key.

        Args:
            key: Operation-specific rate-limit key
            max_attempts: Attempts permitted inside the trailing window
            window_ms: Trailing window length in milliseconds

        Returns:
            RateLimitDecision(allowed, wait_time_ms, backoff_level)
        """
        if not self.enabled:
            return RateLimitDecision(allowed=True, wait_time_ms=0, backoff_level=0)

        with self._lock_for(key):
            now = self.clock()
            state = RateLimitState.loads(self.store.get(self._state_key(key)))
            state.attempts = [t for t in state.attempts if now - t < window_ms]

            wait_time_ms = 0
            if len(state.attempts) >= max_attempts:
                elapsed = now - max(state.attempts)
                wait_time_ms = max(0, self.base_wait_ms * (2 ** state.backoff_level) - elapsed)

            if wait_time_ms > 0:
                self.store.set(self._state_key(key), state.dumps())

                logger.warning(
                    f"Rate limit exceeded for {key}",
                    extra={
                        'rate_limit_key': key,
                        'attempts': len(state.attempts),
                        'wait_time_ms': wait_time_ms,
                        'backoff_level': state.backoff_level,
                    }
                )
                if self.event_log is not None:
                    self.event_log.record(
                        'rate_limit_exceeded',
                        {
                            'key': key,
                            'attempts': len(state.attempts),
                            'wait_time_ms': wait_time_ms,
                            'backoff_level': state.backoff_level,
                        },
                        success=False,
                    )

                return RateLimitDecision(
                    allowed=False,
                    wait_time_ms=wait_time_ms,
                    backoff_level=state.backoff_level,
                )

            state.attempts.append(now)
            if len(state.attempts) >= max_attempts:
                state.backoff_level += 1
            self.store.set(self._state_key(key), state.dumps())

            return RateLimitDecision(
                allowed=True,
                wait_time_ms=0,
                backoff_level=state.backoff_level,
            )

    def check(
        self,
        key: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        window_ms: int = DEFAULT_WINDOW_MS,
    ) -> RateLimitDecision:
        """Like is_allowed(), but raises RateLimited when the attempt is refused."""
        decision = self.is_allowed(key, max_attempts=max_attempts, window_ms=window_ms)
        if not decision.allowed:
            raise RateLimited(
                decision.wait_time_ms,
                details={'key': key, 'backoff_level': decision.backoff_level},
            )
        return decision

    def reset(self, key: str) -> None:
        """Clear all attempt and backoff state for key."""
        with self._lock_for(key):
            self.store.delete(self._state_key(key))
        logger.info(f"Rate limit reset for {key}", extra={'rate_limit_key': key})

    def get_state(self, key: str) -> RateLimitState:
        return RateLimitState.loads(self.store.get(self._state_key(key)))

    def set_cooldown(self, identity: str, seconds: int) -> None:
        """Start a countdown of `seconds` for identity."""
        ends_at = self.clock() + int(seconds) * 1000
        self.store.set(self._cooldown_key(identity), str(ends_at).encode('utf-8'))

    def get_cooldown_remaining(self, identity: str) -> int:
        """
        Seconds left on identity's cooldown, rounded up.

        Elapsed cooldowns are removed and report 0.
        """
        raw = self.store.get(self._cooldown_key(identity))
        if not raw:
            return 0
        try:
            ends_at = int(raw)
        except ValueError:
            self.store.delete(self._cooldown_key(identity))
            return 0

        remaining_ms = ends_at - self.clock()
        if remaining_ms <= 0:
            self.store.delete(self._cooldown_key(identity))
            return 0
        return math.ceil(remaining_ms / 1000)
