"""
Background session monitoring.

SessionMonitor re-runs a session check on a fixed interval and whenever the
client regains focus. Both triggers go through one single-flight check: a
trigger that arrives while a check is in flight is skipped, not queued.
"""
import logging
import threading
from typing import Callable, Optional

from django.conf import settings

logger = logging.getLogger(__name__)


class SessionMonitor:
    """
    Periodic plus event-driven session check.

    Usage:
        monitor = SessionMonitor(service.auto_refresh, on_invalid=force_logout)
        monitor.start()
        ...
        monitor.notify_focus()
        ...
        monitor.stop()

    Args:
        check: Callable returning True while the session is usable
        interval_seconds: Period between checks
        on_invalid: Called once per failed check (the re-authentication hook)
        check_on_start: Run one check as soon as the monitor starts
    """

    def __init__(
        self,
        check: Callable[[], bool],
        interval_seconds: Optional[float] = None,
        on_invalid: Optional[Callable[[], None]] = None,
        check_on_start: bool = True,
    ):
        self.check = check
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None
            else getattr(settings, 'SESSION_MONITOR_INTERVAL_SECONDS', 300)
        )
        self.on_invalid = on_invalid
        self.check_on_start = check_on_start
        self._busy = threading.Lock()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_check(self, trigger: str = 'manual') -> Optional[bool]:
        """
        Run the check unless one is already in flight.

        Returns:
            The check's result, or None when skipped
        """
        if not self._busy.acquire(blocking=False):
            logger.debug(f"Session check skipped ({trigger}): previous check still running")
            return None

        try:
            try:
                valid = bool(self.check())
            except Exception as e:
                logger.error(f"Session check raised ({trigger}): {e}", exc_info=True)
                valid = False
        finally:
            self._busy.release()

        if not valid:
            logger.info(f"Session invalid after {trigger} check")
            if self.on_invalid is not None:
                try:
                    self.on_invalid()
                except Exception as e:
                    logger.error(f"Session invalid hook raised ({trigger}): {e}", exc_info=True)
        return valid

    def notify_focus(self) -> Optional[bool]:
        """Client regained focus or visibility."""
        if self._stopped.is_set():
            return None
        return self.run_check('focus')

    def _loop(self):
        if self.check_on_start and not self._stopped.is_set():
            self.run_check('start')
        while not self._stopped.wait(self.interval_seconds):
            self.run_check('interval')

    def start(self) -> 'SessionMonitor':
        if self.running:
            return self
        self._stopped.clear()
        self._thread = threading.Thread(
            target=self._loop,
            name='session-monitor',
            daemon=True,
        )
        self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel the periodic task and wait for it to exit."""
        self._stopped.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
