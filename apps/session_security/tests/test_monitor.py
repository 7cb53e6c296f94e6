"""
Tests for SessionMonitor.
"""
import threading
from unittest.mock import Mock, patch

from apps.session_security.monitor import SessionMonitor


class TestRunCheck:

    def test_valid_check(self):
        on_invalid = Mock()
        monitor = SessionMonitor(lambda: True, interval_seconds=60, on_invalid=on_invalid)

        assert monitor.run_check() is True
        on_invalid.assert_not_called()

    def test_invalid_check_calls_hook(self):
        on_invalid = Mock()
        monitor = SessionMonitor(lambda: False, interval_seconds=60, on_invalid=on_invalid)

        assert monitor.run_check() is False
        on_invalid.assert_called_once_with()

    def test_raising_check_counts_as_invalid(self):
        on_invalid = Mock()
        monitor = SessionMonitor(Mock(side_effect=RuntimeError('boom')), interval_seconds=60, on_invalid=on_invalid)

        assert monitor.run_check() is False
        on_invalid.assert_called_once_with()

    @patch('apps.session_security.monitor.logger')
    def test_raising_hook_is_logged_not_propagated(self, mock_logger):
        on_invalid = Mock(side_effect=RuntimeError('logout failed'))
        monitor = SessionMonitor(lambda: False, interval_seconds=60, on_invalid=on_invalid)

        assert monitor.run_check() is False
        assert mock_logger.error.call_args[0][0].startswith('Session invalid hook raised')

    def test_overlapping_trigger_is_skipped(self):
        entered = threading.Event()
        release = threading.Event()
        calls = []

        def slow_check():
            calls.append(1)
            entered.set()
            release.wait(5)
            return True

        monitor = SessionMonitor(slow_check, interval_seconds=60)
        worker = threading.Thread(target=monitor.run_check, args=('interval',))
        worker.start()
        entered.wait(5)

        assert monitor.notify_focus() is None

        release.set()
        worker.join(5)
        assert calls == [1]
        assert monitor.notify_focus() is True


class TestLifecycle:

    def test_start_runs_initial_check_and_stop_ends_loop(self):
        checked = threading.Event()

        def check():
            checked.set()
            return True

        monitor = SessionMonitor(check, interval_seconds=60).start()
        try:
            assert checked.wait(5)
            assert monitor.running is True
        finally:
            monitor.stop(timeout=5)

        assert monitor.running is False

    def test_periodic_checks(self):
        count = []
        done = threading.Event()

        def check():
            count.append(1)
            if len(count) >= 3:
                done.set()
            return True

        with SessionMonitor(check, interval_seconds=0.01, check_on_start=False):
            assert done.wait(5)

    def test_focus_after_stop_is_ignored(self):
        check = Mock(return_value=True)
        monitor = SessionMonitor(check, interval_seconds=60, check_on_start=False).start()
        monitor.stop(timeout=5)

        assert monitor.notify_focus() is None
        check.assert_not_called()

    def test_start_is_idempotent(self):
        monitor = SessionMonitor(lambda: True, interval_seconds=60, check_on_start=False)
        try:
            monitor.start()
            thread = monitor._thread
            monitor.start()
            assert monitor._thread is thread
        finally:
            monitor.stop(timeout=5)

    def test_raising_hook_keeps_monitor_running(self):
        calls = []
        done = threading.Event()

        def on_invalid():
            calls.append(1)
            if len(calls) >= 3:
                done.set()
            raise RuntimeError('logout failed')

        monitor = SessionMonitor(lambda: False, interval_seconds=0.01, on_invalid=on_invalid).start()
        try:
            assert done.wait(5)
            assert monitor.running is True
        finally:
            monitor.stop(timeout=5)
