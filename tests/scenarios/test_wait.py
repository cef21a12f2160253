"""Tests for waiting on linked controls."""

import pytest

from home_scenarios.scenarios.wait import ControlsTimeoutError, has_critical_err, wait_controls


class TestCriticalError:
    """Tests for has_critical_err()."""

    @pytest.mark.parametrize(
        "error,expected",
        [("r", True), ("w", True), ("rw", True), ("p", False), ("", False), (None, False), (1, False)],
    )
    def test_values(self, error, expected):
        assert has_critical_err(error) is expected


class TestWaitControls:
    """Tests for wait_controls()."""

    def test_ready_immediately(self, platform, timers):
        """Test that ready controls succeed without arming a timer."""
        platform.add_device_control("relay/K1", "switch", False)
        results = []

        wait_controls(platform, timers, ["relay/K1"], results.append)

        assert results == [None]
        assert timers.pending_timers() == 0

    def test_ready_later(self, platform, timers):
        """Test polling every 5 seconds."""
        results = []
        wait_controls(platform, timers, ["relay/K1"], results.append)

        platform.add_device_control("relay/K1", "switch", False)
        timers.advance(4)
        assert results == []

        timers.advance(1)
        assert results == [None]

    def test_timeout_lists_missing(self, platform, timers):
        """Test the timeout error names the controls that are not ready."""
        platform.add_device_control("relay/K1", "switch", False)
        results = []
        wait_controls(platform, timers, ["relay/K1", "relay/K2"], results.append)

        timers.advance(60)

        assert len(results) == 1
        error = results[0]
        assert isinstance(error, ControlsTimeoutError)
        assert error.not_ready == ["relay/K2"]
        assert "relay/K2" in str(error)

    def test_cancel(self, platform, timers):
        """Test that a cancelled waiter never calls back."""
        results = []
        waiter = wait_controls(platform, timers, ["relay/K1"], results.append)

        waiter.cancel()
        timers.advance(120)

        assert results == []
