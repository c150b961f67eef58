"""Tests for hosting/rate_limit.py."""

from __future__ import annotations

import pytest

from gitgrip.hosting.rate_limit import (
    RateLimitInfo,
    format_wait,
    parse_rate_limit,
    report_rate_limit,
    wait_for_reset,
)
from gitgrip.output.console import MockConsole


class TestParse:
    """Header parsing."""

    def test_github_headers(self) -> None:
        """x-ratelimit-* headers are read."""
        info = parse_rate_limit({"x-ratelimit-limit": "5000", "x-ratelimit-remaining": "4999", "x-ratelimit-reset": "1700000000"})
        assert info == RateLimitInfo(limit=5000, remaining=4999, reset_time=1700000000.0)

    def test_gitlab_headers(self) -> None:
        """GitLab uses the unprefixed names."""
        info = parse_rate_limit({"ratelimit-limit": "600", "ratelimit-remaining": "0"}, "ratelimit")
        assert info is not None
        assert info.is_rate_limited
        assert info.reset_time is None

    def test_absent(self) -> None:
        """No headers, no info."""
        assert parse_rate_limit({}) is None

    def test_garbage_values_ignored(self) -> None:
        """Non-numeric values are treated as absent."""
        info = parse_rate_limit({"x-ratelimit-limit": "lots", "x-ratelimit-remaining": "3"})
        assert info == RateLimitInfo(limit=None, remaining=3)


class TestInfo:
    """Derived predicates."""

    def test_approaching(self) -> None:
        """Under 10% remaining is approaching."""
        assert RateLimitInfo(limit=100, remaining=9).is_approaching_limit
        assert not RateLimitInfo(limit=100, remaining=10).is_approaching_limit
        assert not RateLimitInfo(remaining=1).is_approaching_limit

    def test_wait_seconds_floor(self) -> None:
        """Waits are at least one second."""
        assert RateLimitInfo(remaining=0, reset_time=100.0).wait_seconds(now=200.0) == 1.0
        assert RateLimitInfo(remaining=0, reset_time=260.0).wait_seconds(now=200.0) == 60.0
        assert RateLimitInfo(remaining=0).wait_seconds() is None

    def test_format_wait(self) -> None:
        """Minutes from a minute upward."""
        assert format_wait(42.9) == "42 seconds"
        assert format_wait(125) == "2 minutes"


class TestReport:
    """Advisory console messages."""

    def test_exhausted_warns(self) -> None:
        """remaining == 0 is a warning."""
        console = MockConsole()
        report_rate_limit(RateLimitInfo(limit=60, remaining=0), "GitHub", console)
        assert console.has_warning()
        assert "GitHub API rate limit reached." in console.text

    def test_approaching_informs(self) -> None:
        """Low remaining is an info line."""
        console = MockConsole()
        report_rate_limit(RateLimitInfo(limit=100, remaining=5), "GitLab", console)
        assert "GitLab API rate limit: 5 of 100 remaining" in console.text

    def test_no_console(self) -> None:
        """Without a console nothing happens."""
        report_rate_limit(RateLimitInfo(limit=100, remaining=0), "GitHub", None)


class TestWait:
    """Optional sleeping until reset."""

    @pytest.mark.asyncio
    async def test_sleeps_capped(self) -> None:
        """The sleep is capped at max_wait."""
        slept: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            slept.append(seconds)

        info = RateLimitInfo(limit=10, remaining=0, reset_time=10_000_000_000.0)
        assert await wait_for_reset(info, max_wait=5.0, sleep=fake_sleep) == 5.0
        assert slept == [5.0]

    @pytest.mark.asyncio
    async def test_not_limited_does_not_sleep(self) -> None:
        """Remaining budget means no sleep."""

        async def fail_sleep(seconds: float) -> None:
            raise AssertionError("should not sleep")

        assert await wait_for_reset(RateLimitInfo(limit=10, remaining=3), sleep=fail_sleep) == 0.0
