"""Rate-limit header parsing and advisory waiting."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Literal

from gitgrip.output.console import ConsoleProtocol

__all__ = [
    "HeaderScheme",
    "RateLimitInfo",
    "format_wait",
    "parse_rate_limit",
    "report_rate_limit",
    "wait_for_reset",
]

type HeaderScheme = Literal["x-ratelimit", "ratelimit"]


@dataclass(frozen=True, slots=True)
class RateLimitInfo:
    limit: int | None = None
    remaining: int | None = None
    reset_time: float | None = None

    @property
    def is_rate_limited(self) -> bool:
        return self.remaining == 0

    @property
    def is_approaching_limit(self) -> bool:
        """Less than 10% of the window left."""
        if self.remaining is None or self.limit is None or self.limit <= 0:
            return False
        return self.remaining < self.limit / 10

    def wait_seconds(self, now: float | None = None) -> float | None:
        if self.reset_time is None:
            return None
        current = time.time() if now is None else now
        return max(1.0, self.reset_time - current)


def _int_header(headers: Mapping[str, str], name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def parse_rate_limit(headers: Mapping[str, str], scheme: HeaderScheme = "x-ratelimit") -> RateLimitInfo | None:
    """Read ``<scheme>-limit/-remaining/-reset``; None when no header is present.

    GitHub, Azure DevOps and Bitbucket use the ``x-ratelimit`` prefix, GitLab
    the bare ``ratelimit`` one. ``reset`` is a unix timestamp in both.
    """
    limit = _int_header(headers, f"{scheme}-limit")
    remaining = _int_header(headers, f"{scheme}-remaining")
    reset = _int_header(headers, f"{scheme}-reset")
    if limit is None and remaining is None and reset is None:
        return None
    return RateLimitInfo(limit=limit, remaining=remaining, reset_time=float(reset) if reset is not None else None)


def format_wait(seconds: float) -> str:
    whole = int(seconds)
    if whole >= 60:
        return f"{whole // 60} minutes"
    return f"{whole} seconds"


def report_rate_limit(info: RateLimitInfo, platform: str, console: ConsoleProtocol | None) -> None:
    if console is None:
        return
    if info.is_rate_limited:
        wait = info.wait_seconds()
        suffix = f" Waiting {format_wait(wait)} for reset..." if wait is not None else ""
        console.warning(f"{platform} API rate limit reached.{suffix}")
    elif info.is_approaching_limit:
        console.info(f"{platform} API rate limit: {info.remaining} of {info.limit} remaining")


async def wait_for_reset(
    info: RateLimitInfo,
    *,
    max_wait: float = 300.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> float:
    """Sleep until the window resets, capped at ``max_wait``. Returns seconds slept."""
    if not info.is_rate_limited:
        return 0.0
    wait = info.wait_seconds()
    if wait is None:
        return 0.0
    duration = min(wait, max_wait)
    await sleep(duration)
    return duration
