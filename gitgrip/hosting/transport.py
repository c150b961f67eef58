"""Shared async HTTP plumbing for hosting adapters.

Every adapter call goes through :meth:`HttpTransport.request`, which turns
transport failures and non-2xx responses into :class:`PlatformError` values
and reads rate-limit headers off every response.

An ``httpx.AsyncClient`` may be injected (tests pass one built on
``httpx.MockTransport``); otherwise a client is created per request and
closed before returning.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping

import httpx

from gitgrip.core.result import Err, Ok, Result
from gitgrip.core.structured import StrDict, as_obj_list, as_str_dict
from gitgrip.hosting.errors import PlatformError
from gitgrip.hosting.rate_limit import HeaderScheme, RateLimitInfo, parse_rate_limit, report_rate_limit, wait_for_reset
from gitgrip.output.console import ConsoleProtocol

__all__ = ["DEFAULT_TIMEOUT", "HttpTransport", "expect_list", "expect_object"]

DEFAULT_TIMEOUT = 30.0


class HttpTransport:
    """Issues requests against one API base URL."""

    def __init__(
        self,
        *,
        platform: str,
        base_url: str,
        rate_limit_scheme: HeaderScheme = "x-ratelimit",
        http_client: httpx.AsyncClient | None = None,
        console: ConsoleProtocol | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        wait_on_rate_limit: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.platform = platform
        self.base_url = base_url.rstrip("/")
        self.rate_limit_scheme: HeaderScheme = rate_limit_scheme
        self.console = console
        self.timeout = timeout
        self.wait_on_rate_limit = wait_on_rate_limit
        self.last_rate_limit: RateLimitInfo | None = None
        self._http_client = http_client
        self._sleep = sleep

    def url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str],
        json: object = None,
        params: Mapping[str, str] | None = None,
    ) -> Result[httpx.Response, PlatformError]:
        url = self.url(path)
        client = self._http_client
        client_created = False
        try:
            if client is None:
                client = httpx.AsyncClient()
                client_created = True
            response = await client.request(
                method,
                url,
                headers=dict(headers),
                json=json,
                params=dict(params) if params else None,
                timeout=self.timeout,
                follow_redirects=True,
            )
        except httpx.TimeoutException as e:
            return Err(PlatformError(kind="network", message=f"{self.platform} request timed out: {method} {url} ({e})"))
        except httpx.HTTPError as e:
            return Err(PlatformError(kind="network", message=f"{self.platform} request failed: {method} {url} ({e})"))
        finally:
            if client_created and client is not None:
                await client.aclose()

        info = parse_rate_limit(response.headers, self.rate_limit_scheme)
        if info is not None:
            self.last_rate_limit = info
            report_rate_limit(info, self.platform, self.console)
            if self.wait_on_rate_limit:
                await wait_for_reset(info, sleep=self._sleep)

        if response.is_success:
            return Ok(response)
        if response.status_code == 403 and info is not None and info.is_rate_limited:
            return Err(
                PlatformError(kind="rate_limited", message=f"{self.platform} API rate limit exceeded", status=403)
            )
        return Err(PlatformError.from_status(response.status_code, response.text, platform=self.platform))

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str],
        json: object = None,
        params: Mapping[str, str] | None = None,
    ) -> Result[object, PlatformError]:
        """Request and decode a JSON body (``None`` for an empty body)."""
        result = await self.request(method, path, headers=headers, json=json, params=params)
        if isinstance(result, Err):
            return result
        response = result.value
        if not response.content.strip():
            return Ok(None)
        try:
            return Ok(response.json())
        except ValueError as e:
            return Err(PlatformError(kind="parse", message=f"{self.platform} returned invalid JSON: {e}"))

    async def request_text(
        self,
        path: str,
        *,
        headers: Mapping[str, str],
    ) -> Result[str, PlatformError]:
        result = await self.request("GET", path, headers=headers)
        if isinstance(result, Err):
            return result
        return Ok(result.value.text)


def expect_object(data: object, what: str, platform: str) -> Result[StrDict, PlatformError]:
    table = as_str_dict(data)
    if table is None:
        return Err(PlatformError(kind="parse", message=f"{platform}: expected an object for {what}"))
    return Ok(table)


def expect_list(data: object, what: str, platform: str) -> Result[list[StrDict], PlatformError]:
    items = as_obj_list(data)
    if items is None:
        return Err(PlatformError(kind="parse", message=f"{platform}: expected a list for {what}"))
    return Ok([t for t in (as_str_dict(i) for i in items) if t is not None])
