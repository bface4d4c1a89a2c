from __future__ import annotations

import asyncio
import json
from typing import Any

import aiohttp

from fapiclient.core.logging import get_logger, safe_json
from fapiclient.exchange.endpoints import API_KEY_HEADER, USER_AGENT
from fapiclient.exchange.errors import ExchangeAPIError, RequestTimeoutError, TransportError


def parse_error_body(status: int, body: bytes) -> ExchangeAPIError:
    text = body.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        error = ExchangeAPIError(status, text.strip() or f"HTTP {status}")
        error.__cause__ = exc
        return error
    if isinstance(parsed, str):
        return ExchangeAPIError(status, parsed)
    if isinstance(parsed, dict) and ("code" in parsed or "msg" in parsed):
        code = parsed.get("code")
        return ExchangeAPIError(status, str(parsed.get("msg", "")), code if isinstance(code, int) else None)
    return ExchangeAPIError(status, text.strip())


class FuturesRestClient:
    """Unsigned GET transport over one pooled aiohttp session.

    The session is created on first use inside the running loop (or injected)
    and shared by every call until ``close()``. An owned session is replaced
    when the client is used from a new event loop; an injected one is never
    replaced, and using it after it was closed raises ``TransportError``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout_seconds: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None
        self._session_loop: asyncio.AbstractEventLoop | None = None
        self._log = get_logger(__name__)

    @property
    def headers(self) -> dict[str, str]:
        return {"User-Agent": USER_AGENT, API_KEY_HEADER: self.api_key}

    def _drop_stale_session(self, loop: asyncio.AbstractEventLoop) -> None:
        # an owned session cannot outlive the loop it was created on
        if self._owns_session and self._session is not None and self._session_loop is not loop:
            if not self._session.closed:
                self._session.detach()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if not self._owns_session:
            if self._session.closed:
                raise TransportError("injected aiohttp session is closed")
            return self._session
        loop = asyncio.get_running_loop()
        self._drop_stale_session(loop)
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_seconds))
            self._session_loop = loop
        return self._session

    async def get(self, path_and_query: str, *, timeout: float | None = None) -> bytes:
        url = f"{self.base_url}{path_and_query}"
        request_timeout = aiohttp.ClientTimeout(total=timeout if timeout is not None else self.timeout_seconds)
        self._log.debug("REST request %s", safe_json({"method": "GET", "url": url, "api_key": self.api_key}))

        session = self._get_session()
        try:
            async with session.get(url, headers=self.headers, timeout=request_timeout) as resp:
                body = await resp.read()
                status = resp.status
        except asyncio.TimeoutError as exc:
            self._log.warning("REST timeout %s", safe_json({"url": url, "timeout": request_timeout.total}))
            raise RequestTimeoutError(f"GET {path_and_query} timed out after {request_timeout.total}s") from exc
        except aiohttp.ClientError as exc:
            self._log.warning("REST transport error %s", safe_json({"url": url, "error": repr(exc)}))
            raise TransportError(f"GET {path_and_query} failed: {exc}") from exc

        if status >= 400:
            error = parse_error_body(status, body)
            self._log.warning(
                "REST error %s",
                safe_json({"url": url, "status": status, "code": error.code, "detail": error.message}),
            )
            raise error
        self._log.debug("REST response %s", safe_json({"url": url, "status": status, "bytes": len(body)}))
        return body

    async def close(self) -> None:
        if not self._owns_session:
            return
        self._drop_stale_session(asyncio.get_running_loop())
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        self._session_loop = None

    async def __aenter__(self) -> FuturesRestClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
