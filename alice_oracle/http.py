from __future__ import annotations

import asyncio
import logging
import os
import weakref
from typing import Any, Awaitable, Callable, Mapping

import aiohttp

from .jsonutil import loads
from .logging_utils import warn_once_per

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": os.getenv("HTTP_USER_AGENT", "Mozilla/5.0 (compatible; AliceOracle/1.0)"),
    "Accept": "application/json",
}

_HTML_MARKERS = (b"<!doctype", b"<html")


class HTTPError(Exception):
    """Raised when an HTTP request returns a non-success status code."""


class MalformedResponseError(ValueError):
    """Raised when a response body is not usable JSON."""


def looks_like_html(raw: bytes | str) -> bool:
    """Return ``True`` when *raw* looks like an HTML (error/rate-limit) page."""

    if isinstance(raw, str):
        raw = raw.encode("utf-8", "ignore")
    head = raw[:512].lstrip().lower()
    return any(head.startswith(marker) for marker in _HTML_MARKERS) or b"<html" in head


def parse_json_body(raw: bytes) -> Any:
    """Decode *raw* as JSON, rejecting HTML pages and garbage."""

    if not raw or not raw.strip():
        raise MalformedResponseError("empty response body")
    if looks_like_html(raw):
        raise MalformedResponseError("HTML page instead of JSON")
    try:
        return loads(raw)
    except ValueError as exc:
        raise MalformedResponseError(f"invalid JSON: {exc}") from exc


# Maintain a session per event loop to avoid cross-loop usage errors when
# several loops run in different threads (tests, CLI watch mode).
_SESSIONS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, aiohttp.ClientSession]" = (
    weakref.WeakKeyDictionary()
)


async def get_session() -> aiohttp.ClientSession:
    """Return an aiohttp session bound to the current event loop."""
    loop = asyncio.get_running_loop()
    sess = _SESSIONS.get(loop)
    if sess is None or sess.closed:
        trust_env = str(os.getenv("HTTP_TRUST_ENV", "")).lower() in {"1", "true", "yes"}
        if trust_env:
            logger.info("HTTP session will honor proxy settings from the environment")
        sess = aiohttp.ClientSession(headers=dict(DEFAULT_HEADERS), trust_env=trust_env)
        _SESSIONS[loop] = sess
    return sess


async def close_session() -> None:
    """Close all known aiohttp sessions."""
    to_close = list(_SESSIONS.values())
    _SESSIONS.clear()
    for sess in to_close:
        if sess.closed:
            continue
        try:
            await sess.close()
        except Exception:  # pragma: no cover - best effort on shutdown
            logger.debug("failed to close HTTP session", exc_info=True)


class ResilientFetcher:
    """Fetch JSON with a per-attempt timeout and exponential backoff.

    :meth:`fetch_json` never raises for upstream problems.  Timeouts,
    connection errors, HTTP statuses ``>= 400``, HTML error pages and bodies
    that are not valid JSON are all retried up to ``attempts`` times and then
    reported as ``None`` so callers can supply their own fallback.
    """

    def __init__(
        self,
        *,
        timeout: float = 8.0,
        attempts: int = 3,
        backoff: float = 0.25,
        session: aiohttp.ClientSession | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.timeout = max(0.1, float(timeout))
        self.attempts = max(1, int(attempts))
        self.backoff = max(0.0, float(backoff))
        self._session = session
        self._sleep = sleep

    @classmethod
    def from_settings(cls, cfg: Any, **kwargs: Any) -> "ResilientFetcher":
        return cls(
            timeout=cfg.http_timeout,
            attempts=cfg.http_retries,
            backoff=cfg.http_backoff,
            **kwargs,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based)."""

        return self.backoff * (2 ** (attempt - 1))

    async def _session_for_call(self) -> aiohttp.ClientSession:
        if self._session is not None:
            return self._session
        return await get_session()

    async def _attempt(self, url: str, headers: Mapping[str, str] | None) -> Any:
        sess = await self._session_for_call()
        client_timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with sess.get(url, headers=headers, timeout=client_timeout) as response:
            raw = await response.read()
            if response.status >= 400:
                raise HTTPError(f"GET {url} -> {response.status}: {raw[:200]!r}")
            return parse_json_body(raw)

    async def fetch_json(
        self, url: str, *, headers: Mapping[str, str] | None = None
    ) -> Any | None:
        """Return the parsed JSON body of *url*, or ``None`` when no data."""

        last_error: BaseException | None = None
        for attempt in range(1, self.attempts + 1):
            try:
                return await asyncio.wait_for(self._attempt(url, headers), self.timeout)
            except asyncio.CancelledError:
                raise
            except (asyncio.TimeoutError, aiohttp.ClientError, HTTPError, MalformedResponseError, OSError) as exc:
                last_error = exc
                logger.debug("fetch attempt %d/%d for %s failed: %r", attempt, self.attempts, url, exc)
            if attempt < self.attempts:
                await self._sleep(self.delay_for(attempt))
        warn_once_per(
            1.0,
            f"fetch:{url}",
            "No data from %s after %d attempts: %r",
            url,
            self.attempts,
            last_error,
            logger=logger,
        )
        return None


__all__ = [
    "DEFAULT_HEADERS",
    "HTTPError",
    "MalformedResponseError",
    "ResilientFetcher",
    "close_session",
    "get_session",
    "looks_like_html",
    "parse_json_body",
]
