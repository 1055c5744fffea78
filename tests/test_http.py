import asyncio

import aiohttp
import pytest

from alice_oracle import http
from alice_oracle.http import ResilientFetcher, looks_like_html, parse_json_body


class FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self._body = body

    async def read(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Replay a scripted list of responses (or exceptions)."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = []

    def get(self, url, headers=None, timeout=None):
        self.calls.append((url, timeout))
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def _fetcher(script, **kwargs):
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    session = FakeSession(script)
    fetcher = ResilientFetcher(session=session, sleep=fake_sleep, **kwargs)
    return fetcher, session, delays


def test_first_attempt_success():
    fetcher, session, delays = _fetcher([FakeResponse(200, b'{"pairs": []}')])
    assert asyncio.run(fetcher.fetch_json("https://x/api")) == {"pairs": []}
    assert len(session.calls) == 1
    assert delays == []
    assert session.calls[0][1].total == pytest.approx(8.0)


def test_retries_with_exponential_backoff():
    fetcher, session, delays = _fetcher(
        [FakeResponse(500, b"oops"), FakeResponse(429, b"slow down"), FakeResponse(200, b"[1, 2]")],
        attempts=3,
        backoff=0.25,
    )
    assert asyncio.run(fetcher.fetch_json("https://x/api")) == [1, 2]
    assert delays == [0.25, 0.5]


def test_exhausted_attempts_return_none_without_trailing_sleep():
    fetcher, session, delays = _fetcher(
        [
            aiohttp.ClientConnectionError("refused"),
            FakeResponse(503, b""),
            FakeResponse(200, b"<!DOCTYPE html><html>rate limited</html>"),
        ],
    )
    assert asyncio.run(fetcher.fetch_json("https://x/api")) is None
    assert len(session.calls) == 3
    assert delays == [0.25, 0.5]


def test_invalid_json_counts_as_failure():
    fetcher, session, delays = _fetcher([FakeResponse(200, b"{broken")], attempts=1)
    assert asyncio.run(fetcher.fetch_json("https://x/api")) is None
    assert delays == []


def test_slow_attempt_times_out():
    class SlowResponse(FakeResponse):
        async def read(self):
            await asyncio.sleep(1)
            return b"{}"

    fetcher, session, delays = _fetcher([SlowResponse(200, b"")], attempts=1, timeout=0.1)
    assert asyncio.run(fetcher.fetch_json("https://x/api")) is None


def test_delay_schedule():
    fetcher = ResilientFetcher(backoff=0.5)
    assert [fetcher.delay_for(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]


def test_looks_like_html():
    assert looks_like_html(b"  <!doctype html><p>hi")
    assert looks_like_html("<HTML><body>blocked</body></HTML>")
    assert not looks_like_html(b'{"ok": true}')


def test_parse_json_body_rejects_empty_and_html():
    with pytest.raises(http.MalformedResponseError):
        parse_json_body(b"   ")
    with pytest.raises(http.MalformedResponseError):
        parse_json_body(b"<html></html>")
    assert parse_json_body(b'{"a": 1}') == {"a": 1}


@pytest.mark.asyncio
async def test_get_session_singleton():
    await http.close_session()
    s1 = await http.get_session()
    s2 = await http.get_session()
    assert s1 is s2
    await http.close_session()
    assert s1.closed


def test_every_attempt_timing_out_returns_none():
    class SlowResponse(FakeResponse):
        async def read(self):
            await asyncio.sleep(5)
            return b"{}"

    fetcher, session, delays = _fetcher(
        [SlowResponse(200, b""), SlowResponse(200, b""), SlowResponse(200, b"")],
        attempts=3,
        backoff=0.25,
        timeout=0.1,
    )
    assert asyncio.run(fetcher.fetch_json("https://x/slow")) is None
    assert len(session.calls) == 3
    assert delays == [0.25, 0.5]
