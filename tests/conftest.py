from typing import Any, Dict, List, Optional

import pytest

from alice_oracle.logging_utils import reset_warn_once_cache
from alice_oracle.models import (
    Candidate,
    CosmicSnapshot,
    EnrichedCandidate,
    KpLevel,
    OriginSource,
)
from alice_oracle.settings import refresh_settings

NOW_MS = 1_717_000_000_000

_ENV_KEYS = (
    "FDV_LIMIT",
    "MIN_LIQ_USD",
    "MAX_AGE_MIN",
    "LIMIT_RESULTS",
    "REQUIRE_PUMPFUN",
    "SCAN_CACHE_TTL",
    "HTTP_TIMEOUT",
    "HTTP_RETRIES",
    "HTTP_BACKOFF",
    "RECALL_PATH",
    "RECALL_CAPACITY",
    "SYNTHETIC_FALLBACK",
    "ALICE_ORACLE_CONFIG",
    "LOG_FILE",
    "LOG_TO_FILE",
    "LOG_JSON",
    "LOG_LEVEL",
    "LOG_CONSOLE",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_warn_once_cache()
    refresh_settings()
    yield
    refresh_settings()


@pytest.fixture
def make_token():
    def _make(identifier: str = "Mint1111pump", **metrics: Any) -> EnrichedCandidate:
        base = dict(
            identifier=identifier,
            name=metrics.pop("name", "Moon Cat"),
            symbol=metrics.pop("symbol", "MCAT"),
            discovered_at=metrics.pop("discovered_at", NOW_MS),
            origin=metrics.pop("origin", OriginSource.STREAM),
            labels=metrics.pop("labels", ()),
        )
        return EnrichedCandidate(**base, **metrics)

    return _make


@pytest.fixture
def cosmic_snapshot():
    return CosmicSnapshot(
        moon_phase="Waxing Gibbous",
        illumination=80,
        emoji="🌔",
        kp_index=3.0,
        kp_level=KpLevel.MODERATE,
        kp_source="noaa",
    )


class FakeFetcher:
    """Return canned payloads keyed by URL prefix."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None) -> None:
        self.routes = dict(routes or {})
        self.calls: List[str] = []

    async def fetch_json(self, url: str, *, headers=None):
        self.calls.append(url)
        for prefix, payload in self.routes.items():
            if url.startswith(prefix):
                if isinstance(payload, BaseException):
                    raise payload
                return payload
        return None


@pytest.fixture
def fake_fetcher():
    return FakeFetcher


class FakeStream:
    def __init__(self, candidates: Optional[List[Candidate]] = None) -> None:
        self.items = list(candidates or [])

    def snapshot(self, limit=None):
        items = list(self.items)
        return items if limit is None else items[:limit]

    def __len__(self):
        return len(self.items)


@pytest.fixture
def fake_stream():
    return FakeStream
