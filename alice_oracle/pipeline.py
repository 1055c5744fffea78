"""Scan orchestration: discovery, enrichment, filtering, scoring and recall."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from .cosmic import CosmicProvider
from .discovery import SourceAggregator
from .enrichment import Enricher
from .http import ResilientFetcher, close_session
from .lru import TTLCache
from .models import CosmicSnapshot, EnrichedCandidate, OriginSource, ScoredToken, now_ms
from .providers.dexscreener import DexscreenerListing, DexscreenerMarketData
from .recall import MAX_RECALL, RecallStore, entry_from_scored
from .scoring import flow_score, score_token
from .settings import ScanSettings, settings
from .stream import NewTokenStream
from .synthetic import SyntheticSource

logger = logging.getLogger(__name__)

SCAN_CACHE_KEY = "scan"


class ScanFailed(RuntimeError):
    """Raised when a scan fails for a reason other than upstream data gaps."""


@dataclass
class ScanResult:
    tokens: List[ScoredToken]
    cosmic: CosmicSnapshot
    config: Dict[str, Any]
    generated_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": len(self.tokens),
            "tokens": [token.to_dict() for token in self.tokens],
            "cosmic": self.cosmic.to_dict(),
            "config": dict(self.config),
            "generatedAt": self.generated_at,
        }


def is_pumpfun(token: EnrichedCandidate) -> bool:
    return any("pump" in label.lower() for label in token.labels)


def passes_filters(token: EnrichedCandidate, cfg: ScanSettings, *, now: Optional[int] = None) -> bool:
    """Apply the configured bounds; unknown values never exclude a token."""

    if token.fdv is not None and token.fdv > cfg.fdv_limit:
        return False
    if token.liquidity_usd is not None and token.liquidity_usd < cfg.min_liquidity:
        return False
    age = token.age_minutes(now)
    if age is not None and age > cfg.max_age_minutes:
        return False
    if cfg.require_pumpfun and not is_pumpfun(token):
        return False
    return True


def rank_scored(tokens: Iterable[ScoredToken]) -> List[ScoredToken]:
    """Sort by composite score, then liquidity, both descending."""

    return sorted(
        tokens,
        key=lambda item: (item.composite_score, item.token.liquidity_usd or 0.0),
        reverse=True,
    )


class OracleScanner:
    """Run scans over the discovery, enrichment and scoring stages.

    Concurrent :meth:`run_scan` calls inside the cache window share one
    computation.  Collaborators are injected so tests can swap any stage.
    """

    def __init__(
        self,
        cfg: ScanSettings,
        *,
        stream: NewTokenStream | None = None,
        aggregator: Any,
        enricher: Any,
        cosmic: Any,
        recall: RecallStore | None = None,
        cache: TTLCache | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.cfg = cfg
        self.stream = stream
        self.aggregator = aggregator
        self.enricher = enricher
        self.cosmic = cosmic
        self.recall = recall
        self.cache = cache or TTLCache(maxsize=4, ttl=cfg.cache_ttl)
        self._clock = clock or now_ms

    @classmethod
    def from_settings(cls, cfg: ScanSettings | None = None) -> "OracleScanner":
        cfg = cfg or settings()
        fetcher = ResilientFetcher.from_settings(cfg)
        stream = NewTokenStream(
            cfg.stream_url,
            capacity=cfg.stream_capacity,
            reconnect_delay=cfg.stream_reconnect_delay,
        )
        synthetic = SyntheticSource(enabled=cfg.synthetic_fallback)
        listing = DexscreenerListing(fetcher, cfg.listing_url)
        market_data = DexscreenerMarketData(fetcher, cfg.market_data_url)
        return cls(
            cfg,
            stream=stream,
            aggregator=SourceAggregator.from_settings(cfg, stream, listing, synthetic),
            enricher=Enricher.from_settings(cfg, market_data, synthetic),
            cosmic=CosmicProvider(fetcher, cfg.kp_index_url),
            recall=RecallStore(cfg.recall_path, cfg.recall_capacity),
        )

    # lifecycle -------------------------------------------------------------
    async def start(self) -> None:
        if self.stream is not None:
            self.stream.start()
        if self.recall is not None:
            self.recall.load()

    async def close(self) -> None:
        if self.stream is not None:
            await self.stream.stop()
        await close_session()

    def health(self) -> Dict[str, Any]:
        stream = self.stream
        return {
            "stream": stream.state.value if stream is not None else None,
            "streamBuffered": len(stream) if stream is not None else 0,
            "streamStats": dict(stream.stats) if stream is not None else {},
            "recall": len(self.recall) if self.recall is not None else 0,
        }

    # scanning --------------------------------------------------------------
    async def _enriched_candidates(self) -> tuple[CosmicSnapshot, List[EnrichedCandidate]]:
        cosmic, candidates = await asyncio.gather(self.cosmic.snapshot(), self.aggregator.discover())
        enriched = await self.enricher.enrich(candidates)
        return cosmic, enriched

    async def _scan(self) -> ScanResult:
        cosmic, enriched = await self._enriched_candidates()
        now = self._clock()
        kept = [token for token in enriched if passes_filters(token, self.cfg, now=now)]
        scored = rank_scored(score_token(token, cosmic, now=now) for token in kept)
        scored = scored[: max(0, self.cfg.limit_results)]
        logger.info(
            "Scan: %d candidates, %d after filters, %d returned",
            len(enriched),
            len(kept),
            len(scored),
        )

        # placeholders never enter the durable history
        real = [item for item in scored if item.token.origin is not OriginSource.SYNTHETIC]
        if self.recall is not None and real:
            await self.recall.merge(entry_from_scored(item, seen_at=now) for item in real)

        return ScanResult(
            tokens=scored,
            cosmic=cosmic,
            config=self.cfg.public_config(),
            generated_at=now,
        )

    async def run_scan(self) -> ScanResult:
        try:
            return await self.cache.get_or_set_async(SCAN_CACHE_KEY, self._scan)
        except ScanFailed:
            raise
        except Exception as exc:
            logger.exception("Scan failed")
            raise ScanFailed(str(exc) or exc.__class__.__name__) from exc

    async def run_listing(self) -> Dict[str, Any]:
        """Raw enriched candidates ranked by order flow, without scoring."""

        candidates = await self.aggregator.discover()
        enriched = await self.enricher.enrich(candidates)
        now = self._clock()
        kept = [token for token in enriched if passes_filters(token, self.cfg, now=now)]
        ranked = sorted(kept, key=flow_score, reverse=True)[: max(0, self.cfg.limit_results)]
        items = []
        for token in ranked:
            payload = token.to_dict()
            payload["flowScore"] = round(flow_score(token), 2)
            age = token.age_minutes(now)
            payload["ageMinutes"] = round(age) if age is not None else None
            items.append(payload)
        return {"count": len(items), "config": self.cfg.public_config(), "items": items}

    async def get_recall(self, limit: int = 100) -> Dict[str, Any]:
        try:
            requested = int(limit)
        except (TypeError, ValueError):
            requested = 100
        bounded = max(1, min(MAX_RECALL, requested))
        tokens = self.recall.entries(bounded) if self.recall is not None else []
        return {"count": len(tokens), "tokens": tokens}


__all__ = [
    "OracleScanner",
    "SCAN_CACHE_KEY",
    "ScanFailed",
    "ScanResult",
    "is_pumpfun",
    "passes_filters",
    "rank_scored",
]
