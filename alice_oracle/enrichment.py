from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Sequence

from .models import Candidate, EnrichedCandidate
from .synthetic import SyntheticSource, is_synthetic

logger = logging.getLogger(__name__)


class Enricher:
    """Attach market metrics to candidates.

    Output has the same length and order as the input.  At most
    ``max_queries`` provider lookups run per call, ``concurrency`` of them at
    a time; anything not looked up, or whose lookup fails, passes through
    with every metric set to ``None``.
    """

    def __init__(
        self,
        market_data: Any,
        synthetic: Optional[SyntheticSource] = None,
        *,
        max_queries: int = 20,
        concurrency: int = 8,
    ) -> None:
        self.market_data = market_data
        self.synthetic = synthetic
        self.max_queries = max(0, int(max_queries))
        self.concurrency = max(1, int(concurrency))

    @classmethod
    def from_settings(cls, cfg: Any, market_data: Any, synthetic: SyntheticSource) -> "Enricher":
        return cls(
            market_data,
            synthetic,
            max_queries=cfg.enrich_max_queries,
            concurrency=cfg.enrich_concurrency,
        )

    async def _lookup(self, candidate: Candidate, gate: asyncio.Semaphore) -> EnrichedCandidate:
        async with gate:
            try:
                enriched = await self.market_data.enrich(candidate)
            except Exception as exc:
                logger.debug("Enrichment failed for %s: %r", candidate.identifier, exc)
                enriched = None
        if enriched is None:
            return EnrichedCandidate.unenriched(candidate)
        return enriched

    async def enrich(self, candidates: Sequence[Candidate]) -> List[EnrichedCandidate]:
        results: List[Optional[EnrichedCandidate]] = [None] * len(candidates)
        gate = asyncio.Semaphore(self.concurrency)
        pending: List[tuple[int, "asyncio.Future[EnrichedCandidate]"]] = []
        queries = 0
        skipped = 0

        for idx, candidate in enumerate(candidates):
            if is_synthetic(candidate) and self.synthetic is not None:
                results[idx] = self.synthetic.metrics_for(candidate)
                continue
            if not candidate.key or queries >= self.max_queries:
                skipped += 1 if candidate.key else 0
                results[idx] = EnrichedCandidate.unenriched(candidate)
                continue
            queries += 1
            pending.append((idx, asyncio.ensure_future(self._lookup(candidate, gate))))

        if pending:
            done = await asyncio.gather(*(fut for _, fut in pending))
            for (idx, _), enriched in zip(pending, done):
                results[idx] = enriched

        if skipped:
            logger.debug("Enrichment cap %d reached; %d candidates left unenriched", self.max_queries, skipped)
        return [item for item in results if item is not None]


__all__ = ["Enricher"]
