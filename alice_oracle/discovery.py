from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from .models import Candidate
from .synthetic import SyntheticSource

logger = logging.getLogger(__name__)


def _merge_pair(current: Candidate, incoming: Candidate) -> Candidate:
    """Keep the more complete entry, filling its gaps from the other."""

    if incoming.completeness() > current.completeness():
        preferred, other = incoming, current
    else:
        preferred, other = current, incoming
    labels = tuple(dict.fromkeys(preferred.labels + other.labels))
    return replace(
        preferred,
        name=preferred.name or other.name,
        symbol=preferred.symbol or other.symbol,
        labels=labels,
    )


def dedupe_candidates(candidates: Iterable[Candidate]) -> List[Candidate]:
    """Deduplicate by normalized identifier, preserving first-seen order.

    Candidates without an identifier are dropped.  When two entries share a
    key the most complete one supplies the fields.
    """

    combined: Dict[str, Candidate] = {}
    for candidate in candidates:
        key = candidate.key
        if not key:
            logger.debug("Dropping candidate without identifier: %r", candidate)
            continue
        existing = combined.get(key)
        combined[key] = candidate if existing is None else _merge_pair(existing, candidate)
    return list(combined.values())


class SourceAggregator:
    """Merge the push feed with an HTTP poll and a synthetic fallback."""

    def __init__(
        self,
        stream: Any | None,
        listing: Any | None,
        synthetic: Optional[SyntheticSource] = None,
        *,
        max_candidates: int = 40,
        min_stream: int = 10,
        min_total: int = 5,
    ) -> None:
        self.stream = stream
        self.listing = listing
        self.synthetic = synthetic
        self.max_candidates = max(1, int(max_candidates))
        self.min_stream = max(0, int(min_stream))
        self.min_total = max(0, int(min_total))

    @classmethod
    def from_settings(cls, cfg: Any, stream: Any, listing: Any, synthetic: SyntheticSource) -> "SourceAggregator":
        return cls(
            stream,
            listing,
            synthetic,
            max_candidates=cfg.discovery_max,
            min_stream=cfg.discovery_min_stream,
            min_total=cfg.discovery_min_total,
        )

    async def _poll(self) -> List[Candidate]:
        if self.listing is None:
            return []
        try:
            return list(await self.listing.latest(self.max_candidates))
        except Exception as exc:  # pragma: no cover - listing adapters already swallow upstream errors
            logger.warning("Listing poll failed: %r", exc)
            return []

    async def discover(self) -> List[Candidate]:
        """Return at most ``max_candidates`` candidates, newest first."""

        streamed = self.stream.snapshot(self.max_candidates) if self.stream is not None else []
        merged = dedupe_candidates(streamed)
        polled: List[Candidate] = []
        if len(merged) < self.min_stream:
            polled = await self._poll()
            merged = dedupe_candidates(list(merged) + polled)

        if len(merged) < self.min_total and self.synthetic is not None and self.synthetic.enabled:
            fillers = self.synthetic.candidates(self.min_total - len(merged))
            logger.info(
                "Only %d real candidates (stream=%d, poll=%d); adding %d synthetic examples",
                len(merged),
                len(streamed),
                len(polled),
                len(fillers),
            )
            merged = dedupe_candidates(list(merged) + fillers)

        return merged[: self.max_candidates]


__all__ = ["SourceAggregator", "dedupe_candidates"]
