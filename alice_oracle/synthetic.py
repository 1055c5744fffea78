"""Clearly labeled placeholder candidates used when every real source is dry."""

from __future__ import annotations

import random
from typing import List, Optional

from .models import Candidate, EnrichedCandidate, OriginSource, now_ms

SYNTHETIC_PREFIX = "synthetic-"
SYNTHETIC_NAME_PREFIX = "[EXAMPLE] "

_PLACEHOLDERS = (
    ("Moon Rabbit", "MRAB"),
    ("Solar Flare", "FLARE"),
    ("Tide Caller", "TIDE"),
    ("Night Owl", "OWL"),
    ("Comet Dust", "DUST"),
    ("Star Seed", "SEED"),
    ("Aurora", "AURA"),
    ("Nebula Cat", "NCAT"),
)


def is_synthetic(candidate: Candidate) -> bool:
    return candidate.origin is OriginSource.SYNTHETIC


class SyntheticSource:
    """Fabricate example candidates and metrics.

    Every candidate carries ``origin=synthetic``, an identifier starting with
    ``synthetic-`` and a name starting with ``[EXAMPLE]`` so it can never be
    mistaken for a real listing.  Pass a seeded ``random.Random`` for
    reproducible output.
    """

    def __init__(self, rng: Optional[random.Random] = None, *, enabled: bool = True) -> None:
        self.rng = rng or random.Random()
        self.enabled = enabled

    def candidates(self, count: int) -> List[Candidate]:
        if not self.enabled or count <= 0:
            return []
        now = now_ms()
        result = []
        for idx in range(count):
            name, symbol = _PLACEHOLDERS[idx % len(_PLACEHOLDERS)]
            result.append(
                Candidate(
                    identifier=f"{SYNTHETIC_PREFIX}{symbol.lower()}-{idx + 1}",
                    name=SYNTHETIC_NAME_PREFIX + name,
                    symbol=symbol,
                    discovered_at=now,
                    origin=OriginSource.SYNTHETIC,
                    labels=("example",),
                )
            )
        return result

    def metrics_for(self, candidate: Candidate) -> EnrichedCandidate:
        rng = self.rng
        now = now_ms()
        buys_5m = rng.randint(0, 40)
        sells_5m = rng.randint(0, 30)
        buys_1h = buys_5m + rng.randint(0, 200)
        sells_1h = sells_5m + rng.randint(0, 150)
        return EnrichedCandidate.unenriched(candidate).with_metrics(
            fdv=round(rng.uniform(8_000, 450_000), 2),
            liquidity_usd=round(rng.uniform(2_500, 80_000), 2),
            volume_24h_usd=round(rng.uniform(1_000, 400_000), 2),
            price_usd=round(rng.uniform(0.000001, 0.01), 8),
            price_change_5m=round(rng.uniform(-15, 20), 2),
            price_change_1h=round(rng.uniform(-30, 60), 2),
            price_change_6h=round(rng.uniform(-50, 120), 2),
            price_change_24h=round(rng.uniform(-60, 200), 2),
            tx_count_5m=buys_5m + sells_5m,
            tx_count_1h=buys_1h + sells_1h,
            buys_5m=buys_5m,
            sells_5m=sells_5m,
            buys_1h=buys_1h,
            sells_1h=sells_1h,
            pair_created_at=now - rng.randint(2, 600) * 60_000,
            enriched=True,
        )


__all__ = [
    "SYNTHETIC_NAME_PREFIX",
    "SYNTHETIC_PREFIX",
    "SyntheticSource",
    "is_synthetic",
]
