import asyncio
import random

from alice_oracle.enrichment import Enricher
from alice_oracle.models import Candidate, EnrichedCandidate, OriginSource
from alice_oracle.synthetic import SyntheticSource


class FakeMarketData:
    def __init__(self, fail=(), empty=(), delay=0.0):
        self.fail = set(fail)
        self.empty = set(empty)
        self.delay = delay
        self.calls = []
        self.active = 0
        self.peak = 0

    async def enrich(self, candidate):
        self.calls.append(candidate.identifier)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            if candidate.identifier in self.fail:
                raise RuntimeError("provider down")
            if candidate.identifier in self.empty:
                return None
            return EnrichedCandidate.unenriched(candidate).with_metrics(fdv=10_000.0, enriched=True)
        finally:
            self.active -= 1


def test_output_preserves_length_and_order():
    cands = [Candidate(f"m{i}") for i in range(6)]
    market = FakeMarketData(fail={"m1"}, empty={"m3"})
    out = asyncio.run(Enricher(market).enrich(cands))

    assert [c.identifier for c in out] == [c.identifier for c in cands]
    assert [c.enriched for c in out] == [True, False, True, False, True, True]
    assert out[1].fdv is None
    assert out[0].fdv == 10_000.0


def test_query_cap_leaves_the_rest_unenriched():
    cands = [Candidate(f"m{i}") for i in range(25)]
    market = FakeMarketData()
    out = asyncio.run(Enricher(market, max_queries=20).enrich(cands))

    assert len(out) == 25
    assert len(market.calls) == 20
    assert all(c.enriched for c in out[:20])
    assert not any(c.enriched for c in out[20:])


def test_concurrency_is_bounded():
    cands = [Candidate(f"m{i}") for i in range(12)]
    market = FakeMarketData(delay=0.01)
    asyncio.run(Enricher(market, concurrency=3).enrich(cands))
    assert market.peak <= 3
    assert len(market.calls) == 12


def test_synthetic_candidates_never_hit_the_provider():
    synthetic = SyntheticSource(random.Random(3))
    cands = synthetic.candidates(2) + [Candidate("real")]
    market = FakeMarketData()
    out = asyncio.run(Enricher(market, synthetic).enrich(cands))

    assert market.calls == ["real"]
    assert [c.origin for c in out] == [OriginSource.SYNTHETIC, OriginSource.SYNTHETIC, OriginSource.POLL]
    assert all(c.enriched for c in out)


def test_empty_identifier_passes_through():
    out = asyncio.run(Enricher(FakeMarketData()).enrich([Candidate("  ")]))
    assert len(out) == 1
    assert out[0].enriched is False
