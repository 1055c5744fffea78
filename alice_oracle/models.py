"""Data model shared by the discovery, enrichment and scoring stages."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class OriginSource(str, Enum):
    STREAM = "stream"
    POLL = "poll"
    SYNTHETIC = "synthetic"


class Recommendation(str, Enum):
    STRONG_BUY = "STRONG BUY"
    BUY = "BUY"
    ACCUMULATE = "ACCUMULATE"
    SELL = "SELL"
    HOLD = "HOLD"


class Archetype(str, Enum):
    PROPHET = "Prophet"
    SEER = "Seer"
    TRICKSTER = "Trickster"
    OBSERVER = "Observer"
    GUARDIAN = "Guardian"
    SHADOW = "Shadow"
    ECHO = "Echo"
    CULTIST = "Cultist"


class KpLevel(str, Enum):
    QUIET = "Quiet"
    MODERATE = "Moderate"
    ACTIVE = "Active"
    STORM = "Storm"


def normalize_identifier(identifier: Any) -> str:
    """Return the case-normalized dedup key for ``identifier``."""

    if not isinstance(identifier, str):
        return ""
    return identifier.strip().lower()


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Candidate:
    """A minimally identified, freshly discovered token."""

    identifier: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    discovered_at: int = field(default_factory=now_ms)
    origin: OriginSource = OriginSource.POLL
    labels: Tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return normalize_identifier(self.identifier)

    def completeness(self) -> int:
        """Number of populated descriptive fields."""

        return sum(1 for value in (self.name, self.symbol) if value) + (1 if self.labels else 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "name": self.name,
            "symbol": self.symbol,
            "discoveredAt": self.discovered_at,
            "originSource": self.origin.value,
            "labels": list(self.labels),
        }


@dataclass(frozen=True)
class EnrichedCandidate(Candidate):
    """Candidate plus optional market metrics.

    Every metric may be ``None``; scoring treats ``None`` as "insufficient
    data" rather than zero.
    """

    fdv: Optional[float] = None
    liquidity_usd: Optional[float] = None
    volume_24h_usd: Optional[float] = None
    price_usd: Optional[float] = None
    price_change_5m: Optional[float] = None
    price_change_1h: Optional[float] = None
    price_change_6h: Optional[float] = None
    price_change_24h: Optional[float] = None
    tx_count_5m: Optional[int] = None
    tx_count_1h: Optional[int] = None
    buys_5m: Optional[int] = None
    sells_5m: Optional[int] = None
    buys_1h: Optional[int] = None
    sells_1h: Optional[int] = None
    pair_created_at: Optional[int] = None
    pair_address: Optional[str] = None
    pair_url: Optional[str] = None
    dex_id: Optional[str] = None
    enriched: bool = False

    @classmethod
    def unenriched(cls, candidate: Candidate) -> "EnrichedCandidate":
        return cls(**{f.name: getattr(candidate, f.name) for f in fields(Candidate)})

    def with_metrics(self, **metrics: Any) -> "EnrichedCandidate":
        return replace(self, **metrics)

    def age_minutes(self, now: Optional[int] = None) -> Optional[float]:
        if not self.pair_created_at:
            return None
        current = now if now is not None else now_ms()
        return max(0.0, (current - self.pair_created_at) / 60000.0)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update(
            {
                "fullyDilutedValue": self.fdv,
                "liquidityUsd": self.liquidity_usd,
                "volume24hUsd": self.volume_24h_usd,
                "priceUsd": self.price_usd,
                "priceChange": {
                    "m5": self.price_change_5m,
                    "h1": self.price_change_1h,
                    "h6": self.price_change_6h,
                    "h24": self.price_change_24h,
                },
                "txCount": {"m5": self.tx_count_5m, "h1": self.tx_count_1h},
                "txns": {
                    "m5": {"buys": self.buys_5m, "sells": self.sells_5m},
                    "h1": {"buys": self.buys_1h, "sells": self.sells_1h},
                },
                "pairCreatedAt": self.pair_created_at,
                "pairAddress": self.pair_address,
                "pairUrl": self.pair_url,
                "dexId": self.dex_id,
                "enriched": self.enriched,
            }
        )
        return payload


@dataclass(frozen=True)
class LayerScore:
    name: str
    score: int
    display: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "score", int(min(100, max(0, round(self.score)))))

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "score": self.score, "display": self.display}


@dataclass(frozen=True)
class CosmicSnapshot:
    moon_phase: str
    illumination: int
    emoji: str
    kp_index: float
    kp_level: KpLevel
    kp_source: str = "noaa"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "moon": {
                "phase": self.moon_phase,
                "illumination": self.illumination,
                "emoji": self.emoji,
            },
            "kp": {
                "kp": self.kp_index,
                "level": self.kp_level.value,
                "source": self.kp_source,
            },
        }


@dataclass(frozen=True)
class ScoredToken:
    token: EnrichedCandidate
    layers: Tuple[LayerScore, ...]
    composite_score: int
    recommendation: Recommendation
    archetype: Archetype
    spiking: bool
    rsi: float
    confidence: int

    @property
    def identifier(self) -> str:
        return self.token.identifier

    @property
    def key(self) -> str:
        return self.token.key

    def layer(self, name: str) -> LayerScore:
        for layer in self.layers:
            if layer.name == name:
                return layer
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        payload = self.token.to_dict()
        payload.update(
            {
                "layers": [layer.to_dict() for layer in self.layers],
                "compositeScore": self.composite_score,
                "recommendation": self.recommendation.value,
                "confidence": self.confidence,
                "archetype": self.archetype.value,
                "spiking": self.spiking,
                "rsi": self.rsi,
            }
        )
        return payload


__all__ = [
    "Archetype",
    "Candidate",
    "CosmicSnapshot",
    "EnrichedCandidate",
    "KpLevel",
    "LayerScore",
    "OriginSource",
    "Recommendation",
    "ScoredToken",
    "normalize_identifier",
    "now_ms",
]
