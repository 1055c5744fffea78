"""Ten-factor heuristic scoring, recommendation and archetype rules.

Every factor maps one bounded input onto ``[0, 100]`` through fixed bands.
Inputs that are missing (``None``) yield :data:`NEUTRAL_SCORE` instead of
zero, so unenriched candidates land mid-table rather than at the bottom.
All functions here are pure: the same candidate, cosmic snapshot and
``now`` always produce the same score.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from .models import (
    Archetype,
    CosmicSnapshot,
    EnrichedCandidate,
    LayerScore,
    Recommendation,
    ScoredToken,
    now_ms,
)

NEUTRAL_SCORE = 50

FACTOR_NAMES: Tuple[str, ...] = (
    "fdv",
    "liquidity",
    "volume",
    "age",
    "momentum",
    "sentiment",
    "technical",
    "linguistics",
    "cosmic",
    "risk",
)

WEIGHTS: Dict[str, float] = {
    "fdv": 0.12,
    "liquidity": 0.13,
    "volume": 0.10,
    "age": 0.08,
    "momentum": 0.15,
    "sentiment": 0.10,
    "technical": 0.08,
    "linguistics": 0.05,
    "cosmic": 0.07,
    "risk": 0.12,
}

# (upper bound inclusive, score); lower is better
FDV_BANDS: Tuple[Tuple[float, int], ...] = (
    (15_000, 95),
    (50_000, 85),
    (150_000, 70),
    (500_000, 50),
)
FDV_FLOOR = 30

# (lower bound inclusive, score); higher is better
LIQUIDITY_BANDS: Tuple[Tuple[float, int], ...] = (
    (50_000, 90),
    (20_000, 75),
    (5_000, 60),
    (2_000, 45),
)
LIQUIDITY_FLOOR = 25

VOLUME_BANDS: Tuple[Tuple[float, int], ...] = (
    (250_000, 90),
    (100_000, 75),
    (25_000, 60),
    (5_000, 45),
)
VOLUME_FLOOR = 25

# age in minutes: (upper bound inclusive, score)
AGE_TOO_FRESH_MINUTES = 5
AGE_TOO_FRESH_SCORE = 70
AGE_BANDS: Tuple[Tuple[float, int], ...] = (
    (60, 90),
    (240, 75),
    (720, 60),
    (1440, 45),
)
AGE_FLOOR = 30

MOMENTUM_WEIGHT_5M = 0.6
MOMENTUM_WEIGHT_1H = 0.4
MOMENTUM_GAIN = 2.0

ACTIVITY_BANDS: Tuple[Tuple[float, int], ...] = (
    (50, 85),
    (20, 70),
    (5, 55),
)
ACTIVITY_FLOOR = 40
BUY_PRESSURE_SWING = 30.0  # +/-15 points at 100%/0% buys

RSI_OVERBOUGHT = 70
RSI_OVERSOLD = 30

DRAWDOWN_PENALTIES: Tuple[Tuple[str, float, int], ...] = (
    ("price_change_5m", -10.0, 10),
    ("price_change_1h", -20.0, 15),
    ("price_change_24h", -40.0, 20),
)

SPIKE_MIN_CHANGE_5M = 8.0
SPIKE_MIN_TX_5M = 15
SPIKE_MIN_LIQUIDITY_SCORE = 60


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _band_low_is_better(value: float, bands: Sequence[Tuple[float, int]], floor: int) -> int:
    for bound, score in bands:
        if value <= bound:
            return score
    return floor


def _band_high_is_better(value: float, bands: Sequence[Tuple[float, int]], floor: int) -> int:
    for bound, score in bands:
        if value >= bound:
            return score
    return floor


def _usd(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    if value >= 1_000_000:
        return f"${value / 1_000_000:.2f}M"
    if value >= 1_000:
        return f"${value / 1_000:.1f}k"
    return f"${value:.0f}"


def _pct(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:+.1f}%"


# ---------------------------------------------------------------------------
# Individual factors
# ---------------------------------------------------------------------------


def score_fdv(fdv: Optional[float]) -> LayerScore:
    if fdv is None or fdv < 0:
        return LayerScore("fdv", NEUTRAL_SCORE, "n/a")
    return LayerScore("fdv", _band_low_is_better(fdv, FDV_BANDS, FDV_FLOOR), _usd(fdv))


def score_liquidity(liquidity: Optional[float]) -> LayerScore:
    if liquidity is None or liquidity < 0:
        return LayerScore("liquidity", NEUTRAL_SCORE, "n/a")
    return LayerScore(
        "liquidity", _band_high_is_better(liquidity, LIQUIDITY_BANDS, LIQUIDITY_FLOOR), _usd(liquidity)
    )


def score_volume(volume: Optional[float]) -> LayerScore:
    if volume is None or volume < 0:
        return LayerScore("volume", NEUTRAL_SCORE, "n/a")
    return LayerScore("volume", _band_high_is_better(volume, VOLUME_BANDS, VOLUME_FLOOR), _usd(volume))


def score_age(age_minutes: Optional[float]) -> LayerScore:
    if age_minutes is None:
        return LayerScore("age", NEUTRAL_SCORE, "n/a")
    display = f"{age_minutes:.0f}m" if age_minutes < 120 else f"{age_minutes / 60:.1f}h"
    if age_minutes < AGE_TOO_FRESH_MINUTES:
        return LayerScore("age", AGE_TOO_FRESH_SCORE, display)
    return LayerScore("age", _band_low_is_better(age_minutes, AGE_BANDS, AGE_FLOOR), display)


def score_momentum(change_5m: Optional[float], change_1h: Optional[float]) -> LayerScore:
    if change_5m is None and change_1h is None:
        return LayerScore("momentum", NEUTRAL_SCORE, "n/a")
    blend = MOMENTUM_WEIGHT_5M * (change_5m or 0.0) + MOMENTUM_WEIGHT_1H * (change_1h or 0.0)
    return LayerScore("momentum", clamp(NEUTRAL_SCORE + MOMENTUM_GAIN * blend), _pct(blend))


def buy_share(token: EnrichedCandidate) -> Optional[float]:
    """Share of buys among recent transactions (1h window, else 5m)."""

    for buys, sells in ((token.buys_1h, token.sells_1h), (token.buys_5m, token.sells_5m)):
        if buys is None and sells is None:
            continue
        total = (buys or 0) + (sells or 0)
        if total > 0:
            return (buys or 0) / total
    return None


def score_sentiment(token: EnrichedCandidate) -> LayerScore:
    tx_5m = token.tx_count_5m
    share = buy_share(token)
    if tx_5m is None and share is None:
        return LayerScore("sentiment", NEUTRAL_SCORE, "n/a")
    base = NEUTRAL_SCORE if tx_5m is None else _band_high_is_better(tx_5m, ACTIVITY_BANDS, ACTIVITY_FLOOR)
    if share is not None:
        base += (share - 0.5) * BUY_PRESSURE_SWING
    display = f"{tx_5m if tx_5m is not None else '?'} tx/5m"
    if share is not None:
        display += f", {share * 100:.0f}% buys"
    return LayerScore("sentiment", clamp(base), display)


def price_path(token: EnrichedCandidate) -> list[float]:
    """Reconstruct prices 24h, 6h, 1h and 5m ago plus now from the deltas."""

    price = token.price_usd
    if price is None or price <= 0:
        return []
    path = []
    for change in (
        token.price_change_24h,
        token.price_change_6h,
        token.price_change_1h,
        token.price_change_5m,
    ):
        if change is None or change <= -100:
            continue
        path.append(price / (1 + change / 100.0))
    path.append(price)
    return path


def rsi(prices: Sequence[float], period: Optional[int] = None) -> float:
    """Relative strength index over ``period`` changes (default: all)."""

    if len(prices) < 2:
        return float(NEUTRAL_SCORE)
    span = period if period is not None else len(prices) - 1
    if len(prices) < span + 1:
        return float(NEUTRAL_SCORE)
    window = prices[-(span + 1):]
    gains = losses = 0.0
    for prev, cur in zip(window, window[1:]):
        change = cur - prev
        if change > 0:
            gains += change
        else:
            losses -= change
    if losses == 0:
        return 100.0 if gains > 0 else float(NEUTRAL_SCORE)
    rs = (gains / span) / (losses / span)
    return round(100 - 100 / (1 + rs), 1)


def score_technical(token: EnrichedCandidate) -> Tuple[LayerScore, float]:
    path = price_path(token)
    if len(path) < 2:
        return LayerScore("technical", NEUTRAL_SCORE, "n/a"), float(NEUTRAL_SCORE)
    value = rsi(path)
    if value > RSI_OVERBOUGHT:
        score = 85
    elif value < RSI_OVERSOLD:
        score = 40
    else:
        score = 65
    return LayerScore("technical", score, f"RSI {value:.0f}"), value


def score_linguistics(name: Optional[str], symbol: Optional[str]) -> LayerScore:
    name_power = 80 if len(name or "") < 12 else 60
    symbol_power = 75 if len(symbol or "") < 6 else 55
    return LayerScore(
        "linguistics",
        round((name_power + symbol_power) / 2),
        f"{len(name or '')}/{len(symbol or '')} chars",
    )


def score_cosmic(cosmic: Optional[CosmicSnapshot]) -> LayerScore:
    if cosmic is None:
        return LayerScore("cosmic", NEUTRAL_SCORE, "n/a")
    moon_bonus = 15 if cosmic.moon_phase == "Full Moon" else -10 if cosmic.moon_phase == "New Moon" else 0
    kp_bonus = 10 if cosmic.kp_index > 5 else -5 if cosmic.kp_index < 2 else 0
    return LayerScore(
        "cosmic",
        clamp(NEUTRAL_SCORE + moon_bonus + kp_bonus),
        f"{cosmic.emoji} {cosmic.moon_phase}, Kp {cosmic.kp_index:g}",
    )


def score_risk(token: EnrichedCandidate, liquidity: LayerScore) -> LayerScore:
    """Safety score: high when liquidity is deep and there are no drawdowns."""

    exposure = 100 - (liquidity.score if token.liquidity_usd is not None else NEUTRAL_SCORE)
    for attr, threshold, penalty in DRAWDOWN_PENALTIES:
        change = getattr(token, attr)
        if change is not None and change <= threshold:
            exposure += penalty
    score = clamp(100 - exposure)
    label = "LOW" if score >= 70 else "MEDIUM" if score >= 40 else "HIGH"
    return LayerScore("risk", score, f"{label} risk")


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Signals:
    """Inputs the rule tables look at."""

    composite: int
    momentum: int
    liquidity: int
    sentiment: int
    rsi: float


@dataclass(frozen=True)
class RecommendationRule:
    label: Recommendation
    confidence: int
    guard: Callable[[Signals], bool]


@dataclass(frozen=True)
class ArchetypeRule:
    label: Archetype
    guard: Callable[[int, int, int], bool]


# Evaluated top to bottom; the first matching guard wins.
RECOMMENDATION_RULES: Tuple[RecommendationRule, ...] = (
    RecommendationRule(
        Recommendation.STRONG_BUY,
        95,
        lambda s: s.composite >= 80 and s.momentum >= 60 and s.liquidity >= 60 and s.rsi < RSI_OVERBOUGHT,
    ),
    RecommendationRule(Recommendation.BUY, 80, lambda s: s.composite >= 70 and s.momentum >= 55),
    RecommendationRule(Recommendation.ACCUMULATE, 65, lambda s: s.composite >= 60),
    RecommendationRule(Recommendation.SELL, 70, lambda s: s.composite < 40 or s.rsi > 80),
    RecommendationRule(Recommendation.HOLD, 50, lambda s: True),
)

# Guards take (composite, liquidity axis, sentiment axis).
ARCHETYPE_RULES: Tuple[ArchetypeRule, ...] = (
    ArchetypeRule(Archetype.PROPHET, lambda s, v, st: s >= 90 and v > 80),
    ArchetypeRule(Archetype.SEER, lambda s, v, st: s >= 80 and v > 60),
    ArchetypeRule(Archetype.TRICKSTER, lambda s, v, st: s >= 70 and st < 50),
    ArchetypeRule(Archetype.OBSERVER, lambda s, v, st: s >= 60 and v < 50),
    ArchetypeRule(Archetype.GUARDIAN, lambda s, v, st: 50 <= s < 70),
    ArchetypeRule(Archetype.SHADOW, lambda s, v, st: s < 50 and v > 70),
    ArchetypeRule(Archetype.ECHO, lambda s, v, st: s < 40 and v < 40),
    ArchetypeRule(Archetype.CULTIST, lambda s, v, st: s < 30),
    ArchetypeRule(Archetype.OBSERVER, lambda s, v, st: True),
)


def recommend(signals: Signals) -> Tuple[Recommendation, int]:
    for rule in RECOMMENDATION_RULES:
        if rule.guard(signals):
            return rule.label, rule.confidence
    raise AssertionError("recommendation table has no catch-all")  # pragma: no cover


def assign_archetype(composite: int, volume_axis: int, sentiment_axis: int) -> Archetype:
    for rule in ARCHETYPE_RULES:
        if rule.guard(composite, volume_axis, sentiment_axis):
            return rule.label
    raise AssertionError("archetype table has no catch-all")  # pragma: no cover


def is_spiking(token: EnrichedCandidate, liquidity: LayerScore) -> bool:
    return (
        token.price_change_5m is not None
        and token.price_change_5m >= SPIKE_MIN_CHANGE_5M
        and token.tx_count_5m is not None
        and token.tx_count_5m >= SPIKE_MIN_TX_5M
        and token.liquidity_usd is not None
        and liquidity.score >= SPIKE_MIN_LIQUIDITY_SCORE
    )


def composite_score(layers: Sequence[LayerScore]) -> int:
    total = sum(WEIGHTS[layer.name] * layer.score for layer in layers)
    return int(clamp(round(total)))


def compute_layers(
    token: EnrichedCandidate,
    cosmic: Optional[CosmicSnapshot],
    *,
    now: Optional[int] = None,
) -> Tuple[Tuple[LayerScore, ...], float]:
    """Return the ten factor scores (in :data:`FACTOR_NAMES` order) and the RSI."""

    liquidity = score_liquidity(token.liquidity_usd)
    technical, rsi_value = score_technical(token)
    layers = (
        score_fdv(token.fdv),
        liquidity,
        score_volume(token.volume_24h_usd),
        score_age(token.age_minutes(now if now is not None else now_ms())),
        score_momentum(token.price_change_5m, token.price_change_1h),
        score_sentiment(token),
        technical,
        score_linguistics(token.name, token.symbol),
        score_cosmic(cosmic),
        score_risk(token, liquidity),
    )
    return layers, rsi_value


def score_token(
    token: EnrichedCandidate,
    cosmic: Optional[CosmicSnapshot],
    *,
    now: Optional[int] = None,
) -> ScoredToken:
    layers, rsi_value = compute_layers(token, cosmic, now=now)
    by_name = {layer.name: layer for layer in layers}
    composite = composite_score(layers)
    signals = Signals(
        composite=composite,
        momentum=by_name["momentum"].score,
        liquidity=by_name["liquidity"].score,
        sentiment=by_name["sentiment"].score,
        rsi=rsi_value,
    )
    recommendation, confidence = recommend(signals)
    archetype = assign_archetype(composite, signals.liquidity, signals.sentiment)
    return ScoredToken(
        token=token,
        layers=layers,
        composite_score=composite,
        recommendation=recommendation,
        archetype=archetype,
        spiking=is_spiking(token, by_name["liquidity"]),
        rsi=rsi_value,
        confidence=confidence,
    )


def flow_score(token: EnrichedCandidate) -> float:
    """Order-flow ranking used by the raw listing: net buys plus momentum."""

    net_5m = (token.buys_5m or 0) - (token.sells_5m or 0)
    net_1h = (token.buys_1h or 0) - (token.sells_1h or 0)
    momentum = (token.price_change_5m or 0.0) + (token.price_change_1h or 0.0)
    return net_5m + net_1h + momentum / 5


__all__ = [
    "ARCHETYPE_RULES",
    "FACTOR_NAMES",
    "NEUTRAL_SCORE",
    "RECOMMENDATION_RULES",
    "Signals",
    "WEIGHTS",
    "assign_archetype",
    "composite_score",
    "compute_layers",
    "flow_score",
    "is_spiking",
    "price_path",
    "recommend",
    "rsi",
    "score_token",
]
