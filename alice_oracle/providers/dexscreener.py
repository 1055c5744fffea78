"""Dexscreener REST adapters with defensive parsing."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, List, Mapping, MutableMapping, Optional, Sequence
from urllib.parse import quote

from ..models import Candidate, EnrichedCandidate, OriginSource, now_ms

logger = logging.getLogger(__name__)


def _coerce_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value.strip())
        except (TypeError, ValueError):
            return None
    elif isinstance(value, Mapping):
        for key in ("usd", "value", "price", "amount"):
            if key in value:
                return _coerce_float(value.get(key))
        return None
    else:
        return None
    if math.isnan(numeric) or math.isinf(numeric):
        return None
    return numeric


def _coerce_int(value: Any) -> int | None:
    numeric = _coerce_float(value)
    if numeric is None:
        return None
    return int(numeric)


def _parse_timestamp(value: Any) -> int | None:
    """Return epoch milliseconds for seconds/milliseconds/numeric-string input."""

    ts = _coerce_float(value)
    if ts is None or ts <= 0:
        return None
    if ts < 1e12:
        ts *= 1000.0
    return int(ts)


def _extract_pairs(payload: Any) -> List[MutableMapping[str, Any]]:
    if isinstance(payload, Mapping):
        for key in ("pairs", "data", "results"):
            pairs = payload.get(key)
            if isinstance(pairs, Sequence) and not isinstance(pairs, (str, bytes)):
                return [pair for pair in pairs if isinstance(pair, MutableMapping)]
        return []
    if isinstance(payload, Sequence) and not isinstance(payload, (str, bytes)):
        return [pair for pair in payload if isinstance(pair, MutableMapping)]
    return []


def _token_from_pair(pair: Mapping[str, Any], role: str) -> Mapping[str, Any]:
    token = pair.get(f"{role}Token") or pair.get(f"{role}_token")
    if isinstance(token, Mapping):
        return token
    if isinstance(token, str):
        return {"address": token}
    return {}


def _token_address(pair: Mapping[str, Any], role: str) -> str:
    token = _token_from_pair(pair, role)
    value = token.get("address") or token.get("id") or token.get("mint")
    return value if isinstance(value, str) else ""


def pair_liquidity(pair: Mapping[str, Any]) -> float:
    return _coerce_float(pair.get("liquidity")) or 0.0


def select_best_pair(
    pairs: Iterable[Mapping[str, Any]],
    identifier: str,
) -> Optional[Mapping[str, Any]]:
    """Pick the most liquid pair trading ``identifier``.

    Pairs whose base or quote token matches ``identifier`` (case-insensitive)
    are preferred; when none match, the most liquid of all pairs is used.
    """

    all_pairs = [pair for pair in pairs if isinstance(pair, Mapping)]
    if not all_pairs:
        return None
    wanted = identifier.strip().lower()
    matching = [
        pair
        for pair in all_pairs
        if wanted in {_token_address(pair, "base").lower(), _token_address(pair, "quote").lower()}
    ]
    return max(matching or all_pairs, key=pair_liquidity)


def _window(container: Any, key: str) -> Any:
    if isinstance(container, Mapping):
        return container.get(key)
    return None


def apply_pair(candidate: Candidate | EnrichedCandidate, pair: Mapping[str, Any]) -> EnrichedCandidate:
    """Map a Dexscreener pair payload onto ``candidate``."""

    base = _token_from_pair(pair, "base")
    price_change = pair.get("priceChange") or {}
    txns = pair.get("txns") or {}
    volume = pair.get("volume")

    def _counts(window: str) -> tuple[int | None, int | None, int | None]:
        bucket = _window(txns, window)
        buys = _coerce_int(_window(bucket, "buys"))
        sells = _coerce_int(_window(bucket, "sells"))
        if buys is None and sells is None:
            return None, None, None
        return buys, sells, (buys or 0) + (sells or 0)

    buys_5m, sells_5m, tx_5m = _counts("m5")
    buys_1h, sells_1h, tx_1h = _counts("h1")

    labels = list(candidate.labels)
    for label in pair.get("labels") or []:
        if isinstance(label, str) and label and label not in labels:
            labels.append(label)
    dex_id = pair.get("dexId")
    if isinstance(dex_id, str) and "pump" in dex_id.lower() and "pump" not in labels:
        labels.append("pump")

    enriched = (
        candidate if isinstance(candidate, EnrichedCandidate) else EnrichedCandidate.unenriched(candidate)
    )
    return enriched.with_metrics(
        name=candidate.name or (base.get("name") if isinstance(base.get("name"), str) else None),
        symbol=candidate.symbol or (base.get("symbol") if isinstance(base.get("symbol"), str) else None),
        labels=tuple(labels),
        fdv=_coerce_float(pair.get("fdv")) if pair.get("fdv") is not None else _coerce_float(pair.get("marketCap")),
        liquidity_usd=_coerce_float(pair.get("liquidity")),
        volume_24h_usd=_coerce_float(_window(volume, "h24")) if isinstance(volume, Mapping) else _coerce_float(volume),
        price_usd=_coerce_float(pair.get("priceUsd")),
        price_change_5m=_coerce_float(_window(price_change, "m5")),
        price_change_1h=_coerce_float(_window(price_change, "h1")),
        price_change_6h=_coerce_float(_window(price_change, "h6")),
        price_change_24h=_coerce_float(_window(price_change, "h24")),
        tx_count_5m=tx_5m,
        tx_count_1h=tx_1h,
        buys_5m=buys_5m,
        sells_5m=sells_5m,
        buys_1h=buys_1h,
        sells_1h=sells_1h,
        pair_created_at=_parse_timestamp(pair.get("pairCreatedAt")),
        pair_address=pair.get("pairAddress") if isinstance(pair.get("pairAddress"), str) else None,
        pair_url=pair.get("url") if isinstance(pair.get("url"), str) else None,
        dex_id=dex_id if isinstance(dex_id, str) else None,
        enriched=True,
    )


class DexscreenerMarketData:
    """Per-token pair lookups (``/latest/dex/tokens/{address}``)."""

    def __init__(self, fetcher: Any, base_url: str) -> None:
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")

    def url_for(self, identifier: str) -> str:
        return f"{self.base_url}/{quote(identifier.strip(), safe='')}"

    async def pairs(self, identifier: str) -> List[MutableMapping[str, Any]]:
        token = (identifier or "").strip()
        if not token:
            raise ValueError("identifier must be a non-empty string")
        payload = await self.fetcher.fetch_json(self.url_for(token))
        if payload is None:
            return []
        return _extract_pairs(payload)

    async def enrich(self, candidate: Candidate) -> Optional[EnrichedCandidate]:
        """Return ``candidate`` enriched from its most liquid pair, or ``None``."""

        best = select_best_pair(await self.pairs(candidate.identifier), candidate.identifier)
        if best is None:
            return None
        return apply_pair(candidate, best)


class DexscreenerListing:
    """Newest-listing poll used when the push feed is thin.

    Accepts the token-profile feed (a list of ``{chainId, tokenAddress}``
    objects) as well as pair-search payloads (``{"pairs": [...]}``).
    """

    def __init__(self, fetcher: Any, url: str, *, chain: str = "solana") -> None:
        self.fetcher = fetcher
        self.url = url
        self.chain = chain

    def parse(self, payload: Any, *, discovered_at: int | None = None) -> List[Candidate]:
        stamp = discovered_at if discovered_at is not None else now_ms()
        result: List[Candidate] = []
        for entry in _extract_pairs(payload):
            chain = entry.get("chainId")
            if isinstance(chain, str) and chain.lower() != self.chain:
                continue
            base = _token_from_pair(entry, "base")
            identifier = entry.get("tokenAddress") or base.get("address")
            if not isinstance(identifier, str) or not identifier.strip():
                continue
            name = base.get("name") or entry.get("name")
            symbol = base.get("symbol") or entry.get("symbol")
            labels = tuple(
                label for label in (entry.get("labels") or []) if isinstance(label, str) and label
            )
            if identifier.strip().lower().endswith("pump") and "pump" not in labels:
                labels = labels + ("pump",)
            result.append(
                Candidate(
                    identifier=identifier.strip(),
                    name=name.strip() if isinstance(name, str) and name.strip() else None,
                    symbol=symbol.strip() if isinstance(symbol, str) and symbol.strip() else None,
                    discovered_at=stamp,
                    origin=OriginSource.POLL,
                    labels=labels,
                )
            )
        return result

    async def latest(self, limit: int | None = None) -> List[Candidate]:
        payload = await self.fetcher.fetch_json(self.url)
        if payload is None:
            logger.debug("Listing poll %s returned no data", self.url)
            return []
        candidates = self.parse(payload)
        if limit is not None:
            return candidates[: max(0, limit)]
        return candidates


__all__ = [
    "DexscreenerListing",
    "DexscreenerMarketData",
    "apply_pair",
    "pair_liquidity",
    "select_best_pair",
]
