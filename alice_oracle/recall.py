"""Durable, bounded history of tokens surfaced by past scans."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .jsonutil import dumps_bytes, loads
from .models import ScoredToken, normalize_identifier, now_ms

logger = logging.getLogger(__name__)

MAX_RECALL = 500


def entry_from_scored(scored: ScoredToken, *, seen_at: Optional[int] = None) -> Dict[str, Any]:
    """Flatten a scored token into the persisted recall record."""

    token = scored.token
    stamp = seen_at if seen_at is not None else now_ms()
    return {
        "identifier": token.identifier,
        "name": token.name,
        "symbol": token.symbol,
        "originSource": token.origin.value,
        "compositeScore": scored.composite_score,
        "recommendation": scored.recommendation.value,
        "archetype": scored.archetype.value,
        "priceUsd": token.price_usd,
        "fdv": token.fdv,
        "liquidityUsd": token.liquidity_usd,
        "spiking": scored.spiking,
        "firstSeen": stamp,
        "lastSeen": stamp,
    }


def _entry_key(entry: Any) -> str:
    if not isinstance(entry, dict):
        return ""
    return normalize_identifier(entry.get("identifier"))


class RecallStore:
    """Newest-first list of recall records persisted as one JSON document.

    Writes go to ``<path>.tmp`` and are moved into place with
    :func:`os.replace`, so a crash mid-write leaves the previous file
    intact.  Merges are serialized with an :class:`asyncio.Lock`.
    """

    def __init__(self, path: str | Path, capacity: int = MAX_RECALL) -> None:
        self.path = Path(path)
        self.capacity = max(1, min(MAX_RECALL, int(capacity)))
        self._lock = asyncio.Lock()
        self._entries: List[Dict[str, Any]] = []
        self._loaded = False

    def load(self) -> List[Dict[str, Any]]:
        """Read the history from disk; missing or corrupt files yield ``[]``."""

        self._loaded = True
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            self._entries = []
            return []
        except OSError as exc:
            logger.warning("Cannot read recall history %s: %s", self.path, exc)
            self._entries = []
            return []

        try:
            data = loads(raw) if raw.strip() else []
        except ValueError as exc:
            logger.warning("Recall history %s is corrupt, starting empty: %s", self.path, exc)
            data = []
        if isinstance(data, dict):
            data = data.get("tokens", [])
        if not isinstance(data, list):
            logger.warning("Recall history %s has unexpected shape, starting empty", self.path)
            data = []

        entries: List[Dict[str, Any]] = []
        seen: set[str] = set()
        for entry in data:
            key = _entry_key(entry)
            if key and key not in seen:
                seen.add(key)
                entries.append(entry)
        self._entries = entries[: self.capacity]
        return list(self._entries)

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _write(self, entries: List[Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = f"{self.path}.tmp"
        try:
            with open(tmp, "wb") as fh:
                fh.write(dumps_bytes(entries, indent=2))
            os.replace(tmp, self.path)
        except OSError:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
            raise

    async def merge(self, entries: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Put ``entries`` in front of the history and persist it.

        On a key collision the new record wins but keeps the older
        ``firstSeen``.  The result is truncated to ``capacity``.  A failed
        write is logged; the in-memory history is still updated.
        """

        async with self._lock:
            self._ensure_loaded()
            previous = {_entry_key(entry): entry for entry in self._entries}
            merged: List[Dict[str, Any]] = []
            seen: set[str] = set()

            for entry in entries:
                key = _entry_key(entry)
                if not key or key in seen:
                    continue
                seen.add(key)
                record = dict(entry)
                old = previous.get(key)
                if old is not None and old.get("firstSeen") is not None:
                    record["firstSeen"] = old["firstSeen"]
                merged.append(record)

            for entry in self._entries:
                key = _entry_key(entry)
                if key in seen:
                    continue
                seen.add(key)
                merged.append(entry)

            merged = merged[: self.capacity]
            self._entries = merged
            try:
                await asyncio.to_thread(self._write, merged)
            except OSError as exc:
                logger.warning("Failed to persist recall history to %s: %s", self.path, exc)
            return list(merged)

    def entries(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        self._ensure_loaded()
        if limit is None:
            return list(self._entries)
        return self._entries[: max(0, int(limit))]

    def __len__(self) -> int:
        self._ensure_loaded()
        return len(self._entries)


__all__ = ["MAX_RECALL", "RecallStore", "entry_from_scored"]
