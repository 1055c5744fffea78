"""Push-feed subscriber keeping a bounded buffer of newly created tokens.

The adapter is an explicit state machine::

    DISCONNECTED -> CONNECTING -> SUBSCRIBED -> DISCONNECTED (error/close)

and after every disconnect it waits ``reconnect_delay`` seconds before
connecting again.  Readers only ever see copies of the buffer.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional

import websockets

from .jsonutil import dumps, loads
from .models import Candidate, OriginSource, now_ms

logger = logging.getLogger(__name__)

DEFAULT_SUBSCRIBE_PAYLOAD: Mapping[str, Any] = {"method": "subscribeNewToken"}

_MINT_KEYS = ("mint", "tokenAddress", "address")


class StreamState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def candidate_from_message(message: Any, *, discovered_at: Optional[int] = None) -> Optional[Candidate]:
    """Return a :class:`Candidate` for a new-token event, or ``None``."""

    if not isinstance(message, Mapping):
        return None
    tx_type = message.get("txType")
    if tx_type is not None and tx_type != "create":
        return None
    mint = None
    for key in _MINT_KEYS:
        mint = _text(message.get(key))
        if mint:
            break
    if not mint:
        return None
    labels = []
    pool = _text(message.get("pool"))
    if pool == "pump" or mint.lower().endswith("pump"):
        labels.append("pump")
    return Candidate(
        identifier=mint,
        name=_text(message.get("name")),
        symbol=_text(message.get("symbol")),
        discovered_at=discovered_at if discovered_at is not None else now_ms(),
        origin=OriginSource.STREAM,
        labels=tuple(labels),
    )


class NewTokenStream:
    """Long-lived websocket subscription feeding a ring buffer of candidates."""

    def __init__(
        self,
        url: str,
        *,
        capacity: int = 200,
        reconnect_delay: float = 5.0,
        connect: Callable[..., Any] | None = None,
        subscribe_payload: Mapping[str, Any] | None = None,
        ping_interval: float = 20.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.capacity = max(1, int(capacity))
        self.reconnect_delay = max(0.0, float(reconnect_delay))
        self._connect = connect or websockets.connect
        self._subscribe_payload = dict(subscribe_payload or DEFAULT_SUBSCRIBE_PAYLOAD)
        self._ping_interval = ping_interval
        self._sleep = sleep
        self._buffer: Deque[Candidate] = deque(maxlen=self.capacity)
        self._state = StreamState.DISCONNECTED
        self._task: asyncio.Task | None = None
        self.stats: Dict[str, Any] = {
            "connects": 0,
            "messages": 0,
            "dropped": 0,
            "last_message_at": None,
            "last_error": None,
        }

    # state ---------------------------------------------------------------
    @property
    def state(self) -> StreamState:
        return self._state

    def _transition(self, state: StreamState) -> None:
        if state is not self._state:
            logger.debug("stream %s: %s -> %s", self.url, self._state.value, state.value)
        self._state = state

    # buffer --------------------------------------------------------------
    def snapshot(self, limit: int | None = None) -> List[Candidate]:
        """Return a copy of the buffer, newest first."""

        items = list(self._buffer)
        if limit is not None:
            return items[: max(0, int(limit))]
        return items

    def __len__(self) -> int:
        return len(self._buffer)

    def push(self, candidate: Candidate) -> None:
        self._buffer.appendleft(candidate)

    def handle_message(self, raw: Any) -> Optional[Candidate]:
        """Parse one inbound frame; malformed frames are dropped."""

        self.stats["messages"] += 1
        try:
            message = loads(raw) if isinstance(raw, (str, bytes, bytearray)) else raw
        except ValueError:
            self.stats["dropped"] += 1
            return None
        candidate = candidate_from_message(message)
        if candidate is None:
            # subscription acks and non-create events land here too
            self.stats["dropped"] += 1
            return None
        self.push(candidate)
        self.stats["last_message_at"] = candidate.discovered_at
        return candidate

    # connection loop -----------------------------------------------------
    async def _cycle(self) -> None:
        self._transition(StreamState.CONNECTING)
        async with self._connect(self.url, ping_interval=self._ping_interval) as ws:
            await ws.send(dumps(self._subscribe_payload))
            self.stats["connects"] += 1
            self._transition(StreamState.SUBSCRIBED)
            logger.info("Subscribed to new-token stream %s", self.url)
            async for raw in ws:
                self.handle_message(raw)

    async def run(self, *, max_cycles: int | None = None) -> None:
        """Connect, consume, and reconnect forever (or ``max_cycles`` times)."""

        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            cycles += 1
            try:
                await self._cycle()
                logger.info("New-token stream %s closed", self.url)
            except asyncio.CancelledError:
                self._transition(StreamState.DISCONNECTED)
                raise
            except Exception as exc:
                self.stats["last_error"] = repr(exc)
                logger.warning("New-token stream %s dropped: %r", self.url, exc)
            self._transition(StreamState.DISCONNECTED)
            if max_cycles is not None and cycles >= max_cycles:
                break
            await self._sleep(self.reconnect_delay)

    def start(self) -> asyncio.Task:
        """Spawn the supervised subscription task (idempotent)."""

        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run(), name="new-token-stream")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._transition(StreamState.DISCONNECTED)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


__all__ = [
    "DEFAULT_SUBSCRIBE_PAYLOAD",
    "NewTokenStream",
    "StreamState",
    "candidate_from_message",
]
