"""Lunar phase and geomagnetic (Kp) inputs for the cosmic scoring factor.

The moon phase is a pure function of the calendar date.  The planetary Kp
index comes from the NOAA SWPC JSON feed; when that feed gives no usable data
a static "Moderate" reading is used instead.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from .models import CosmicSnapshot, KpLevel

logger = logging.getLogger(__name__)

SYNODIC_MONTH = 29.5305882

PHASES = (
    "New Moon",
    "Waxing Crescent",
    "First Quarter",
    "Waxing Gibbous",
    "Full Moon",
    "Waning Gibbous",
    "Last Quarter",
    "Waning Crescent",
)
PHASE_EMOJI = ("🌑", "🌒", "🌓", "🌔", "🌕", "🌖", "🌗", "🌘")

FALLBACK_KP = 3.0


@dataclass(frozen=True)
class MoonPhase:
    name: str
    illumination: int
    emoji: str
    age: float  # fraction of the synodic month, 0 = new moon


def moon_phase(day: date) -> MoonPhase:
    """Return the moon phase for the calendar date ``day``."""

    year, month = day.year, day.month
    if month < 3:
        year -= 1
        month += 12
    month += 1
    days = 365.25 * year + 30.6 * month + day.day - 694039.09
    cycles = days / SYNODIC_MONTH
    age = cycles - math.floor(cycles)
    index = int(math.floor(age * 8 + 0.5)) % 8
    illumination = round((1 - math.cos(2 * math.pi * age)) / 2 * 100)
    return MoonPhase(
        name=PHASES[index],
        illumination=int(illumination),
        emoji=PHASE_EMOJI[index],
        age=age,
    )


def kp_level(kp: float) -> KpLevel:
    if kp >= 5:
        return KpLevel.STORM
    if kp >= 4:
        return KpLevel.ACTIVE
    if kp >= 3:
        return KpLevel.MODERATE
    return KpLevel.QUIET


def _coerce_kp(value: Any) -> Optional[float]:
    try:
        kp = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(kp) or kp < 0 or kp > 9:
        return None
    return kp


def parse_kp_series(payload: Any) -> Optional[float]:
    """Return the most recent Kp reading from a NOAA planetary K-index series.

    Two layouts are accepted: a list of rows whose first row is a header
    (``[["time_tag", "Kp", ...], ["2024-05-10 00:00:00", "5.33", ...]]``)
    and a list of objects carrying a ``Kp`` (or ``kp_index``) key.
    """

    if not isinstance(payload, list) or not payload:
        return None
    latest = payload[-1]
    if isinstance(latest, dict):
        for key in ("Kp", "kp", "kp_index"):
            if key in latest:
                return _coerce_kp(latest[key])
        return None
    if isinstance(latest, (list, tuple)):
        if len(payload) < 2 or len(latest) < 2:
            return None
        return _coerce_kp(latest[1])
    return None


class CosmicProvider:
    """Build a :class:`CosmicSnapshot` for the current date."""

    def __init__(
        self,
        fetcher: Any,
        url: str,
        *,
        fallback_kp: float = FALLBACK_KP,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.url = url
        self.fallback_kp = fallback_kp
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def kp_index(self) -> tuple[float, str]:
        payload = await self.fetcher.fetch_json(self.url)
        kp = parse_kp_series(payload)
        if kp is None:
            logger.debug("Kp index unavailable, using fallback %.1f", self.fallback_kp)
            return self.fallback_kp, "fallback"
        return kp, "noaa"

    async def snapshot(self) -> CosmicSnapshot:
        moon = moon_phase(self._clock().date())
        kp, source = await self.kp_index()
        return CosmicSnapshot(
            moon_phase=moon.name,
            illumination=moon.illumination,
            emoji=moon.emoji,
            kp_index=kp,
            kp_level=kp_level(kp),
            kp_source=source,
        )


__all__ = [
    "CosmicProvider",
    "FALLBACK_KP",
    "MoonPhase",
    "PHASES",
    "kp_level",
    "moon_phase",
    "parse_kp_series",
]
