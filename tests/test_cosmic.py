import asyncio
from datetime import date, datetime, timezone

import pytest

from alice_oracle.cosmic import CosmicProvider, kp_level, moon_phase, parse_kp_series
from alice_oracle.models import KpLevel

KP_URL = "https://services.swpc.noaa.gov/products/noaa-planetary-k-index.json"


def test_moon_phase_known_dates():
    full = moon_phase(date(2024, 1, 25))
    assert full.name == "Full Moon"
    assert full.emoji == "🌕"
    assert full.illumination >= 95

    new = moon_phase(date(2024, 1, 11))
    assert new.name == "New Moon"
    assert new.illumination <= 5


def test_moon_phase_is_pure():
    assert moon_phase(date(2025, 6, 1)) == moon_phase(date(2025, 6, 1))


@pytest.mark.parametrize(
    "kp, level",
    [(0.0, KpLevel.QUIET), (2.99, KpLevel.QUIET), (3.0, KpLevel.MODERATE), (4.0, KpLevel.ACTIVE), (5.0, KpLevel.STORM), (8.7, KpLevel.STORM)],
)
def test_kp_level(kp, level):
    assert kp_level(kp) is level


def test_parse_kp_series_layouts():
    rows = [
        ["time_tag", "Kp", "a_running", "station_count"],
        ["2024-05-10 00:00:00.000", "4.33", "32", "8"],
        ["2024-05-10 03:00:00.000", "7.67", "207", "8"],
    ]
    assert parse_kp_series(rows) == pytest.approx(7.67)
    assert parse_kp_series([{"time_tag": "t", "Kp": 2.0}]) == 2.0
    assert parse_kp_series([{"time_tag": "t", "kp_index": 5}]) == 5.0


@pytest.mark.parametrize(
    "payload",
    [None, [], {"Kp": 3}, [["time_tag", "Kp"]], [{"Kp": "n/a"}], [{"Kp": 12}]],
)
def test_parse_kp_series_rejects_unusable(payload):
    assert parse_kp_series(payload) is None


def test_snapshot_uses_noaa_reading(fake_fetcher):
    fetcher = fake_fetcher({KP_URL: [["time_tag", "Kp"], ["2024-01-25 00:00:00", "5.67"]]})
    provider = CosmicProvider(
        fetcher,
        KP_URL,
        clock=lambda: datetime(2024, 1, 25, 12, tzinfo=timezone.utc),
    )
    snap = asyncio.run(provider.snapshot())
    assert snap.moon_phase == "Full Moon"
    assert snap.kp_index == pytest.approx(5.67)
    assert snap.kp_level is KpLevel.STORM
    assert snap.kp_source == "noaa"
    assert snap.to_dict()["kp"]["level"] == "Storm"


def test_snapshot_falls_back_without_data(fake_fetcher):
    provider = CosmicProvider(fake_fetcher(), KP_URL)
    snap = asyncio.run(provider.snapshot())
    assert snap.kp_index == 3.0
    assert snap.kp_level is KpLevel.MODERATE
    assert snap.kp_source == "fallback"
