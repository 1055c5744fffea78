import asyncio
import logging
import os

from alice_oracle.jsonutil import dumps_bytes, loads
from alice_oracle.recall import RecallStore, entry_from_scored
from alice_oracle.scoring import score_token


def _entry(identifier, score=50, first_seen=1, last_seen=1):
    return {
        "identifier": identifier,
        "name": identifier.upper(),
        "symbol": identifier[:4].upper(),
        "originSource": "stream",
        "compositeScore": score,
        "recommendation": "HOLD",
        "archetype": "Guardian",
        "priceUsd": None,
        "fdv": None,
        "liquidityUsd": None,
        "spiking": False,
        "firstSeen": first_seen,
        "lastSeen": last_seen,
    }


def test_missing_file_loads_empty(tmp_path):
    store = RecallStore(tmp_path / "recall.json")
    assert store.load() == []
    assert len(store) == 0


def test_corrupt_file_loads_empty(tmp_path, caplog):
    path = tmp_path / "recall.json"
    path.write_text("{not json", encoding="utf-8")
    store = RecallStore(path)
    with caplog.at_level(logging.WARNING, logger="alice_oracle.recall"):
        assert store.load() == []
    assert "corrupt" in caplog.text


def test_merge_puts_new_entries_first_and_keeps_first_seen(tmp_path):
    path = tmp_path / "recall.json"
    store = RecallStore(path)
    asyncio.run(store.merge([_entry("MintA", score=40, first_seen=100, last_seen=100)]))
    asyncio.run(
        store.merge(
            [
                _entry("minta", score=70, first_seen=500, last_seen=500),
                _entry("MintB", first_seen=500, last_seen=500),
            ]
        )
    )

    entries = store.entries()
    assert [e["identifier"] for e in entries] == ["minta", "MintB"]
    assert entries[0]["compositeScore"] == 70
    assert entries[0]["firstSeen"] == 100
    assert entries[0]["lastSeen"] == 500

    on_disk = loads(path.read_bytes())
    assert on_disk == entries
    assert not os.path.exists(f"{path}.tmp")
    assert RecallStore(path).load() == entries


def test_older_entries_follow_newer_ones(tmp_path):
    store = RecallStore(tmp_path / "recall.json")
    asyncio.run(store.merge([_entry("a"), _entry("b")]))
    asyncio.run(store.merge([_entry("c")]))
    assert [e["identifier"] for e in store.entries()] == ["c", "a", "b"]
    assert [e["identifier"] for e in store.entries(2)] == ["c", "a"]


def test_capacity_truncates_history(tmp_path):
    store = RecallStore(tmp_path / "recall.json", capacity=3)
    asyncio.run(store.merge([_entry(f"m{i}") for i in range(5)]))
    assert len(store) == 3
    assert [e["identifier"] for e in store.entries()] == ["m0", "m1", "m2"]


def test_concurrent_merges_keep_every_entry(tmp_path):
    store = RecallStore(tmp_path / "recall.json")

    async def main():
        await asyncio.gather(*(store.merge([_entry(f"m{i}")]) for i in range(10)))

    asyncio.run(main())
    assert {e["identifier"] for e in store.entries()} == {f"m{i}" for i in range(10)}


def test_write_failure_is_not_fatal(tmp_path, monkeypatch, caplog):
    store = RecallStore(tmp_path / "recall.json")

    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("alice_oracle.recall.os.replace", boom)
    with caplog.at_level(logging.WARNING, logger="alice_oracle.recall"):
        merged = asyncio.run(store.merge([_entry("a")]))
    assert [e["identifier"] for e in merged] == ["a"]
    assert len(store) == 1
    assert "Failed to persist" in caplog.text
    assert not os.path.exists(f"{store.path}.tmp")


def test_entry_from_scored(make_token, cosmic_snapshot):
    token = make_token(fdv=30_000, liquidity_usd=9_000, price_usd=0.001)
    scored = score_token(token, cosmic_snapshot, now=1_000)
    entry = entry_from_scored(scored, seen_at=1_000)
    assert entry["identifier"] == token.identifier
    assert entry["originSource"] == "stream"
    assert entry["compositeScore"] == scored.composite_score
    assert entry["recommendation"] == scored.recommendation.value
    assert entry["fdv"] == 30_000
    assert entry["liquidityUsd"] == 9_000
    assert entry["firstSeen"] == entry["lastSeen"] == 1_000


def test_merging_the_same_batch_twice_is_stable(tmp_path):
    store = RecallStore(tmp_path / "recall.json")
    batch = [_entry("a", first_seen=10, last_seen=10), _entry("b", first_seen=10, last_seen=10)]
    first = asyncio.run(store.merge(batch))
    second = asyncio.run(store.merge(batch))
    assert first == second
    assert len(store) == 2


def test_history_never_exceeds_five_hundred(tmp_path):
    store = RecallStore(tmp_path / "recall.json")
    asyncio.run(store.merge([_entry(f"old{i}") for i in range(300)]))
    asyncio.run(store.merge([_entry(f"new{i}") for i in range(350)]))

    entries = store.entries()
    assert len(entries) == 500
    assert entries[0]["identifier"] == "new0"
    assert entries[349]["identifier"] == "new349"
    assert entries[350]["identifier"] == "old0"
    assert entries[-1]["identifier"] == "old149"
    assert len(RecallStore(tmp_path / "recall.json").load()) == 500


def test_load_drops_repeated_identifiers(tmp_path):
    path = tmp_path / "recall.json"
    rows = [_entry("MintA", score=80), _entry("minta", score=20), _entry("MintB")]
    path.write_bytes(dumps_bytes(rows))
    entries = RecallStore(path).load()
    assert [e["identifier"] for e in entries] == ["MintA", "MintB"]
    assert entries[0]["compositeScore"] == 80
